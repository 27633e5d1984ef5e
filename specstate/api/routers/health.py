"""Health check endpoints.

- /health: process is up
- /health/ready: database reachable and the state tables migrated
"""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy import inspect, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from specstate import __version__
from specstate.api.deps import get_db
from specstate.db.base import Base

router = APIRouter(tags=["health"])


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def check_database(db: Session) -> Dict[str, Any]:
    """Run a trivial query; failures are reported, not raised."""
    try:
        db.execute(text("SELECT 1")).fetchone()
    except SQLAlchemyError as e:
        return {"status": "unhealthy", "error": str(e)}
    return {"status": "healthy", "dialect": db.get_bind().dialect.name}


def check_schema(db: Session) -> Dict[str, Any]:
    """Report state tables that have not been created yet."""
    try:
        present = set(inspect(db.connection()).get_table_names())
    except SQLAlchemyError as e:
        return {"status": "unhealthy", "error": str(e)}
    missing = sorted(set(Base.metadata.tables) - present)
    if missing:
        return {"status": "unhealthy", "missing_tables": missing}
    return {"status": "healthy", "tables": len(Base.metadata.tables)}


@router.get("/health")
async def health_check():
    return {"status": "healthy", "version": __version__, "timestamp": _timestamp()}


@router.get("/health/ready")
def readiness_probe(db: Session = Depends(get_db)):
    """Readiness probe; 503 until the store can serve entity state."""
    checks = {"database": check_database(db)}
    if checks["database"]["status"] == "healthy":
        checks["schema"] = check_schema(db)

    failed = [name for name, check in checks.items() if check["status"] != "healthy"]
    body = {"status": "not_ready" if failed else "ready", "checks": checks, "timestamp": _timestamp()}
    if failed:
        body["failed"] = failed
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=body)
    return JSONResponse(status_code=status.HTTP_200_OK, content=body)
