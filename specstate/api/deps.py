from typing import Generator

from fastapi import Depends, Path
from sqlalchemy.orm import Session

from specstate.db.repository import EntityStateRepository
from specstate.db.session import SessionLocal


def get_db() -> Generator:
    """Database session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_repository(
    workspace_id: str = Path(..., min_length=1, max_length=255),
    db: Session = Depends(get_db),
) -> EntityStateRepository:
    """Repository scoped to the workspace in the request path."""
    return EntityStateRepository(db, workspace_id)
