import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from specstate import __version__
from specstate.api.routers import health, phases, state
from specstate.core.config import Settings, get_settings
from specstate.core.errors import StateSyncError

logger = logging.getLogger(__name__)


async def state_error_handler(request: Request, exc: StateSyncError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}: {exc}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_app(settings: Settings = None) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Approval workflow state store for capabilities, enablers and story cards",
        version=__version__,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(StateSyncError, state_error_handler)

    app.include_router(health.router)
    app.include_router(state.router, prefix="/api")
    app.include_router(phases.router, prefix="/api")

    @app.get("/")
    async def root():
        return {
            "name": settings.app_name,
            "version": __version__,
            "docs": "/docs" if settings.debug else None,
        }

    return app


app = create_app()
