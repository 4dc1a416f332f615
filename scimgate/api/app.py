"""FastAPI application factory with lifespan management."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from scimgate.api.dependencies import require_admin
from scimgate.api.routers import logs, mappings, provisioning, tokens
from scimgate.core.config import get_settings
from scimgate.core.database import close_engine, get_session_factory
from scimgate.core.errors import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ProvisioningError,
    UnavailableError,
    ValidationError,
)
from scimgate.core.logging import configure_logging, get_logger
from scimgate.provisioning.plane import ControlPlane

logger = get_logger(__name__)

VERSION = "0.1.0"

# Looked up along the exception's MRO, so token errors raised outside the
# provisioning guard (e.g. rotating a revoked token) land on 404 / 409.
_STATUS_BY_ERROR: dict[type[ProvisioningError], int] = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ConflictError: status.HTTP_409_CONFLICT,
    InvalidStateError: status.HTTP_409_CONFLICT,
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    UnavailableError: status.HTTP_503_SERVICE_UNAVAILABLE,
    ProvisioningError: status.HTTP_400_BAD_REQUEST,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    configure_logging()
    settings = get_settings()
    logger.info("Starting scimgate", debug=settings.app_debug, tenancy=settings.tenancy_mode)

    app.state.plane = ControlPlane.build(settings, get_session_factory())

    yield

    # Cleanup
    await app.state.plane.aclose()
    await close_engine()
    logger.info("scimgate stopped")


async def _provisioning_error_handler(request: Request, exc: ProvisioningError) -> JSONResponse:
    code = next(
        _STATUS_BY_ERROR[cls] for cls in type(exc).__mro__ if cls in _STATUS_BY_ERROR
    )
    if code >= 500:
        logger.error("Provisioning backend unavailable", path=request.url.path, error=exc.message)
    return JSONResponse(status_code=code, content={"detail": exc.message})


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title="scimgate",
        description="SCIM provisioning control plane: tokens, mappings and audit",
        version=VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ProvisioningError, _provisioning_error_handler)

    api_prefix = "/api/v1"

    # Admin routers require an admin JWT
    _admin = [Depends(require_admin)]
    app.include_router(tokens.router, prefix=api_prefix, dependencies=_admin)
    app.include_router(mappings.router, prefix=api_prefix, dependencies=_admin)
    app.include_router(logs.router, prefix=api_prefix, dependencies=_admin)

    # IdP-facing routes authenticate with provisioning tokens themselves
    app.include_router(provisioning.router, prefix=api_prefix)

    @app.get("/health", tags=["health"])
    async def health() -> dict[str, str]:
        return {"status": "ok", "version": VERSION}

    return app


app = create_app()
