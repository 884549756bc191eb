"""FastAPI application entrypoint.

Configures logging, Sentry and CORS, registers the domain exception
handlers, includes the line item and identity routers and exposes a
healthcheck endpoint.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from .deps import get_settings
from .exceptions import InvalidFilterError, InvalidLineItemError, NotFoundError
from .routers import identities as identities_router
from .routers import line_items as line_items_router
from . import schemas
from .telemetry import capture_exception, init_sentry

# Import models so Alembic can discover metadata
from . import models  # noqa: F401

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    settings = get_settings()
    logging.basicConfig(level=settings.LOG_LEVEL.upper())

    if init_sentry(settings.SENTRY_DSN, settings.ENVIRONMENT):
        logger.info("[STARTUP] Sentry error tracking enabled")

    app = FastAPI(
        title="leadreport API",
        description="""
        Qualification reporting for email line items.

        For a line item this API reports:
        - Eligible deployment urls (customer scope, tags, link types, date window)
        - Eligible identities (clicked an eligible url in the window)
        - Qualified and scrubbed identities (activity, domain and profile filters)
        - Click metrics and an export of the qualified identities

        Line item endpoints are read-only. Identity endpoints toggle opt-outs
        (globally, per customer, per line item) and check the domain denylist.
        """,
        version="1.0.0",
    )

    # BACKEND_CORS_ORIGINS can be a comma-separated list: "https://reports.example.com,http://localhost:3000"
    allowed_origins = [o.strip() for o in settings.BACKEND_CORS_ORIGINS.split(",") if o.strip()]
    logger.info(f"[CORS] Allowed origins: {allowed_origins}")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "PUT"],
        allow_headers=["*"],
    )

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        logger.warning(f"[API] {request.url.path}: {exc.message}")
        return JSONResponse(status_code=404, content={"detail": exc.message})

    @app.exception_handler(InvalidFilterError)
    @app.exception_handler(InvalidLineItemError)
    async def invalid_configuration_handler(request: Request, exc):
        logger.warning(f"[API] {request.url.path}: {exc.message}")
        return JSONResponse(status_code=422, content={"detail": exc.message})

    @app.exception_handler(SQLAlchemyError)
    async def store_error_handler(request: Request, exc: SQLAlchemyError):
        logger.error(f"[API] Store error on {request.url.path}: {exc}")
        capture_exception(exc, extra={"path": request.url.path})
        return JSONResponse(status_code=500, content={"detail": "Report store unavailable"})

    app.include_router(line_items_router.router)
    app.include_router(identities_router.router)

    @app.get(
        "/health",
        response_model=schemas.HealthResponse,
        tags=["Health"],
        summary="Health check",
    )
    def health():
        """Returns basic service status. Does not touch the database."""
        return schemas.HealthResponse(status="ok")

    return app


app = create_app()
