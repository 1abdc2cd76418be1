"""Gateway FastAPI application entry point."""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from gateway import __version__
from gateway.config import get_settings
from gateway.db import close_db, init_db
from gateway.errors import FieldViolation, GatewayError, ValidationError
from gateway.services.http import http_client_manager
from gateway.utils.logging import configure_logging

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    settings = get_settings()
    configure_logging(settings.logging)

    # Startup
    logger.info("gateway.startup", version=__version__)
    await init_db()

    # Shared HTTP client for the query executor
    await http_client_manager.startup(settings.executor)

    yield

    # Shutdown
    logger.info("gateway.shutdown")
    await http_client_manager.shutdown()
    await close_db()


def _field_name(loc: tuple) -> str:
    # Drop the request source prefix ("body", "query", ...)
    parts = [str(p) for p in loc]
    if len(parts) > 1 and parts[0] in ("body", "query", "path", "header"):
        parts = parts[1:]
    return ".".join(parts)


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    app = FastAPI(
        title="Endpoint Gateway",
        description="Register, key and invoke data endpoints",
        version=__version__,
        lifespan=lifespan,
    )

    # Request ID middleware
    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        """Add request ID to all requests and to the log context."""
        request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
        request.state.request_id = request_id
        structlog.contextvars.bind_contextvars(request_id=request_id)
        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("request_id")
        response.headers["X-Request-Id"] = request_id
        return response

    # Error handlers
    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError):
        """Handle gateway errors with consistent format."""
        request_id = getattr(request.state, "request_id", None)
        if exc.status_code >= 500:
            logger.warning("api.error", code=exc.code, error=exc.message, path=request.url.path)
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_dict(request_id),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        """Report malformed requests as validation_error with every violation."""
        request_id = getattr(request.state, "request_id", None)
        error = ValidationError(
            "Invalid request",
            violations=[
                FieldViolation(_field_name(tuple(e.get("loc", ()))), e.get("msg", "invalid"))
                for e in exc.errors()
            ],
        )
        return JSONResponse(
            status_code=error.status_code,
            content=error.to_dict(request_id),
        )

    # Health check
    @app.get("/health")
    async def health() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "version": __version__}

    # Import and register API routers
    from gateway.api.v1 import router as v1_router

    app.include_router(v1_router, prefix="/v1")

    return app


# Create default app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "gateway.main:app",
        host=settings.server.host,
        port=settings.server.port,
    )
