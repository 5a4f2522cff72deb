"""FastAPI application entrypoint."""
from __future__ import annotations

import uuid

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .api import decompositions, plans
from .config import get_settings
from .observability.logging import configure_logging
from .observability.otel import configure_telemetry
from .persistence.db import init_db

CORRELATION_HEADER = "X-Correlation-ID"

logger = structlog.get_logger(__name__)


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging()
    configure_telemetry()

    app = FastAPI(
        title="PI Planner",
        version="0.1.0",
        openapi_version="3.1.0",
        docs_url="/docs",
        redoc_url=None,
    )

    @app.on_event("startup")
    async def _startup() -> None:  # pragma: no cover - FastAPI lifecycle
        await init_db()
        logger.info("app.started", environment=settings.environment)

    @app.middleware("http")
    async def _bind_correlation_id(request: Request, call_next):
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(correlation_id=correlation_id, path=request.url.path)
        response = await call_next(request)
        response.headers[CORRELATION_HEADER] = correlation_id
        return response

    @app.exception_handler(Exception)
    async def _generic_exception_handler(request: Request, exc: Exception):  # pragma: no cover - fallback
        logger.exception("app.unhandled_error")
        return JSONResponse(
            status_code=500,
            content={
                "error": "InternalServerError",
                "message": str(exc),
                "remediation": f"Retry the planning run; quote the {CORRELATION_HEADER} header if it fails again",
            },
        )

    app.include_router(plans.router)
    app.include_router(decompositions.router)

    @app.get("/healthz")
    async def healthcheck():
        return {"status": "ok", "environment": settings.environment}

    return app


app = create_app()


__all__ = ["app", "create_app"]
