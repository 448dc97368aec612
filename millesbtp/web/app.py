"""FastAPI application for the MillesBTP worksite finance API."""

from __future__ import annotations

from contextlib import asynccontextmanager
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.middleware.base import BaseHTTPMiddleware

from millesbtp.core.logging import configure_logging
from millesbtp.db.connection import close_db
from millesbtp.web.errors import register_exception_handlers
from millesbtp.web.routes import amendments, clients, costs, dashboard, health, worksites

logger = structlog.get_logger()


# Request Logging Middleware
class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        structlog.contextvars.clear_contextvars()

        request_id = request.headers.get("X-Request-ID", str(uuid4()))
        structlog.contextvars.bind_contextvars(request_id=request_id)
        actor = request.headers.get("X-User-Id")
        if actor:
            structlog.contextvars.bind_contextvars(actor=actor)

        logger.info(
            "request_started",
            method=request.method,
            path=request.url.path,
            client_ip=request.client.host if request.client else None,
        )

        try:
            response = await call_next(request)

            logger.info(
                "request_completed",
                status_code=response.status_code,
            )
            response.headers["X-Request-ID"] = request_id
            return response

        except Exception as exc:
            logger.error("request_failed", error=str(exc))
            raise


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await close_db()


def create_app() -> FastAPI:
    """Build the API app. Used as a uvicorn factory (`--factory`)."""
    configure_logging()

    app = FastAPI(
        title="MillesBTP Worksite Finance API",
        description="Worksites, cost ledger, amendments and profitability alerts",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(RequestLoggingMiddleware)

    # Prometheus Metrics
    Instrumentator().instrument(app).expose(app)

    register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(clients.router)
    app.include_router(worksites.router)
    app.include_router(costs.router)
    app.include_router(amendments.router)
    app.include_router(dashboard.router)

    return app
