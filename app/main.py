"""FastAPI application entrypoint."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, HTTPException, Request, Response, status
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

import app.modules  # noqa: F401
from app.core.config import get_settings
from app.core.database import build_engine, build_session_factory
from app.core.metrics import build_metrics_response, instrument_http_request
from app.modules.audit.router import router as audit_router
from app.modules.availability.router import router as availability_router
from app.modules.booking.router import router as booking_router
from app.modules.homework.router import router as homework_router
from app.modules.lessons.router import router as lessons_router
from app.modules.meetings.router import router as meetings_router
from app.modules.notifications.router import router as notifications_router
from app.modules.payments.gateways import build_payment_gateways
from app.modules.payments.router import router as payments_router
from app.modules.profiles.router import router as profiles_router
from app.shared.exceptions import register_exception_handlers
from app.shared.utils import utc_now

settings = get_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build engine, session factory and payment gateways; dispose them on shutdown."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    logger.info("Starting %s", settings.app_name)

    engine = build_engine(settings)
    http_client = httpx.AsyncClient(timeout=settings.payment_http_timeout_seconds)
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)
    app.state.http_client = http_client
    app.state.payment_gateways = build_payment_gateways(settings, http_client)

    try:
        yield
    finally:
        logger.info("Shutting down %s", settings.app_name)
        await http_client.aclose()
        await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    debug=settings.debug,
    lifespan=lifespan,
)
app.middleware("http")(instrument_http_request)

register_exception_handlers(app)

app.include_router(profiles_router, prefix=settings.api_prefix)
app.include_router(availability_router, prefix=settings.api_prefix)
app.include_router(booking_router, prefix=settings.api_prefix)
app.include_router(payments_router, prefix=settings.api_prefix)
app.include_router(lessons_router, prefix=settings.api_prefix)
app.include_router(homework_router, prefix=settings.api_prefix)
app.include_router(meetings_router, prefix=settings.api_prefix)
app.include_router(notifications_router, prefix=settings.api_prefix)
app.include_router(audit_router, prefix=settings.api_prefix)


@app.get("/health")
async def healthcheck() -> dict[str, str]:
    """Liveness probe endpoint."""
    return {"status": "ok"}


async def _is_database_ready(session_factory: async_sessionmaker[AsyncSession]) -> bool:
    """Return True if DB accepts basic queries."""
    try:
        async with session_factory() as session:
            await session.execute(text("SELECT 1"))
        return True
    except Exception:
        logger.exception("Database readiness check failed")
        return False


@app.get("/ready")
async def readiness_check(request: Request) -> dict[str, str]:
    """Readiness probe endpoint with DB dependency check."""
    if not await _is_database_ready(request.app.state.session_factory):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database is not ready",
        )
    return {
        "status": "ready",
        "database": "ok",
        "timestamp": utc_now().isoformat(),
    }


@app.get("/metrics", include_in_schema=False)
async def metrics_endpoint(_: Request) -> Response:
    """Prometheus metrics endpoint."""
    return build_metrics_response()
