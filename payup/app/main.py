"""
PayUp API: a shared-expense ledger for small teams.

Run with ``uvicorn payup.app.main:app``.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from payup.app.api.v1.router import router as api_v1_router
from payup.app.core.config import settings
from payup.app.core.exceptions import register_exception_handlers
from payup.app.core.jwt import issue_token
from payup.app.core.observability import ObservabilityMiddleware, configure_logging
from payup.app.core.redis_client import close_redis, ping_redis
from payup.app.db.session import Base, engine
from payup.app.services.notification_service import notifier

# Registers every table on Base.metadata before create_all
from payup.app.models import activity_log, agreement, expense, notification, settlement, team, user  # noqa: F401

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.debug)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    if not await ping_redis():
        logger.warning("Redis unavailable at startup; team views will be read from the database")
    logger.info("%s %s started", settings.app_name, settings.api_version)

    yield

    # Notices queued by the last requests still get written
    await notifier.drain()
    await close_redis()
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Shared expenses, installment plans, settlements and netting for small teams",
    lifespan=lifespan,
)
app.add_middleware(ObservabilityMiddleware)
register_exception_handlers(app)
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


@app.get("/health", tags=["Health"])
async def health_check():
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
        "cache": "up" if await ping_redis() else "down",
    }


@app.get("/", tags=["Root"])
async def root():
    return {"message": "PayUp Ledger API", "docs": "/docs", "health": "/health"}


if settings.debug:
    @app.post("/auth/dev-token", tags=["Authentication"])
    async def generate_dev_token(user_id: int, username: str = "dev_user"):
        """Issue a token for an existing user id. Debug builds only; real tokens come from the identity provider."""
        return {"access_token": issue_token(user_id, username), "token_type": "bearer", "user_id": user_id}
