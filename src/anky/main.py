"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from anky.config import get_settings
from anky.database import close_db, init_db
from anky.health.router import router as health_router
from anky.leaderboard.router import router as leaderboard_router
from anky.middleware import setup_middleware
from anky.redis_client import close_redis, init_redis
from anky.writing.router import router as writing_router


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Anky Indexer API",
        description="Read API over indexed Anky writing sessions, tokens and streaks",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router)
    app.include_router(writing_router)
    app.include_router(leaderboard_router)

    return app


app = create_app()
