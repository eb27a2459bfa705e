from __future__ import annotations
"""StoryReel: FastAPI application entry point.

Mounts all API routes, configures CORS and error handlers, and initializes
the database and media volume on startup.
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import update

from storyreel.api.router import api_router
from storyreel.api.storage import media_router
from storyreel.api.ws import router as ws_router
from storyreel.config import get_settings
from storyreel.database import async_session_factory, close_db, init_db
from storyreel.errors import register_exception_handlers
from storyreel.models.scene import Scene, TrackStatus

settings = get_settings()

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

INTERRUPTED_MESSAGE = "Generation was interrupted by a service restart"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: init DB on startup, close on shutdown."""
    logger.info("StoryReel starting up...")
    logger.info("USE_MOCK_API: %s", settings.USE_MOCK_API)

    os.makedirs(settings.MEDIA_VOLUME, exist_ok=True)
    await init_db()
    await recover_stuck_tracks()

    yield

    await close_db()
    logger.info("StoryReel shut down")


async def recover_stuck_tracks() -> int:
    """Fail tracks left in processing by a previous process.

    Generation runs inside the request, so nothing can still be working on
    them after a restart; failed tracks can be re-triggered.
    """
    total = 0
    try:
        async with async_session_factory() as session:
            for track in ("image", "video"):
                status_col = getattr(Scene, f"{track}_status")
                result = await session.execute(
                    update(Scene)
                    .where(status_col == TrackStatus.PROCESSING.value)
                    .values({
                        f"{track}_status": TrackStatus.FAILED.value,
                        f"{track}_error": INTERRUPTED_MESSAGE,
                    })
                )
                if result.rowcount > 0:
                    logger.warning(
                        "Startup recovery: reset %d scene %s track(s) processing → failed",
                        result.rowcount, track,
                    )
                    total += result.rowcount
            await session.commit()
    except Exception as e:
        logger.warning("Startup recovery failed (non-fatal): %s", e)
        return 0

    if total == 0:
        logger.info("Startup recovery: no stuck tracks found")
    return total


app = FastAPI(
    title="StoryReel API",
    description="Story → scenes → images → videos, one confirmed step at a time",
    version="0.1.0",
    lifespan=lifespan,
    redirect_slashes=False,
)

_cors_origins = os.environ.get(
    "CORS_ORIGINS",
    "http://localhost:3000,http://127.0.0.1:3000",
).split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(api_router)
app.include_router(media_router)
app.include_router(ws_router)


@app.get("/health")
async def health():
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "mock_mode": settings.USE_MOCK_API,
    }
