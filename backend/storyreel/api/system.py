"""System status endpoint: dependency health and generation metrics."""

from __future__ import annotations

import time
from typing import Any

import redis.asyncio as aioredis
from fastapi import APIRouter

from storyreel.config import get_settings
from storyreel.services import llm_client
from storyreel.services.generation import generation_metrics

router = APIRouter()
settings = get_settings()


async def _check_redis() -> dict[str, Any]:
    t0 = time.time()
    client = aioredis.from_url(settings.REDIS_URL, socket_timeout=3)
    try:
        ping = await client.ping()
        return {
            "status": "ok" if ping else "error",
            "latency_ms": round((time.time() - t0) * 1000, 1),
        }
    except Exception as e:
        return {"status": "error", "error": str(e)}
    finally:
        await client.aclose()


@router.get("/metrics")
async def system_metrics():
    """Generation service metrics (calls, errors, latency)."""
    return {"services": generation_metrics()}


@router.get("/status")
async def system_status():
    """Health of Redis and the configured generation providers."""
    return {
        "redis": await _check_redis() if settings.NOTIFY_ENABLED else {"status": "disabled"},
        "llm": {"configured": llm_client.is_configured()},
        "mock_mode": settings.USE_MOCK_API,
    }
