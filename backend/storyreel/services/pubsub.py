"""Redis Pub/Sub bridge for WebSocket notifications.

Workflow services publish scene/project status changes to a per-project
channel; the WebSocket handler subscribes and relays to connected clients.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import redis.asyncio as aioredis

from storyreel.config import get_settings

logger = logging.getLogger(__name__)

CHANNEL_PREFIX = "storyreel:ws:"

_async_client: aioredis.Redis | None = None


def _get_async_client() -> aioredis.Redis:
    """Lazy-init a module-level async Redis client (singleton)."""
    global _async_client
    if _async_client is None:
        _async_client = aioredis.from_url(get_settings().REDIS_URL)
    return _async_client


# ──────── Publisher ────────

async def publish_scene_update(project_id: str, scene_id: str, track: str, status: str) -> None:
    await _publish(project_id, {
        "type": "scene_update",
        "scene_id": scene_id,
        "track": track,
        "status": status,
    })


async def publish_project_update(project_id: str, stage: str) -> None:
    await _publish(project_id, {
        "type": "project_update",
        "stage": stage,
    })


async def _publish(project_id: str, message: dict[str, Any]) -> None:
    """Best-effort publish: a Redis outage never fails a workflow operation."""
    if not get_settings().NOTIFY_ENABLED:
        return
    try:
        await _get_async_client().publish(f"{CHANNEL_PREFIX}{project_id}", json.dumps(message))
    except Exception:
        logger.warning("Failed to publish WS notification for project %s", project_id, exc_info=True)


# ──────── Subscriber ────────

async def subscribe_project(project_id: str) -> aioredis.client.PubSub:
    """Create a PubSub subscription for a project channel.

    Caller should close the pubsub when done, but NOT the shared client.
    """
    pubsub = _get_async_client().pubsub()
    await pubsub.subscribe(f"{CHANNEL_PREFIX}{project_id}")
    return pubsub


async def listen_pubsub(pubsub: aioredis.client.PubSub):
    """Async generator that yields parsed messages from a PubSub subscription."""
    async for raw_message in pubsub.listen():
        if raw_message["type"] == "message":
            try:
                yield json.loads(raw_message["data"])
            except (json.JSONDecodeError, TypeError):
                continue
