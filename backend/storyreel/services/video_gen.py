from __future__ import annotations
"""Video generation service: image-to-video via Volcengine Ark Seedance.

Async task pattern:
1. POST /contents/generations/tasks → create task
2. GET  /contents/generations/tasks/{id} → poll status
3. Download the result video bytes

The whole sequence is one attempt bounded by GENERATION_TIMEOUT.
"""

import asyncio
import base64
import logging
from typing import Any

import httpx

from storyreel.config import get_settings
from storyreel.services.base_gen_service import (
    BaseGenService,
    GenerationError,
    GenServiceConfig,
)

logger = logging.getLogger(__name__)
settings = get_settings()

# Minimal ISO-BMFF header so mock files are recognisable as MP4
_MOCK_MP4 = b"\x00\x00\x00\x18ftypmp42\x00\x00\x00\x00mp42isom" + b"\x00" * 1000


class VideoGenService(BaseGenService[bytes]):
    """Single-attempt video generation; Seedance tasks can take minutes."""

    service_name = "video_gen"

    def __init__(self) -> None:
        super().__init__(GenServiceConfig(
            max_retries=0,
            timeout=settings.GENERATION_TIMEOUT,
        ))

    async def _generate(self, **kwargs: Any) -> bytes:
        return await _generate_video_core(
            image=kwargs["image"],
            description=kwargs["description"],
            duration=kwargs.get("duration") or settings.VIDEO_DURATION,
        )


_video_service = VideoGenService()


def get_video_service() -> VideoGenService:
    """Return the singleton VideoGenService for metrics access."""
    return _video_service


async def generate_video(
    image: bytes,
    description: str,
    options: dict[str, Any] | None = None,
) -> bytes:
    """Public API: delegates to VideoGenService for timeout/metrics."""
    options = options or {}
    result = await _video_service.execute(
        image=image,
        description=description,
        duration=options.get("duration"),
    )
    return result.data


async def _generate_video_core(image: bytes, description: str, duration: int) -> bytes:
    if settings.USE_MOCK_API:
        return _MOCK_MP4

    if not settings.VIDEO_API_KEY:
        raise GenerationError(
            "Video generation service is not configured. Please set VIDEO_API_KEY.",
            service="video_gen",
        )

    image_data_url = "data:image/png;base64," + base64.b64encode(image).decode("utf-8")
    payload = {
        "model": settings.VIDEO_MODEL,
        "content": [
            {
                "type": "text",
                "text": f"{description}  --duration {duration} --watermark false",
            },
            {
                "type": "image_url",
                "image_url": {"url": image_data_url},
            },
        ],
    }
    headers = {
        "Content-Type": "application/json",
        "Authorization": f"Bearer {settings.VIDEO_API_KEY}",
    }
    task_url = f"{settings.VIDEO_API_BASE}/contents/generations/tasks"

    async with httpx.AsyncClient(timeout=60.0) as client:
        response = await client.post(task_url, headers=headers, json=payload)
        if response.status_code != 200:
            raise GenerationError(
                f"Video generation error: HTTP {response.status_code}", service="video_gen"
            )
        task_id = response.json().get("id")
        if not task_id:
            raise GenerationError("Video API returned no task ID", service="video_gen")
        logger.info("Seedance task created: %s", task_id)

        video_url = await _poll_task(client, f"{task_url}/{task_id}", headers)

        video = await client.get(video_url, timeout=120.0)
        video.raise_for_status()
        return video.content


async def _poll_task(client: httpx.AsyncClient, poll_url: str, headers: dict) -> str:
    """Poll until the task finishes; the caller's timeout bounds the loop."""
    while True:
        await asyncio.sleep(settings.VIDEO_POLL_INTERVAL)
        response = await client.get(poll_url, headers=headers)
        response.raise_for_status()
        data = response.json()
        status = str(data.get("status", "")).lower()
        logger.debug("Seedance task poll: status=%s", status)

        if status in ("succeeded", "completed", "success"):
            content = data.get("content") or data.get("output") or {}
            video_url = content.get("video_url") or data.get("video_url")
            if not video_url:
                raise GenerationError("Task succeeded but no video URL found", service="video_gen")
            return video_url

        if status in ("failed", "error", "cancelled"):
            error_msg = (data.get("error") or {}).get("message", "Unknown error")
            raise GenerationError(f"Video task failed: {error_msg}", service="video_gen")
