from __future__ import annotations
"""Image generation service: text-to-image over an OpenAI-style images API.

Returns raw PNG bytes; storing them is the media tracker's job.
"""

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
from storyreel.services.scene_writer import build_style_guidance

logger = logging.getLogger(__name__)
settings = get_settings()

# 1x1 transparent PNG used in mock mode
_MOCK_PNG = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mNkYAAAAAYAAjCB0C8AAAAASUVORK5CYII="
)


class ImageGenService(BaseGenService[bytes]):
    """Single-attempt image generation bounded by GENERATION_TIMEOUT."""

    service_name = "image_gen"

    def __init__(self) -> None:
        super().__init__(GenServiceConfig(
            max_retries=0,
            timeout=settings.GENERATION_TIMEOUT,
        ))

    async def _generate(self, **kwargs: Any) -> bytes:
        return await _generate_image_core(
            description=kwargs["description"],
            style=kwargs.get("style"),
            size=kwargs.get("size") or settings.IMAGE_SIZE,
        )


_image_service = ImageGenService()


def get_image_service() -> ImageGenService:
    """Return the singleton ImageGenService for metrics access."""
    return _image_service


async def generate_image(
    description: str,
    style: str | None = None,
    options: dict[str, Any] | None = None,
) -> bytes:
    """Public API: delegates to ImageGenService for timeout/metrics."""
    options = options or {}
    result = await _image_service.execute(
        description=description,
        style=style,
        size=options.get("size"),
    )
    return result.data


async def _generate_image_core(description: str, style: str | None, size: str) -> bytes:
    if settings.USE_MOCK_API:
        return _MOCK_PNG

    if not settings.IMAGE_API_KEY:
        raise GenerationError(
            "Image generation service is not configured. Please set IMAGE_API_KEY.",
            service="image_gen",
        )

    payload = {
        "model": settings.IMAGE_MODEL,
        "prompt": f"{description}\n{build_style_guidance(style)}",
        "size": size,
        "response_format": "b64_json",
        "watermark": False,
    }
    headers = {
        "Content-Type": "application/json",
        "Authorization": f"Bearer {settings.IMAGE_API_KEY}",
    }

    async with httpx.AsyncClient(timeout=120.0) as client:
        response = await client.post(
            f"{settings.IMAGE_API_BASE}/images/generations",
            headers=headers,
            json=payload,
        )
    if response.status_code != 200:
        message = _error_message(response)
        logger.error("Image API HTTP %d: %s", response.status_code, message)
        raise GenerationError(f"Image generation error: {message}", service="image_gen")

    try:
        b64 = response.json()["data"][0]["b64_json"]
        return base64.b64decode(b64)
    except (KeyError, IndexError, ValueError) as e:
        raise GenerationError("Image API returned no image data", service="image_gen") from e


def _error_message(response: httpx.Response) -> str:
    try:
        return response.json().get("error", {}).get("message") or f"HTTP {response.status_code}"
    except ValueError:
        return f"HTTP {response.status_code}"
