from __future__ import annotations
"""Generation collaborator seam used by the scene lifecycle controller."""

from abc import ABC, abstractmethod
from typing import Any

from storyreel.services import image_gen, scene_writer, video_gen


class GenerationClient(ABC):
    """Text, image and video generation backends behind one interface."""

    @abstractmethod
    async def generate_scene_descriptions(
        self,
        story: str,
        style: str | None = None,
        previous: list[str] | None = None,
        feedback: str | None = None,
    ) -> list[str]:
        ...

    @abstractmethod
    async def generate_image(
        self, description: str, style: str | None = None, options: dict[str, Any] | None = None
    ) -> bytes:
        ...

    @abstractmethod
    async def generate_video(
        self, image: bytes, description: str, options: dict[str, Any] | None = None
    ) -> bytes:
        ...


class ProviderGenerationClient(GenerationClient):
    """Delegates to the configured providers (or their mock mode)."""

    async def generate_scene_descriptions(self, story, style=None, previous=None, feedback=None):
        return await scene_writer.generate_scene_descriptions(story, style, previous, feedback)

    async def generate_image(self, description, style=None, options=None):
        return await image_gen.generate_image(description, style, options)

    async def generate_video(self, image, description, options=None):
        return await video_gen.generate_video(image, description, options)


def get_generation_client() -> GenerationClient:
    return ProviderGenerationClient()


def generation_metrics() -> list[dict[str, Any]]:
    return [
        image_gen.get_image_service().get_metrics(),
        video_gen.get_video_service().get_metrics(),
    ]
