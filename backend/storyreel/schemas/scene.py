from __future__ import annotations
"""Pydantic v2 schemas for Scene model and its media."""

from datetime import datetime

from pydantic import BaseModel, Field


class MediaRead(BaseModel):
    """Current image or video of a scene."""

    id: str
    storage_path: str
    content_type: str
    size_bytes: int
    width: int | None = None
    height: int | None = None
    duration: float | None = None
    url: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class SceneRead(BaseModel):
    """Schema for reading a scene."""

    id: str
    project_id: str
    order_index: int
    description: str
    description_confirmed: bool
    image_status: str
    image_confirmed: bool
    image_error: str | None = None
    video_status: str
    video_confirmed: bool
    video_error: str | None = None

    model_config = {"from_attributes": True}


class SceneDetail(SceneRead):
    image: MediaRead | None = None
    video: MediaRead | None = None


class SceneUpdate(BaseModel):
    """Schema for editing a scene description."""

    description: str = Field(..., min_length=1)


class RegenerateScenesRequest(BaseModel):
    feedback: str | None = Field(None, max_length=5000)


class GenerateMediaRequest(BaseModel):
    """Replace a completed image/video when regenerate is set."""

    regenerate: bool = False


class SceneListResponse(BaseModel):
    scenes: list[SceneRead]
    message: str | None = None


class VideoConfirmResponse(BaseModel):
    scene: SceneRead
    all_confirmed: bool
    stage_advanced: bool


class BulkConfirmResponse(BaseModel):
    count: int
    skipped: int = 0
    stage: str


class SceneGenerationOutcome(BaseModel):
    scene_id: str
    order_index: int
    success: bool
    error: str | None = None

    model_config = {"from_attributes": True}


class BatchGenerationResponse(BaseModel):
    """Per-scene results of a generate-images / generate-videos batch."""

    total: int
    completed: int
    failed: int
    results: list[SceneGenerationOutcome]
    message: str

    model_config = {"from_attributes": True}
