from __future__ import annotations
"""Pydantic v2 schemas for Project model."""

from datetime import datetime

from pydantic import BaseModel, Field

from storyreel.schemas.scene import SceneDetail


class ProjectCreate(BaseModel):
    """Schema for creating a new project."""

    title: str = Field(..., min_length=1, max_length=255)
    story: str | None = Field(None, max_length=20000)
    style: str | None = Field(None, max_length=50)


class ProjectUpdate(BaseModel):
    """Schema for updating a project's content fields."""

    title: str | None = Field(None, min_length=1, max_length=255)
    story: str | None = Field(None, max_length=20000)
    style: str | None = Field(None, max_length=50)


class ProjectStageUpdate(BaseModel):
    """Explicit stage change; validated by the stage machine, not here."""

    stage: str


class ProjectRead(BaseModel):
    """Schema for reading a project."""

    id: str
    title: str
    story: str | None = None
    style: str | None = None
    stage: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ProjectDetail(ProjectRead):
    """Project with its ordered scenes and their current media."""

    scenes: list[SceneDetail] = []


class ProjectPage(BaseModel):
    projects: list[ProjectRead]
    total: int
    page: int
    limit: int
