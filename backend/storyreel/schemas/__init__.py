"""Pydantic v2 schemas package."""

from storyreel.schemas.project import (
    ProjectCreate,
    ProjectDetail,
    ProjectPage,
    ProjectRead,
    ProjectStageUpdate,
    ProjectUpdate,
)
from storyreel.schemas.scene import (
    BulkConfirmResponse,
    GenerateMediaRequest,
    MediaRead,
    RegenerateScenesRequest,
    SceneDetail,
    SceneListResponse,
    SceneRead,
    SceneUpdate,
    VideoConfirmResponse,
)

__all__ = [
    "ProjectCreate",
    "ProjectDetail",
    "ProjectPage",
    "ProjectRead",
    "ProjectStageUpdate",
    "ProjectUpdate",
    "BulkConfirmResponse",
    "GenerateMediaRequest",
    "MediaRead",
    "RegenerateScenesRequest",
    "SceneDetail",
    "SceneListResponse",
    "SceneRead",
    "SceneUpdate",
    "VideoConfirmResponse",
]
