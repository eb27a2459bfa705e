"""ORM model package: registers all models with Base.metadata."""

from storyreel.models.project import Project, ProjectStage, STAGE_ORDER
from storyreel.models.scene import Scene, TrackKind, TrackStatus
from storyreel.models.media import Image, Video

__all__ = [
    "Project",
    "ProjectStage",
    "STAGE_ORDER",
    "Scene",
    "TrackKind",
    "TrackStatus",
    "Image",
    "Video",
]
