from __future__ import annotations
"""Project ORM model: a story moving through the production stages."""

import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storyreel.database import Base


class ProjectStage(str, enum.Enum):
    """Project workflow stages, in order."""

    DRAFT = "draft"
    SCENES = "scenes"
    IMAGES = "images"
    VIDEOS = "videos"
    COMPLETED = "completed"


# Ordered list for index-based comparison
STAGE_ORDER: list[ProjectStage] = list(ProjectStage)


def _utcnow() -> datetime:
    return datetime.utcnow()


class Project(Base):
    """A project: story text, style and the ordered scene breakdown."""

    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: uuid.uuid4().hex,
    )
    user_id: Mapped[Optional[str]] = mapped_column(
        String(64), nullable=True, index=True
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    story: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    style: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    stage: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ProjectStage.DRAFT.value
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=_utcnow, onupdate=_utcnow
    )

    # Relationships (deleted explicitly by the project service, never lazy-loaded)
    scenes = relationship(
        "Scene",
        back_populates="project",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Scene.order_index",
    )

    def stage_index(self) -> int:
        return STAGE_ORDER.index(ProjectStage(self.stage))
