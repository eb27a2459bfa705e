from __future__ import annotations
"""Scene ORM model: one ordered segment of a project with three tracks."""

import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storyreel.database import Base
from storyreel.models.project import _utcnow


class TrackStatus(str, enum.Enum):
    """Generation status of a scene's image or video track."""

    NONE = "none"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class TrackKind(str, enum.Enum):
    """The per-scene tracks that can be confirmed."""

    DESCRIPTION = "description"
    IMAGE = "image"
    VIDEO = "video"


class Scene(Base):
    """A single scene: description text plus image and video generation state."""

    __tablename__ = "scenes"
    __table_args__ = (
        UniqueConstraint("project_id", "order_index", name="uq_scene_order"),
        {
            "mysql_charset": "utf8mb4",
            "mysql_collate": "utf8mb4_unicode_ci",
        },
    )

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: uuid.uuid4().hex,
    )
    project_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    description_confirmed: Mapped[bool] = mapped_column(Boolean, default=False)

    image_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TrackStatus.NONE.value
    )
    image_confirmed: Mapped[bool] = mapped_column(Boolean, default=False)
    image_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    video_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TrackStatus.NONE.value
    )
    video_confirmed: Mapped[bool] = mapped_column(Boolean, default=False)
    video_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=_utcnow, onupdate=_utcnow
    )

    # Relationships
    project = relationship("Project", back_populates="scenes")
    images = relationship(
        "Image", back_populates="scene", cascade="all, delete-orphan", passive_deletes=True
    )
    videos = relationship(
        "Video", back_populates="scene", cascade="all, delete-orphan", passive_deletes=True
    )
