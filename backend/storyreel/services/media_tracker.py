from __future__ import annotations
"""Media artifact tracker: the current image/video of each scene.

Storage objects are always deleted before their rows, so a failure midway
leaves an orphaned row (cleaned up on retry) rather than orphaned storage.
"""

import logging
import uuid
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from storyreel.models.media import Image, Video
from storyreel.models.scene import Scene, TrackKind
from storyreel.services.storage import BaseStorage

logger = logging.getLogger(__name__)

_MODELS = {TrackKind.IMAGE: Image, TrackKind.VIDEO: Video}
_FORMATS = {
    TrackKind.IMAGE: ("png", "image/png"),
    TrackKind.VIDEO: ("mp4", "video/mp4"),
}


def artifact_model(kind: TrackKind) -> type[Image] | type[Video]:
    try:
        return _MODELS[kind]
    except KeyError:
        raise ValueError(f"No media artifact for track {kind.value}") from None


class MediaArtifactTracker:
    def __init__(self, storage: BaseStorage):
        self.storage = storage

    async def current(self, db: AsyncSession, scene_id: str, kind: TrackKind) -> Image | Video | None:
        model = artifact_model(kind)
        result = await db.execute(
            select(model)
            .where(model.scene_id == scene_id)
            .order_by(model.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def current_for_scenes(
        self, db: AsyncSession, scene_ids: list[str], kind: TrackKind
    ) -> dict[str, Image | Video]:
        """Map scene id -> current artifact, for list views and assembly."""
        if not scene_ids:
            return {}
        model = artifact_model(kind)
        result = await db.execute(
            select(model)
            .where(model.scene_id.in_(scene_ids))
            .order_by(model.created_at)
        )
        # later rows win, so each scene maps to its newest artifact
        return {row.scene_id: row for row in result.scalars().all()}

    async def store(
        self,
        db: AsyncSession,
        scene: Scene,
        kind: TrackKind,
        data: bytes,
        **meta: Any,
    ) -> Image | Video:
        """Replace the scene's artifact of this kind with ``data``."""
        await self.discard(db, scene.id, kind)

        ext, content_type = _FORMATS[kind]
        path = f"{scene.project_id}/{scene.id}/{kind.value}-{uuid.uuid4().hex[:12]}.{ext}"
        stored = await self.storage.upload(data, path, content_type)

        artifact = artifact_model(kind)(
            scene_id=scene.id,
            storage_path=stored.path,
            content_type=stored.content_type,
            size_bytes=stored.size,
            **meta,
        )
        db.add(artifact)
        await db.flush()
        logger.info("Stored %s for scene %s: %s", kind.value, scene.id[:8], stored.path)
        return artifact

    async def discard(self, db: AsyncSession, scene_id: str, kind: TrackKind) -> int:
        """Delete every artifact of ``kind`` for one scene (storage, then rows)."""
        return await self._discard(db, [scene_id], kind)

    async def discard_for_scenes(self, db: AsyncSession, scene_ids: list[str]) -> int:
        removed = 0
        for kind in _MODELS:
            removed += await self._discard(db, scene_ids, kind)
        return removed

    async def _discard(self, db: AsyncSession, scene_ids: list[str], kind: TrackKind) -> int:
        if not scene_ids:
            return 0
        model = artifact_model(kind)
        result = await db.execute(
            select(model.storage_path).where(model.scene_id.in_(scene_ids))
        )
        paths = result.scalars().all()
        for path in paths:
            # a storage failure propagates before any row is deleted
            await self.storage.delete_file(path)
        await db.execute(delete(model).where(model.scene_id.in_(scene_ids)))
        return len(paths)
