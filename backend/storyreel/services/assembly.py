"""Artifact assembly: combine a completed project's scene videos into one file.

Fetch every scene video into a private workspace, concatenate them in scene
order and hand back the bytes. Fail-fast: the first fetch or concat error
aborts the whole run. The workspace is removed on every exit path.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import re
import shutil
import tempfile
from collections.abc import Iterator
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storyreel.errors import FetchFailed, NoArtifacts, PreconditionFailed
from storyreel.models.media import Video
from storyreel.models.project import ProjectStage
from storyreel.models.scene import Scene, TrackKind
from storyreel.services.concat import BaseConcatenator
from storyreel.services.media_tracker import MediaArtifactTracker
from storyreel.services.stage_machine import ProjectStageMachine

logger = logging.getLogger(__name__)

DEFAULT_FILENAME = "combined.mp4"


@dataclass
class AssemblyResult:
    data: bytes
    filename: str
    scene_count: int


def _write_file(path: str, data: bytes) -> None:
    with open(path, "wb") as f:
        f.write(data)


def _read_file(path: str) -> bytes:
    with open(path, "rb") as f:
        return f.read()


def deliverable_filename(title: str | None) -> str:
    """Project title made safe for a download filename."""
    name = re.sub(r'[\\/:*?"<>|\x00-\x1f]+', "_", (title or "").strip())
    name = name.strip(" ._")
    return f"{name[:100]}.mp4" if name else DEFAULT_FILENAME


class ArtifactAssemblyPipeline:
    def __init__(
        self,
        stages: ProjectStageMachine,
        media: MediaArtifactTracker,
        concatenator: BaseConcatenator,
        work_root: str | None = None,
        timeout: float = 120.0,
    ):
        self.stages = stages
        self.media = media
        self.concatenator = concatenator
        self.work_root = work_root or None
        self.timeout = timeout

    async def assemble(self, db: AsyncSession, project_id: str, caller_id: str) -> AssemblyResult:
        project = await self.stages.load(db, project_id, caller_id)
        if project.stage != ProjectStage.COMPLETED.value:
            raise PreconditionFailed("Project must be completed before combining videos")

        scenes = await self._scenes_with_video(db, project.id)
        if not scenes:
            raise NoArtifacts()

        videos = await self.media.current_for_scenes(db, [s.id for s in scenes], TrackKind.VIDEO)
        title = project.title

        with self._workspace(project.id) as workdir:
            manifest = []
            for i, scene in enumerate(scenes):
                clip_path = os.path.join(workdir, f"scene-{i}.mp4")
                try:
                    data = await self.media.storage.download(videos[scene.id].storage_path)
                    await asyncio.to_thread(_write_file, clip_path, data)
                except Exception as e:
                    logger.error(
                        "Project %s: fetching video for scene %d failed: %s",
                        project.id, scene.order_index, e,
                    )
                    raise FetchFailed(scene.order_index) from e
                manifest.append(clip_path)

            output_path = os.path.join(workdir, "combined.mp4")
            await self.concatenator.concatenate(manifest, output_path, self.timeout)
            combined = await asyncio.to_thread(_read_file, output_path)

        logger.info(
            "Project %s: combined %d scene video(s), %d bytes",
            project.id, len(scenes), len(combined),
        )
        return AssemblyResult(
            data=combined,
            filename=deliverable_filename(title),
            scene_count=len(scenes),
        )

    async def _scenes_with_video(self, db: AsyncSession, project_id: str) -> list[Scene]:
        """Scenes to combine, in order; every scene's video must be confirmed."""
        unconfirmed = [
            s.order_index + 1
            for s in await self.stages.fresh_scenes(db, project_id)
            if not s.video_confirmed
        ]
        if unconfirmed:
            raise PreconditionFailed(
                "All scene videos must be confirmed before combining "
                f"(unconfirmed: scene {', '.join(str(n) for n in unconfirmed)})"
            )

        has_video = select(Video.id).where(Video.scene_id == Scene.id).exists()
        result = await db.execute(
            select(Scene)
            .where(Scene.project_id == project_id, has_video)
            .order_by(Scene.order_index)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    @contextlib.contextmanager
    def _workspace(self, project_id: str) -> Iterator[str]:
        if self.work_root:
            os.makedirs(self.work_root, exist_ok=True)
        workdir = tempfile.mkdtemp(prefix=f"combine-{project_id}-", dir=self.work_root)
        try:
            yield workdir
        finally:
            try:
                shutil.rmtree(workdir)
            except OSError as e:
                logger.warning("Failed to remove workspace %s: %s", workdir, e)
