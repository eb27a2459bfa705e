"""Bulk confirmation: confirm a whole project's descriptions, images or videos.

Every flag flip is a single conditional UPDATE, so concurrent bulk calls
never double count and converge on the same final stage.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from storyreel.models.project import Project
from storyreel.models.scene import Scene, TrackStatus
from storyreel.services.stage_machine import ProjectStageMachine

logger = logging.getLogger(__name__)


@dataclass
class BulkConfirmResult:
    confirmed: int
    skipped: int
    stage: str
    completed_now: bool = False


class BulkConfirmationCoordinator:
    def __init__(self, stages: ProjectStageMachine):
        self.stages = stages

    async def confirm_all_descriptions(
        self, db: AsyncSession, project_id: str, caller_id: str
    ) -> BulkConfirmResult:
        """Confirm every non-empty description; empty ones are skipped."""
        project = await self.stages.load(db, project_id, caller_id)
        result = await db.execute(
            update(Scene)
            .where(
                Scene.project_id == project.id,
                Scene.description != "",
                Scene.description_confirmed.is_(False),
            )
            .values(description_confirmed=True)
        )
        scenes = await self.stages.fresh_scenes(db, project.id)
        empty = [s.order_index + 1 for s in scenes if not s.description]
        if empty:
            logger.info(
                "Project %s: skipped empty description(s) for scene(s) %s",
                project.id, ", ".join(str(n) for n in empty),
            )
        logger.info("Project %s: confirmed %d description(s)", project.id, result.rowcount)
        return BulkConfirmResult(confirmed=result.rowcount, skipped=len(empty), stage=project.stage)

    async def confirm_all_images(
        self, db: AsyncSession, project_id: str, caller_id: str
    ) -> BulkConfirmResult:
        """Confirm every completed image; scenes without one are skipped."""
        project = await self.stages.load(db, project_id, caller_id)
        confirmed = await self._confirm_completed(db, project, "image")
        skipped = await self._count_skipped(db, project, "image")
        return BulkConfirmResult(confirmed=confirmed, skipped=skipped, stage=project.stage)

    async def confirm_all_videos(
        self, db: AsyncSession, project_id: str, caller_id: str
    ) -> BulkConfirmResult:
        """Confirm every completed video, then complete the project if all are confirmed."""
        project = await self.stages.load(db, project_id, caller_id)
        confirmed = await self._confirm_completed(db, project, "video")
        skipped = await self._count_skipped(db, project, "video")

        completed_now = await self.stages.complete_if_all_confirmed(db, project.id)
        project = await db.get(Project, project.id, populate_existing=True)
        return BulkConfirmResult(
            confirmed=confirmed,
            skipped=skipped,
            stage=project.stage,
            completed_now=completed_now,
        )

    async def _confirm_completed(self, db: AsyncSession, project: Project, track: str) -> int:
        status_col = getattr(Scene, f"{track}_status")
        confirmed_col = getattr(Scene, f"{track}_confirmed")
        result = await db.execute(
            update(Scene)
            .where(
                Scene.project_id == project.id,
                status_col == TrackStatus.COMPLETED.value,
                confirmed_col.is_(False),
            )
            .values({f"{track}_confirmed": True})
        )
        return result.rowcount

    async def _count_skipped(self, db: AsyncSession, project: Project, track: str) -> int:
        scenes = await self.stages.fresh_scenes(db, project.id)
        pending = [
            s.order_index + 1
            for s in scenes
            if getattr(s, f"{track}_status") != TrackStatus.COMPLETED.value
        ]
        if pending:
            logger.info(
                "Project %s: skipped %s confirmation for scene(s) %s",
                project.id, track, ", ".join(str(n) for n in pending),
            )
        return len(pending)
