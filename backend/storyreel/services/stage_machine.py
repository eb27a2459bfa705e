from __future__ import annotations
"""Project stage machine: the single authority for project stage changes.

draft → scenes → images → videos → completed

Stage decisions always re-read the scene set from the database. Moving
backwards is not allowed through ``set_stage``; only scene regeneration
resets a project to ``scenes``.
"""

import logging

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from storyreel.errors import InvalidStage, NotFound, PreconditionFailed, Unauthorized
from storyreel.models.project import STAGE_ORDER, Project, ProjectStage
from storyreel.models.scene import Scene
from storyreel.services.ownership import OwnershipPolicy
from storyreel.services.pubsub import publish_project_update

logger = logging.getLogger(__name__)


def parse_stage(value: str) -> ProjectStage:
    try:
        return ProjectStage(value)
    except ValueError:
        raise InvalidStage(value) from None


class ProjectStageMachine:
    def __init__(self, ownership: OwnershipPolicy):
        self.ownership = ownership

    async def load(self, db: AsyncSession, project_id: str, caller_id: str) -> Project:
        """Fetch a project the caller owns."""
        project = await db.get(Project, project_id)
        if project is None:
            raise NotFound("Project not found")
        if not self.ownership.is_owner(project, caller_id):
            raise Unauthorized()
        return project

    async def fresh_scenes(self, db: AsyncSession, project_id: str) -> list[Scene]:
        """All scenes of a project in order, bypassing the session's cached state."""
        result = await db.execute(
            select(Scene)
            .where(Scene.project_id == project_id)
            .order_by(Scene.order_index)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def set_stage(
        self, db: AsyncSession, project_id: str, caller_id: str, stage: str
    ) -> Project:
        """Explicitly move a project forward to ``stage``."""
        project = await self.load(db, project_id, caller_id)
        target = parse_stage(stage)
        current = ProjectStage(project.stage)

        if target == current:
            return project
        if STAGE_ORDER.index(target) < STAGE_ORDER.index(current):
            raise PreconditionFailed(
                f"Cannot move project back from {current.value} to {target.value}"
            )

        scenes = await self.fresh_scenes(db, project.id)
        for step in STAGE_ORDER[STAGE_ORDER.index(current) + 1: STAGE_ORDER.index(target) + 1]:
            _check_preconditions(project, scenes, step)

        project.stage = target.value
        await db.flush()
        logger.info("Project %s stage %s -> %s", project.id, current.value, target.value)
        await publish_project_update(project.id, target.value)
        return project

    async def enter_scenes(self, db: AsyncSession, project: Project) -> None:
        """Put a project (back) into ``scenes`` after its scene set was (re)generated."""
        if not (project.story or "").strip():
            raise PreconditionFailed("Project has no story content. Please add a story first.")
        if project.stage != ProjectStage.SCENES.value:
            logger.info("Project %s stage %s -> scenes", project.id, project.stage)
            project.stage = ProjectStage.SCENES.value
            await db.flush()
            await publish_project_update(project.id, ProjectStage.SCENES.value)

    async def complete_if_all_confirmed(self, db: AsyncSession, project_id: str) -> bool:
        """Move to ``completed`` once every scene's video is confirmed.

        Returns True only for the call that performed the transition; repeated
        or concurrent calls are no-ops.
        """
        scenes = await self.fresh_scenes(db, project_id)
        if not scenes or not all(s.video_confirmed for s in scenes):
            return False

        result = await db.execute(
            update(Project)
            .where(
                Project.id == project_id,
                Project.stage != ProjectStage.COMPLETED.value,
            )
            .values(stage=ProjectStage.COMPLETED.value)
        )
        if result.rowcount == 0:
            return False

        logger.info("Project %s completed: all %d scene videos confirmed", project_id, len(scenes))
        await publish_project_update(project_id, ProjectStage.COMPLETED.value)
        return True


def _check_preconditions(project: Project, scenes: list[Scene], stage: ProjectStage) -> None:
    if stage == ProjectStage.SCENES:
        if not (project.story or "").strip():
            raise PreconditionFailed("Project has no story content. Please add a story first.")
        if not scenes:
            raise PreconditionFailed("Generate scenes before advancing the project")
    elif stage == ProjectStage.IMAGES:
        if not all(s.description_confirmed for s in scenes):
            raise PreconditionFailed("All scene descriptions must be confirmed first")
    elif stage == ProjectStage.VIDEOS:
        if not all(s.image_confirmed for s in scenes):
            raise PreconditionFailed("All scene images must be confirmed first")
    elif stage == ProjectStage.COMPLETED:
        if not all(s.video_confirmed for s in scenes):
            raise PreconditionFailed("All scene videos must be confirmed first")
