from __future__ import annotations
"""Project service: CRUD, detail views with signed media URLs, cascading delete."""

import logging

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from storyreel.config import get_settings
from storyreel.models.media import Image, Video
from storyreel.models.project import Project, ProjectStage
from storyreel.models.scene import Scene, TrackKind
from storyreel.schemas.project import ProjectCreate, ProjectDetail, ProjectRead, ProjectUpdate
from storyreel.schemas.scene import MediaRead, SceneDetail
from storyreel.services.media_tracker import MediaArtifactTracker
from storyreel.services.stage_machine import ProjectStageMachine

logger = logging.getLogger(__name__)
settings = get_settings()


class ProjectService:
    def __init__(self, stages: ProjectStageMachine, media: MediaArtifactTracker):
        self.stages = stages
        self.media = media

    async def create(self, db: AsyncSession, caller_id: str, data: ProjectCreate) -> Project:
        project = Project(
            user_id=caller_id,
            title=data.title,
            story=data.story,
            style=data.style,
            stage=ProjectStage.DRAFT.value,
        )
        db.add(project)
        await db.flush()
        logger.info("Created project %s for %s", project.id, caller_id)
        return project

    async def list_projects(
        self, db: AsyncSession, caller_id: str, page: int = 1, limit: int = 20
    ) -> tuple[list[Project], int]:
        """One page of projects, most recently updated first, plus the total count."""
        ownership = self.stages.ownership
        query = ownership.scope(select(Project), caller_id)
        count_query = ownership.scope(select(func.count()).select_from(Project), caller_id)

        total = (await db.execute(count_query)).scalar_one()
        result = await db.execute(
            query.order_by(Project.updated_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def get_detail(self, db: AsyncSession, project_id: str, caller_id: str) -> ProjectDetail:
        project = await self.stages.load(db, project_id, caller_id)
        scenes = await self.stages.fresh_scenes(db, project.id)
        scene_ids = [s.id for s in scenes]
        images = await self.media.current_for_scenes(db, scene_ids, TrackKind.IMAGE)
        videos = await self.media.current_for_scenes(db, scene_ids, TrackKind.VIDEO)

        details = []
        for scene in scenes:
            detail = SceneDetail.model_validate(scene)
            detail.image = self.media_read(images.get(scene.id))
            detail.video = self.media_read(videos.get(scene.id))
            details.append(detail)

        return ProjectDetail(
            **ProjectRead.model_validate(project).model_dump(),
            scenes=details,
        )

    def media_read(self, artifact: Image | Video | None) -> MediaRead | None:
        if artifact is None:
            return None
        read = MediaRead.model_validate(artifact)
        read.url = self.media.storage.signed_url(artifact.storage_path, settings.SIGNED_URL_TTL)
        return read

    async def update(
        self, db: AsyncSession, project_id: str, caller_id: str, data: ProjectUpdate
    ) -> Project:
        project = await self.stages.load(db, project_id, caller_id)
        for key, value in data.model_dump(exclude_unset=True).items():
            setattr(project, key, value)
        await db.flush()
        await db.refresh(project)
        return project

    async def delete(self, db: AsyncSession, project_id: str, caller_id: str) -> None:
        """Delete media (storage, then rows), then scenes, then the project.

        A failure midway leaves rows behind, never unreferenced storage
        objects; retrying the delete finishes the job.
        """
        project = await self.stages.load(db, project_id, caller_id)
        result = await db.execute(select(Scene.id).where(Scene.project_id == project.id))
        scene_ids = list(result.scalars().all())

        removed = await self.media.discard_for_scenes(db, scene_ids)
        await db.execute(delete(Scene).where(Scene.project_id == project.id))
        await db.execute(delete(Project).where(Project.id == project.id))
        logger.info(
            "Deleted project %s (%d scene(s), %d media object(s))",
            project.id, len(scene_ids), removed,
        )
