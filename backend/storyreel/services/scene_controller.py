from __future__ import annotations
"""Scene lifecycle controller: per-scene description/image/video tracks.

Each media track follows none → processing → completed | failed, with a
confirmation bit settable only from completed. Generation follows the
claim → release DB → call external service → write result pattern:

1. Atomically claim the track (conditional UPDATE) and commit
2. Call the generation collaborator (bounded, single attempt)
3. Store the artifact and resolve the track to completed, or to failed on
   any exception, timeout or cancellation
"""

import asyncio
import logging
from dataclasses import dataclass, field

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from storyreel.config import get_settings
from storyreel.errors import NotFound, PreconditionFailed, UpstreamServiceError, WorkflowError
from storyreel.models.project import Project, ProjectStage
from storyreel.models.scene import Scene, TrackKind, TrackStatus
from storyreel.services.generation import GenerationClient
from storyreel.services.media_tracker import MediaArtifactTracker
from storyreel.services.pubsub import publish_scene_update
from storyreel.services.stage_machine import ProjectStageMachine

logger = logging.getLogger(__name__)
settings = get_settings()

_MAX_ERROR_LENGTH = 500

_EDIT_LOCKED = "Project is completed; regenerate its scenes to make further changes"


@dataclass
class ConfirmResult:
    scene: Scene
    stage_advanced: bool = False


@dataclass
class SceneOutcome:
    scene_id: str
    order_index: int
    success: bool
    error: str | None = None


@dataclass
class BatchGenerationResult:
    total: int = 0
    completed: int = 0
    failed: int = 0
    results: list[SceneOutcome] = field(default_factory=list)


class SceneLifecycleController:
    def __init__(
        self,
        stages: ProjectStageMachine,
        generator: GenerationClient,
        media: MediaArtifactTracker,
        timeout: float | None = None,
    ):
        self.stages = stages
        self.generator = generator
        self.media = media
        self.timeout = timeout if timeout is not None else settings.GENERATION_TIMEOUT

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def load_scene(
        self, db: AsyncSession, scene_id: str, caller_id: str
    ) -> tuple[Scene, Project]:
        scene = await db.get(Scene, scene_id)
        if scene is None:
            raise NotFound("Scene not found")
        project = await self.stages.load(db, scene.project_id, caller_id)
        return scene, project

    async def get_scene(self, db: AsyncSession, scene_id: str, caller_id: str) -> Scene:
        scene, _ = await self.load_scene(db, scene_id, caller_id)
        return scene

    async def list_scenes(self, db: AsyncSession, project_id: str, caller_id: str) -> list[Scene]:
        project = await self.stages.load(db, project_id, caller_id)
        return await self.stages.fresh_scenes(db, project.id)

    # ------------------------------------------------------------------
    # Scene set generation
    # ------------------------------------------------------------------

    async def generate_scenes(self, db: AsyncSession, project_id: str, caller_id: str) -> list[Scene]:
        """Break the project's story into a fresh scene set."""
        project = await self.stages.load(db, project_id, caller_id)
        return await self._replace_scenes(db, project)

    async def regenerate_scenes(
        self,
        db: AsyncSession,
        project_id: str,
        caller_id: str,
        feedback: str | None = None,
    ) -> list[Scene]:
        """Replace the scene set, giving the writer the old set and feedback.

        Destructive: old scenes and their media are deleted once the new
        descriptions arrive.
        """
        project = await self.stages.load(db, project_id, caller_id)
        previous = [s.description for s in await self.stages.fresh_scenes(db, project.id)]
        return await self._replace_scenes(
            db, project, previous=previous or None, feedback=feedback
        )

    async def _replace_scenes(
        self,
        db: AsyncSession,
        project: Project,
        previous: list[str] | None = None,
        feedback: str | None = None,
    ) -> list[Scene]:
        if not (project.story or "").strip():
            raise PreconditionFailed("Project has no story content. Please add a story first.")

        try:
            descriptions = await self.generator.generate_scene_descriptions(
                project.story, project.style, previous, feedback
            )
        except UpstreamServiceError:
            raise
        except Exception as e:
            logger.error("Scene generation failed for project %s: %s", project.id, e)
            raise UpstreamServiceError("AI service error while generating scenes") from e

        descriptions = [d.strip() for d in descriptions if d and d.strip()]
        if not descriptions:
            raise UpstreamServiceError("Failed to generate scenes. Please try again.")

        result = await db.execute(select(Scene.id).where(Scene.project_id == project.id))
        old_ids = list(result.scalars().all())
        await self.media.discard_for_scenes(db, old_ids)
        await db.execute(delete(Scene).where(Scene.project_id == project.id))

        scenes = [
            Scene(project_id=project.id, order_index=i, description=text)
            for i, text in enumerate(descriptions)
        ]
        db.add_all(scenes)
        await db.flush()
        await self.stages.enter_scenes(db, project)

        logger.info(
            "Project %s: replaced %d scene(s) with %d", project.id, len(old_ids), len(scenes)
        )
        return scenes

    async def update_description(
        self, db: AsyncSession, scene_id: str, caller_id: str, description: str
    ) -> Scene:
        """Edit a description; the edit must be confirmed again."""
        scene, project = await self.load_scene(db, scene_id, caller_id)
        if project.stage == ProjectStage.COMPLETED.value:
            raise PreconditionFailed(_EDIT_LOCKED)
        scene.description = description.strip()
        scene.description_confirmed = False
        await db.flush()
        return scene

    # ------------------------------------------------------------------
    # Media tracks
    # ------------------------------------------------------------------

    async def generate(
        self,
        db: AsyncSession,
        scene_id: str,
        caller_id: str,
        kind: TrackKind,
        regenerate: bool = False,
    ) -> Scene:
        """Generate the scene's image or video and record the artifact."""
        if kind not in (TrackKind.IMAGE, TrackKind.VIDEO):
            raise PreconditionFailed("Only image and video tracks can be generated")

        scene, project = await self.load_scene(db, scene_id, caller_id)
        if project.stage == ProjectStage.COMPLETED.value:
            raise PreconditionFailed(_EDIT_LOCKED)
        project_id, style, description = project.id, project.style, scene.description

        source_image: bytes | None = None
        if kind == TrackKind.IMAGE:
            if not scene.description_confirmed:
                raise PreconditionFailed(
                    "Scene description must be confirmed before generating image"
                )
        else:
            if scene.image_status != TrackStatus.COMPLETED.value:
                raise PreconditionFailed("Scene image must be completed before generating video")
            image = await self.media.current(db, scene_id, TrackKind.IMAGE)
            if image is None:
                raise PreconditionFailed(
                    "No image found for this scene. Please generate an image first."
                )
            source_image = await self.media.storage.download(image.storage_path)

        await self._claim(db, project_id, scene_id, kind, regenerate)
        await db.commit()
        await publish_scene_update(project_id, scene_id, kind.value, TrackStatus.PROCESSING.value)
        logger.info("Generating %s for scene %s", kind.value, scene_id[:8])

        try:
            if kind == TrackKind.IMAGE:
                data = await asyncio.wait_for(
                    self.generator.generate_image(description, style, {"size": settings.IMAGE_SIZE}),
                    timeout=self.timeout,
                )
                meta = _image_dimensions(settings.IMAGE_SIZE)
            else:
                data = await asyncio.wait_for(
                    self.generator.generate_video(
                        source_image, description, {"duration": settings.VIDEO_DURATION}
                    ),
                    timeout=self.timeout,
                )
                meta = {"duration": float(settings.VIDEO_DURATION)}
            await self.media.store(db, scene, kind, data, **meta)
            await self._set_track(db, scene_id, kind, TrackStatus.COMPLETED)
            await db.commit()
        except asyncio.CancelledError:
            await asyncio.shield(
                self._resolve_failed(db, project_id, scene_id, kind, "Generation was cancelled")
            )
            raise
        except asyncio.TimeoutError:
            logger.error("%s generation timed out for scene %s", kind.value, scene_id[:8])
            await self._resolve_failed(
                db, project_id, scene_id, kind, f"Generation timed out after {self.timeout:.0f}s"
            )
            raise UpstreamServiceError(f"{kind.value.capitalize()} generation timed out") from None
        except Exception as e:
            logger.error("%s generation failed for scene %s: %s", kind.value, scene_id[:8], e)
            await self._resolve_failed(db, project_id, scene_id, kind, str(e) or type(e).__name__)
            if isinstance(e, UpstreamServiceError):
                raise
            raise UpstreamServiceError(f"Failed to generate {kind.value}") from e

        await publish_scene_update(project_id, scene_id, kind.value, TrackStatus.COMPLETED.value)
        return await db.get(Scene, scene_id, populate_existing=True)

    async def generate_all(
        self, db: AsyncSession, project_id: str, caller_id: str, kind: TrackKind
    ) -> BatchGenerationResult:
        """Generate the track for every eligible scene, one after another.

        Eligible: image needs a confirmed description, video a completed
        image; the track itself must be none or failed. A failing scene is
        recorded and the batch moves on to the next one.
        """
        if kind not in (TrackKind.IMAGE, TrackKind.VIDEO):
            raise PreconditionFailed("Only image and video tracks can be generated")

        project = await self.stages.load(db, project_id, caller_id)
        if project.stage == ProjectStage.COMPLETED.value:
            raise PreconditionFailed(_EDIT_LOCKED)

        retryable = (TrackStatus.NONE.value, TrackStatus.FAILED.value)
        pending = [
            (s.id, s.order_index)
            for s in await self.stages.fresh_scenes(db, project.id)
            if getattr(s, f"{kind.value}_status") in retryable
            and (
                s.description_confirmed
                if kind == TrackKind.IMAGE
                else s.image_status == TrackStatus.COMPLETED.value
            )
        ]

        batch = BatchGenerationResult(total=len(pending))
        for scene_id, order_index in pending:
            try:
                await self.generate(db, scene_id, caller_id, kind)
            except WorkflowError as e:
                error = e.message
                if isinstance(e, UpstreamServiceError):
                    # the track holds the provider's own message
                    scene = await db.get(Scene, scene_id, populate_existing=True)
                    error = getattr(scene, f"{kind.value}_error") or error
                batch.failed += 1
                batch.results.append(SceneOutcome(scene_id, order_index, False, error))
                continue
            batch.completed += 1
            batch.results.append(SceneOutcome(scene_id, order_index, True))

        logger.info(
            "Project %s: %s batch generated %d, failed %d of %d",
            project_id, kind.value, batch.completed, batch.failed, batch.total,
        )
        return batch

    async def _claim(
        self,
        db: AsyncSession,
        project_id: str,
        scene_id: str,
        kind: TrackKind,
        regenerate: bool,
    ) -> None:
        """processing + clear confirmation and prior artifact, in one check-and-set.

        The claim only matches while the project is not completed, so a
        finished project can never lose a confirmed artifact.
        """
        status_col = getattr(Scene, f"{kind.value}_status")
        allowed = [TrackStatus.NONE.value, TrackStatus.FAILED.value]
        if regenerate:
            allowed.append(TrackStatus.COMPLETED.value)

        result = await db.execute(
            update(Scene)
            .where(
                Scene.id == scene_id,
                status_col.in_(allowed),
                Scene.project_id.in_(
                    select(Project.id).where(
                        Project.id == project_id,
                        Project.stage != ProjectStage.COMPLETED.value,
                    )
                ),
            )
            .values({
                f"{kind.value}_status": TrackStatus.PROCESSING.value,
                f"{kind.value}_confirmed": False,
                f"{kind.value}_error": None,
            })
        )
        if result.rowcount == 0:
            project = await db.get(Project, project_id, populate_existing=True)
            if project.stage == ProjectStage.COMPLETED.value:
                raise PreconditionFailed(_EDIT_LOCKED)
            current = getattr(await db.get(Scene, scene_id, populate_existing=True), f"{kind.value}_status")
            if current == TrackStatus.PROCESSING.value:
                raise PreconditionFailed(f"Scene {kind.value} generation is already in progress")
            raise PreconditionFailed(
                f"Scene {kind.value} is already generated; request regeneration to replace it"
            )
        await self.media.discard(db, scene_id, kind)

    async def _set_track(
        self,
        db: AsyncSession,
        scene_id: str,
        kind: TrackKind,
        status: TrackStatus,
        error: str | None = None,
    ) -> None:
        await db.execute(
            update(Scene)
            .where(Scene.id == scene_id)
            .values({f"{kind.value}_status": status.value, f"{kind.value}_error": error})
        )

    async def _resolve_failed(
        self, db: AsyncSession, project_id: str, scene_id: str, kind: TrackKind, error: str
    ) -> None:
        """Discard partial work and persist the failed status."""
        await db.rollback()
        await self._set_track(db, scene_id, kind, TrackStatus.FAILED, error[:_MAX_ERROR_LENGTH])
        await db.commit()
        await publish_scene_update(project_id, scene_id, kind.value, TrackStatus.FAILED.value)

    # ------------------------------------------------------------------
    # Confirmation
    # ------------------------------------------------------------------

    async def confirm(
        self, db: AsyncSession, scene_id: str, caller_id: str, kind: TrackKind
    ) -> ConfirmResult:
        """Confirm one track; only a completed track can be confirmed.

        Confirming a video re-checks the whole project and completes it when
        every scene video is confirmed.
        """
        scene, project = await self.load_scene(db, scene_id, caller_id)

        if kind == TrackKind.DESCRIPTION:
            ready = Scene.description != ""
        else:
            ready = getattr(Scene, f"{kind.value}_status") == TrackStatus.COMPLETED.value

        result = await db.execute(
            update(Scene)
            .where(Scene.id == scene_id, ready)
            .values({f"{kind.value}_confirmed": True})
        )
        if result.rowcount == 0:
            noun = "Description" if kind == TrackKind.DESCRIPTION else kind.value.capitalize()
            raise PreconditionFailed(f"{noun} must be completed before confirming")

        advanced = False
        if kind == TrackKind.VIDEO:
            advanced = await self.stages.complete_if_all_confirmed(db, project.id)

        scene = await db.get(Scene, scene_id, populate_existing=True)
        return ConfirmResult(scene=scene, stage_advanced=advanced)


def _image_dimensions(size: str) -> dict[str, int]:
    """``"1024x1024"`` → width/height; unparseable sizes record nothing."""
    width, _, height = (size or "").lower().partition("x")
    if not (width.isdigit() and height.isdigit()):
        return {}
    return {"width": int(width), "height": int(height)}
