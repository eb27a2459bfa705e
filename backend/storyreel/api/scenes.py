from __future__ import annotations
"""Scene API endpoints: scene sets, per-scene generation and confirmation."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from storyreel.api.deps import (
    CurrentUser,
    get_bulk_coordinator,
    get_current_user,
    get_scene_controller,
)
from storyreel.database import get_db
from storyreel.models.scene import TrackKind
from storyreel.schemas.scene import (
    BatchGenerationResponse,
    BulkConfirmResponse,
    GenerateMediaRequest,
    RegenerateScenesRequest,
    SceneGenerationOutcome,
    SceneListResponse,
    SceneRead,
    SceneUpdate,
    VideoConfirmResponse,
)
from storyreel.services.bulk_confirm import BulkConfirmationCoordinator
from storyreel.services.scene_controller import BatchGenerationResult, SceneLifecycleController

router = APIRouter()


# ──────── Scene sets ────────

@router.get("/projects/{project_id}/scenes", response_model=list[SceneRead])
async def list_scenes(
    project_id: str,
    user: CurrentUser = Depends(get_current_user),
    scenes: SceneLifecycleController = Depends(get_scene_controller),
    db: AsyncSession = Depends(get_db),
):
    """List scenes for a project in render order."""
    return await scenes.list_scenes(db, project_id, user.id)


@router.post("/projects/{project_id}/scenes/generate", response_model=SceneListResponse)
async def generate_scenes(
    project_id: str,
    user: CurrentUser = Depends(get_current_user),
    scenes: SceneLifecycleController = Depends(get_scene_controller),
    db: AsyncSession = Depends(get_db),
):
    """Break the project's story into scenes."""
    created = await scenes.generate_scenes(db, project_id, user.id)
    return SceneListResponse(
        scenes=[SceneRead.model_validate(s) for s in created],
        message=f"Generated {len(created)} scenes",
    )


@router.post("/projects/{project_id}/scenes/regenerate", response_model=SceneListResponse)
async def regenerate_scenes(
    project_id: str,
    data: RegenerateScenesRequest | None = None,
    user: CurrentUser = Depends(get_current_user),
    scenes: SceneLifecycleController = Depends(get_scene_controller),
    db: AsyncSession = Depends(get_db),
):
    """Replace every scene (and its media) with a new set, guided by feedback."""
    feedback = data.feedback if data else None
    created = await scenes.regenerate_scenes(db, project_id, user.id, feedback)
    return SceneListResponse(
        scenes=[SceneRead.model_validate(s) for s in created],
        message=f"Regenerated {len(created)} scenes",
    )


# ──────── Batch generation ────────

@router.post("/projects/{project_id}/generate-images", response_model=BatchGenerationResponse)
async def generate_all_images(
    project_id: str,
    user: CurrentUser = Depends(get_current_user),
    scenes: SceneLifecycleController = Depends(get_scene_controller),
    db: AsyncSession = Depends(get_db),
):
    """Generate images for every scene with a confirmed description and no image yet."""
    batch = await scenes.generate_all(db, project_id, user.id, TrackKind.IMAGE)
    return _batch_response(batch, "images")


@router.post("/projects/{project_id}/generate-videos", response_model=BatchGenerationResponse)
async def generate_all_videos(
    project_id: str,
    user: CurrentUser = Depends(get_current_user),
    scenes: SceneLifecycleController = Depends(get_scene_controller),
    db: AsyncSession = Depends(get_db),
):
    batch = await scenes.generate_all(db, project_id, user.id, TrackKind.VIDEO)
    return _batch_response(batch, "videos")


def _batch_response(batch: BatchGenerationResult, noun: str) -> BatchGenerationResponse:
    if not batch.total:
        message = f"No scenes require {noun[:-1]} generation."
    else:
        message = f"Generated {noun} for {batch.completed} scenes. {batch.failed} failed."
    return BatchGenerationResponse(
        total=batch.total,
        completed=batch.completed,
        failed=batch.failed,
        results=[SceneGenerationOutcome.model_validate(r) for r in batch.results],
        message=message,
    )


# ──────── Single scene ────────

@router.get("/scenes/{scene_id}", response_model=SceneRead)
async def get_scene(
    scene_id: str,
    user: CurrentUser = Depends(get_current_user),
    scenes: SceneLifecycleController = Depends(get_scene_controller),
    db: AsyncSession = Depends(get_db),
):
    return await scenes.get_scene(db, scene_id, user.id)


@router.patch("/scenes/{scene_id}", response_model=SceneRead)
async def update_scene(
    scene_id: str,
    data: SceneUpdate,
    user: CurrentUser = Depends(get_current_user),
    scenes: SceneLifecycleController = Depends(get_scene_controller),
    db: AsyncSession = Depends(get_db),
):
    """Edit a scene description; the edit must be confirmed again."""
    return await scenes.update_description(db, scene_id, user.id, data.description)


@router.post("/scenes/{scene_id}/generate-image", response_model=SceneRead)
async def generate_image(
    scene_id: str,
    data: GenerateMediaRequest | None = None,
    user: CurrentUser = Depends(get_current_user),
    scenes: SceneLifecycleController = Depends(get_scene_controller),
    db: AsyncSession = Depends(get_db),
):
    regenerate = data.regenerate if data else False
    return await scenes.generate(db, scene_id, user.id, TrackKind.IMAGE, regenerate)


@router.post("/scenes/{scene_id}/generate-video", response_model=SceneRead)
async def generate_video(
    scene_id: str,
    data: GenerateMediaRequest | None = None,
    user: CurrentUser = Depends(get_current_user),
    scenes: SceneLifecycleController = Depends(get_scene_controller),
    db: AsyncSession = Depends(get_db),
):
    regenerate = data.regenerate if data else False
    return await scenes.generate(db, scene_id, user.id, TrackKind.VIDEO, regenerate)


@router.post("/scenes/{scene_id}/confirm-description", response_model=SceneRead)
async def confirm_description(
    scene_id: str,
    user: CurrentUser = Depends(get_current_user),
    scenes: SceneLifecycleController = Depends(get_scene_controller),
    db: AsyncSession = Depends(get_db),
):
    result = await scenes.confirm(db, scene_id, user.id, TrackKind.DESCRIPTION)
    return result.scene


@router.post("/scenes/{scene_id}/confirm-image", response_model=SceneRead)
async def confirm_image(
    scene_id: str,
    user: CurrentUser = Depends(get_current_user),
    scenes: SceneLifecycleController = Depends(get_scene_controller),
    db: AsyncSession = Depends(get_db),
):
    result = await scenes.confirm(db, scene_id, user.id, TrackKind.IMAGE)
    return result.scene


@router.post("/scenes/{scene_id}/confirm-video", response_model=VideoConfirmResponse)
async def confirm_video(
    scene_id: str,
    user: CurrentUser = Depends(get_current_user),
    scenes: SceneLifecycleController = Depends(get_scene_controller),
    db: AsyncSession = Depends(get_db),
):
    """Confirm a scene video; completes the project when it was the last one."""
    result = await scenes.confirm(db, scene_id, user.id, TrackKind.VIDEO)
    siblings = await scenes.list_scenes(db, result.scene.project_id, user.id)
    return VideoConfirmResponse(
        scene=SceneRead.model_validate(result.scene),
        all_confirmed=bool(siblings) and all(s.video_confirmed for s in siblings),
        stage_advanced=result.stage_advanced,
    )


# ──────── Bulk confirmation ────────

@router.post("/projects/{project_id}/confirm-all-descriptions", response_model=BulkConfirmResponse)
async def confirm_all_descriptions(
    project_id: str,
    user: CurrentUser = Depends(get_current_user),
    bulk: BulkConfirmationCoordinator = Depends(get_bulk_coordinator),
    db: AsyncSession = Depends(get_db),
):
    result = await bulk.confirm_all_descriptions(db, project_id, user.id)
    return BulkConfirmResponse(count=result.confirmed, skipped=result.skipped, stage=result.stage)


@router.post("/projects/{project_id}/confirm-all-images", response_model=BulkConfirmResponse)
async def confirm_all_images(
    project_id: str,
    user: CurrentUser = Depends(get_current_user),
    bulk: BulkConfirmationCoordinator = Depends(get_bulk_coordinator),
    db: AsyncSession = Depends(get_db),
):
    result = await bulk.confirm_all_images(db, project_id, user.id)
    return BulkConfirmResponse(count=result.confirmed, skipped=result.skipped, stage=result.stage)


@router.post("/projects/{project_id}/confirm-all-videos", response_model=BulkConfirmResponse)
async def confirm_all_videos(
    project_id: str,
    user: CurrentUser = Depends(get_current_user),
    bulk: BulkConfirmationCoordinator = Depends(get_bulk_coordinator),
    db: AsyncSession = Depends(get_db),
):
    """Confirm every completed video and complete the project if none remain."""
    result = await bulk.confirm_all_videos(db, project_id, user.id)
    return BulkConfirmResponse(count=result.confirmed, skipped=result.skipped, stage=result.stage)
