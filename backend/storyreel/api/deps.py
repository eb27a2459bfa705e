from __future__ import annotations
"""Shared FastAPI dependencies: the calling user and the workflow services."""

import hmac
from dataclasses import dataclass

from fastapi import Depends, Security
from fastapi.security import APIKeyHeader

from storyreel.config import get_settings
from storyreel.errors import Unauthenticated
from storyreel.services.assembly import ArtifactAssemblyPipeline
from storyreel.services.bulk_confirm import BulkConfirmationCoordinator
from storyreel.services.concat import BaseConcatenator, get_concatenator
from storyreel.services.generation import GenerationClient, get_generation_client
from storyreel.services.media_tracker import MediaArtifactTracker
from storyreel.services.ownership import OwnershipPolicy, get_ownership_policy
from storyreel.services.project_service import ProjectService
from storyreel.services.scene_controller import SceneLifecycleController
from storyreel.services.stage_machine import ProjectStageMachine
from storyreel.services.storage import BaseStorage, get_storage

API_KEY_HEADER = "X-API-Key"

api_key_header = APIKeyHeader(name=API_KEY_HEADER, auto_error=False)


@dataclass
class CurrentUser:
    id: str


def _configured_keys(raw: str) -> dict[str, str]:
    """Parse ``key:user_id`` pairs; a bare key maps to the default user."""
    keys = {}
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        key, _, user_id = entry.partition(":")
        keys[key.strip()] = user_id.strip() or get_settings().DEFAULT_USER_ID
    return keys


async def get_current_user(api_key: str | None = Security(api_key_header)) -> CurrentUser:
    """Resolve the caller from X-API-Key.

    With no keys configured the service runs in single-user development mode.
    """
    settings = get_settings()
    keys = _configured_keys(settings.API_KEYS)
    if not keys:
        return CurrentUser(id=settings.DEFAULT_USER_ID)

    if not api_key:
        raise Unauthenticated("API key missing. Provide X-API-Key header.")
    for key, user_id in keys.items():
        if hmac.compare_digest(key.encode("utf-8"), api_key.encode("utf-8")):
            return CurrentUser(id=user_id)
    raise Unauthenticated("Invalid API key")


# ──────── Services ────────

def get_media_tracker(storage: BaseStorage = Depends(get_storage)) -> MediaArtifactTracker:
    return MediaArtifactTracker(storage)


def get_stage_machine(
    ownership: OwnershipPolicy = Depends(get_ownership_policy),
) -> ProjectStageMachine:
    return ProjectStageMachine(ownership)


def get_scene_controller(
    stages: ProjectStageMachine = Depends(get_stage_machine),
    generator: GenerationClient = Depends(get_generation_client),
    media: MediaArtifactTracker = Depends(get_media_tracker),
) -> SceneLifecycleController:
    return SceneLifecycleController(stages, generator, media, get_settings().GENERATION_TIMEOUT)


def get_bulk_coordinator(
    stages: ProjectStageMachine = Depends(get_stage_machine),
) -> BulkConfirmationCoordinator:
    return BulkConfirmationCoordinator(stages)


def get_assembly_pipeline(
    stages: ProjectStageMachine = Depends(get_stage_machine),
    media: MediaArtifactTracker = Depends(get_media_tracker),
    concatenator: BaseConcatenator = Depends(get_concatenator),
) -> ArtifactAssemblyPipeline:
    settings = get_settings()
    return ArtifactAssemblyPipeline(
        stages,
        media,
        concatenator,
        work_root=settings.WORK_DIR or None,
        timeout=settings.ASSEMBLY_TIMEOUT,
    )


def get_project_service(
    stages: ProjectStageMachine = Depends(get_stage_machine),
    media: MediaArtifactTracker = Depends(get_media_tracker),
) -> ProjectService:
    return ProjectService(stages, media)
