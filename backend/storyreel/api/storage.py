from __future__ import annotations
"""Signed media URLs and the endpoint that serves them."""

from fastapi import APIRouter, Depends, Query
from fastapi.responses import FileResponse
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storyreel.api.deps import CurrentUser, get_current_user, get_stage_machine
from storyreel.config import get_settings
from storyreel.database import get_db
from storyreel.errors import NotFound, Unauthorized
from storyreel.models.media import Image, Video
from storyreel.models.scene import Scene
from storyreel.services.stage_machine import ProjectStageMachine
from storyreel.services.storage import LocalStorage, get_storage

router = APIRouter()
media_router = APIRouter()


class SignedUrlRequest(BaseModel):
    paths: list[str] = Field(..., min_length=1, max_length=100)


class SignedUrlResponse(BaseModel):
    urls: dict[str, str]
    expires_in: int


@router.post("/signed-urls", response_model=SignedUrlResponse)
async def create_signed_urls(
    data: SignedUrlRequest,
    user: CurrentUser = Depends(get_current_user),
    stages: ProjectStageMachine = Depends(get_stage_machine),
    storage: LocalStorage = Depends(get_storage),
    db: AsyncSession = Depends(get_db),
):
    """Issue expiring URLs for stored media the caller owns."""
    ttl = get_settings().SIGNED_URL_TTL
    urls = {}
    for path in dict.fromkeys(data.paths):
        project_id = await _owning_project(db, path)
        if project_id is None:
            raise NotFound("Media not found")
        await stages.load(db, project_id, user.id)
        urls[path] = storage.signed_url(path, ttl)
    return SignedUrlResponse(urls=urls, expires_in=ttl)


async def _owning_project(db: AsyncSession, path: str) -> str | None:
    for model in (Image, Video):
        result = await db.execute(
            select(Scene.project_id)
            .join(model, model.scene_id == Scene.id)
            .where(model.storage_path == path)
            .limit(1)
        )
        project_id = result.scalar_one_or_none()
        if project_id is not None:
            return project_id
    return None


@media_router.get("/media/{path:path}")
async def serve_media(
    path: str,
    expires: int = Query(...),
    signature: str = Query(...),
    storage: LocalStorage = Depends(get_storage),
):
    """Stream a stored object when its signed URL is valid and unexpired."""
    if not storage.verify(path, expires, signature):
        raise Unauthorized("Invalid or expired media link")
    return FileResponse(storage.resolve(path))
