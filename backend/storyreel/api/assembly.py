from __future__ import annotations
"""Final deliverable endpoint: combine scene videos into one MP4."""

from urllib.parse import quote

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from storyreel.api.deps import CurrentUser, get_assembly_pipeline, get_current_user
from storyreel.database import get_db
from storyreel.services.assembly import ArtifactAssemblyPipeline

router = APIRouter()


@router.post("/projects/{project_id}/combine-videos")
async def combine_videos(
    project_id: str,
    user: CurrentUser = Depends(get_current_user),
    pipeline: ArtifactAssemblyPipeline = Depends(get_assembly_pipeline),
    db: AsyncSession = Depends(get_db),
):
    """Concatenate a completed project's scene videos in scene order."""
    result = await pipeline.assemble(db, project_id, user.id)
    return Response(
        content=result.data,
        media_type="video/mp4",
        headers={
            "Content-Disposition": f"attachment; filename*=UTF-8''{quote(result.filename)}",
            "X-Scene-Count": str(result.scene_count),
        },
    )
