from __future__ import annotations
"""Project CRUD and stage API endpoints."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from storyreel.api.deps import (
    CurrentUser,
    get_current_user,
    get_project_service,
    get_stage_machine,
)
from storyreel.database import get_db
from storyreel.schemas.project import (
    ProjectCreate,
    ProjectDetail,
    ProjectPage,
    ProjectRead,
    ProjectStageUpdate,
    ProjectUpdate,
)
from storyreel.services.project_service import ProjectService
from storyreel.services.stage_machine import ProjectStageMachine

router = APIRouter()


@router.get("", response_model=ProjectPage)
async def list_projects(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: CurrentUser = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service),
    db: AsyncSession = Depends(get_db),
):
    """List projects, most recently updated first."""
    projects, total = await service.list_projects(db, user.id, page, limit)
    return ProjectPage(
        projects=[ProjectRead.model_validate(p) for p in projects],
        total=total,
        page=page,
        limit=limit,
    )


@router.post("", response_model=ProjectRead, status_code=201)
async def create_project(
    data: ProjectCreate,
    user: CurrentUser = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service),
    db: AsyncSession = Depends(get_db),
):
    """Create a new project in the draft stage."""
    return await service.create(db, user.id, data)


@router.get("/{project_id}", response_model=ProjectDetail)
async def get_project(
    project_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service),
    db: AsyncSession = Depends(get_db),
):
    """Get a project with its scenes and current media."""
    return await service.get_detail(db, project_id, user.id)


@router.patch("/{project_id}", response_model=ProjectRead)
async def update_project(
    project_id: str,
    data: ProjectUpdate,
    user: CurrentUser = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service),
    db: AsyncSession = Depends(get_db),
):
    return await service.update(db, project_id, user.id, data)


@router.post("/{project_id}/stage", response_model=ProjectRead)
async def set_project_stage(
    project_id: str,
    data: ProjectStageUpdate,
    user: CurrentUser = Depends(get_current_user),
    stages: ProjectStageMachine = Depends(get_stage_machine),
    db: AsyncSession = Depends(get_db),
):
    """Move the project forward; the target stage's preconditions must hold."""
    project = await stages.set_stage(db, project_id, user.id, data.stage)
    await db.refresh(project)
    return project


@router.delete("/{project_id}", status_code=204)
async def delete_project(
    project_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service),
    db: AsyncSession = Depends(get_db),
):
    """Delete a project, its scenes and all generated media."""
    await service.delete(db, project_id, user.id)
