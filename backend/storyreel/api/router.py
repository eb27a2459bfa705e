from __future__ import annotations
"""Master API router: mounts all sub-routers."""

from fastapi import APIRouter

from storyreel.api.assembly import router as assembly_router
from storyreel.api.projects import router as projects_router
from storyreel.api.scenes import router as scenes_router
from storyreel.api.storage import router as storage_router
from storyreel.api.system import router as system_router

api_router = APIRouter(prefix="/api", redirect_slashes=False)

api_router.include_router(projects_router, prefix="/projects", tags=["Projects"])
api_router.include_router(scenes_router, tags=["Scenes"])
api_router.include_router(assembly_router, tags=["Assembly"])
api_router.include_router(storage_router, prefix="/storage", tags=["Storage"])
api_router.include_router(system_router, prefix="/system", tags=["System"])
