"""Workflow error taxonomy and the single mapping from error kind to HTTP status.

Services raise these; routes never build status codes themselves.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class WorkflowError(Exception):
    """Base class for all errors surfaced to API callers."""

    kind: str = "internal_error"
    message: str = "Internal error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)
        self.message = message or self.message


class Unauthenticated(WorkflowError):
    kind = "unauthenticated"
    message = "Authentication required"


class NotFound(WorkflowError):
    kind = "not_found"
    message = "Not found"


class Unauthorized(WorkflowError):
    kind = "unauthorized"
    message = "You do not have access to this resource"


class PreconditionFailed(WorkflowError):
    kind = "precondition_failed"
    message = "Precondition failed"


class InvalidStage(PreconditionFailed):
    """Unrecognized stage literal."""

    def __init__(self, stage: str):
        super().__init__(f"Invalid stage: {stage!r}")
        self.stage = stage


class NoArtifacts(PreconditionFailed):
    message = "No videos found to combine"


class UpstreamServiceError(WorkflowError):
    """An external collaborator (generation service, storage) failed."""

    kind = "upstream_service_error"
    message = "Upstream service error"


class FetchFailed(UpstreamServiceError):
    """Downloading a scene video for assembly failed."""

    def __init__(self, scene_order_index: int):
        super().__init__(
            f"Failed to download video for scene {scene_order_index + 1}"
        )
        self.scene_order_index = scene_order_index


class ConcatenationFailed(WorkflowError):
    message = "Failed to combine videos"


class InternalError(WorkflowError):
    pass


ERROR_STATUS: dict[str, int] = {
    Unauthenticated.kind: 401,
    Unauthorized.kind: 403,
    NotFound.kind: 404,
    PreconditionFailed.kind: 400,
    UpstreamServiceError.kind: 502,
    InternalError.kind: 500,
}


def status_for(error: WorkflowError) -> int:
    return ERROR_STATUS.get(error.kind, 500)


def register_exception_handlers(app: FastAPI) -> None:
    """Install the handlers that turn workflow errors into JSON responses."""

    @app.exception_handler(WorkflowError)
    async def _workflow_error(request: Request, exc: WorkflowError):
        status = status_for(exc)
        if status >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=status,
            content={"error": exc.message, "kind": exc.kind},
        )

    @app.exception_handler(Exception)
    async def _unexpected_error(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"error": InternalError.message, "kind": InternalError.kind},
        )
