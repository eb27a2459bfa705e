"""Pytest configuration and shared fixtures.

Puts ``backend/`` on ``sys.path`` and points the settings at an in-memory
SQLite database before any ``storyreel`` module is imported. External
collaborators (storage, generation, ffmpeg) are replaced by in-memory fakes.
"""

import asyncio
import os
import sys
import tempfile

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
BACKEND = os.path.join(ROOT, "backend")
if BACKEND not in sys.path:
    sys.path.insert(0, BACKEND)

os.environ.setdefault("DATABASE_URL_OVERRIDE", "sqlite+aiosqlite://")
os.environ.setdefault("NOTIFY_ENABLED", "false")
os.environ.setdefault("USE_MOCK_API", "true")
os.environ.setdefault("API_KEYS", "")
os.environ.setdefault("SINGLE_TENANT", "true")
os.environ.setdefault("MEDIA_VOLUME", tempfile.mkdtemp(prefix="storyreel-media-"))

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from storyreel.database import Base
from storyreel.errors import ConcatenationFailed
from storyreel.models import Project, Scene
from storyreel.models.project import ProjectStage
from storyreel.models.scene import TrackKind, TrackStatus
from storyreel.services.assembly import ArtifactAssemblyPipeline
from storyreel.services.bulk_confirm import BulkConfirmationCoordinator
from storyreel.services.concat import BaseConcatenator
from storyreel.services.generation import GenerationClient
from storyreel.services.media_tracker import MediaArtifactTracker
from storyreel.services.ownership import SingleTenantPolicy
from storyreel.services.scene_controller import SceneLifecycleController
from storyreel.services.stage_machine import ProjectStageMachine
from storyreel.services.storage import BaseStorage, StorageError, StorageNotFound, StoredObject


# ──────── Fakes ────────

class FakeStorage(BaseStorage):
    """Dict-backed storage with switchable failures."""

    def __init__(self):
        self.objects: dict[str, bytes] = {}
        self.fail_delete = False
        self.fail_download: set[str] = set()

    async def upload(self, data, path, content_type):
        self.objects[path] = data
        return StoredObject(path=path, size=len(data), content_type=content_type)

    async def download(self, path):
        if path in self.fail_download:
            raise StorageError("download failed")
        if path not in self.objects:
            raise StorageNotFound()
        return self.objects[path]

    async def delete_file(self, path):
        if self.fail_delete:
            raise StorageError("delete failed")
        return self.objects.pop(path, None) is not None

    def signed_url(self, path, ttl_seconds):
        return f"/media/{path}?expires=9999999999&signature=test"


class FakeGeneration(GenerationClient):
    """Deterministic generation; set ``fail``/``hang`` to simulate outages.

    Descriptions listed in ``fail_descriptions`` fail on their own.
    """

    def __init__(self):
        self.descriptions = ["A fox wakes up.", "The fox meets a crow.", "They share breakfast."]
        self.image_bytes = b"PNG-bytes"
        self.video_bytes = b"MP4-bytes"
        self.fail: Exception | None = None
        self.fail_descriptions: set[str] = set()
        self.hang = False
        self.calls: list[tuple] = []

    async def generate_scene_descriptions(self, story, style=None, previous=None, feedback=None):
        self.calls.append(("scenes", story, style, previous, feedback))
        if self.fail:
            raise self.fail
        return list(self.descriptions)

    async def generate_image(self, description, style=None, options=None):
        self.calls.append(("image", description, style))
        return await self._media(self.image_bytes, description)

    async def generate_video(self, image, description, options=None):
        self.calls.append(("video", image, description))
        return await self._media(self.video_bytes, description)

    async def _media(self, data, description):
        if self.hang:
            await asyncio.sleep(3600)
        if self.fail:
            raise self.fail
        if description in self.fail_descriptions:
            raise RuntimeError(f"content rejected: {description}")
        return data


class FakeConcatenator(BaseConcatenator):
    """Joins clip bytes in manifest order instead of running ffmpeg.

    ``fail`` raises before any output exists; ``fail_after_write`` leaves a
    truncated output file behind first, like a tool that dies mid-run.
    """

    provider_name = "fake"

    def __init__(self):
        self.fail = False
        self.fail_after_write = False
        self.manifests: list[list[str]] = []
        self.workspace_at_failure: list[str] = []

    async def concatenate(self, manifest, output_path, timeout):
        self.manifests.append(list(manifest))
        if self.fail:
            raise ConcatenationFailed()
        if self.fail_after_write:
            with open(output_path, "wb") as f:
                f.write(b"trunc")
            self.workspace_at_failure = sorted(os.listdir(os.path.dirname(output_path)))
            raise ConcatenationFailed("ffmpeg exited with status 1")
        chunks = []
        for path in manifest:
            with open(path, "rb") as f:
                chunks.append(f.read())
        with open(output_path, "wb") as f:
            f.write(b"".join(chunks))


# ──────── Database ────────

@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


# ──────── Services ────────

@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def generator():
    return FakeGeneration()


@pytest.fixture
def concatenator():
    return FakeConcatenator()


@pytest.fixture
def stages():
    return ProjectStageMachine(SingleTenantPolicy())


@pytest.fixture
def tracker(storage):
    return MediaArtifactTracker(storage)


@pytest.fixture
def controller(stages, generator, tracker):
    return SceneLifecycleController(stages, generator, tracker, timeout=1.0)


@pytest.fixture
def bulk(stages):
    return BulkConfirmationCoordinator(stages)


@pytest.fixture
def work_root(tmp_path):
    path = tmp_path / "work"
    path.mkdir()
    return str(path)


@pytest.fixture
def pipeline(stages, tracker, concatenator, work_root):
    return ArtifactAssemblyPipeline(stages, tracker, concatenator, work_root=work_root, timeout=5.0)


# ──────── Seed helpers ────────

@pytest.fixture
def make_project(db):
    async def _make(
        story: str | None = "A fox and a crow become friends.",
        stage: ProjectStage = ProjectStage.DRAFT,
        user_id: str = "local",
        title: str = "Fox Tale",
    ) -> Project:
        project = Project(title=title, story=story, stage=stage.value, user_id=user_id)
        db.add(project)
        await db.flush()
        return project

    return _make


@pytest.fixture
def make_scenes(db, tracker):
    """Create scenes; each entry is a dict of Scene fields plus optional video bytes."""

    async def _make(project: Project, rows: list[dict]) -> list[Scene]:
        scenes = []
        for i, fields in enumerate(rows):
            fields = dict(fields)
            video = fields.pop("video", None)
            image = fields.pop("image", None)
            scene = Scene(
                project_id=project.id,
                order_index=fields.pop("order_index", i),
                description=fields.pop("description", f"Scene {i + 1}"),
                **fields,
            )
            db.add(scene)
            await db.flush()
            if image is not None:
                await tracker.store(db, scene, TrackKind.IMAGE, image)
            if video is not None:
                await tracker.store(db, scene, TrackKind.VIDEO, video)
            scenes.append(scene)
        await db.commit()
        return scenes

    return _make


@pytest.fixture
def video_ready():
    """Scene fields for a scene whose video is generated but not confirmed."""
    return {
        "description_confirmed": True,
        "image_status": TrackStatus.COMPLETED.value,
        "image_confirmed": True,
        "video_status": TrackStatus.COMPLETED.value,
    }


@pytest.fixture
def video_done(video_ready):
    """Scene fields for a scene whose video is generated and confirmed."""
    return {**video_ready, "video_confirmed": True}


