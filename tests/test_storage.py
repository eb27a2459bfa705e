"""Tests for local media storage and the media artifact tracker."""

import os
import time
from urllib.parse import parse_qs, urlparse

import pytest
from sqlalchemy import select

from storyreel.models import Image, Video
from storyreel.models.project import ProjectStage
from storyreel.models.scene import TrackKind
from storyreel.services.storage import LocalStorage, StorageError, StorageNotFound


@pytest.fixture
def local(tmp_path):
    return LocalStorage(str(tmp_path / "media"), "secret")


async def test_upload_download_delete(local):
    stored = await local.upload(b"hello", "p1/s1/image-abc.png", "image/png")
    assert stored.size == 5
    assert await local.download("p1/s1/image-abc.png") == b"hello"

    assert await local.delete_file("p1/s1/image-abc.png") is True
    assert await local.delete_file("p1/s1/image-abc.png") is False
    with pytest.raises(StorageNotFound):
        await local.download("p1/s1/image-abc.png")


async def test_path_traversal_is_rejected(local):
    with pytest.raises(StorageNotFound):
        await local.download("../outside.txt")


async def test_delete_error_is_raised(local, monkeypatch):
    await local.upload(b"x", "p/s/video.mp4", "video/mp4")

    def _denied(path):
        raise PermissionError("read-only volume")

    monkeypatch.setattr(os, "remove", _denied)
    with pytest.raises(StorageError):
        await local.delete_file("p/s/video.mp4")


def test_signed_url_round_trip(local):
    url = urlparse(local.signed_url("p/s/image.png", 60))
    params = parse_qs(url.query)
    expires = int(params["expires"][0])
    signature = params["signature"][0]

    assert url.path == "/media/p/s/image.png"
    assert local.verify("p/s/image.png", expires, signature)
    assert not local.verify("p/s/other.png", expires, signature)
    assert not local.verify("p/s/image.png", expires, "0" * 64)


def test_signed_url_expires(local):
    expired = int(time.time()) - 1
    signature = local._sign("p/s/image.png", expired)
    assert not local.verify("p/s/image.png", expired, signature)


# ──────── Tracker ────────

async def test_store_replaces_previous_artifact(db, tracker, storage, make_project, make_scenes):
    project = await make_project(stage=ProjectStage.IMAGES)
    (scene,) = await make_scenes(project, [{}])

    first = await tracker.store(db, scene, TrackKind.IMAGE, b"one")
    second = await tracker.store(db, scene, TrackKind.IMAGE, b"two")

    assert first.storage_path != second.storage_path
    assert first.storage_path not in storage.objects
    assert second.storage_path.startswith(f"{project.id}/{scene.id}/image-")
    assert second.storage_path.endswith(".png")
    assert (await tracker.current(db, scene.id, TrackKind.IMAGE)).storage_path == second.storage_path


async def test_discard_for_scenes_removes_storage_then_rows(
    db, tracker, storage, make_project, make_scenes
):
    project = await make_project()
    scenes = await make_scenes(project, [
        {"image": b"i1", "video": b"v1"},
        {"image": b"i2"},
    ])

    removed = await tracker.discard_for_scenes(db, [s.id for s in scenes])

    assert removed == 3
    assert storage.objects == {}
    assert (await db.execute(select(Image))).scalars().all() == []
    assert (await db.execute(select(Video))).scalars().all() == []


async def test_storage_failure_keeps_rows(db, tracker, storage, make_project, make_scenes):
    project = await make_project()
    (scene,) = await make_scenes(project, [{"video": b"v1"}])
    storage.fail_delete = True

    with pytest.raises(StorageError):
        await tracker.discard(db, scene.id, TrackKind.VIDEO)

    rows = (await db.execute(select(Video))).scalars().all()
    assert len(rows) == 1
    assert rows[0].storage_path in storage.objects
