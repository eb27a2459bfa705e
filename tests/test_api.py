"""End-to-end API tests through the FastAPI app with fake collaborators."""

import httpx
import pytest

from storyreel.config import get_settings
from storyreel.database import get_db
from storyreel.main import app
from storyreel.services.concat import get_concatenator
from storyreel.services.generation import get_generation_client
from storyreel.services.storage import get_storage


@pytest.fixture
async def client(session_factory, storage, generator, concatenator):
    async def _get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_generation_client] = lambda: generator
    app.dependency_overrides[get_concatenator] = lambda: concatenator

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


async def _create_project(client, **overrides):
    body = {"title": "Fox Tale", "story": "A fox and a crow become friends.", "style": "anime"}
    body.update(overrides)
    resp = await client.post("/api/projects", json=body)
    assert resp.status_code == 201
    return resp.json()


async def _scenes(client, project_id):
    resp = await client.get(f"/api/projects/{project_id}/scenes")
    assert resp.status_code == 200
    return resp.json()


async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


async def test_full_workflow(client, storage):
    project = await _create_project(client)
    pid = project["id"]
    assert project["stage"] == "draft"

    resp = await client.post(f"/api/projects/{pid}/scenes/generate")
    assert resp.status_code == 200
    assert len(resp.json()["scenes"]) == 3

    resp = await client.post(f"/api/projects/{pid}/confirm-all-descriptions")
    assert resp.json() == {"count": 3, "skipped": 0, "stage": "scenes"}

    resp = await client.post(f"/api/projects/{pid}/stage", json={"stage": "images"})
    assert resp.status_code == 200
    assert resp.json()["stage"] == "images"

    for scene in await _scenes(client, pid):
        resp = await client.post(f"/api/scenes/{scene['id']}/generate-image")
        assert resp.status_code == 200
        assert resp.json()["image_status"] == "completed"

    resp = await client.post(f"/api/projects/{pid}/confirm-all-images")
    assert resp.json()["count"] == 3

    resp = await client.post(f"/api/projects/{pid}/stage", json={"stage": "videos"})
    assert resp.status_code == 200

    for scene in await _scenes(client, pid):
        resp = await client.post(f"/api/scenes/{scene['id']}/generate-video")
        assert resp.status_code == 200
        assert resp.json()["video_status"] == "completed"

    resp = await client.post(f"/api/projects/{pid}/confirm-all-videos")
    assert resp.json() == {"count": 3, "skipped": 0, "stage": "completed"}

    resp = await client.post(f"/api/projects/{pid}/confirm-all-videos")
    assert resp.json() == {"count": 0, "skipped": 0, "stage": "completed"}

    resp = await client.post(f"/api/projects/{pid}/combine-videos")
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "video/mp4"
    assert "Fox%20Tale.mp4" in resp.headers["content-disposition"]
    assert resp.content == b"MP4-bytes" * 3

    resp = await client.get(f"/api/projects/{pid}")
    detail = resp.json()
    assert detail["stage"] == "completed"
    assert detail["scenes"][0]["image"]["url"].startswith("/media/")
    assert detail["scenes"][0]["video"]["content_type"] == "video/mp4"


async def test_confirm_single_video_reports_completion(client):
    project = await _create_project(client)
    pid = project["id"]
    await client.post(f"/api/projects/{pid}/scenes/generate")
    await client.post(f"/api/projects/{pid}/confirm-all-descriptions")
    await client.post(f"/api/projects/{pid}/stage", json={"stage": "images"})
    scenes = await _scenes(client, pid)
    for scene in scenes:
        await client.post(f"/api/scenes/{scene['id']}/generate-image")
    await client.post(f"/api/projects/{pid}/confirm-all-images")
    await client.post(f"/api/projects/{pid}/stage", json={"stage": "videos"})
    for scene in scenes:
        await client.post(f"/api/scenes/{scene['id']}/generate-video")

    for scene in scenes[:-1]:
        resp = await client.post(f"/api/scenes/{scene['id']}/confirm-video")
        assert resp.json()["all_confirmed"] is False
        assert resp.json()["stage_advanced"] is False

    resp = await client.post(f"/api/scenes/{scenes[-1]['id']}/confirm-video")
    body = resp.json()
    assert body["all_confirmed"] is True
    assert body["stage_advanced"] is True


async def test_unknown_project_is_not_found(client):
    resp = await client.get("/api/projects/missing")
    assert resp.status_code == 404
    assert resp.json() == {"error": "Project not found", "kind": "not_found"}


async def test_invalid_stage_literal(client):
    project = await _create_project(client)
    resp = await client.post(f"/api/projects/{project['id']}/stage", json={"stage": "published"})
    assert resp.status_code == 400
    assert resp.json()["kind"] == "precondition_failed"


async def test_stage_precondition_failure(client):
    project = await _create_project(client)
    resp = await client.post(f"/api/projects/{project['id']}/stage", json={"stage": "images"})
    assert resp.status_code == 400


async def test_generate_image_before_confirmation(client):
    project = await _create_project(client)
    await client.post(f"/api/projects/{project['id']}/scenes/generate")
    scene = (await _scenes(client, project["id"]))[0]

    resp = await client.post(f"/api/scenes/{scene['id']}/generate-image")
    assert resp.status_code == 400
    assert resp.json()["kind"] == "precondition_failed"


async def test_generation_failure_is_recorded(client, generator):
    project = await _create_project(client)
    pid = project["id"]
    await client.post(f"/api/projects/{pid}/scenes/generate")
    await client.post(f"/api/projects/{pid}/confirm-all-descriptions")
    scene = (await _scenes(client, pid))[0]

    generator.fail = RuntimeError("quota exceeded")
    resp = await client.post(f"/api/scenes/{scene['id']}/generate-image")
    assert resp.status_code == 502
    assert resp.json()["kind"] == "upstream_service_error"

    resp = await client.get(f"/api/scenes/{scene['id']}")
    assert resp.json()["image_status"] == "failed"
    assert "quota exceeded" in resp.json()["image_error"]

    generator.fail = None
    resp = await client.post(f"/api/scenes/{scene['id']}/generate-image")
    assert resp.status_code == 200
    assert resp.json()["image_status"] == "completed"
    assert resp.json()["image_error"] is None


async def test_combine_requires_completed_project(client):
    project = await _create_project(client)
    resp = await client.post(f"/api/projects/{project['id']}/combine-videos")
    assert resp.status_code == 400


async def test_regenerate_scenes_resets_stage(client):
    project = await _create_project(client)
    pid = project["id"]
    await client.post(f"/api/projects/{pid}/scenes/generate")
    await client.post(f"/api/projects/{pid}/confirm-all-descriptions")
    await client.post(f"/api/projects/{pid}/stage", json={"stage": "images"})

    resp = await client.post(
        f"/api/projects/{pid}/scenes/regenerate", json={"feedback": "Shorter please"}
    )
    assert resp.status_code == 200
    assert all(not s["description_confirmed"] for s in resp.json()["scenes"])

    resp = await client.get(f"/api/projects/{pid}")
    assert resp.json()["stage"] == "scenes"


async def test_edit_description(client):
    project = await _create_project(client)
    await client.post(f"/api/projects/{project['id']}/scenes/generate")
    await client.post(f"/api/projects/{project['id']}/confirm-all-descriptions")
    scene = (await _scenes(client, project["id"]))[0]

    resp = await client.patch(f"/api/scenes/{scene['id']}", json={"description": "A new dawn."})
    assert resp.status_code == 200
    assert resp.json()["description"] == "A new dawn."
    assert resp.json()["description_confirmed"] is False


async def test_list_and_delete_projects(client, storage):
    first = await _create_project(client, title="First")
    await _create_project(client, title="Second")

    resp = await client.get("/api/projects", params={"limit": 1})
    page = resp.json()
    assert page["total"] == 2
    assert len(page["projects"]) == 1

    pid = first["id"]
    await client.post(f"/api/projects/{pid}/scenes/generate")
    await client.post(f"/api/projects/{pid}/confirm-all-descriptions")
    scene = (await _scenes(client, pid))[0]
    await client.post(f"/api/scenes/{scene['id']}/generate-image")
    assert len(storage.objects) == 1

    resp = await client.delete(f"/api/projects/{pid}")
    assert resp.status_code == 204
    assert storage.objects == {}
    assert (await client.get(f"/api/projects/{pid}")).status_code == 404
    assert (await client.get(f"/api/scenes/{scene['id']}")).status_code == 404


async def test_api_key_required_when_configured(client, monkeypatch):
    monkeypatch.setattr(get_settings(), "API_KEYS", "k-alice:alice,k-bob:bob")

    resp = await client.get("/api/projects")
    assert resp.status_code == 401
    assert resp.json()["kind"] == "unauthenticated"

    resp = await client.get("/api/projects", headers={"X-API-Key": "wrong"})
    assert resp.status_code == 401

    resp = await client.get("/api/projects", headers={"X-API-Key": "k-alice"})
    assert resp.status_code == 200


async def test_projects_are_private_in_multi_tenant_mode(client, monkeypatch):
    settings = get_settings()
    monkeypatch.setattr(settings, "API_KEYS", "k-alice:alice,k-bob:bob")
    monkeypatch.setattr(settings, "SINGLE_TENANT", False)
    alice = {"X-API-Key": "k-alice"}
    bob = {"X-API-Key": "k-bob"}

    resp = await client.post("/api/projects", json={"title": "Secret"}, headers=alice)
    pid = resp.json()["id"]

    assert (await client.get(f"/api/projects/{pid}", headers=alice)).status_code == 200
    resp = await client.get(f"/api/projects/{pid}", headers=bob)
    assert resp.status_code == 403
    assert resp.json()["kind"] == "unauthorized"
    assert (await client.get("/api/projects", headers=bob)).json()["total"] == 0


async def test_startup_recovery_fails_processing_tracks(
    db, session_factory, make_project, make_scenes, monkeypatch
):
    from storyreel import main
    from storyreel.models import Scene

    project = await make_project()
    (scene,) = await make_scenes(project, [{"image_status": "processing", "video_status": "none"}])
    monkeypatch.setattr(main, "async_session_factory", session_factory)

    assert await main.recover_stuck_tracks() == 1

    fresh = await db.get(Scene, scene.id, populate_existing=True)
    assert fresh.image_status == "failed"
    assert fresh.image_error == main.INTERRUPTED_MESSAGE
    assert fresh.video_status == "none"


async def test_batch_image_generation_reports_each_scene(client, generator):
    project = await _create_project(client)
    pid = project["id"]
    await client.post(f"/api/projects/{pid}/scenes/generate")
    await client.post(f"/api/projects/{pid}/confirm-all-descriptions")
    generator.fail_descriptions = {"The fox meets a crow."}

    resp = await client.post(f"/api/projects/{pid}/generate-images")
    assert resp.status_code == 200
    body = resp.json()
    assert (body["total"], body["completed"], body["failed"]) == (3, 2, 1)
    assert [r["success"] for r in body["results"]] == [True, False, True]
    assert body["message"] == "Generated images for 2 scenes. 1 failed."

    statuses = [s["image_status"] for s in await _scenes(client, pid)]
    assert statuses == ["completed", "failed", "completed"]

    generator.fail_descriptions = set()
    resp = await client.post(f"/api/projects/{pid}/generate-images")
    assert resp.json()["total"] == 1
    resp = await client.post(f"/api/projects/{pid}/generate-images")
    assert resp.json()["message"] == "No scenes require image generation."


async def test_completed_project_is_read_only(client):
    project = await _create_project(client)
    pid = project["id"]
    await client.post(f"/api/projects/{pid}/scenes/generate")
    await client.post(f"/api/projects/{pid}/confirm-all-descriptions")
    await client.post(f"/api/projects/{pid}/generate-images")
    await client.post(f"/api/projects/{pid}/confirm-all-images")
    await client.post(f"/api/projects/{pid}/generate-videos")
    resp = await client.post(f"/api/projects/{pid}/confirm-all-videos")
    assert resp.json()["stage"] == "completed"
    scene = (await _scenes(client, pid))[0]

    resp = await client.post(
        f"/api/scenes/{scene['id']}/generate-video", json={"regenerate": True}
    )
    assert resp.status_code == 400
    resp = await client.patch(f"/api/scenes/{scene['id']}", json={"description": "Changed"})
    assert resp.status_code == 400

    resp = await client.post(f"/api/projects/{pid}/combine-videos")
    assert resp.status_code == 200
    assert resp.headers["x-scene-count"] == "3"
