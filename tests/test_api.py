import re

import pytest
from fastapi.testclient import TestClient

from app.api import deps
from app.core.config import settings
from app.main import app
from app.models.video import Video
from app.schemas.generation import GenerationStage
from app.services.storage import StoredMedia

HEADERS = {"X-User-Id": "u1"}


class FakeQueue:
    def __init__(self):
        self.enqueued = []
        self.cancellable = set()

    def enqueue_generation(self, process_id, user_id, request, supporting_media_file=None, voice_media_file=None):
        self.enqueued.append((process_id, user_id, request, supporting_media_file, voice_media_file))

    def cancel_job(self, job_id):
        return job_id in self.cancellable


@pytest.fixture
def queue():
    return FakeQueue()


@pytest.fixture
def client(session_factory, progress_store, queue, gateway):
    def override_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[deps.get_db] = override_db
    app.dependency_overrides[deps.get_progress_store] = lambda: progress_store
    app.dependency_overrides[deps.get_queue_manager] = lambda: queue
    app.dependency_overrides[deps.get_gateway] = lambda: gateway
    yield TestClient(app)
    app.dependency_overrides.clear()


def submit(client, **overrides):
    body = {"script_option": "gpt", "topic": "mindfulness", "voice_id": "voice-1"}
    body.update(overrides)
    return client.post("/api/v1/generations", json=body, headers=HEADERS)


def test_submit_returns_process_id(client, queue, progress_store):
    response = submit(client)

    assert response.status_code == 202
    process_id = response.json()["process_id"]
    assert re.fullmatch(r"process_\d+_[a-z0-9]{8}", process_id)
    assert queue.enqueued[0][0] == process_id
    assert queue.enqueued[0][1] == "u1"

    record = progress_store.read(process_id)
    assert record.progress == 0
    assert record.user_id == "u1"


def test_submit_requires_identity(client):
    response = client.post(
        "/api/v1/generations",
        json={"script_option": "gpt", "topic": "x", "voice_id": "voice-1"},
    )
    assert response.status_code == 401


def test_gpt_without_topic_is_rejected(client, queue):
    response = submit(client, topic="")

    assert response.status_code == 422
    assert queue.enqueued == []


def test_custom_without_script_is_rejected(client):
    assert submit(client, script_option="custom", topic=None).status_code == 422


def test_submit_with_files(client, queue):
    response = client.post(
        "/api/v1/generations/upload",
        data={"script_option": "custom", "custom_script": "Hello world.", "voice_id": "voice-1"},
        files={"supporting_media_file": ("clip.mp4", b"video-bytes", "video/mp4")},
        headers=HEADERS,
    )

    assert response.status_code == 202
    _, _, request, supporting, voice = queue.enqueued[0]
    assert request.custom_script == "Hello world."
    assert supporting.filename == "clip.mp4"
    assert supporting.data == b"video-bytes"
    assert voice is None


def test_submit_with_files_validates_script_source(client):
    response = client.post(
        "/api/v1/generations/upload",
        data={"script_option": "gpt", "voice_id": "voice-1"},
        headers=HEADERS,
    )
    assert response.status_code == 422


def test_get_progress(client, progress_store):
    process_id = submit(client).json()["process_id"]
    progress_store.merge(process_id, progress=50, status="Generating AI video...")

    response = client.get(f"/api/v1/generations/{process_id}", headers=HEADERS)

    assert response.status_code == 200
    body = response.json()
    assert body["progress"] == 50
    assert body["outcome"] == {"kind": "progress"}


def test_get_progress_success_outcome(client, progress_store):
    process_id = submit(client).json()["process_id"]
    progress_store.merge(
        process_id, progress=100, status="Complete!", stage=GenerationStage.DONE,
        final_video_url="https://cdn.example.com/final.mp4",
    )

    body = client.get(f"/api/v1/generations/{process_id}", headers=HEADERS).json()

    assert body["outcome"] == {"kind": "success", "final_video_url": "https://cdn.example.com/final.mp4"}


def test_unknown_process_is_404(client):
    assert client.get("/api/v1/generations/nope", headers=HEADERS).status_code == 404


def test_other_users_process_is_404(client):
    process_id = submit(client).json()["process_id"]

    response = client.get(f"/api/v1/generations/{process_id}", headers={"X-User-Id": "u2"})

    assert response.status_code == 404


def test_cancel_running_process(client, progress_store):
    process_id = submit(client).json()["process_id"]

    response = client.post(f"/api/v1/generations/{process_id}/cancel", headers=HEADERS)

    assert response.status_code == 200
    assert progress_store.is_cancel_requested(process_id)
    # Still owned by the worker, which stops at its next checkpoint
    assert response.json()["progress"] == 0


def test_cancel_queued_process_fails_it(client, progress_store, queue):
    process_id = submit(client).json()["process_id"]
    queue.cancellable.add(process_id)

    body = client.post(f"/api/v1/generations/{process_id}/cancel", headers=HEADERS).json()

    assert body["progress"] == 100
    assert body["outcome"] == {"kind": "failed", "reason": "Cancelled by user"}


def test_cancel_finished_process_conflicts(client, progress_store):
    process_id = submit(client).json()["process_id"]
    progress_store.merge(process_id, progress=100, status="Error: boom", error="boom")

    response = client.post(f"/api/v1/generations/{process_id}/cancel", headers=HEADERS)

    assert response.status_code == 409


def test_upload(client, gateway):
    response = client.post(
        "/api/v1/uploads",
        files={"file": ("face.png", b"png-bytes", "image/png")},
        headers=HEADERS,
    )

    assert response.status_code == 201
    assert response.json() == {"url": "http://testserver/files/uploads/u1/face.png", "durable": True}


def test_upload_reports_non_durable(client, gateway):
    gateway.upload_results = [StoredMedia(url="file:///tmp/face.png", path=None, durable=False)]

    response = client.post(
        "/api/v1/uploads",
        files={"file": ("face.png", b"png-bytes", "image/png")},
        headers=HEADERS,
    )

    assert response.json()["durable"] is False


def test_list_videos_newest_first(client, db):
    from datetime import datetime, timedelta

    now = datetime.utcnow()
    db.add_all([
        Video(id="old", final_video_url="https://v/old.mp4", script_text="old", user_id="u1",
              timestamp=now - timedelta(days=1)),
        Video(id="new", final_video_url="https://v/new.mp4", script_text="new", user_id="u1", timestamp=now),
        Video(id="other", final_video_url="https://v/o.mp4", script_text="o", user_id="u2", timestamp=now),
    ])
    db.commit()

    body = client.get("/api/v1/videos", headers=HEADERS).json()

    assert body["demo"] is False
    assert [v["id"] for v in body["videos"]] == ["new", "old"]


def test_list_videos_falls_back_to_demo(client, session_factory):
    from sqlalchemy.exc import OperationalError

    def broken_db():
        class Broken:
            def query(self, *args):
                raise OperationalError("SELECT", {}, Exception("database is down"))

            def close(self):
                pass

        yield Broken()

    app.dependency_overrides[deps.get_db] = broken_db

    body = client.get("/api/v1/videos", headers=HEADERS).json()

    assert body["demo"] is True
    assert len(body["videos"]) == 2


def test_credits(client):
    body = client.get("/api/v1/credits", headers=HEADERS).json()

    assert body["balance"] == 100
    assert body["subscription"] is None
    assert body["transactions"][0]["transaction_type"] == "INITIAL"


def test_monthly_reset(client, monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_TOKEN", "cron-secret")
    client.get("/api/v1/credits", headers=HEADERS)

    admin = {"X-Admin-Token": "cron-secret"}
    first = client.post("/api/v1/credits/monthly-reset", headers=admin).json()
    second = client.post("/api/v1/credits/monthly-reset", headers=admin).json()

    assert first == {"users_credited": 1, "amount": 100}
    assert second["users_credited"] == 0


def test_serve_local_file(client):
    from pathlib import Path

    target = Path(settings.LOCAL_STORAGE_PATH) / "uploads" / "u1" / "served.png"
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(b"png-bytes")

    response = client.get("/files/uploads/u1/served.png")

    assert response.status_code == 200
    assert response.content == b"png-bytes"
    assert response.headers["content-type"] == "image/png"
    assert client.get("/files/uploads/u1/missing.png").status_code == 404


def test_monthly_reset_requires_admin_token(client, monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_TOKEN", "cron-secret")

    assert client.post("/api/v1/credits/monthly-reset", headers=HEADERS).status_code == 403
    wrong = {"X-Admin-Token": "guess", **HEADERS}
    assert client.post("/api/v1/credits/monthly-reset", headers=wrong).status_code == 403


def test_monthly_reset_disabled_without_token_setting(client, monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_TOKEN", "")

    response = client.post("/api/v1/credits/monthly-reset", headers={"X-Admin-Token": ""})

    assert response.status_code == 403


def test_credits_database_outage_is_503(client):
    from sqlalchemy.exc import OperationalError

    def broken_db():
        class Broken:
            def query(self, *args):
                raise OperationalError("SELECT", {}, Exception("database is down"))

        yield Broken()

    app.dependency_overrides[deps.get_db] = broken_db

    response = client.get("/api/v1/credits", headers=HEADERS)

    assert response.status_code == 503
