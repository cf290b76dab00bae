from __future__ import annotations

import time
from dataclasses import replace

import pytest
from fastapi.testclient import TestClient

from talking_photo.main import create_app
from talking_photo.routers import runs


@pytest.fixture
def make_client(providers, monkeypatch):  # noqa: ANN001
    monkeypatch.setattr(runs, "manager", runs.RunManager())
    runs.manager.transport = providers.transport
    clients: list[TestClient] = []

    def factory(settings):  # noqa: ANN001
        app = create_app()
        app.dependency_overrides[runs.get_settings] = lambda: settings
        client = TestClient(app)
        client.__enter__()
        clients.append(client)
        return client

    yield factory
    for client in clients:
        client.__exit__(None, None, None)


def _wait_until_finished(client: TestClient, run_id: str) -> dict:
    for _ in range(200):
        body = client.get(f"/runs/{run_id}").json()
        if body["status"] != "running":
            return body
        time.sleep(0.01)
    raise AssertionError(f"run {run_id} did not finish")


IMAGE = ("avatar.jpg", b"\xff\xd8fake", "image/jpeg")


def test_health(make_client, settings) -> None:  # noqa: ANN001
    client = make_client(settings)
    assert client.get("/").json() == {"service": "talking-photo", "status": "ok"}


def test_script_run_completes(make_client, settings, providers) -> None:  # noqa: ANN001
    client = make_client(settings)

    resp = client.post(
        "/runs/",
        files={"image": IMAGE},
        data={"script_text": "Hello world", "heygen_api_key": "hg-form", "elevenlabs_api_key": "el-form"},
    )
    assert resp.status_code == 202
    run_id = resp.json()["run_id"]

    body = _wait_until_finished(client, run_id)
    assert body["status"] == "succeeded"
    assert body["result_url"] == "https://cdn/9.mp4"
    assert body["progress"] == 100
    assert body["error"] is None
    assert any("Video generated successfully!" in line for line in body["logs"])
    assert providers.calls("/v1/asset")[0].headers["X-Api-Key"] == "hg-form"


def test_uploaded_audio_run_uses_configured_keys(make_client, settings, providers) -> None:  # noqa: ANN001
    client = make_client(settings)

    resp = client.post(
        "/runs/",
        files={"image": IMAGE, "audio": ("voice.mp3", b"ID3", "audio/mpeg")},
        data={"audio_source": "mp3"},
    )
    body = _wait_until_finished(client, resp.json()["run_id"])

    assert body["status"] == "succeeded"
    assert providers.calls("/v1/text-to-speech/voice-1") == []
    assert providers.calls("/v1/asset")[0].headers["X-Api-Key"] == "hg-test"


def test_missing_image_is_rejected_up_front(make_client, settings, providers) -> None:  # noqa: ANN001
    client = make_client(settings)

    resp = client.post("/runs/", data={"script_text": "Hello world"})

    assert resp.status_code == 400
    assert resp.json()["detail"] == "Please select an avatar image."
    assert providers.requests == []


def test_missing_heygen_key_is_rejected(make_client, settings, providers) -> None:  # noqa: ANN001
    client = make_client(replace(settings, heygen_api_key=None))

    resp = client.post("/runs/", files={"image": IMAGE}, data={"script_text": "Hello world"})

    assert resp.status_code == 400
    assert resp.json()["detail"] == "Please enter your HeyGen API key."


def test_unknown_audio_source(make_client, settings) -> None:  # noqa: ANN001
    client = make_client(settings)

    resp = client.post("/runs/", files={"image": IMAGE}, data={"script_text": "Hi", "audio_source": "midi"})
    assert resp.status_code == 400


def test_failed_run_reports_error_text(make_client, settings, providers) -> None:  # noqa: ANN001
    providers.video_statuses = [{"status": "failed", "error": "render crashed"}]
    client = make_client(settings)

    resp = client.post("/runs/", files={"image": IMAGE}, data={"script_text": "Hello world"})
    body = _wait_until_finished(client, resp.json()["run_id"])

    assert body["status"] == "failed"
    assert body["error"] == 'Video generation failed: render crashed'
    assert body["result_url"] is None


def test_cancel_running_run(make_client, settings, providers) -> None:  # noqa: ANN001
    providers.video_statuses = [{"status": "processing"}]
    providers.avatar_lists = [
        [{"id": "av_1", "status": "completed"}],
        [{"id": "av_1", "status": "completed"}],
        [{"id": "av_1", "status": "completed"}, {"id": "mo_1", "status": "completed"}],
    ]
    client = make_client(replace(settings, poll_interval_seconds=30))

    run_id = client.post("/runs/", files={"image": IMAGE}, data={"script_text": "Hello"}).json()["run_id"]
    for _ in range(200):
        if providers.calls("/v1/video_status.get"):
            break
        time.sleep(0.01)

    assert client.delete(f"/runs/{run_id}").status_code == 200
    body = _wait_until_finished(client, run_id)
    assert body["status"] == "cancelled"
    assert body["error"] == "Run cancelled by user."


def test_unknown_run_is_404(make_client, settings) -> None:  # noqa: ANN001
    client = make_client(settings)
    assert client.get("/runs/nope").status_code == 404
