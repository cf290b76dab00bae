from __future__ import annotations

from typing import Any, Callable, Union

import httpx
import pytest

from talking_photo.config import Settings
from talking_photo.models.entities import Credentials, MediaFile, PipelineRequest

Override = Union[httpx.Response, Callable[[httpx.Request], httpx.Response]]


class FakeProviders:
    """In-process stand-in for the ElevenLabs and HeyGen endpoints."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.avatar_lists: list[list[dict[str, Any]]] = [
            [{"id": "av_1", "status": "pending"}],
            [{"id": "av_1", "status": "pending"}],
            [{"id": "av_1", "status": "completed"}],
            [{"id": "av_1", "status": "completed"}, {"id": "mo_1", "status": "completed"}],
        ]
        self.video_statuses: list[dict[str, Any]] = [
            {"status": "completed", "video_url": "https://cdn/9.mp4"},
        ]
        self.overrides: dict[tuple[str, str], Override] = {}
        self._avatar_calls = 0
        self._video_calls = 0

    def calls(self, path: str, method: str | None = None) -> list[httpx.Request]:
        return [
            req
            for req in self.requests
            if req.url.path == path and (method is None or req.method == method)
        ]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)
        if key in self.overrides:
            override = self.overrides[key]
            return override(request) if callable(override) else override

        path = request.url.path
        if path.startswith("/v1/text-to-speech/"):
            return httpx.Response(200, content=b"ID3-fake-mp3", headers={"Content-Type": "audio/mpeg"})
        if path == "/v1/asset":
            if request.headers["Content-Type"].startswith("image/"):
                return httpx.Response(200, json={"code": 100, "data": {"image_key": "image/abc/original"}})
            return httpx.Response(200, json={"code": 100, "data": {"id": "aud_1", "url": "https://files/aud_1.mp3"}})
        if path == "/v2/photo_avatar/avatar_group/create":
            return httpx.Response(200, json={"error": None, "data": {"group_id": "grp_1"}})
        if path == "/v2/avatar_group/grp_1/avatars":
            index = min(self._avatar_calls, len(self.avatar_lists) - 1)
            self._avatar_calls += 1
            return httpx.Response(200, json={"data": {"avatar_list": self.avatar_lists[index]}})
        if path == "/v2/photo_avatar/add_motion":
            return httpx.Response(200, json={"data": {"id": "mo_1"}})
        if path == "/v2/video/generate":
            return httpx.Response(200, json={"data": {"video_id": "vid_9"}})
        if path == "/v1/video_status.get":
            index = min(self._video_calls, len(self.video_statuses) - 1)
            self._video_calls += 1
            return httpx.Response(200, json={"code": 100, "data": self.video_statuses[index]})
        return httpx.Response(404, text=f"no fake for {request.method} {path}")

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def providers() -> FakeProviders:
    return FakeProviders()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        heygen_api_key="hg-test",
        elevenlabs_api_key="el-test",
        elevenlabs_voice_id="voice-1",
        elevenlabs_model_id="eleven_multilingual_v2",
        heygen_api_url="https://api.heygen.com",
        heygen_upload_url="https://upload.heygen.com",
        elevenlabs_api_url="https://api.elevenlabs.io",
        poll_interval_seconds=0,
        avatar_poll_max_attempts=5,
        video_poll_max_attempts=None,
        http_timeout_seconds=5,
        log_level="INFO",
    )


@pytest.fixture
def image() -> MediaFile:
    return MediaFile(content=b"\xff\xd8\xff\xe0fake-jpeg", filename="avatar.jpg")


@pytest.fixture
def text_request(image: MediaFile) -> PipelineRequest:
    return PipelineRequest(
        image=image,
        script_text="Hello world",
        credentials=Credentials(heygen_api_key="hg-test", elevenlabs_api_key="el-test"),
    )
