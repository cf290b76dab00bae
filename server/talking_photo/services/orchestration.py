"""Top-level driver running one talking-photo generation end to end."""
from __future__ import annotations

import logging
import time
from typing import Callable, Optional

import httpx

from ..config import Settings
from ..errors import PipelineError, ValidationFailure
from ..models.entities import (
    AssetKind,
    AudioSource,
    MediaFile,
    PipelineRequest,
    PipelineRun,
    VideoJob,
)
from .asset_upload import AssetUploader
from .avatar_pipeline import AvatarPipeline
from .cancellation import CancelToken
from .heygen_client import HeyGenClient
from .polling import RenderProgressEstimate
from .run_log import LogSink, capture_run_log
from .speech import SpeechSynthesizer

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str], None]


class Checkpoint:
    """Progress milestones (percent) reported as stages finish."""

    STARTED = 5
    AUDIO_ACCEPTED = 15
    AUDIO_SYNTHESIZED = 20
    IMAGE_UPLOADED = 30
    GROUP_CREATED = 40
    BASE_READY = 55
    MOTION_READY = 70
    AUDIO_UPLOADED = 80
    VIDEO_REQUESTED = 90
    VIDEO_READY = 100


class ProgressTracker:
    """Reports progress that never goes backwards within a run."""

    def __init__(self, callback: Optional[ProgressCallback] = None) -> None:
        self._callback = callback
        self.percent = 0
        self.message = ""

    def reset(self) -> None:
        self.percent = 0
        self.message = ""
        if self._callback is not None:
            self._callback(0, "")

    def advance(self, percent: int, message: str = "") -> int:
        percent = max(0, min(100, percent))
        if percent < self.percent:
            percent = self.percent
        self.percent = percent
        if message:
            self.message = message
        if self._callback is not None:
            self._callback(self.percent, self.message)
        return self.percent


def select_audio_source(request: PipelineRequest) -> AudioSource:
    if request.audio_source is not None:
        return request.audio_source
    has_text = bool((request.script_text or "").strip())
    if has_text and request.audio is not None:
        raise ValidationFailure("Provide either script text or an audio file, not both.")
    return AudioSource.UPLOAD if request.audio is not None else AudioSource.TEXT


def validate(request: PipelineRequest) -> AudioSource:
    """Check every required field before the first network call."""

    creds = request.credentials
    if not (creds.heygen_api_key or "").strip():
        raise ValidationFailure("Please enter your HeyGen API key.")
    if request.image is None or not request.image.content:
        raise ValidationFailure("Please select an avatar image.")

    source = select_audio_source(request)
    if source is AudioSource.TEXT:
        if not (creds.elevenlabs_api_key or "").strip():
            raise ValidationFailure(
                "Please enter your ElevenLabs API key (required when using script text)."
            )
        if not (request.script_text or "").strip():
            raise ValidationFailure("Please enter your script text.")
    elif request.audio is None or not request.audio.content:
        raise ValidationFailure("Please upload an MP3 file.")
    return source


class PipelineOrchestrator:
    """Sequences synthesis, uploads and HeyGen stages for a single run.

    Progress and log lines are pushed to the optional callbacks so the web and
    command-line front ends can render them however they like.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        on_progress: Optional[ProgressCallback] = None,
        on_log: Optional[LogSink] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._settings = settings
        self._on_log = on_log
        self._transport = transport
        self.progress = ProgressTracker(on_progress)
        self.last_run: Optional[PipelineRun] = None

    def _status(self, percent: int, message: str) -> None:
        logger.info(message)
        self.progress.advance(percent, message)

    async def run(self, request: PipelineRequest, cancel_token: Optional[CancelToken] = None) -> str:
        """Execute the pipeline and return the rendered video URL."""

        token = cancel_token or CancelToken()
        with capture_run_log(self._on_log):
            self.progress.reset()
            self.last_run = None
            try:
                source = validate(request)
                run = PipelineRun(request=request, audio_source=source)
                self.last_run = run
                return await self._execute(run, token)
            except PipelineError as exc:
                logger.error("Error: %s", exc.message)
                raise

    async def _execute(self, run: PipelineRun, token: CancelToken) -> str:
        settings = self._settings
        creds = run.request.credentials
        self._status(Checkpoint.STARTED, "Starting generation… This can take a few minutes.")

        async with httpx.AsyncClient(
            timeout=settings.http_timeout_seconds, transport=self._transport
        ) as http:
            uploader = AssetUploader(
                http=http,
                api_key=creds.heygen_api_key,
                upload_url=settings.heygen_upload_url,
                cancel_token=token,
            )
            avatars = AvatarPipeline(
                HeyGenClient(
                    http=http,
                    api_key=creds.heygen_api_key,
                    api_url=settings.heygen_api_url,
                    cancel_token=token,
                ),
                interval=settings.poll_interval_seconds,
                avatar_max_attempts=settings.avatar_poll_max_attempts,
                video_max_attempts=settings.video_poll_max_attempts,
                cancel_token=token,
            )

            if run.audio_source is AudioSource.TEXT:
                self._status(self.progress.percent, "Generating audio via ElevenLabs…")
                synthesizer = SpeechSynthesizer(
                    http=http,
                    api_key=creds.elevenlabs_api_key,
                    api_url=settings.elevenlabs_api_url,
                    cancel_token=token,
                )
                audio_bytes = await synthesizer.synthesize(
                    run.request.script_text or "",
                    settings.elevenlabs_voice_id,
                    settings.elevenlabs_model_id,
                )
                run.audio_file = MediaFile(
                    content=audio_bytes,
                    filename=f"tts_{int(time.time() * 1000)}.mp3",
                    content_type="audio/mpeg",
                )
                self.progress.advance(Checkpoint.AUDIO_SYNTHESIZED)
            else:
                self._status(self.progress.percent, "Using uploaded MP3 audio…")
                run.audio_file = run.request.audio
                self.progress.advance(Checkpoint.AUDIO_ACCEPTED)

            self._status(self.progress.percent, "Uploading avatar image to HeyGen…")
            run.image_asset = await uploader.upload_media(run.request.image, AssetKind.IMAGE)
            self.progress.advance(Checkpoint.IMAGE_UPLOADED)

            self._status(self.progress.percent, "Creating talking photo avatar in HeyGen…")
            run.group = await avatars.create_group(run.image_asset)
            self.progress.advance(Checkpoint.GROUP_CREATED)

            base = await avatars.resolve_base_avatar(run.group)
            self._status(self.progress.percent, "Waiting for base avatar to be processed…")
            run.base_avatar = await avatars.await_avatar(run.group, base, "base photo avatar")
            self.progress.advance(Checkpoint.BASE_READY)

            self._status(self.progress.percent, "Adding motion to avatar…")
            motion = await avatars.add_motion(run.base_avatar)
            self._status(self.progress.percent, "Waiting for motion avatar to be ready…")
            run.motion_avatar = await avatars.await_avatar(run.group, motion, "talking photo motion")
            self.progress.advance(Checkpoint.MOTION_READY)

            self._status(self.progress.percent, "Uploading audio to HeyGen…")
            run.audio_asset = await uploader.upload_media(run.audio_file, AssetKind.AUDIO)
            self.progress.advance(Checkpoint.AUDIO_UPLOADED)

            self._status(self.progress.percent, "Requesting video generation from HeyGen…")
            run.video = await avatars.generate_video(run.motion_avatar, run.audio_asset)
            self.progress.advance(Checkpoint.VIDEO_REQUESTED)

            self._status(self.progress.percent, "Waiting for video to render…")
            estimate = RenderProgressEstimate(start=self.progress.percent)

            def on_waiting(job: VideoJob) -> None:
                self.progress.advance(estimate.tick())

            run.video = await avatars.await_video(run.video, on_waiting=on_waiting)

        self._status(Checkpoint.VIDEO_READY, "Video generated successfully!")
        return str(run.video.result_url)
