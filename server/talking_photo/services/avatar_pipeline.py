"""HeyGen photo-avatar stages: group, base avatar, motion, and video render."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional
from urllib.parse import quote

from ..errors import ProviderRequestFailure, ValidationFailure
from ..models.entities import (
    AssetRef,
    AvatarEntity,
    AvatarGroup,
    AvatarStatus,
    VideoJob,
    VideoStatus,
)
from .cancellation import CancelToken
from .heygen_client import HeyGenClient, response_data
from .polling import (
    DEFAULT_INTERVAL_SECONDS,
    DEFAULT_MAX_ATTEMPTS,
    PollSnapshot,
    poll_until_terminal,
)

logger = logging.getLogger(__name__)

DEFAULT_GROUP_NAME = "Generated Talking Photo"
DEFAULT_MOTION_TYPE = "runway_gen4"
DEFAULT_MOTION_PROMPT = (
    "Talk naturally with a warm, friendly tone while keeping steady eye contact with the "
    "viewer; use smooth facial expressions and soft, irregular blinks; if hands are visible, "
    "move them gently with small, relaxed gestures; keep head movements minimal and smooth "
    "without sudden or jerky motions."
)

# Response fields carrying the identifier each endpoint hands back, in priority order.
GROUP_ID_FIELDS = ("group_id",)
AVATAR_ID_FIELDS = ("id",)
MOTION_ID_FIELDS = ("id",)
VIDEO_ID_FIELDS = ("video_id",)
VIDEO_URL_FIELDS = ("video_url",)

# Network blips and non-2xx answers surface as ProviderRequestFailure; the
# render poll keeps waiting through them instead of aborting the run.
VIDEO_POLL_TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (ProviderRequestFailure,)


@dataclass(frozen=True)
class VideoOptions:
    width: int = 720
    height: int = 1280
    background_color: str = "#FFFFFF"
    speaking_rate: float = 1.0
    volume_gain_db: float = 0.0
    captions: bool = False


def first_field(data: dict[str, Any], fields: tuple[str, ...]) -> Optional[str]:
    for name in fields:
        value = data.get(name)
        if value:
            return str(value)
    return None


def _dump(value: Any) -> str:
    return json.dumps(value, default=str)


class AvatarPipeline:
    """Each method is one stage; the orchestrator decides the order."""

    def __init__(
        self,
        client: HeyGenClient,
        *,
        interval: float = DEFAULT_INTERVAL_SECONDS,
        avatar_max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        video_max_attempts: Optional[int] = None,
        group_name: str = DEFAULT_GROUP_NAME,
        motion_prompt: str = DEFAULT_MOTION_PROMPT,
        motion_type: str = DEFAULT_MOTION_TYPE,
        video_options: Optional[VideoOptions] = None,
        cancel_token: Optional[CancelToken] = None,
    ) -> None:
        self._client = client
        self._interval = interval
        self._avatar_max_attempts = avatar_max_attempts
        self._video_max_attempts = video_max_attempts
        self._group_name = group_name
        self._motion_prompt = motion_prompt
        self._motion_type = motion_type
        self._video_options = video_options or VideoOptions()
        self._cancel = cancel_token or CancelToken()

    async def create_group(self, image: AssetRef, name: Optional[str] = None) -> AvatarGroup:
        logger.info("▶ Creating HeyGen photo avatar group…")
        res = await self._client.request_json(
            "POST",
            "/v2/photo_avatar/avatar_group/create",
            payload={"name": name or self._group_name, "image_key": image.id},
        )
        group_id = first_field(response_data(res), GROUP_ID_FIELDS)
        if not group_id:
            raise ProviderRequestFailure(
                f"No group_id in avatar_group.create response: {_dump(res)}",
                url=self._client.url("/v2/photo_avatar/avatar_group/create"),
                body=_dump(res),
            )
        logger.info("✔ Avatar group created. group_id: %s", group_id)
        return AvatarGroup(group_id=group_id)

    async def list_avatars(self, group: AvatarGroup) -> list[dict[str, Any]]:
        res = await self._client.request_json(
            "GET", f"/v2/avatar_group/{quote(group.group_id, safe='')}/avatars"
        )
        avatars = response_data(res).get("avatar_list") or []
        return [entry for entry in avatars if isinstance(entry, dict)]

    async def resolve_base_avatar(self, group: AvatarGroup) -> AvatarEntity:
        logger.info("▶ Fetching avatar list for group: %s", group.group_id)
        avatars = await self.list_avatars(group)
        if not avatars:
            raise ProviderRequestFailure(
                f"Avatar list empty for group: {group.group_id}",
                url=self._client.url(f"/v2/avatar_group/{group.group_id}/avatars"),
            )
        first = avatars[0]
        avatar_id = first_field(first, AVATAR_ID_FIELDS)
        if not avatar_id:
            raise ProviderRequestFailure(
                f"Avatar has no id: {_dump(first)}",
                url=self._client.url(f"/v2/avatar_group/{group.group_id}/avatars"),
            )
        logger.info("✔ Base talking photo id: %s", avatar_id)
        return AvatarEntity(id=avatar_id, status=AvatarStatus.parse(first.get("status")), raw=first)

    async def await_avatar(
        self,
        group: AvatarGroup,
        avatar: AvatarEntity,
        label: str = "photo avatar",
    ) -> AvatarEntity:
        """Poll the group's listing until ``avatar`` reports a terminal status."""

        logger.info("▶ Waiting for %s %s to complete…", label, avatar.id)

        async def fetch() -> PollSnapshot:
            avatars = await self.list_avatars(group)
            found = next((entry for entry in avatars if entry.get("id") == avatar.id), None)
            status = AvatarStatus.parse(found.get("status")) if found else AvatarStatus.UNKNOWN
            return PollSnapshot(status=status.value, payload=found)

        def report(attempt: int, snapshot: PollSnapshot) -> None:
            logger.info("  Attempt %d: %s status = %s", attempt, label, snapshot.status)

        try:
            found = await poll_until_terminal(
                fetch,
                lambda snap: snap.status == AvatarStatus.COMPLETED.value,
                lambda snap: snap.status == AvatarStatus.FAILED.value,
                interval=self._interval,
                max_attempts=self._avatar_max_attempts,
                label=label,
                on_attempt=report,
                cancel_token=self._cancel,
            )
        except Exception as exc:
            logger.error("✖ %s %s did not complete: %s", label.capitalize(), avatar.id, exc)
            raise
        logger.info("✔ %s %s completed.", label.capitalize(), avatar.id)
        return AvatarEntity(id=avatar.id, status=AvatarStatus.COMPLETED, raw=found or {})

    async def add_motion(self, base: AvatarEntity) -> AvatarEntity:
        logger.info("▶ Adding motion to talking photo: %s", base.id)
        res = await self._client.request_json(
            "POST",
            "/v2/photo_avatar/add_motion",
            payload={"id": base.id, "prompt": self._motion_prompt, "motion_type": self._motion_type},
        )
        motion_id = first_field(response_data(res), MOTION_ID_FIELDS)
        if not motion_id:
            raise ProviderRequestFailure(
                f"No motion id returned from add_motion: {_dump(res)}",
                url=self._client.url("/v2/photo_avatar/add_motion"),
                body=_dump(res),
            )
        logger.info("✔ Motion added. talking_photo_with_motion_id: %s", motion_id)
        return AvatarEntity(id=motion_id, status=AvatarStatus.PENDING)

    def video_payload(self, motion: AvatarEntity, audio: AssetRef) -> dict[str, Any]:
        opts = self._video_options
        return {
            "video_inputs": [
                {
                    "character": {"type": "talking_photo", "talking_photo_id": motion.id},
                    "voice": {
                        "type": "audio",
                        "audio_asset_id": audio.id,
                        "audio_config": {
                            "speaking_rate": opts.speaking_rate,
                            "volume_gain_db": opts.volume_gain_db,
                        },
                    },
                    "background": {"type": "color", "value": opts.background_color},
                }
            ],
            "dimension": {"width": opts.width, "height": opts.height},
            "caption_config": {"enabled": opts.captions},
        }

    async def generate_video(self, motion: AvatarEntity, audio: AssetRef) -> VideoJob:
        if motion.status is not AvatarStatus.COMPLETED:
            raise ValidationFailure(f"Motion avatar {motion.id} is not completed ({motion.status.value}).")

        logger.info("▶ Generating video from talking photo %s + audio %s…", motion.id, audio.id)
        res = await self._client.request_json(
            "POST", "/v2/video/generate", payload=self.video_payload(motion, audio)
        )
        video_id = first_field(response_data(res), VIDEO_ID_FIELDS)
        if not video_id:
            raise ProviderRequestFailure(
                f"No video_id in video.generate response: {_dump(res)}",
                url=self._client.url("/v2/video/generate"),
                body=_dump(res),
            )
        logger.info("✔ Video generation started. video_id: %s", video_id)
        return VideoJob(id=video_id, status=VideoStatus.QUEUED)

    async def fetch_video_status(self, job: VideoJob) -> VideoJob:
        res = await self._client.request_json(
            "GET", "/v1/video_status.get", params={"video_id": job.id}
        )
        data = response_data(res)
        return VideoJob(
            id=job.id,
            status=VideoStatus.parse(data.get("status")),
            result_url=first_field(data, VIDEO_URL_FIELDS),
            raw=data,
        )

    async def await_video(
        self,
        job: VideoJob,
        on_waiting: Optional[Callable[[VideoJob], None]] = None,
    ) -> VideoJob:
        """Poll the render until it is completed with a URL.

        ``on_waiting`` fires for every non-terminal observation, which the
        orchestrator uses for cosmetic progress.
        """

        logger.info("▶ Waiting for video %s rendering to complete…", job.id)

        async def fetch() -> PollSnapshot:
            current = await self.fetch_video_status(job)
            return PollSnapshot(
                status=current.status.value,
                payload=current,
                diagnostics=current.raw.get("error") or current.raw,
            )

        def report(attempt: int, snapshot: PollSnapshot) -> None:
            current: VideoJob = snapshot.payload
            if current.is_ready or current.status is VideoStatus.FAILED:
                return
            if current.status is VideoStatus.COMPLETED:
                logger.warning("⚠ Video status is completed but no URL yet, retrying…")
            else:
                logger.info("  Video rendering (status: %s)", current.status.value)
            if on_waiting is not None:
                on_waiting(current)

        def failed(snapshot: PollSnapshot) -> bool:
            return snapshot.payload.status is VideoStatus.FAILED

        try:
            finished: VideoJob = await poll_until_terminal(
                fetch,
                lambda snap: snap.payload.is_ready,
                failed,
                interval=self._interval,
                max_attempts=self._video_max_attempts,
                label="Video generation",
                transient=VIDEO_POLL_TRANSIENT_ERRORS,
                on_attempt=report,
                cancel_token=self._cancel,
            )
        except Exception as exc:
            logger.error("✖ Video %s did not complete: %s", job.id, exc)
            raise
        logger.info("✔ Video ready. URL: %s", finished.result_url)
        return finished
