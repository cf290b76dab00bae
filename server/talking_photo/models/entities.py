"""Domain records produced while a pipeline run walks the provider APIs."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class AssetKind(str, Enum):
    IMAGE = "image"
    AUDIO = "audio"


class AudioSource(str, Enum):
    """Where the narration for a run comes from."""

    TEXT = "text"
    UPLOAD = "upload"

    @classmethod
    def _missing_(cls, value: object) -> Optional["AudioSource"]:
        if not isinstance(value, str):
            return None
        normalized = value.strip().lower()
        # Browser forms historically posted "mp3" for the uploaded-audio branch.
        if normalized in {"mp3", "audio", "file"}:
            return cls.UPLOAD
        for member in cls:
            if member.value == normalized:
                return member
        return None


class AvatarStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, raw: Any) -> "AvatarStatus":
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            return cls.UNKNOWN


class VideoStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, raw: Any) -> "VideoStatus":
        value = str(raw).strip().lower()
        aliases = {"waiting": cls.QUEUED, "pending": cls.QUEUED, "rendering": cls.PROCESSING}
        if value in aliases:
            return aliases[value]
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class Credentials:
    heygen_api_key: str = ""
    elevenlabs_api_key: str = ""


@dataclass(frozen=True)
class MediaFile:
    """Caller-supplied binary input (avatar image or narration audio)."""

    content: bytes
    filename: str
    content_type: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass(frozen=True)
class AssetRef:
    id: str
    kind: AssetKind
    provider_url: Optional[str] = None


@dataclass(frozen=True)
class AvatarGroup:
    group_id: str


@dataclass
class AvatarEntity:
    id: str
    status: AvatarStatus = AvatarStatus.UNKNOWN
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass
class VideoJob:
    id: str
    status: VideoStatus = VideoStatus.QUEUED
    result_url: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def is_ready(self) -> bool:
        return self.status is VideoStatus.COMPLETED and bool(self.result_url)


@dataclass
class PipelineRequest:
    """Inputs for one end-to-end run."""

    image: Optional[MediaFile]
    script_text: Optional[str] = None
    audio: Optional[MediaFile] = None
    audio_source: Optional[AudioSource] = None
    credentials: Credentials = field(default_factory=Credentials)


@dataclass
class PipelineRun:
    """Ephemeral chain of provider resources created by one run."""

    request: PipelineRequest
    audio_source: AudioSource
    audio_file: Optional[MediaFile] = None
    image_asset: Optional[AssetRef] = None
    group: Optional[AvatarGroup] = None
    base_avatar: Optional[AvatarEntity] = None
    motion_avatar: Optional[AvatarEntity] = None
    audio_asset: Optional[AssetRef] = None
    video: Optional[VideoJob] = None

    @property
    def result_url(self) -> Optional[str]:
        return self.video.result_url if self.video and self.video.is_ready else None
