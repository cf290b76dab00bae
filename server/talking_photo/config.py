"""Configuration helpers for the talking-photo pipeline."""
from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import set_key, unset_key

from .models.entities import Credentials


def _env_int(name: str, *, default: Optional[int]) -> Optional[int]:
    """Return the integer value stored in an environment variable or fallback."""

    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default

    try:
        return int(raw.strip())
    except (TypeError, ValueError):
        return default


def _env_float(name: str, *, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default

    try:
        return float(raw.strip())
    except (TypeError, ValueError):
        return default


@dataclass
class Settings:
    """Centralized environment-driven configuration.

    Only the entry points read the cached instance below. The orchestrator and
    the provider services receive a ``Settings`` value explicitly so tests can
    hand them fake keys and local base URLs.
    """

    heygen_api_key: Optional[str] = os.getenv("HEYGEN_API_KEY")
    elevenlabs_api_key: Optional[str] = os.getenv("ELEVENLABS_API_KEY")
    elevenlabs_voice_id: str = os.getenv("ELEVENLABS_VOICE_ID", "cgSgspJ2msm6clMCkdW9")
    elevenlabs_model_id: str = os.getenv("ELEVENLABS_MODEL_ID", "eleven_multilingual_v2")
    heygen_api_url: str = os.getenv("HEYGEN_API_URL", "https://api.heygen.com")
    heygen_upload_url: str = os.getenv("HEYGEN_UPLOAD_URL", "https://upload.heygen.com")
    elevenlabs_api_url: str = os.getenv("ELEVENLABS_API_URL", "https://api.elevenlabs.io")
    poll_interval_seconds: float = _env_float("POLL_INTERVAL_SECONDS", default=5.0)
    avatar_poll_max_attempts: int = _env_int("AVATAR_POLL_MAX_ATTEMPTS", default=60) or 60
    # None keeps the render poll running until the provider reports a terminal state.
    video_poll_max_attempts: Optional[int] = _env_int("VIDEO_POLL_MAX_ATTEMPTS", default=None)
    http_timeout_seconds: float = _env_float("HTTP_TIMEOUT_SECONDS", default=120.0)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    def credentials(self) -> Credentials:
        """Return the provider keys configured for this process."""

        return Credentials(
            heygen_api_key=(self.heygen_api_key or "").strip(),
            elevenlabs_api_key=(self.elevenlabs_api_key or "").strip(),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached settings instance to avoid repeated environment reads."""

    return Settings()


settings = get_settings()


CREDENTIAL_ENV_KEYS = {
    "heygen_api_key": "HEYGEN_API_KEY",
    "elevenlabs_api_key": "ELEVENLABS_API_KEY",
}


def remember_credentials(path: Path, credentials: Credentials) -> None:
    """Write the non-empty provider keys into a dotenv file."""

    path.parent.mkdir(parents=True, exist_ok=True)
    path.touch(exist_ok=True)
    for attr, env_key in CREDENTIAL_ENV_KEYS.items():
        value = getattr(credentials, attr)
        if value:
            set_key(str(path), env_key, value)


def forget_credentials(path: Path) -> None:
    """Drop any remembered provider keys from a dotenv file."""

    if not path.exists():
        return
    for env_key in CREDENTIAL_ENV_KEYS.values():
        unset_key(str(path), env_key)
