"""ElevenLabs text-to-speech client."""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Optional
from urllib.parse import quote

import httpx

from ..errors import SynthesisFailure, ValidationFailure
from .cancellation import CancelToken

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VoiceSettings:
    """Voice shaping applied to every synthesis request."""

    stability: float = 0.30
    similarity_boost: float = 0.85
    style: float = 0.45
    use_speaker_boost: bool = True
    # Lower is slower speech.
    speed: float = 0.85


class SpeechSynthesizer:
    """One-shot TTS call; retries are the caller's decision."""

    def __init__(
        self,
        *,
        http: httpx.AsyncClient,
        api_key: str,
        api_url: str = "https://api.elevenlabs.io",
        voice_settings: Optional[VoiceSettings] = None,
        cancel_token: Optional[CancelToken] = None,
    ) -> None:
        self._http = http
        self._api_key = api_key
        self._api_url = api_url.rstrip("/")
        self._voice_settings = voice_settings or VoiceSettings()
        self._cancel = cancel_token or CancelToken()

    async def synthesize(self, text: str, voice_id: str, model_id: str) -> bytes:
        if not (text or "").strip():
            raise ValidationFailure("Please enter your script text.")

        logger.info("▶ Calling ElevenLabs TTS…")
        url = f"{self._api_url}/v1/text-to-speech/{quote(voice_id, safe='')}"
        headers = {
            "xi-api-key": self._api_key,
            "Content-Type": "application/json",
            "Accept": "audio/mpeg",
        }
        body = {
            "text": text,
            "model_id": model_id,
            "voice_settings": asdict(self._voice_settings),
        }
        try:
            resp = await self._cancel.guard(self._http.post(url, headers=headers, json=body))
        except httpx.RequestError as exc:
            raise SynthesisFailure(None, str(exc)) from exc
        if not resp.is_success:
            logger.error("ElevenLabs TTS returned HTTP %s", resp.status_code)
            raise SynthesisFailure(resp.status_code, f"{resp.reason_phrase}: {resp.text}")

        audio = resp.content
        logger.info("✔ ElevenLabs audio generated (%d bytes)", len(audio))
        return audio
