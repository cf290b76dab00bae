"""Upload images and narration audio to HeyGen's asset store."""
from __future__ import annotations

import json
import logging
from typing import Any, Optional

import httpx

from ..errors import UploadFailure
from ..models.entities import AssetKind, AssetRef, MediaFile
from .cancellation import CancelToken

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"

CONTENT_TYPES_BY_EXTENSION = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "m4a": "audio/mp4",
}

FALLBACK_CONTENT_TYPES = {
    AssetKind.IMAGE: "image/jpeg",
    AssetKind.AUDIO: "audio/mpeg",
}

# The upload endpoint names the identifier differently for images and audio.
ASSET_ID_FIELDS = ("image_key", "id", "asset_id", "audio_asset_id")


def guess_content_type(filename: str, fallback: Optional[str] = None) -> str:
    """Map a file extension onto the MIME types the upload endpoint accepts."""

    _, dot, ext = (filename or "").rpartition(".")
    if dot:
        mapped = CONTENT_TYPES_BY_EXTENSION.get(ext.lower())
        if mapped:
            return mapped
    return fallback or DEFAULT_CONTENT_TYPE


def extract_asset_id(data: dict[str, Any]) -> Optional[str]:
    for field_name in ASSET_ID_FIELDS:
        value = data.get(field_name)
        if value:
            return str(value)
    return None


class AssetUploader:
    def __init__(
        self,
        *,
        http: httpx.AsyncClient,
        api_key: str,
        upload_url: str = "https://upload.heygen.com",
        cancel_token: Optional[CancelToken] = None,
    ) -> None:
        self._http = http
        self._api_key = api_key
        self._endpoint = f"{upload_url.rstrip('/')}/v1/asset"
        self._cancel = cancel_token or CancelToken()

    async def upload_media(self, media: MediaFile, kind: AssetKind) -> AssetRef:
        content_type = media.content_type or guess_content_type(
            media.filename, FALLBACK_CONTENT_TYPES[kind]
        )
        return await self.upload(media.content, content_type, media.filename, kind=kind)

    async def upload(
        self,
        content: bytes,
        content_type: str,
        name: Optional[str] = None,
        *,
        kind: AssetKind = AssetKind.IMAGE,
    ) -> AssetRef:
        logger.info("▶ Uploading HeyGen asset: %s (%s)", name or "(blob)", content_type)
        try:
            resp = await self._cancel.guard(
                self._http.post(
                    self._endpoint,
                    content=content,
                    headers={"Content-Type": content_type, "X-Api-Key": self._api_key},
                )
            )
        except httpx.RequestError as exc:
            raise UploadFailure(f"HeyGen upload failed: {exc}") from exc
        try:
            body: Any = resp.json()
            detail = json.dumps(body)
        except ValueError:
            body = resp.text
            detail = body

        if not resp.is_success:
            logger.error("HeyGen upload failed for %s: HTTP %s", name or "(blob)", resp.status_code)
            raise UploadFailure(
                f"HeyGen upload failed. HTTP {resp.status_code}: {detail}",
                status=resp.status_code,
                body=body,
            )

        data = body.get("data") if isinstance(body, dict) else None
        data = data if isinstance(data, dict) else {}
        asset_id = extract_asset_id(data)
        if not asset_id:
            raise UploadFailure(
                f"HeyGen upload did not return an asset id: {detail}",
                status=resp.status_code,
                body=body,
            )

        provider_url = data.get("url")
        logger.info("✔ HeyGen asset uploaded. id: %s", asset_id)
        return AssetRef(
            id=asset_id,
            kind=kind,
            provider_url=str(provider_url) if provider_url else None,
        )
