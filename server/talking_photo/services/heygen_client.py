"""Thin async HTTP helper shared by the HeyGen endpoints."""
from __future__ import annotations

import json
import logging
from typing import Any, Optional

import httpx

from ..errors import ProviderRequestFailure
from .cancellation import CancelToken

logger = logging.getLogger(__name__)


class HeyGenClient:
    """Sends JSON requests to the HeyGen API with the account key attached."""

    def __init__(
        self,
        *,
        http: httpx.AsyncClient,
        api_key: str,
        api_url: str = "https://api.heygen.com",
        cancel_token: Optional[CancelToken] = None,
    ) -> None:
        self._http = http
        self._api_key = api_key
        self._api_url = api_url.rstrip("/")
        self._cancel = cancel_token or CancelToken()

    def url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self._api_url}/{path.lstrip('/')}"

    async def request_json(
        self,
        method: str,
        path: str,
        *,
        payload: Optional[dict[str, Any]] = None,
        params: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        url = self.url(path)
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "X-Api-Key": self._api_key,
        }
        logger.debug("HeyGen %s %s", method, url)
        try:
            resp = await self._cancel.guard(
                self._http.request(method, url, headers=headers, json=payload, params=params)
            )
        except httpx.RequestError as exc:
            raise ProviderRequestFailure(f"Request to {url} failed: {exc}", url=url) from exc
        text = resp.text
        if not resp.is_success:
            raise ProviderRequestFailure(
                f"HTTP {resp.status_code} {resp.reason_phrase} from {url}:\n{text}",
                url=url,
                status=resp.status_code,
                body=text,
            )
        if not text.strip():
            return {}
        try:
            data = json.loads(text)
        except ValueError as exc:
            raise ProviderRequestFailure(
                f"Failed to parse JSON from {url}: {text}",
                url=url,
                status=resp.status_code,
                body=text,
            ) from exc
        if not isinstance(data, dict):
            raise ProviderRequestFailure(
                f"Unexpected JSON payload from {url}: {text}",
                url=url,
                status=resp.status_code,
                body=text,
            )
        return data


def response_data(response: dict[str, Any]) -> dict[str, Any]:
    """Return the ``data`` envelope HeyGen wraps every payload in."""

    data = response.get("data")
    return data if isinstance(data, dict) else {}
