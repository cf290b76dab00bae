"""Error kinds raised by the talking-photo pipeline.

Every error carries a human-readable ``message`` that callers surface verbatim.
"""
from __future__ import annotations

import json
from typing import Any, Optional


def _describe(payload: Any) -> str:
    if isinstance(payload, (dict, list)):
        try:
            return json.dumps(payload)
        except (TypeError, ValueError):
            return repr(payload)
    return str(payload)


class PipelineError(Exception):
    """Base class for every failure that aborts a pipeline run."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationFailure(PipelineError):
    """Required input or credential missing; raised before any network call."""


class UploadFailure(PipelineError):
    def __init__(self, message: str, *, status: Optional[int] = None, body: Any = None) -> None:
        super().__init__(message)
        self.status = status
        self.body = body


class SynthesisFailure(PipelineError):
    def __init__(self, status: Optional[int], detail: str) -> None:
        if status is None:
            super().__init__(f"ElevenLabs TTS failed: {detail}")
        else:
            super().__init__(f"ElevenLabs TTS failed. HTTP {status} {detail}")
        self.status = status
        self.detail = detail


class ProviderRequestFailure(PipelineError):
    """Non-2xx answer or unparsable body from a JSON endpoint."""

    def __init__(self, message: str, *, url: str, status: Optional[int] = None, body: str = "") -> None:
        super().__init__(message)
        self.url = url
        self.status = status
        self.body = body


class StageTimeout(PipelineError):
    def __init__(self, stage: str, attempts: int) -> None:
        super().__init__(f"Timed out waiting for {stage} to complete after {attempts} attempts.")
        self.stage = stage
        self.attempts = attempts


class RemoteJobFailure(PipelineError):
    """The provider explicitly reported ``failed`` for an avatar or video job."""

    def __init__(self, stage: str, payload: Any = None) -> None:
        super().__init__(f"{stage[:1].upper()}{stage[1:]} failed: {_describe(payload)}")
        self.stage = stage
        self.payload = payload


class RunCancelled(PipelineError):
    def __init__(self, message: str = "Run cancelled.") -> None:
        super().__init__(message)
