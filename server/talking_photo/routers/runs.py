"""Pipeline run endpoints for the browser front end."""
from __future__ import annotations

import asyncio
import logging
import uuid
from collections import OrderedDict, deque
from dataclasses import dataclass, field
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from ..config import Settings, get_settings
from ..errors import PipelineError, RunCancelled, ValidationFailure
from ..models import schemas
from ..models.entities import AudioSource, Credentials, MediaFile, PipelineRequest
from ..services.cancellation import CancelToken
from ..services.orchestration import PipelineOrchestrator, validate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/runs", tags=["runs"])

GENERIC_CONTENT_TYPES = {"", "application/octet-stream"}


@dataclass
class RunState:
    """In-memory view of a run; dropped when the process exits."""

    run_id: str
    status: str = "running"
    progress: int = 0
    message: str = ""
    result_url: Optional[str] = None
    error: Optional[str] = None
    logs: deque[str] = field(default_factory=lambda: deque(maxlen=500))
    token: CancelToken = field(default_factory=CancelToken)
    task: Optional[asyncio.Task[None]] = None

    def to_response(self) -> schemas.RunStatusResponse:
        return schemas.RunStatusResponse(
            run_id=self.run_id,
            status=self.status,
            progress=self.progress,
            message=self.message,
            result_url=self.result_url,
            error=self.error,
            logs=list(self.logs),
        )


class RunManager:
    def __init__(self, max_runs: int = 100) -> None:
        self.runs: OrderedDict[str, RunState] = OrderedDict()
        self.max_runs = max_runs
        # Tests swap in an httpx.MockTransport here.
        self.transport: Optional[httpx.AsyncBaseTransport] = None

    def get(self, run_id: str) -> RunState:
        state = self.runs.get(run_id)
        if state is None:
            raise HTTPException(status_code=404, detail=f"Unknown run: {run_id}")
        return state

    def _prune(self) -> None:
        finished = [key for key, state in self.runs.items() if state.status != "running"]
        while len(self.runs) > self.max_runs and finished:
            self.runs.pop(finished.pop(0), None)

    def start(self, request: PipelineRequest, settings: Settings) -> RunState:
        state = RunState(run_id=uuid.uuid4().hex)

        def on_progress(percent: int, message: str) -> None:
            state.progress = percent
            if message:
                state.message = message

        orchestrator = PipelineOrchestrator(
            settings,
            on_progress=on_progress,
            on_log=state.logs.append,
            transport=self.transport,
        )
        self.runs[state.run_id] = state
        self._prune()
        state.task = asyncio.create_task(self._drive(state, orchestrator, request))
        return state

    async def _drive(
        self, state: RunState, orchestrator: PipelineOrchestrator, request: PipelineRequest
    ) -> None:
        try:
            state.result_url = await orchestrator.run(request, state.token)
            state.status = "succeeded"
        except RunCancelled as exc:
            state.status = "cancelled"
            state.error = exc.message
        except PipelineError as exc:
            state.status = "failed"
            state.error = exc.message
        except Exception as exc:  # pragma: no cover - unexpected failure path
            logger.exception("[Run %s] Unexpected pipeline failure", state.run_id)
            state.status = "failed"
            state.error = str(exc)


manager = RunManager()


async def _read_media(upload: Optional[UploadFile]) -> Optional[MediaFile]:
    if upload is None or not upload.filename:
        return None
    content = await upload.read()
    content_type = (upload.content_type or "").strip()
    return MediaFile(
        content=content,
        filename=upload.filename,
        content_type=None if content_type in GENERIC_CONTENT_TYPES else content_type,
    )


@router.post("/", response_model=schemas.RunResponse, status_code=202)
async def create_run(
    image: Optional[UploadFile] = File(default=None),
    audio: Optional[UploadFile] = File(default=None),
    script_text: str = Form(default=""),
    audio_source: Optional[str] = Form(default=None),
    heygen_api_key: str = Form(default=""),
    elevenlabs_api_key: str = Form(default=""),
    settings: Settings = Depends(get_settings),
) -> schemas.RunResponse:
    """Validate the form and start the pipeline in the background.

    Keys left blank fall back to the server's configured credentials.
    """

    configured = settings.credentials()
    try:
        source = AudioSource(audio_source) if audio_source else None
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown audio source: {audio_source}")

    request = PipelineRequest(
        image=await _read_media(image),
        script_text=script_text.strip() or None,
        audio=await _read_media(audio),
        audio_source=source,
        credentials=Credentials(
            heygen_api_key=heygen_api_key.strip() or configured.heygen_api_key,
            elevenlabs_api_key=elevenlabs_api_key.strip() or configured.elevenlabs_api_key,
        ),
    )
    try:
        validate(request)
    except ValidationFailure as exc:
        raise HTTPException(status_code=400, detail=exc.message)

    state = manager.start(request, settings)
    logger.info("[Run %s] Started pipeline run", state.run_id)
    return schemas.RunResponse(run_id=state.run_id, status=state.status)


@router.get("/{run_id}", response_model=schemas.RunStatusResponse)
async def get_run_status(run_id: str) -> schemas.RunStatusResponse:
    """Return progress, log lines and the outcome for the requested run."""

    return manager.get(run_id).to_response()


@router.delete("/{run_id}", response_model=schemas.RunStatusResponse)
async def cancel_run(run_id: str) -> schemas.RunStatusResponse:
    state = manager.get(run_id)
    if state.status == "running":
        state.token.cancel("Run cancelled by user.")
        logger.info("[Run %s] Cancellation requested", run_id)
    return state.to_response()
