"""Generic poll-until-terminal loop used by every asynchronous provider job."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from ..errors import RemoteJobFailure, StageTimeout
from .cancellation import CancelToken

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 5.0
DEFAULT_MAX_ATTEMPTS = 60


@dataclass
class PollSnapshot:
    """One observation of a remote resource."""

    status: str
    payload: Any = None
    # Attached to RemoteJobFailure instead of the payload when set.
    diagnostics: Any = None


FetchStatus = Callable[[], Awaitable[PollSnapshot]]
Predicate = Callable[[PollSnapshot], bool]
AttemptHook = Callable[[int, PollSnapshot], None]


async def poll_until_terminal(
    fetch_status: FetchStatus,
    is_success: Predicate,
    is_failure: Predicate,
    *,
    interval: float = DEFAULT_INTERVAL_SECONDS,
    max_attempts: Optional[int] = DEFAULT_MAX_ATTEMPTS,
    label: str = "job",
    transient: tuple[type[BaseException], ...] = (),
    on_attempt: Optional[AttemptHook] = None,
    cancel_token: Optional[CancelToken] = None,
) -> Any:
    """Fetch a status until it is terminal and return the final payload.

    ``max_attempts=None`` polls until the resource reaches a terminal state.
    Exceptions listed in ``transient`` are logged and the attempt is retried
    after ``interval``; they still count against ``max_attempts``. Anything
    else propagates immediately.
    """

    token = cancel_token or CancelToken()
    attempt = 0
    while max_attempts is None or attempt < max_attempts:
        attempt += 1
        token.raise_if_cancelled()
        try:
            snapshot = await fetch_status()
        except transient as exc:
            logger.warning(
                "⚠ Error while checking %s status: %s. Retrying in %ss…", label, exc, interval
            )
        else:
            if on_attempt is not None:
                on_attempt(attempt, snapshot)
            if is_success(snapshot):
                return snapshot.payload
            if is_failure(snapshot):
                diagnostics = snapshot.diagnostics if snapshot.diagnostics is not None else snapshot.payload
                raise RemoteJobFailure(label, diagnostics)

        if max_attempts is not None and attempt >= max_attempts:
            break
        await token.sleep(interval)

    raise StageTimeout(label, attempt)


class RenderProgressEstimate:
    """Cosmetic progress for the render wait; it never drives control flow."""

    def __init__(self, start: int, cap: int = 99, step: int = 1) -> None:
        self.value = start
        self._cap = cap
        self._step = step

    def tick(self) -> int:
        if self.value < self._cap:
            self.value = min(self._cap, self.value + self._step)
        return self.value
