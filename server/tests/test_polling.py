from __future__ import annotations

import asyncio

import pytest

from talking_photo.errors import ProviderRequestFailure, RemoteJobFailure, RunCancelled, StageTimeout
from talking_photo.services.cancellation import CancelToken
from talking_photo.services.polling import PollSnapshot, RenderProgressEstimate, poll_until_terminal


def _run(coro):  # noqa: ANN001
    return asyncio.run(coro)


class StatusSequence:
    """fetch_status stub that replays a fixed list of statuses."""

    def __init__(self, *statuses: object) -> None:
        self._statuses = list(statuses)
        self.calls = 0

    async def __call__(self) -> PollSnapshot:
        item = self._statuses[min(self.calls, len(self._statuses) - 1)]
        self.calls += 1
        if isinstance(item, BaseException):
            raise item
        return PollSnapshot(status=str(item), payload={"attempt": self.calls, "status": item})


def _is_completed(snap: PollSnapshot) -> bool:
    return snap.status == "completed"


def _is_failed(snap: PollSnapshot) -> bool:
    return snap.status == "failed"


def test_returns_payload_on_first_success_without_further_calls() -> None:
    fetch = StatusSequence("pending", "pending", "completed", "pending")
    payload = _run(poll_until_terminal(fetch, _is_completed, _is_failed, interval=0, max_attempts=10))
    assert payload == {"attempt": 3, "status": "completed"}
    assert fetch.calls == 3


def test_times_out_after_exactly_max_attempts() -> None:
    fetch = StatusSequence("pending")
    with pytest.raises(StageTimeout) as excinfo:
        _run(poll_until_terminal(fetch, _is_completed, _is_failed, interval=0, max_attempts=4, label="base photo avatar"))
    assert fetch.calls == 4
    assert excinfo.value.attempts == 4
    assert "base photo avatar" in excinfo.value.message


def test_failure_status_stops_polling_with_payload_attached() -> None:
    fetch = StatusSequence("pending", "failed", "completed")
    with pytest.raises(RemoteJobFailure) as excinfo:
        _run(poll_until_terminal(fetch, _is_completed, _is_failed, interval=0, max_attempts=10, label="talking photo motion"))
    assert fetch.calls == 2
    assert excinfo.value.payload == {"attempt": 2, "status": "failed"}
    assert excinfo.value.message.startswith("Talking photo motion failed:")


def test_errors_propagate_unless_marked_transient() -> None:
    fetch = StatusSequence("pending", ProviderRequestFailure("HTTP 502", url="https://x"), "completed")
    with pytest.raises(ProviderRequestFailure):
        _run(poll_until_terminal(fetch, _is_completed, _is_failed, interval=0, max_attempts=10))
    assert fetch.calls == 2


def test_transient_errors_are_retried() -> None:
    fetch = StatusSequence(
        ProviderRequestFailure("network blip", url="https://x"),
        "processing",
        ProviderRequestFailure("HTTP 503", url="https://x", status=503),
        "completed",
    )
    payload = _run(
        poll_until_terminal(
            fetch,
            _is_completed,
            _is_failed,
            interval=0,
            max_attempts=None,
            transient=(ProviderRequestFailure,),
        )
    )
    assert payload["status"] == "completed"
    assert fetch.calls == 4


def test_unbounded_poll_keeps_going_past_default_budget() -> None:
    fetch = StatusSequence(*(["processing"] * 75 + ["completed"]))
    _run(poll_until_terminal(fetch, _is_completed, _is_failed, interval=0, max_attempts=None))
    assert fetch.calls == 76


def test_on_attempt_sees_every_observation() -> None:
    seen: list[tuple[int, str]] = []
    fetch = StatusSequence("pending", "processing", "completed")
    _run(
        poll_until_terminal(
            fetch,
            _is_completed,
            _is_failed,
            interval=0,
            max_attempts=5,
            on_attempt=lambda attempt, snap: seen.append((attempt, snap.status)),
        )
    )
    assert seen == [(1, "pending"), (2, "processing"), (3, "completed")]


def test_cancel_interrupts_sleep_between_attempts() -> None:
    async def scenario() -> int:
        token = CancelToken()
        fetch = StatusSequence("processing")
        loop = asyncio.get_running_loop()
        loop.call_later(0.05, token.cancel)
        with pytest.raises(RunCancelled):
            await poll_until_terminal(
                fetch, _is_completed, _is_failed, interval=30, max_attempts=None, cancel_token=token
            )
        return fetch.calls

    assert _run(scenario()) == 1


def test_render_estimate_is_capped_below_completion() -> None:
    estimate = RenderProgressEstimate(start=90)
    values = [estimate.tick() for _ in range(20)]
    assert values[0] == 91
    assert values == sorted(values)
    assert max(values) == 99
