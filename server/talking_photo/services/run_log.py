"""Forward pipeline log lines to a per-run callback.

Pipeline modules log through ordinary module loggers. While a run is active,
:func:`capture_run_log` binds the caller's log callback in a context variable,
so concurrent runs (each in its own asyncio task) only see their own lines.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Callable, Iterator, Optional

LogSink = Callable[[str], None]

PACKAGE_LOGGER = "talking_photo"

_current_sink: ContextVar[Optional[LogSink]] = ContextVar("talking_photo_log_sink", default=None)


class RunLogHandler(logging.Handler):
    def emit(self, record: logging.LogRecord) -> None:
        sink = _current_sink.get()
        if sink is None:
            return
        try:
            sink(self.format(record))
        except Exception:
            self.handleError(record)


_handler: Optional[RunLogHandler] = None


def install_handler() -> RunLogHandler:
    global _handler
    if _handler is None:
        _handler = RunLogHandler(level=logging.INFO)
        _handler.setFormatter(logging.Formatter("%(message)s"))
        package_logger = logging.getLogger(PACKAGE_LOGGER)
        package_logger.addHandler(_handler)
        if package_logger.level == logging.NOTSET:
            package_logger.setLevel(logging.INFO)
    return _handler


@contextmanager
def capture_run_log(sink: Optional[LogSink]) -> Iterator[None]:
    install_handler()
    token = _current_sink.set(sink)
    try:
        yield
    finally:
        _current_sink.reset(token)
