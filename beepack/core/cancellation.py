"""Cooperative cancellation for pipeline runs.

A ``CancelToken`` is threaded through every process wait and store
operation. ``cancel_on_signals`` binds SIGINT/SIGTERM to a token for the
duration of a CLI command.
"""

from __future__ import annotations

import logging
import signal
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from beepack.core.errors import PipelineCancelledError

logger = logging.getLogger(__name__)


class CancelToken:
    """A one-shot, thread-safe cancellation flag."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason = ""

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def cancel(self, reason: str = "cancelled") -> None:
        """Request cancellation. Later calls keep the first reason."""
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled or *timeout* elapses; return the flag."""
        return self._event.wait(timeout)

    def raise_if_cancelled(self, stage: str | None = None) -> None:
        if self._event.is_set():
            raise PipelineCancelledError(
                f"Run cancelled: {self._reason}", stage=stage
            )


@contextmanager
def cancel_on_signals(
    token: CancelToken,
    signals: tuple[signal.Signals, ...] = (signal.SIGINT, signal.SIGTERM),
) -> Iterator[CancelToken]:
    """Cancel *token* when any of *signals* arrives; restore handlers after.

    Only the main thread may install signal handlers, so elsewhere this is
    a pass-through.
    """
    if threading.current_thread() is not threading.main_thread():
        yield token
        return

    previous: dict[signal.Signals, Any] = {}

    def _handler(signum: int, _frame: Any) -> None:
        name = signal.Signals(signum).name
        logger.warning("Received %s, cancelling build", name)
        token.cancel(f"received {name}")

    for sig in signals:
        previous[sig] = signal.signal(sig, _handler)
    try:
        yield token
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)
