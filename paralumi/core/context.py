"""
Run context — the one object threaded through every backend call.

A ``RunContext`` is created once per command.  It carries:

    - a cancellation flag (``threading.Event``) that any thread can set,
    - an optional per-call timeout in seconds.

Backend adapters poll ``cancelled`` while they wait and call
``raise_if_cancelled()`` between sub-steps.  Cancelling a run does not
stop sibling workers that already finished a call; it makes every
in-flight and future call fail with ``OperationCancelled``.
"""

from __future__ import annotations

import logging
import signal
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field

from paralumi.core.errors import OperationCancelled

logger = logging.getLogger(__name__)


@dataclass
class RunContext:
    """Cancellation and timeout state for one paralumi run."""

    timeout: float | None = None
    _cancel_event: threading.Event = field(default_factory=threading.Event, repr=False)

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self) -> None:
        """Request cancellation of every in-flight backend call."""
        self._cancel_event.set()

    def raise_if_cancelled(self) -> None:
        if self._cancel_event.is_set():
            raise OperationCancelled()

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; return True early if cancelled."""
        return self._cancel_event.wait(seconds)


@contextmanager
def cancel_on_interrupt(ctx: RunContext) -> Iterator[RunContext]:
    """Turn Ctrl-C into ``ctx.cancel()`` for the duration of the block.

    The main thread is parked on the worker join while a stage runs, so
    SIGINT must reach the workers through the context, not as an
    exception in the main thread.  Only the main thread may install
    signal handlers; elsewhere this is a no-op.
    """
    if threading.current_thread() is not threading.main_thread():
        yield ctx
        return

    def _handler(signum, frame) -> None:
        logger.warning("Interrupted, cancelling in-flight operations...")
        ctx.cancel()

    previous = signal.signal(signal.SIGINT, _handler)
    try:
        yield ctx
    finally:
        signal.signal(signal.SIGINT, previous)
