"""
Diagnostics — structured events for environments dropped from a run.

The orchestration core never prints.  Each fan-out stage reports a
dropped environment by emitting a ``Diagnostic`` to an injected sink:

    - ``LoggingSink``     forwards to ``logging`` (the CLI default)
    - ``CollectingSink``  keeps events in memory (tests, JSON output)

Sinks are called from worker threads and must be thread-safe.
"""

from __future__ import annotations

import logging
import threading
from typing import Literal, Protocol

from pydantic import BaseModel

logger = logging.getLogger(__name__)

_LEVELS = {
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class Diagnostic(BaseModel):
    """One event worth showing to the operator."""

    level: Literal["info", "warning", "error"] = "warning"
    message: str
    environment: str | None = None
    stack: str | None = None
    stage: str | None = None

    def to_dict(self) -> dict:
        return self.model_dump(mode="json")


class DiagnosticSink(Protocol):
    def emit(self, diagnostic: Diagnostic) -> None: ...


class LoggingSink:
    """Forward diagnostics to a logger."""

    def __init__(self, target: logging.Logger | None = None) -> None:
        self._logger = target or logger

    def emit(self, diagnostic: Diagnostic) -> None:
        self._logger.log(_LEVELS[diagnostic.level], "%s", diagnostic.message)


class CollectingSink:
    """Keep every diagnostic in memory, in emission order."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._events: list[Diagnostic] = []

    def emit(self, diagnostic: Diagnostic) -> None:
        with self._lock:
            self._events.append(diagnostic)

    @property
    def events(self) -> list[Diagnostic]:
        with self._lock:
            return list(self._events)

    def for_environment(self, environment: str) -> list[Diagnostic]:
        return [d for d in self.events if d.environment == environment]
