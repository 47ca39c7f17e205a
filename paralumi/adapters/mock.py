"""
Mock adapters — in-memory Config Store and Stack Engine.

Used by the test suite, and injectable into the CLI through its context
object, to exercise the whole pipeline without touching a Pulumi
backend.  Both mocks record every call and can be told to fail per
environment.  Per-environment delays shake out ordering assumptions.
"""

from __future__ import annotations

import threading
from collections.abc import Mapping
from typing import TextIO

from paralumi.adapters.base import ConfigStore, StackEngine, StackHandle
from paralumi.core.context import RunContext
from paralumi.core.errors import BackendError
from paralumi.core.models.operation import ChangeSummary
from paralumi.core.models.stack import StackIdentifier


class _CallLog:
    """Thread-safe list of ``(method, args)`` tuples."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._calls: list[tuple[str, tuple]] = []

    def record(self, method: str, *args: object) -> None:
        with self._lock:
            self._calls.append((method, args))

    @property
    def calls(self) -> list[tuple[str, tuple]]:
        with self._lock:
            return list(self._calls)

    def count(self, method: str) -> int:
        return sum(1 for m, _ in self.calls if m == method)


def _stack_key(stack: str | StackIdentifier) -> str:
    if isinstance(stack, StackIdentifier):
        return stack.stack_name
    return stack.rsplit("/", 1)[-1]


class MockConfigStore(ConfigStore):
    """Config Store backed by a dict of env → {path: value}.

    Args:
        environments: Mapping of environment name to its config, keyed
            by full path (``pulumiConfig.tier``).  Environment order is
            the order ``list_environments`` reports.
        delays: Optional per-environment sleep before answering.
        available: What ``is_available`` reports.
    """

    def __init__(
        self,
        environments: Mapping[str, Mapping[str, str]] | None = None,
        delays: Mapping[str, float] | None = None,
        available: bool = True,
    ) -> None:
        self._available = available
        self._environments = {k: dict(v) for k, v in (environments or {}).items()}
        self._delays = dict(delays or {})
        self._failures: dict[str, str] = {}
        self._list_failure: BackendError | None = None
        self.log = _CallLog()

    @property
    def name(self) -> str:
        return "mock"

    def is_available(self) -> bool:
        return self._available

    def set_failure(self, env: str, error: str = "Mock lookup failure") -> None:
        """Make every lookup for ``env`` raise ``BackendError``."""
        self._failures[env] = error

    def fail_listing(self, error: BackendError) -> None:
        self._list_failure = error

    @property
    def call_count(self) -> int:
        return len(self.log.calls)

    def list_environments(self, org: str, ctx: RunContext) -> list[str]:
        self.log.record("list_environments", org)
        ctx.raise_if_cancelled()
        if self._list_failure is not None:
            raise self._list_failure
        return list(self._environments)

    def get_config_value(self, org: str, env: str, path: str, ctx: RunContext) -> str:
        self.log.record("get_config_value", org, env, path)
        delay = self._delays.get(env)
        if delay:
            ctx.wait(delay)
        ctx.raise_if_cancelled()
        if env in self._failures:
            raise BackendError(self._failures[env], stderr=self._failures[env], code=1)
        config = self._environments.get(env)
        if config is None:
            raise BackendError(f"environment {org}/{env} not found", code=1)
        if path not in config:
            raise BackendError(f"{path} not found in {org}/{env}", code=1)
        return config[path]


class MockStackEngine(StackEngine):
    """Stack Engine holding stacks and bindings in memory.

    Args:
        project: Project name reported by ``project_name``.
        stacks: Existing stack name → bound environment names.
        summaries: Environment → change counts returned on success.
            Environments without an entry report an empty summary.
        delays: Optional per-environment sleep inside preview/apply.
        available: What ``is_available`` reports.
    """

    def __init__(
        self,
        project: str = "proj",
        stacks: Mapping[str, list[str]] | None = None,
        summaries: Mapping[str, Mapping[str, int]] | None = None,
        delays: Mapping[str, float] | None = None,
        available: bool = True,
    ) -> None:
        self._available = available
        self._project = project
        self._lock = threading.Lock()
        self._stacks: dict[str, list[str]] = {k: list(v) for k, v in (stacks or {}).items()}
        self._summaries = {k: dict(v) for k, v in (summaries or {}).items()}
        self._delays = dict(delays or {})
        self._failures: dict[str, str] = {}
        self._list_failure: BackendError | None = None
        self.log = _CallLog()

    @property
    def name(self) -> str:
        return "mock"

    def is_available(self) -> bool:
        return self._available

    @property
    def stacks(self) -> dict[str, list[str]]:
        with self._lock:
            return {k: list(v) for k, v in self._stacks.items()}

    def set_failure(self, env: str, error: str = "Mock operation failure") -> None:
        """Make preview/apply fail for whichever stack is bound to ``env``."""
        self._failures[env] = error

    def fail_listing(self, error: BackendError) -> None:
        self._list_failure = error

    def operations(self) -> list[tuple[str, tuple]]:
        """Recorded preview/apply calls only."""
        return [c for c in self.log.calls if c[0] in ("preview", "apply")]

    # ── StackEngine ──────────────────────────────────────────────

    def project_name(self, ctx: RunContext) -> str:
        self.log.record("project_name")
        return self._project

    def list_stacks(self, ctx: RunContext) -> list[str]:
        self.log.record("list_stacks")
        ctx.raise_if_cancelled()
        if self._list_failure is not None:
            raise self._list_failure
        with self._lock:
            return list(self._stacks)

    def list_bound_environments(self, stack: str | StackIdentifier, ctx: RunContext) -> list[str]:
        key = _stack_key(stack)
        self.log.record("list_bound_environments", key)
        ctx.raise_if_cancelled()
        with self._lock:
            return list(self._stacks.get(key, []))

    def upsert_stack(self, stack: StackIdentifier, ctx: RunContext) -> StackHandle:
        self.log.record("upsert_stack", stack.fqsn)
        ctx.raise_if_cancelled()
        with self._lock:
            self._stacks.setdefault(stack.stack_name, [])
        return StackHandle(stack)

    def bind_environment(self, stack: StackIdentifier, env: str, ctx: RunContext) -> None:
        self.log.record("bind_environment", stack.fqsn, env)
        ctx.raise_if_cancelled()
        with self._lock:
            bound = self._stacks.setdefault(stack.stack_name, [])
            if env in bound:
                raise BackendError(f"environment {env} already imported by {stack.fqsn}", code=255)
            bound.append(env)

    def preview(self, handle: StackHandle, sink: TextIO, ctx: RunContext) -> ChangeSummary:
        return self._operate("preview", handle, sink, ctx)

    def apply(self, handle: StackHandle, sink: TextIO, ctx: RunContext) -> ChangeSummary:
        return self._operate("apply", handle, sink, ctx)

    def _operate(self, op: str, handle: StackHandle, sink: TextIO, ctx: RunContext) -> ChangeSummary:
        with self._lock:
            envs = list(self._stacks.get(handle.stack.stack_name, []))
        env = envs[0] if envs else ""
        self.log.record(op, handle.stack.fqsn, env)

        delay = self._delays.get(env)
        if delay:
            ctx.wait(delay)
        ctx.raise_if_cancelled()

        sink.write(f"[mock] {op} {handle.stack.fqsn} ({env})\n")
        if env in self._failures:
            raise BackendError(self._failures[env], stderr=self._failures[env], code=255)
        return ChangeSummary.from_counts(self._summaries.get(env))
