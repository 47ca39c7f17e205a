"""
Pulumi stack engine — stacks and operations via the Automation API.

Wraps ``pulumi.automation`` so the orchestrator never sees SDK types:
SDK failures become ``BackendError`` with the command output attached,
and change summaries become ``ChangeSummary``.

One ``LocalWorkspace`` is shared by every worker; each call it makes
runs its own CLI subprocess.  Preview and update run on a helper thread
so the run context can time them out or cancel them mid-flight.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any, TextIO

from pulumi import automation as auto

from paralumi.adapters.base import StackEngine, StackHandle
from paralumi.adapters.pulumi.cli import PULUMI_BIN, pulumi_available
from paralumi.core.context import RunContext
from paralumi.core.errors import BackendError, OperationCancelled
from paralumi.core.models.operation import ChangeSummary
from paralumi.core.models.stack import StackIdentifier

logger = logging.getLogger(__name__)

# How often a worker re-checks cancellation while an update runs
_POLL_INTERVAL = 0.2


def _stack_ref(stack: str | StackIdentifier) -> str:
    return stack.fqsn if isinstance(stack, StackIdentifier) else stack


def _backend_error(message: str, exc: Exception) -> BackendError:
    """Translate an SDK exception, keeping any captured command output."""
    return BackendError(
        f"{message}: {exc}",
        stdout=getattr(exc, "stdout", "") or "",
        stderr=getattr(exc, "stderr", "") or "",
        code=getattr(exc, "exit_code", -1),
    )


def _line_writer(sink: TextIO):
    def write(line: str) -> None:
        sink.write(line if line.endswith("\n") else f"{line}\n")
    return write


def _run_native(handle: StackHandle, call: Callable[[], Any], what: str, ctx: RunContext) -> Any:
    """Run a blocking Automation API call on a helper thread.

    The worker polls the run context while the call runs.  On
    cancellation or timeout it asks the engine to cancel the update
    (``Stack.cancel``) and raises without waiting for the call.
    """
    box: dict[str, Any] = {}

    def target() -> None:
        try:
            box["value"] = call()
        except Exception as e:
            box["error"] = e

    helper = threading.Thread(
        target=target,
        name=f"{threading.current_thread().name}-native",
        daemon=True,
    )
    started = time.monotonic()
    helper.start()

    while helper.is_alive():
        helper.join(_POLL_INTERVAL)
        if not helper.is_alive():
            break
        if ctx.cancelled:
            _cancel_native(handle)
            raise OperationCancelled(f"{what} cancelled")
        if ctx.timeout is not None and time.monotonic() - started > ctx.timeout:
            _cancel_native(handle)
            raise BackendError(f"{what} timed out after {ctx.timeout}s", code=-1)

    if "error" in box:
        raise _backend_error(f"{what} failed", box["error"]) from box["error"]
    return box["value"]


def _cancel_native(handle: StackHandle) -> None:
    logger.warning("Cancelling in-flight update of %s", handle.stack.fqsn)
    try:
        handle.native.cancel()
    except Exception as e:
        logger.debug("Cancel of %s failed: %s", handle.stack.fqsn, e)


class PulumiStackEngine(StackEngine):
    """Stack Engine backed by a Pulumi ``LocalWorkspace``.

    Args:
        work_dir: Directory holding the Pulumi project (Pulumi.yaml).
        workspace: Pre-built workspace; created lazily when omitted.
    """

    def __init__(
        self,
        work_dir: Path | str = ".",
        workspace: Any | None = None,
    ) -> None:
        self._work_dir = Path(work_dir)
        self._workspace = workspace

    @property
    def name(self) -> str:
        return "pulumi"

    def is_available(self) -> bool:
        return pulumi_available(PULUMI_BIN)

    @property
    def workspace(self) -> Any:
        if self._workspace is None:
            try:
                self._workspace = auto.LocalWorkspace(work_dir=str(self._work_dir))
            except Exception as e:
                raise _backend_error("failed to create LocalWorkspace", e) from e
        return self._workspace

    def project_name(self, ctx: RunContext) -> str:
        ctx.raise_if_cancelled()
        try:
            settings = self.workspace.project_settings()
        except Exception as e:
            raise _backend_error("failed to get project settings", e) from e
        return str(settings.name)

    def list_stacks(self, ctx: RunContext) -> list[str]:
        ctx.raise_if_cancelled()
        try:
            summaries = self.workspace.list_stacks()
        except Exception as e:
            raise _backend_error("failed to list stacks", e) from e
        return [summary.name for summary in summaries]

    def list_bound_environments(self, stack: str | StackIdentifier, ctx: RunContext) -> list[str]:
        ctx.raise_if_cancelled()
        ref = _stack_ref(stack)
        try:
            return list(self.workspace.list_environments(ref))
        except Exception as e:
            raise _backend_error(f"failed to list environments of {ref}", e) from e

    def upsert_stack(self, stack: StackIdentifier, ctx: RunContext) -> StackHandle:
        ctx.raise_if_cancelled()
        try:
            native = auto.Stack.create_or_select(stack.fqsn, self.workspace)
        except Exception as e:
            raise _backend_error(f"failed to upsert stack {stack.fqsn}", e) from e
        return StackHandle(stack, native)

    def bind_environment(self, stack: StackIdentifier, env: str, ctx: RunContext) -> None:
        ctx.raise_if_cancelled()
        try:
            self.workspace.add_environments(stack.fqsn, env)
        except Exception as e:
            raise _backend_error(f"failed to add environment {env} to {stack.fqsn}", e) from e

    def preview(self, handle: StackHandle, sink: TextIO, ctx: RunContext) -> ChangeSummary:
        ctx.raise_if_cancelled()
        result = _run_native(
            handle,
            lambda: handle.native.preview(diff=True, on_output=_line_writer(sink)),
            f"preview of {handle.stack.fqsn}",
            ctx,
        )
        return ChangeSummary.from_counts(result.change_summary)

    def apply(self, handle: StackHandle, sink: TextIO, ctx: RunContext) -> ChangeSummary:
        ctx.raise_if_cancelled()
        result = _run_native(
            handle,
            lambda: handle.native.up(diff=True, on_output=_line_writer(sink)),
            f"update of {handle.stack.fqsn}",
            ctx,
        )
        return ChangeSummary.from_counts(result.summary.resource_changes)
