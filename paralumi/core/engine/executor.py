"""
Engine executor — run one preview/apply per environment, in parallel.

Flow per environment (strictly sequential inside its worker):
    upsert stack → bind environment if missing → open output file
    → preview / apply → OperationResult

Environments run concurrently through a ``TaskGroup``.  A failure in
one environment is logged, recorded as an ``OperationFailure``, and
never blocks or aborts the others.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from urllib.parse import quote

from paralumi.adapters.base import StackEngine
from paralumi.core.context import RunContext
from paralumi.core.engine.task_group import TaskGroup
from paralumi.core.errors import OutputDirectoryError
from paralumi.core.models.operation import (
    OperationFailure,
    OperationKind,
    OperationResult,
)
from paralumi.core.models.stack import StackTarget
from paralumi.core.observability.diagnostics import Diagnostic, DiagnosticSink, LoggingSink
from paralumi.core.observability.logging_config import environment_scope

logger = logging.getLogger(__name__)


@dataclass
class ExecutionReport:
    """Everything one fan-out produced, in completion order."""

    operation_id: str = ""
    kind: OperationKind = OperationKind.PREVIEW
    results: list[OperationResult] = field(default_factory=list)
    failures: list[OperationFailure] = field(default_factory=list)
    output_dir: Path | None = None

    @property
    def succeeded(self) -> int:
        return len(self.results)

    @property
    def failed(self) -> int:
        return sum(1 for f in self.failures if f.stage == "operation")

    @property
    def total(self) -> int:
        return self.succeeded + self.failed

    @property
    def all_ok(self) -> bool:
        return self.failed == 0

    @property
    def status(self) -> str:
        if self.total == 0:
            return "empty"
        if self.failed == 0:
            return "ok"
        if self.succeeded > 0:
            return "partial"
        return "failed"

    def to_dict(self) -> dict:
        return {
            "operation_id": self.operation_id,
            "kind": self.kind.value,
            "status": self.status,
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "output_dir": str(self.output_dir) if self.output_dir else None,
            "results": [r.to_dict() for r in self.results],
            "failures": [f.to_dict() for f in self.failures],
        }


def prepare_output_dir(output_root: Path, kind: OperationKind) -> Path:
    """Create ``<output_root>/<kind>-stdout``; an existing dir is fine.

    Raises:
        OutputDirectoryError: On any other creation failure.
    """
    path = output_root / kind.output_dir_name
    try:
        path.mkdir(mode=0o750, parents=True, exist_ok=True)
    except OSError as e:
        raise OutputDirectoryError(f"cannot create output directory {path}: {e}") from e
    return path


def output_file_for(output_dir: Path, environment: str) -> Path:
    """Per-environment capture file, one level deep.

    Names are percent-encoded, so distinct environments never share a
    file: ``team/dev`` is ``team%2Fdev`` while ``team_dev`` is unchanged.
    """
    return output_dir / quote(environment, safe="")


def run_operation(
    kind: OperationKind,
    target: StackTarget,
    engine: StackEngine,
    ctx: RunContext,
    output_dir: Path,
) -> OperationResult:
    """Upsert, bind, and run one operation for one environment.

    Raises whatever the engine raises; the caller owns isolation.
    """
    env = target.environment
    stack = target.stack
    logger.info("Running %s on stack %s in env %s...", kind.verb, stack.fqsn, env)

    handle = engine.upsert_stack(stack, ctx)

    bound = engine.list_bound_environments(stack, ctx)
    if env not in bound:
        logger.debug("Binding environment %s to %s", env, stack.fqsn)
        engine.bind_environment(stack, env, ctx)

    with open(output_file_for(output_dir, env), "w", encoding="utf-8") as sink:
        if kind is OperationKind.PREVIEW:
            summary = engine.preview(handle, sink, ctx)
        else:
            summary = engine.apply(handle, sink, ctx)

    return OperationResult.from_summary(stack, env, summary)


def execute_operations(
    kind: OperationKind,
    targets: list[StackTarget],
    engine: StackEngine,
    ctx: RunContext,
    *,
    output_root: Path = Path("."),
    max_workers: int | None = None,
    sink: DiagnosticSink | None = None,
    operation_id: str | None = None,
) -> ExecutionReport:
    """Run ``kind`` against every target concurrently.

    Args:
        kind: Preview or apply.
        targets: Resolved environment → stack pairs.
        engine: Stack Engine adapter.
        ctx: Run context (cancellation, timeout).
        output_root: Directory the ``<kind>-stdout`` folder goes in.
        max_workers: Concurrency cap.  None = one worker per target.
        sink: Receives one diagnostic per failed environment.

    Returns:
        ExecutionReport with successes and failures.

    Raises:
        OutputDirectoryError: Before any operation, if the output
            directory cannot be created.
        OperationCancelled: If the run is cancelled.
    """
    sink = sink or LoggingSink(logger)
    report = ExecutionReport(
        operation_id=operation_id or generate_operation_id(),
        kind=kind,
    )
    report.output_dir = prepare_output_dir(output_root, kind)

    def work(target: StackTarget) -> OperationResult:
        with environment_scope(target.environment):
            return run_operation(kind, target, engine, ctx, report.output_dir)

    group: TaskGroup[StackTarget, OperationResult] = TaskGroup(
        work, max_workers=max_workers, name=kind.value,
    )

    for outcome in group.run(targets):
        target = outcome.item
        if outcome.ok:
            report.results.append(outcome.value)
            logger.info("✓ %s (%s)", target.stack.fqsn, target.environment)
            continue

        sink.emit(Diagnostic(
            level="warning",
            message=(
                f"failed to {kind.value} {target.stack.fqsn} "
                f"for environment {target.environment}: {outcome.error}"
            ),
            environment=target.environment,
            stack=target.stack.fqsn,
            stage="operation",
        ))
        report.failures.append(OperationFailure(
            environment=target.environment,
            stack=target.stack,
            stage="operation",
            error=str(outcome.error),
        ))

    return report


def generate_operation_id() -> str:
    """Generate a unique operation ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    short = uuid.uuid4().hex[:6]
    return f"op-{now}-{short}"
