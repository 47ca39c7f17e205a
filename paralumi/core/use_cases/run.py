"""
Run use case — select environments and run an operation across them.

This is the top-level orchestrator, one stage after another:

    enumerate → filter by config → index existing stacks → resolve
    → preview/apply in parallel → report

Setup-phase errors (enumeration, project lookup, stack indexing,
ambiguous bindings, output directory) end the run before any mutating
call and come back as ``RunResult.error``.  Per-environment errors only
shrink the result set.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from paralumi.adapters.base import ConfigStore, StackEngine
from paralumi.core.context import RunContext
from paralumi.core.engine.executor import (
    ExecutionReport,
    execute_operations,
    generate_operation_id,
)
from paralumi.core.errors import ParalumiError
from paralumi.core.models.operation import OperationFailure, OperationKind
from paralumi.core.models.selector import DEFAULT_NAMESPACE, ConfigSelector
from paralumi.core.models.stack import ExistingStackIndex, StackTarget
from paralumi.core.observability.diagnostics import DiagnosticSink
from paralumi.core.services.environments import filter_environments, list_environments
from paralumi.core.services.stack_resolver import build_stack_index, resolve_stacks

logger = logging.getLogger(__name__)


@dataclass
class SelectionResult:
    """Which environments were picked, and which stack each one gets."""

    organization: str = ""
    project: str = ""
    selector: ConfigSelector | None = None
    environments: list[str] = field(default_factory=list)
    selected: list[str] = field(default_factory=list)
    index: ExistingStackIndex = field(default_factory=ExistingStackIndex)
    targets: list[StackTarget] = field(default_factory=list)
    failures: list[OperationFailure] = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict:
        if self.error:
            return {"error": self.error}
        return {
            "organization": self.organization,
            "project": self.project,
            "selector": str(self.selector) if self.selector else None,
            "environments": len(self.environments),
            "selected": self.selected,
            "targets": [
                {
                    "environment": t.environment,
                    "fqsn": t.stack.fqsn,
                    "existing": bool(self.index.stacks_for(t.environment)),
                }
                for t in self.targets
            ],
            "failures": [f.to_dict() for f in self.failures],
        }


@dataclass
class RunResult:
    """Result of running an operation across selected environments."""

    kind: OperationKind = OperationKind.PREVIEW
    selection: SelectionResult | None = None
    report: ExecutionReport | None = None
    fail_on_error: bool = False
    error: str | None = None

    @property
    def exit_code(self) -> int:
        if self.error:
            return 1
        if self.fail_on_error and self.report is not None and not self.report.all_ok:
            return 1
        return 0

    def to_dict(self) -> dict:
        if self.error:
            return {"error": self.error}
        result: dict = {"kind": self.kind.value}
        if self.selection:
            result["selection"] = self.selection.to_dict()
        if self.report:
            result["report"] = self.report.to_dict()
        return result


def select_targets(
    org: str,
    selector: ConfigSelector,
    base_stack_name: str,
    *,
    store: ConfigStore,
    engine: StackEngine,
    ctx: RunContext,
    project: str | None = None,
    namespace: str = DEFAULT_NAMESPACE,
    max_workers: int | None = None,
    sink: DiagnosticSink | None = None,
) -> SelectionResult:
    """Run every stage up to, but not including, the operations."""
    result = SelectionResult(organization=org, selector=selector)

    try:
        result.environments = list_environments(store, org, ctx)
        result.selected = filter_environments(
            store,
            org,
            result.environments,
            selector,
            ctx,
            namespace=namespace,
            max_workers=max_workers,
            sink=sink,
            failures=result.failures,
        )
        result.project = project or engine.project_name(ctx)
        result.index = build_stack_index(engine, result.selected, ctx)
        result.targets = resolve_stacks(
            org, result.project, result.selected, base_stack_name, result.index,
        )
    except ParalumiError as e:
        logger.debug("Selection aborted: %s", e)
        result.error = str(e)

    return result


def run_stack_operation(
    kind: OperationKind,
    org: str,
    selector: ConfigSelector,
    base_stack_name: str,
    *,
    store: ConfigStore,
    engine: StackEngine,
    ctx: RunContext | None = None,
    project: str | None = None,
    namespace: str = DEFAULT_NAMESPACE,
    max_workers: int | None = None,
    output_root: Path = Path("."),
    sink: DiagnosticSink | None = None,
    fail_on_error: bool = False,
) -> RunResult:
    """Preview or apply one stack per matching environment.

    Args:
        kind: Preview or apply.
        org: Organization owning the environments.
        selector: Config key and desired value.
        base_stack_name: Suffix for stacks created as ``{env}-{base}``.
        store: Config Store adapter.
        engine: Stack Engine adapter.
        ctx: Run context; a fresh one when omitted.
        project: Project name override; defaults to the workspace's.
        namespace: Environment section holding the config key.
        max_workers: Concurrency cap for both fan-out stages.
        output_root: Where ``<kind>-stdout/`` is created.
        sink: Receives diagnostics for dropped environments.
        fail_on_error: Make any failed environment a non-zero exit.

    Returns:
        RunResult with the selection and execution report.
    """
    ctx = ctx or RunContext()
    result = RunResult(kind=kind, fail_on_error=fail_on_error)
    operation_id = generate_operation_id()
    logger.debug("Starting %s %s for %s (%s)", kind.value, operation_id, org, selector)

    selection = select_targets(
        org,
        selector,
        base_stack_name,
        store=store,
        engine=engine,
        ctx=ctx,
        project=project,
        namespace=namespace,
        max_workers=max_workers,
        sink=sink,
    )
    result.selection = selection
    if selection.error:
        result.error = selection.error
        return result

    try:
        result.report = execute_operations(
            kind,
            selection.targets,
            engine,
            ctx,
            output_root=output_root,
            max_workers=max_workers,
            sink=sink,
            operation_id=operation_id,
        )
    except ParalumiError as e:
        result.error = str(e)
        return result

    report = result.report
    logger.info(
        "%s %s: %d/%d succeeded",
        kind.value,
        report.status,
        report.succeeded,
        report.total,
    )
    return result


def default_adapters(work_dir: Path) -> tuple[ConfigStore, StackEngine]:
    """Pulumi-backed adapters rooted at ``work_dir``."""
    from paralumi.adapters.pulumi.config_store import PulumiEnvConfigStore
    from paralumi.adapters.pulumi.stack_engine import PulumiStackEngine

    return PulumiEnvConfigStore(work_dir), PulumiStackEngine(work_dir)
