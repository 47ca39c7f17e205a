"""
CLI commands for running operations across environments.

Thin wrappers over ``paralumi.core.use_cases.run``: resolve flags
against paralumi.yml, build adapters, run, render.
"""

from __future__ import annotations

import json
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import click

from paralumi.adapters.base import ConfigStore, StackEngine
from paralumi.core.config.loader import Settings
from paralumi.core.context import RunContext, cancel_on_interrupt
from paralumi.core.errors import UsageError
from paralumi.core.models.operation import OperationKind
from paralumi.core.models.selector import ConfigSelector
from paralumi.core.observability.diagnostics import CollectingSink, Diagnostic
from paralumi.core.services.report import render_results, render_targets


class ConsoleSink:
    """Print each dropped environment as one yellow line, as it happens."""

    def __init__(self, verbose: bool = False) -> None:
        self._verbose = verbose

    def emit(self, diagnostic: Diagnostic) -> None:
        lines = diagnostic.message.splitlines() or [""]
        click.secho(f"   ⚠️  {lines[0]}", fg="yellow")
        if self._verbose:
            for line in lines[1:]:
                click.echo(f"     │ {line}")


def _operation_options(fn: Callable) -> Callable:
    """Options shared by preview, apply, up, and select."""
    options = [
        click.option("--org", "-o", "org", default=None, help="Pulumi Cloud organization."),
        click.option(
            "--config-filter", "--filter", "-f", "config_filter", default=None,
            help="Config key and value to filter by: {key}:{value}.",
        ),
        click.option("--stack-name", "--stackName", "-s", "stack_name", default=None,
                     help="Base stack name; new stacks are {env}-{stack-name}."),
        click.option("--project", default=None, help="Project name (default: from Pulumi.yaml)."),
        click.option("--work-dir", type=click.Path(file_okay=False), default=None,
                     help="Pulumi project directory (default: .)."),
        click.option("--namespace", default=None,
                     help="Environment section holding the key (default: pulumiConfig)."),
        click.option("--max-workers", type=click.IntRange(min=1), default=None,
                     help="Cap on concurrent environments (default: unbounded)."),
        click.option("--timeout", type=click.FloatRange(min=0, min_open=True), default=None,
                     help="Per backend call timeout in seconds (default: none)."),
        click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON."),
    ]
    for option in reversed(options):
        fn = option(fn)
    return fn


def _resolve_request(ctx: click.Context, params: dict[str, Any]) -> dict[str, Any]:
    """Merge flags over settings; fail fast on anything missing or malformed."""
    settings: Settings = ctx.obj.get("settings") or Settings()

    org = params.get("org") or settings.organization
    raw_filter = params.get("config_filter") or settings.config_filter
    stack_name = params.get("stack_name") or settings.stack_name

    missing = [
        flag for flag, value in (
            ("--org", org),
            ("--config-filter", raw_filter),
            ("--stack-name", stack_name),
        ) if not value
    ]
    if missing:
        raise click.UsageError(f"paralumi requires {', '.join(missing)}", ctx=ctx)

    try:
        selector = ConfigSelector.parse(raw_filter)
    except UsageError as e:
        raise click.BadParameter(str(e), ctx=ctx, param_hint="--config-filter") from e

    fail_on_error = params.get("fail_on_error")
    return {
        "org": org,
        "selector": selector,
        "stack_name": stack_name,
        "project": params.get("project") or settings.project,
        "work_dir": Path(params.get("work_dir") or settings.work_dir),
        "namespace": params.get("namespace") or settings.namespace,
        "max_workers": params.get("max_workers") or settings.max_workers,
        "timeout": params.get("timeout") or settings.timeout,
        "output_dir": Path(params.get("output_dir") or settings.output_dir),
        "fail_on_error": settings.fail_on_error if fail_on_error is None else fail_on_error,
    }


def _adapters(ctx: click.Context, work_dir: Path) -> tuple[ConfigStore, StackEngine]:
    """Adapters injected through ``ctx.obj`` win; otherwise Pulumi.

    Exits 1 before any backend call if either adapter is unavailable.
    """
    store = ctx.obj.get("config_store")
    engine = ctx.obj.get("stack_engine")
    if store is None or engine is None:
        from paralumi.core.use_cases.run import default_adapters

        default_store, default_engine = default_adapters(work_dir)
        store = store or default_store
        engine = engine or default_engine

    for adapter in (store, engine):
        if not adapter.is_available():
            click.secho(
                f"❌ {adapter.name}: pulumi CLI not found on PATH", fg="red", err=True,
            )
            sys.exit(1)
    return store, engine


def _run(ctx: click.Context, kind: OperationKind, params: dict[str, Any]) -> None:
    from paralumi.core.use_cases.run import run_stack_operation

    request = _resolve_request(ctx, params)
    as_json = params.get("as_json", False)
    quiet = ctx.obj.get("quiet", False)
    store, engine = _adapters(ctx, request["work_dir"])

    sink = CollectingSink() if as_json else ConsoleSink(verbose=ctx.obj.get("verbose", False))
    run_ctx = RunContext(timeout=request["timeout"])

    if not as_json and not quiet:
        click.secho(
            f"\n⚡ {kind.value} — {request['org']} [{request['selector']}]",
            fg="cyan",
            bold=True,
        )

    with cancel_on_interrupt(run_ctx):
        result = run_stack_operation(
            kind,
            request["org"],
            request["selector"],
            request["stack_name"],
            store=store,
            engine=engine,
            ctx=run_ctx,
            project=request["project"],
            namespace=request["namespace"],
            max_workers=request["max_workers"],
            output_root=request["output_dir"],
            sink=sink,
            fail_on_error=request["fail_on_error"],
        )

    if as_json:
        data = result.to_dict()
        if isinstance(sink, CollectingSink):
            data["diagnostics"] = [d.to_dict() for d in sink.events]
        click.echo(json.dumps(data, indent=2))
        sys.exit(result.exit_code)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    report = result.report
    assert report is not None
    selection = result.selection
    assert selection is not None

    if not quiet:
        click.echo(
            f"   Environments: {len(selection.selected)}/{len(selection.environments)} matched | "
            f"Output: {report.output_dir}"
        )
    click.echo()
    click.echo(render_results(report.results, color=True))
    click.echo()

    status_color = {"ok": "green", "partial": "yellow", "failed": "red"}.get(
        report.status, "white"
    )
    click.secho(
        f"   Result: {report.succeeded}/{report.total} succeeded",
        fg=status_color,
        bold=True,
    )
    for failure in report.failures:
        first = failure.error.splitlines()[0] if failure.error else ""
        click.secho(f"   ✗ {failure.environment}: {first}", fg="red")

    sys.exit(result.exit_code)


_fail_on_error_option = click.option(
    "--fail-on-error/--no-fail-on-error",
    default=None,
    help="Exit non-zero if any environment fails (default: from settings, off).",
)
_output_dir_option = click.option(
    "--output-dir",
    type=click.Path(file_okay=False),
    default=None,
    help="Where {preview,apply}-stdout/ is written (default: .).",
)


@click.command("preview")
@_operation_options
@_output_dir_option
@_fail_on_error_option
@click.pass_context
def preview(ctx: click.Context, **params: Any) -> None:
    """Preview one stack per matching environment, in parallel."""
    _run(ctx, OperationKind.PREVIEW, params)


@click.command("apply")
@_operation_options
@_output_dir_option
@_fail_on_error_option
@click.pass_context
def apply(ctx: click.Context, **params: Any) -> None:
    """Apply one stack per matching environment, in parallel."""
    _run(ctx, OperationKind.APPLY, params)


@click.command("up", hidden=True)
@_operation_options
@_output_dir_option
@_fail_on_error_option
@click.pass_context
def up(ctx: click.Context, **params: Any) -> None:
    """Alias for apply."""
    _run(ctx, OperationKind.parse("up"), params)


@click.command("select")
@_operation_options
@click.pass_context
def select(ctx: click.Context, **params: Any) -> None:
    """Show which environments match and which stack each one gets.

    Runs no preview or apply and writes no files.
    """
    from paralumi.core.use_cases.run import select_targets

    request = _resolve_request(ctx, params)
    as_json = params.get("as_json", False)
    store, engine = _adapters(ctx, request["work_dir"])
    sink = CollectingSink() if as_json else ConsoleSink(verbose=ctx.obj.get("verbose", False))
    run_ctx = RunContext(timeout=request["timeout"])

    with cancel_on_interrupt(run_ctx):
        selection = select_targets(
            request["org"],
            request["selector"],
            request["stack_name"],
            store=store,
            engine=engine,
            ctx=run_ctx,
            project=request["project"],
            namespace=request["namespace"],
            max_workers=request["max_workers"],
            sink=sink,
        )

    if as_json:
        click.echo(json.dumps(selection.to_dict(), indent=2))
        sys.exit(1 if selection.error else 0)

    if selection.error:
        click.secho(f"❌ {selection.error}", fg="red")
        sys.exit(1)

    click.secho(
        f"\n🔍 {len(selection.selected)}/{len(selection.environments)} environments "
        f"match {request['selector']}",
        fg="cyan",
        bold=True,
    )
    click.echo()
    click.echo(render_targets(selection.targets, selection.index, color=True))
    click.echo()
