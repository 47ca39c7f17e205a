"""
Report rendering — the per-environment change summary table.

Rows come out in the order results were collected (completion order);
nothing is sorted.  An empty result set renders the header alone.
"""

from __future__ import annotations

from collections.abc import Sequence

import click

from paralumi.core.models.operation import OperationResult
from paralumi.core.models.stack import ExistingStackIndex, StackTarget

RESULT_COLUMNS = ("FQSN", "env", "creates", "updates", "destroys")
TARGET_COLUMNS = ("FQSN", "env", "stack")

_GAP = "  "


def _format_table(
    headers: Sequence[str],
    rows: Sequence[Sequence[object]],
    color: bool,
) -> str:
    cells = [[str(c) for c in row] for row in rows]
    widths = [len(h) for h in headers]
    for row in cells:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(cell))

    # Pad before styling so ANSI codes don't skew alignment
    header = _GAP.join(h.ljust(widths[i]) for i, h in enumerate(headers)).rstrip()
    if color:
        header = click.style(header, fg="green", underline=True)
    lines = [header]

    for row in cells:
        padded = [cell.ljust(widths[i]) for i, cell in enumerate(row)]
        if color:
            padded[0] = click.style(padded[0], fg="yellow")
        lines.append(_GAP.join(padded).rstrip())

    return "\n".join(lines)


def render_results(results: Sequence[OperationResult], color: bool = False) -> str:
    """FQSN / env / creates / updates / destroys, one row per result."""
    rows = [
        (r.fqsn, r.environment, r.created, r.updated, r.destroyed)
        for r in results
    ]
    return _format_table(RESULT_COLUMNS, rows, color)


def render_targets(
    targets: Sequence[StackTarget],
    index: ExistingStackIndex,
    color: bool = False,
) -> str:
    """Resolved targets, marking which stacks exist and which are new."""
    rows = [
        (
            t.stack.fqsn,
            t.environment,
            "existing" if index.stacks_for(t.environment) else "new",
        )
        for t in targets
    ]
    return _format_table(TARGET_COLUMNS, rows, color)
