"""
Operation models — what to run, and what came back.

An ``OperationResult`` only ever describes a successful preview/apply.
Failed environments are recorded as ``OperationFailure`` and never
appear in the results table.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel

from paralumi.core.models.stack import StackIdentifier


class OperationKind(StrEnum):
    """Which Stack Engine entry point a run uses."""

    PREVIEW = "preview"
    APPLY = "apply"

    @classmethod
    def parse(cls, raw: str) -> OperationKind:
        """Parse a command name; ``up`` is accepted for ``apply``."""
        name = raw.strip().lower()
        if name == "up":
            return cls.APPLY
        return cls(name)

    @property
    def output_dir_name(self) -> str:
        return f"{self.value}-stdout"

    @property
    def verb(self) -> str:
        return "Preview" if self is OperationKind.PREVIEW else "Apply"


class ChangeSummary(BaseModel):
    """Resource change counts computed or applied by the Stack Engine."""

    create: int = 0
    update: int = 0
    destroy: int = 0

    @classmethod
    def from_counts(cls, counts: Mapping[Any, int] | None) -> ChangeSummary:
        """Build from an engine op-type → count mapping.

        Keys may be plain strings or string enums.  Absent keys count
        as zero; the engine's ``delete`` op is reported as ``destroy``.
        """
        if not counts:
            return cls()
        normalized: dict[str, int] = {}
        for key, value in counts.items():
            name = str(getattr(key, "value", key)).lower()
            normalized[name] = normalized.get(name, 0) + int(value or 0)
        return cls(
            create=normalized.get("create", 0),
            update=normalized.get("update", 0),
            destroy=normalized.get("destroy", 0) + normalized.get("delete", 0),
        )


class OperationResult(BaseModel):
    """Outcome of one successful preview or apply."""

    stack: StackIdentifier
    environment: str
    created: int = 0
    updated: int = 0
    destroyed: int = 0

    @classmethod
    def from_summary(
        cls,
        stack: StackIdentifier,
        environment: str,
        summary: ChangeSummary,
    ) -> OperationResult:
        return cls(
            stack=stack,
            environment=environment,
            created=summary.create,
            updated=summary.update,
            destroyed=summary.destroy,
        )

    @property
    def fqsn(self) -> str:
        return self.stack.fqsn

    def to_dict(self) -> dict:
        return {
            "fqsn": self.fqsn,
            "environment": self.environment,
            "creates": self.created,
            "updates": self.updated,
            "destroys": self.destroyed,
        }


class OperationFailure(BaseModel):
    """An environment dropped from a fan-out stage, and why."""

    environment: str
    stage: Literal["filter", "operation"]
    error: str
    stack: StackIdentifier | None = None

    def to_dict(self) -> dict:
        return {
            "environment": self.environment,
            "stage": self.stage,
            "fqsn": self.stack.fqsn if self.stack else None,
            "error": self.error,
        }
