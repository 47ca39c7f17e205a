"""
Adapter base — the contract between the orchestrator and the backend.

The orchestration core only talks to the outside world through these
two interfaces, never directly to the pulumi CLI or SDK:

    - ``ConfigStore``  lists environments and resolves config values
    - ``StackEngine``  manages stacks and runs preview / apply

Unlike a fan-out stage, adapters DO raise: any failed call raises
``BackendError`` (or ``OperationCancelled``), and the calling stage
decides whether that is fatal or just drops one environment.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, TextIO

from paralumi.core.context import RunContext
from paralumi.core.models.operation import ChangeSummary
from paralumi.core.models.stack import StackIdentifier


class StackHandle:
    """An upserted stack, ready for preview or apply.

    ``native`` is whatever the engine needs to run operations
    (an automation ``Stack`` for Pulumi, nothing for the mock).
    """

    def __init__(self, stack: StackIdentifier, native: Any = None) -> None:
        self.stack = stack
        self.native = native

    def __repr__(self) -> str:
        return f"<StackHandle {self.stack.fqsn}>"


class ConfigStore(ABC):
    """Organization-scoped environments and their configuration."""

    @property
    @abstractmethod
    def name(self) -> str:
        """The adapter identifier (e.g., 'pulumi-env', 'mock')."""

    def is_available(self) -> bool:
        return True

    @abstractmethod
    def list_environments(self, org: str, ctx: RunContext) -> list[str]:
        """All environment names in ``org``.  Empty output means none."""

    @abstractmethod
    def get_config_value(self, org: str, env: str, path: str, ctx: RunContext) -> str:
        """Resolved value at ``path`` (e.g. ``pulumiConfig.tier``).

        Raises:
            BackendError: If the lookup fails or the key is absent.
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"


class StackEngine(ABC):
    """Stacks, their environment bindings, and preview / apply."""

    @property
    @abstractmethod
    def name(self) -> str:
        """The adapter identifier (e.g., 'pulumi', 'mock')."""

    def is_available(self) -> bool:
        return True

    @abstractmethod
    def project_name(self, ctx: RunContext) -> str:
        """Name of the project the workspace belongs to."""

    @abstractmethod
    def list_stacks(self, ctx: RunContext) -> list[str]:
        """Names of every stack known to the workspace."""

    @abstractmethod
    def list_bound_environments(self, stack: str | StackIdentifier, ctx: RunContext) -> list[str]:
        """Environments imported by ``stack``."""

    @abstractmethod
    def upsert_stack(self, stack: StackIdentifier, ctx: RunContext) -> StackHandle:
        """Create the stack if absent, otherwise select it.  Idempotent."""

    @abstractmethod
    def bind_environment(self, stack: StackIdentifier, env: str, ctx: RunContext) -> None:
        """Add ``env`` to the stack's environment imports."""

    @abstractmethod
    def preview(self, handle: StackHandle, sink: TextIO, ctx: RunContext) -> ChangeSummary:
        """Compute the diff, streaming progress to ``sink``."""

    @abstractmethod
    def apply(self, handle: StackHandle, sink: TextIO, ctx: RunContext) -> ChangeSummary:
        """Apply the diff, streaming progress to ``sink``."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
