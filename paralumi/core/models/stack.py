"""
Stack identity models — FQSNs, targets, and the existing-stack index.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from paralumi.core.errors import AmbiguousStackBindingError, BackendError


class StackIdentifier(BaseModel):
    """A fully-qualified stack name: ``organization/project/stack``."""

    model_config = ConfigDict(frozen=True)

    organization: str
    project: str
    stack_name: str

    @property
    def fqsn(self) -> str:
        return f"{self.organization}/{self.project}/{self.stack_name}"

    @classmethod
    def for_environment(
        cls,
        organization: str,
        project: str,
        environment: str,
        base_stack_name: str,
    ) -> StackIdentifier:
        """Identifier for a stack that does not exist yet: ``{env}-{base}``."""
        return cls(
            organization=organization,
            project=project,
            stack_name=f"{environment}-{base_stack_name}",
        )

    @classmethod
    def from_existing(
        cls,
        organization: str,
        project: str,
        name: str,
    ) -> StackIdentifier:
        """Identifier for a stack name reported by the backend.

        Backends list stacks as ``stack``, ``org/stack`` or
        ``org/project/stack``; missing parts come from the arguments.

        Raises:
            BackendError: For any other shape (empty parts, extra levels).
        """
        parts = name.split("/")
        if not all(parts) or len(parts) > 3:
            raise BackendError(f"unrecognized stack name {name!r}")
        if len(parts) == 3:
            return cls(organization=parts[0], project=parts[1], stack_name=parts[2])
        if len(parts) == 2:
            return cls(organization=parts[0], project=project, stack_name=parts[1])
        return cls(organization=organization, project=project, stack_name=name)

    def __str__(self) -> str:
        return self.fqsn


class StackTarget(BaseModel):
    """One environment paired with the stack to operate on."""

    environment: str
    stack: StackIdentifier


class ExistingStackIndex(BaseModel):
    """Environment name → names of stacks already bound to it.

    Built once before any operation runs, read-only afterwards.
    After ``validate()`` every environment maps to at most one stack.
    """

    bindings: dict[str, list[str]] = Field(default_factory=dict)

    def add(self, environment: str, stack_name: str) -> None:
        stacks = self.bindings.setdefault(environment, [])
        if stack_name not in stacks:
            stacks.append(stack_name)

    def stacks_for(self, environment: str) -> list[str]:
        return list(self.bindings.get(environment, []))

    def validate(self) -> None:
        """Enforce one stack per environment.

        Raises:
            AmbiguousStackBindingError: On the first environment bound
                to more than one stack.
        """
        for environment, stacks in self.bindings.items():
            if len(stacks) > 1:
                raise AmbiguousStackBindingError(environment, stacks)

    def __len__(self) -> int:
        return len(self.bindings)
