"""
Error taxonomy — every failure paralumi knows how to report.

Setup-phase errors propagate up to the run use case and abort the run.
Per-environment errors inside a fan-out stage are caught by the stage
and turned into ``OperationFailure`` records instead.
"""

from __future__ import annotations


class ParalumiError(Exception):
    """Base class for all paralumi errors."""


class UsageError(ParalumiError):
    """Missing or malformed command parameters."""


class ConfigError(ParalumiError):
    """Raised when the settings file is invalid or unreadable."""


class BackendError(ParalumiError):
    """A Config Store or Stack Engine call failed.

    Carries the captured output of the underlying command so the
    operator can see what the backend actually said.
    """

    def __init__(
        self,
        message: str,
        stdout: str = "",
        stderr: str = "",
        code: int = -1,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.stdout = stdout
        self.stderr = stderr
        self.code = code

    def __str__(self) -> str:
        return (
            f"{self.message}\n"
            f"code: {self.code}\n"
            f"stdout: {self.stdout}\n"
            f"stderr: {self.stderr}"
        )


class OperationCancelled(BackendError):
    """A backend call was aborted because the run was cancelled."""

    def __init__(self, message: str = "operation cancelled") -> None:
        super().__init__(message)

    def __str__(self) -> str:
        return self.message


class AmbiguousStackBindingError(ParalumiError):
    """More than one existing stack is bound to the same environment."""

    def __init__(self, environment: str, stacks: list[str]) -> None:
        self.environment = environment
        self.stacks = list(stacks)
        super().__init__(
            f"multiple existing stacks {self.stacks} in environment "
            f"{environment!r}: paralumi requires one stack per environment"
        )


class OutputDirectoryError(ParalumiError):
    """The per-operation output directory could not be created."""
