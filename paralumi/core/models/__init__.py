"""
Domain models — Pydantic types for paralumi.

All models are re-exported here for convenient access:

    from paralumi.core.models import ConfigSelector, StackIdentifier, OperationResult
"""

from paralumi.core.models.operation import (
    ChangeSummary,
    OperationFailure,
    OperationKind,
    OperationResult,
)
from paralumi.core.models.selector import DEFAULT_NAMESPACE, ConfigSelector
from paralumi.core.models.stack import ExistingStackIndex, StackIdentifier, StackTarget

__all__ = [
    "DEFAULT_NAMESPACE",
    # operation.py
    "ChangeSummary",
    # selector.py
    "ConfigSelector",
    # stack.py
    "ExistingStackIndex",
    "OperationFailure",
    "OperationKind",
    "OperationResult",
    "StackIdentifier",
    "StackTarget",
]
