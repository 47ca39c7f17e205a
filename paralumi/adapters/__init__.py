"""Adapters — backend bindings for the Config Store and Stack Engine.

Public re-exports for convenient access.  The Pulumi adapters are not
re-exported so that importing this package never loads the SDK.
"""

from paralumi.adapters.base import ConfigStore, StackEngine, StackHandle
from paralumi.adapters.mock import MockConfigStore, MockStackEngine

__all__ = [
    "ConfigStore",
    "MockConfigStore",
    "MockStackEngine",
    "StackEngine",
    "StackHandle",
]
