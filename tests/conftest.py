"""
Shared test fixtures and configuration.
"""

from pathlib import Path

import pytest

from paralumi.adapters.mock import MockConfigStore, MockStackEngine
from paralumi.core.context import RunContext


@pytest.fixture
def run_ctx() -> RunContext:
    """A fresh run context with no timeout."""
    return RunContext()


@pytest.fixture
def acme_store() -> MockConfigStore:
    """Scenario A: dev and prod are tier blue, staging is green."""
    return MockConfigStore({
        "dev": {"pulumiConfig.tier": "blue"},
        "staging": {"pulumiConfig.tier": "green"},
        "prod": {"pulumiConfig.tier": "blue"},
    })


@pytest.fixture
def acme_engine() -> MockStackEngine:
    """Engine for project ``proj`` with no existing stacks."""
    return MockStackEngine(project="proj")


@pytest.fixture
def output_root(tmp_path: Path) -> Path:
    """Return a temporary directory for operation output."""
    root = tmp_path / "out"
    root.mkdir()
    return root
