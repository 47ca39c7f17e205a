"""
Tests for observability — logging setup and diagnostic sinks.
"""

import logging
import threading

import pytest

from paralumi.adapters.mock import MockStackEngine
from paralumi.core.context import RunContext
from paralumi.core.engine.executor import execute_operations
from paralumi.core.models import OperationKind, StackIdentifier, StackTarget
from paralumi.core.observability.diagnostics import (
    CollectingSink,
    Diagnostic,
    LoggingSink,
)
from paralumi.core.observability.logging_config import (
    EnvironmentFilter,
    _parse_level,
    environment_scope,
    resolve_level,
    setup_logging,
)


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


class TestLoggingConfig:
    def test_parse_level(self):
        assert _parse_level("debug") == logging.DEBUG
        assert _parse_level("bogus") == logging.WARNING
        assert _parse_level(None) == logging.WARNING

    def test_resolve_level_precedence(self):
        assert resolve_level(debug=True, verbose=True) == "DEBUG"
        assert resolve_level(verbose=True) == "INFO"
        assert resolve_level(quiet=True) == "ERROR"
        assert resolve_level(env_level="INFO") == "INFO"
        assert resolve_level() == "WARNING"

    def test_single_console_handler(self, restore_root_logger):
        setup_logging("INFO")
        setup_logging("INFO")
        assert len(logging.getLogger().handlers) == 1
        assert logging.getLogger().level == logging.INFO

    def test_third_party_quieted(self, restore_root_logger):
        setup_logging("INFO")
        assert logging.getLogger("pulumi").level == logging.WARNING

    def test_log_file(self, tmp_path, restore_root_logger):
        log_file = tmp_path / "paralumi.log"
        setup_logging("WARNING", log_file=str(log_file), log_file_level="DEBUG")
        logging.getLogger("paralumi.test").debug("to the file only")
        for handler in logging.getLogger().handlers:
            handler.flush()
        assert "to the file only" in log_file.read_text()
        assert logging.getLogger().level == logging.DEBUG


    def test_environment_tag(self, tmp_path, restore_root_logger):
        log_file = tmp_path / "paralumi.log"
        setup_logging("WARNING", log_file=str(log_file), log_file_level="DEBUG")
        log = logging.getLogger("paralumi.test")
        with environment_scope("prod"):
            log.debug("inside the worker")
        log.debug("outside any worker")
        for handler in logging.getLogger().handlers:
            handler.flush()
        lines = log_file.read_text().splitlines()
        inside = next(line for line in lines if "inside the worker" in line)
        outside = next(line for line in lines if "outside any worker" in line)
        assert " prod]" in inside
        assert " -]" in outside

    def test_workers_tag_their_environment(self, tmp_path, caplog):
        caplog.handler.addFilter(EnvironmentFilter())
        targets = [
            StackTarget(
                environment=env,
                stack=StackIdentifier.for_environment("acme", "proj", env, "release"),
            )
            for env in ("dev", "prod")
        ]
        with caplog.at_level(logging.INFO, logger="paralumi.core.engine.executor"):
            execute_operations(
                OperationKind.PREVIEW, targets, MockStackEngine(), RunContext(),
                output_root=tmp_path,
            )
        running = [r for r in caplog.records if r.getMessage().startswith("Running")]
        assert sorted(r.environment for r in running) == ["dev", "prod"]
        for record in running:
            assert f"in env {record.environment}" in record.getMessage()

class TestSinks:
    def test_collecting_sink(self):
        sink = CollectingSink()
        sink.emit(Diagnostic(message="a", environment="dev"))
        sink.emit(Diagnostic(message="b", environment="prod"))
        assert [d.message for d in sink.events] == ["a", "b"]
        assert sink.for_environment("prod")[0].message == "b"

    def test_collecting_sink_threads(self):
        sink = CollectingSink()

        def emit_many(n):
            for i in range(50):
                sink.emit(Diagnostic(message=f"{n}-{i}"))

        threads = [threading.Thread(target=emit_many, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(sink.events) == 400

    def test_logging_sink(self, caplog):
        with caplog.at_level(logging.WARNING):
            LoggingSink(logging.getLogger("paralumi.test")).emit(
                Diagnostic(message="failed for environment prod")
            )
        assert "failed for environment prod" in caplog.text

    def test_to_dict(self):
        d = Diagnostic(message="m", environment="dev", stage="filter").to_dict()
        assert d == {
            "level": "warning",
            "message": "m",
            "environment": "dev",
            "stack": None,
            "stage": "filter",
        }
