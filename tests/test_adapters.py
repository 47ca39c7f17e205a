"""
Tests for adapters — mocks, the pulumi CLI runner, and the Pulumi
config store / stack engine with the backend patched out.
"""

import io
import subprocess
import threading
import time
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from paralumi.adapters.base import StackHandle
from paralumi.adapters.mock import MockConfigStore, MockStackEngine
from paralumi.adapters.pulumi import cli as pulumi_cli
from paralumi.adapters.pulumi import config_store as pulumi_config_store
from paralumi.adapters.pulumi import stack_engine as pulumi_stack_engine
from paralumi.adapters.pulumi.cli import CommandResult, run_pulumi
from paralumi.adapters.pulumi.config_store import PulumiEnvConfigStore
from paralumi.adapters.pulumi.stack_engine import PulumiStackEngine
from paralumi.core.context import RunContext
from paralumi.core.errors import BackendError, OperationCancelled
from paralumi.core.models import StackIdentifier

DEV = StackIdentifier(organization="acme", project="proj", stack_name="dev-release")

# ── Mock adapters ────────────────────────────────────────────────────


class TestMockConfigStore:
    def test_lookup(self, run_ctx):
        store = MockConfigStore({"dev": {"pulumiConfig.tier": "blue"}})
        assert store.get_config_value("acme", "dev", "pulumiConfig.tier", run_ctx) == "blue"

    def test_missing_key(self, run_ctx):
        store = MockConfigStore({"dev": {}})
        with pytest.raises(BackendError):
            store.get_config_value("acme", "dev", "pulumiConfig.tier", run_ctx)

    def test_set_failure(self, run_ctx):
        store = MockConfigStore({"dev": {"pulumiConfig.tier": "blue"}})
        store.set_failure("dev", "nope")
        with pytest.raises(BackendError, match="nope"):
            store.get_config_value("acme", "dev", "pulumiConfig.tier", run_ctx)


class TestMockStackEngine:
    def test_upsert_is_idempotent(self, run_ctx):
        engine = MockStackEngine()
        engine.upsert_stack(DEV, run_ctx)
        engine.upsert_stack(DEV, run_ctx)
        assert engine.list_stacks(run_ctx) == ["dev-release"]

    def test_double_bind_errors(self, run_ctx):
        engine = MockStackEngine()
        engine.bind_environment(DEV, "dev", run_ctx)
        with pytest.raises(BackendError):
            engine.bind_environment(DEV, "dev", run_ctx)

    def test_bound_environments_by_fqsn(self, run_ctx):
        engine = MockStackEngine(stacks={"dev-release": ["dev"]})
        assert engine.list_bound_environments("acme/proj/dev-release", run_ctx) == ["dev"]
        assert engine.list_bound_environments(DEV, run_ctx) == ["dev"]


# ── pulumi CLI runner ────────────────────────────────────────────────


class _FakePopen:
    """Stands in for subprocess.Popen; ``hang`` never finishes until killed."""

    def __init__(self, stdout="", stderr="", returncode=0, hang=False):
        self._stdout = stdout
        self._stderr = stderr
        self.returncode = returncode
        self.hang = hang
        self.killed = False
        self.command = None

    def __call__(self, command, **kwargs):
        self.command = command
        return self

    def communicate(self, timeout=None):
        if self.hang and not self.killed:
            raise subprocess.TimeoutExpired(self.command, timeout)
        return self._stdout, self._stderr

    def kill(self):
        self.killed = True
        self.returncode = -9


class TestRunPulumi:
    def test_success(self, monkeypatch, run_ctx):
        fake = _FakePopen(stdout="dev\nprod\n")
        monkeypatch.setattr(pulumi_cli.subprocess, "Popen", fake)
        result = run_pulumi(["env", "ls"], run_ctx)
        assert result.stdout == "dev\nprod\n"
        assert fake.command == ["pulumi", "env", "ls", "--non-interactive"]

    def test_nonzero_exit(self, monkeypatch, run_ctx):
        monkeypatch.setattr(
            pulumi_cli.subprocess, "Popen",
            _FakePopen(stdout="partial", stderr="error: unauthorized", returncode=255),
        )
        with pytest.raises(BackendError) as exc_info:
            run_pulumi(["env", "ls"], run_ctx)
        err = exc_info.value
        assert err.code == 255
        assert err.stdout == "partial"
        assert err.stderr == "error: unauthorized"
        assert "code: 255" in str(err)

    def test_binary_missing(self, monkeypatch, run_ctx):
        def boom(*args, **kwargs):
            raise FileNotFoundError("pulumi")

        monkeypatch.setattr(pulumi_cli.subprocess, "Popen", boom)
        with pytest.raises(BackendError, match="not found"):
            run_pulumi(["env", "ls"], run_ctx)

    def test_cancelled_before_start(self, monkeypatch):
        fake = _FakePopen(hang=True)
        monkeypatch.setattr(pulumi_cli.subprocess, "Popen", fake)
        ctx = RunContext()
        ctx.cancel()
        with pytest.raises(OperationCancelled):
            run_pulumi(["env", "ls"], ctx)

    def test_cancel_while_waiting(self, monkeypatch):
        ctx = RunContext()
        fake = _FakePopen(hang=True)

        def communicate(timeout=None):
            ctx.cancel()
            if not fake.killed:
                raise subprocess.TimeoutExpired(fake.command, timeout)
            return "", ""

        fake.communicate = communicate
        monkeypatch.setattr(pulumi_cli.subprocess, "Popen", fake)
        with pytest.raises(OperationCancelled):
            run_pulumi(["env", "get"], ctx)
        assert fake.killed

    def test_timeout(self, monkeypatch):
        fake = _FakePopen(hang=True)
        monkeypatch.setattr(pulumi_cli.subprocess, "Popen", fake)
        ctx = RunContext(timeout=0.01)
        clock = iter([0.0, 5.0])
        monkeypatch.setattr(pulumi_cli, "time", SimpleNamespace(monotonic=lambda: next(clock)))
        with pytest.raises(BackendError, match="timed out"):
            run_pulumi(["env", "get"], ctx)
        assert fake.killed


class TestPulumiAvailable:
    def test_found_on_path(self, monkeypatch):
        monkeypatch.setattr(pulumi_cli.shutil, "which", lambda name: f"/usr/bin/{name}")
        assert PulumiEnvConfigStore().is_available()
        assert PulumiStackEngine(workspace=MagicMock()).is_available()

    def test_missing(self, monkeypatch):
        monkeypatch.setattr(pulumi_cli.shutil, "which", lambda name: None)
        assert not PulumiEnvConfigStore().is_available()
        assert not PulumiStackEngine(workspace=MagicMock()).is_available()


# ── Pulumi ESC config store ──────────────────────────────────────────


class TestPulumiEnvConfigStore:
    def _patch(self, monkeypatch, stdout="", error=None):
        calls = []

        def fake_run(args, ctx, cwd=".", binary="pulumi"):
            calls.append(args)
            if error:
                raise error
            return CommandResult(stdout=stdout, stderr="", code=0)

        monkeypatch.setattr(pulumi_config_store, "run_pulumi", fake_run)
        return calls

    def test_list_environments(self, monkeypatch, run_ctx):
        calls = self._patch(monkeypatch, stdout="dev\n\nacme/prod\nstaging\n")
        envs = PulumiEnvConfigStore().list_environments("acme", run_ctx)
        assert envs == ["dev", "prod", "staging"]
        assert calls == [["env", "ls", "-o", "acme"]]

    def test_list_empty_output(self, monkeypatch, run_ctx):
        self._patch(monkeypatch, stdout="\n")
        assert PulumiEnvConfigStore().list_environments("acme", run_ctx) == []

    def test_list_failure(self, monkeypatch, run_ctx):
        self._patch(monkeypatch, error=BackendError("pulumi env ls failed", code=1))
        with pytest.raises(BackendError, match="unable to list environments"):
            PulumiEnvConfigStore().list_environments("acme", run_ctx)

    def test_get_string_value(self, monkeypatch, run_ctx):
        calls = self._patch(monkeypatch, stdout='"blue"\n')
        store = PulumiEnvConfigStore()
        assert store.get_config_value("acme", "dev", "pulumiConfig.tier", run_ctx) == "blue"
        assert calls == [["env", "get", "acme/dev", "pulumiConfig.tier", "--value", "json"]]

    @pytest.mark.parametrize("raw, expected", [("3", "3"), ("true", "true"), ('["a"]', '["a"]')])
    def test_get_non_string_value(self, monkeypatch, run_ctx, raw, expected):
        self._patch(monkeypatch, stdout=raw)
        assert PulumiEnvConfigStore().get_config_value("acme", "dev", "p", run_ctx) == expected

    @pytest.mark.parametrize("raw", ["", "null", "not json"])
    def test_get_absent_or_bad_value(self, monkeypatch, run_ctx, raw):
        self._patch(monkeypatch, stdout=raw)
        with pytest.raises(BackendError):
            PulumiEnvConfigStore().get_config_value("acme", "dev", "p", run_ctx)


# ── Pulumi stack engine ──────────────────────────────────────────────


class TestPulumiStackEngine:
    def test_project_and_stacks(self, run_ctx):
        workspace = MagicMock()
        workspace.project_settings.return_value = SimpleNamespace(name="proj")
        workspace.list_stacks.return_value = [SimpleNamespace(name="a"), SimpleNamespace(name="b")]
        workspace.list_environments.return_value = ["dev"]
        engine = PulumiStackEngine(workspace=workspace)

        assert engine.project_name(run_ctx) == "proj"
        assert engine.list_stacks(run_ctx) == ["a", "b"]
        assert engine.list_bound_environments(DEV, run_ctx) == ["dev"]
        workspace.list_environments.assert_called_with("acme/proj/dev-release")

    def test_bind_environment(self, run_ctx):
        workspace = MagicMock()
        PulumiStackEngine(workspace=workspace).bind_environment(DEV, "dev", run_ctx)
        workspace.add_environments.assert_called_once_with("acme/proj/dev-release", "dev")

    def test_sdk_error_becomes_backend_error(self, run_ctx):
        workspace = MagicMock()
        error = RuntimeError("boom")
        error.stdout, error.stderr, error.exit_code = "out", "err", 255
        workspace.list_stacks.side_effect = error
        with pytest.raises(BackendError) as exc_info:
            PulumiStackEngine(workspace=workspace).list_stacks(run_ctx)
        assert exc_info.value.code == 255
        assert exc_info.value.stderr == "err"

    def test_upsert_and_preview(self, monkeypatch, run_ctx):
        native = MagicMock()

        def fake_preview(diff, on_output):
            assert diff is True
            on_output("Previewing update (dev-release)")
            return SimpleNamespace(change_summary={"create": 2, "same": 4})

        native.preview.side_effect = fake_preview
        create_or_select = MagicMock(return_value=native)
        monkeypatch.setattr(
            pulumi_stack_engine, "auto",
            SimpleNamespace(Stack=SimpleNamespace(create_or_select=create_or_select)),
        )
        engine = PulumiStackEngine(workspace=MagicMock())

        handle = engine.upsert_stack(DEV, run_ctx)
        assert handle.native is native
        assert create_or_select.call_args.args[0] == "acme/proj/dev-release"

        sink = io.StringIO()
        summary = engine.preview(handle, sink, run_ctx)
        assert (summary.create, summary.update, summary.destroy) == (2, 0, 0)
        assert sink.getvalue() == "Previewing update (dev-release)\n"

    def test_apply_reads_resource_changes(self, run_ctx):
        native = MagicMock()
        native.up.return_value = SimpleNamespace(
            summary=SimpleNamespace(resource_changes={"update": 1, "delete": 2})
        )
        engine = PulumiStackEngine(workspace=MagicMock())
        summary = engine.apply(StackHandle(DEV, native), io.StringIO(), run_ctx)
        assert (summary.create, summary.update, summary.destroy) == (0, 1, 2)
        assert native.up.call_args.kwargs["diff"] is True

    def test_failed_apply(self, run_ctx):
        native = MagicMock()
        native.up.side_effect = RuntimeError("conflict")
        engine = PulumiStackEngine(workspace=MagicMock())
        with pytest.raises(BackendError, match="conflict"):
            engine.apply(StackHandle(DEV, native), io.StringIO(), run_ctx)

    def test_cancelled_before_call(self):
        ctx = RunContext()
        ctx.cancel()
        native = MagicMock()
        engine = PulumiStackEngine(workspace=MagicMock())
        with pytest.raises(OperationCancelled):
            engine.preview(StackHandle(DEV, native), io.StringIO(), ctx)
        native.preview.assert_not_called()


class _SlowNative:
    """Automation ``Stack`` stand-in whose preview blocks until cancelled."""

    def __init__(self, hold: float = 5.0):
        self._hold = hold
        self._cancelled = threading.Event()
        self.cancel_calls = 0

    def preview(self, diff, on_output):
        self._cancelled.wait(self._hold)
        return SimpleNamespace(change_summary={"create": 1})

    def up(self, diff, on_output):
        return self.preview(diff, on_output)

    def cancel(self):
        self.cancel_calls += 1
        self._cancelled.set()


class TestPulumiStackEngineDeadlines:
    def test_timeout_cancels_update(self):
        native = _SlowNative()
        engine = PulumiStackEngine(workspace=MagicMock())
        started = time.monotonic()
        with pytest.raises(BackendError, match="timed out"):
            engine.apply(StackHandle(DEV, native), io.StringIO(), RunContext(timeout=0.1))
        assert time.monotonic() - started < 2.0
        assert native.cancel_calls == 1

    def test_cancel_while_previewing(self):
        native = _SlowNative()
        ctx = RunContext()
        timer = threading.Timer(0.1, ctx.cancel)
        timer.start()
        try:
            with pytest.raises(OperationCancelled):
                PulumiStackEngine(workspace=MagicMock()).preview(
                    StackHandle(DEV, native), io.StringIO(), ctx,
                )
        finally:
            timer.cancel()
        assert native.cancel_calls == 1

    def test_fast_call_within_timeout(self):
        native = _SlowNative(hold=0.0)
        summary = PulumiStackEngine(workspace=MagicMock()).preview(
            StackHandle(DEV, native), io.StringIO(), RunContext(timeout=5),
        )
        assert summary.create == 1
        assert native.cancel_calls == 0
