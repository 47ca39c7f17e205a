"""
Pulumi CLI runner — run ``pulumi`` commands and capture their output.

Every call goes through ``run_pulumi``, which:

    - captures stdout / stderr as text,
    - polls the run context so a cancelled run kills the child promptly,
    - enforces the context's optional timeout,
    - raises ``BackendError`` with the captured output on any failure.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path

from paralumi.core.context import RunContext
from paralumi.core.errors import BackendError, OperationCancelled

logger = logging.getLogger(__name__)

PULUMI_BIN = "pulumi"

# How often a waiting call re-checks cancellation
_POLL_INTERVAL = 0.2


@dataclass
class CommandResult:
    stdout: str
    stderr: str
    code: int


def pulumi_available(binary: str = PULUMI_BIN) -> bool:
    """Check if the pulumi CLI is on PATH."""
    return shutil.which(binary) is not None


def run_pulumi(
    args: list[str],
    ctx: RunContext,
    cwd: Path | str = ".",
    binary: str = PULUMI_BIN,
) -> CommandResult:
    """Run ``pulumi <args>`` and return its output.

    Raises:
        OperationCancelled: If ``ctx`` is cancelled while waiting.
        BackendError: If the binary is missing, the call times out,
            or it exits non-zero.
    """
    ctx.raise_if_cancelled()
    command = [binary, *args, "--non-interactive"]
    logger.debug("Executing: %s (cwd=%s)", " ".join(command), cwd)

    try:
        proc = subprocess.Popen(
            command,
            cwd=str(cwd),
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
        )
    except FileNotFoundError as e:
        raise BackendError(f"pulumi CLI not found: {binary}") from e
    except OSError as e:
        raise BackendError(f"unable to start {binary}: {e}") from e

    started = time.monotonic()
    while True:
        try:
            stdout, stderr = proc.communicate(timeout=_POLL_INTERVAL)
            break
        except subprocess.TimeoutExpired:
            if ctx.cancelled:
                _kill(proc)
                raise OperationCancelled(f"cancelled: {' '.join(command)}")
            if ctx.timeout is not None and time.monotonic() - started > ctx.timeout:
                out, err = _kill(proc)
                raise BackendError(
                    f"{' '.join(args)} timed out after {ctx.timeout}s",
                    stdout=out,
                    stderr=err,
                    code=-1,
                )

    result = CommandResult(stdout=stdout or "", stderr=stderr or "", code=proc.returncode)
    if result.code != 0:
        raise BackendError(
            f"pulumi {' '.join(args)} failed",
            stdout=result.stdout,
            stderr=result.stderr,
            code=result.code,
        )
    return result


def _kill(proc: subprocess.Popen) -> tuple[str, str]:
    proc.kill()
    out, err = proc.communicate()
    return out or "", err or ""
