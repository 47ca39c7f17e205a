"""
Pulumi ESC config store — environments via the ``pulumi env`` CLI.

    pulumi env ls -o ORG                       → one environment per line
    pulumi env get ORG/ENV PATH --value json   → JSON-encoded value
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from paralumi.adapters.base import ConfigStore
from paralumi.adapters.pulumi.cli import PULUMI_BIN, pulumi_available, run_pulumi
from paralumi.core.context import RunContext
from paralumi.core.errors import BackendError

logger = logging.getLogger(__name__)


class PulumiEnvConfigStore(ConfigStore):
    """Config Store backed by Pulumi ESC environments."""

    def __init__(self, work_dir: Path | str = ".", binary: str = PULUMI_BIN) -> None:
        self._work_dir = Path(work_dir)
        self._binary = binary

    @property
    def name(self) -> str:
        return "pulumi-env"

    def is_available(self) -> bool:
        return pulumi_available(self._binary)

    def list_environments(self, org: str, ctx: RunContext) -> list[str]:
        try:
            result = run_pulumi(["env", "ls", "-o", org], ctx, cwd=self._work_dir, binary=self._binary)
        except BackendError as e:
            e.message = f"unable to list environments for {org}: {e.message}"
            raise

        envs: list[str] = []
        for line in result.stdout.splitlines():
            name = line.strip()
            if not name:
                continue
            # Newer CLIs print qualified names (org/env or org/project/env)
            if name.startswith(f"{org}/"):
                name = name[len(org) + 1:]
            envs.append(name)

        logger.debug("Found %d environments in %s", len(envs), org)
        return envs

    def get_config_value(self, org: str, env: str, path: str, ctx: RunContext) -> str:
        args = ["env", "get", f"{org}/{env}", path, "--value", "json"]
        try:
            result = run_pulumi(args, ctx, cwd=self._work_dir, binary=self._binary)
        except BackendError as e:
            e.message = f"unable to get config value {path} for {org}/{env}: {e.message}"
            raise

        raw = result.stdout.strip()
        if not raw:
            raise BackendError(
                f"{path} not set in {org}/{env}",
                stdout=result.stdout,
                stderr=result.stderr,
                code=result.code,
            )
        try:
            value = json.loads(raw)
        except json.JSONDecodeError as e:
            raise BackendError(
                f"unable to decode config value {path} for {org}/{env}: {e}",
                stdout=result.stdout,
                stderr=result.stderr,
                code=result.code,
            ) from e

        if value is None:
            raise BackendError(f"{path} not set in {org}/{env}", stdout=result.stdout, code=result.code)
        if isinstance(value, str):
            return value
        # Non-string values compare by their JSON text: 3, true, ["a"]
        return json.dumps(value, separators=(",", ":"))
