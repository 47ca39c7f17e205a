"""
Environment selection — enumerate an org's environments and keep the
ones whose config matches a selector.

Enumeration is a setup-phase call: a backend failure propagates.
Filtering fans out one lookup per environment; a failed lookup only
drops that environment.
"""

from __future__ import annotations

import logging

from paralumi.adapters.base import ConfigStore
from paralumi.core.context import RunContext
from paralumi.core.engine.task_group import TaskGroup
from paralumi.core.models.operation import OperationFailure
from paralumi.core.models.selector import DEFAULT_NAMESPACE, ConfigSelector
from paralumi.core.observability.diagnostics import Diagnostic, DiagnosticSink, LoggingSink
from paralumi.core.observability.logging_config import environment_scope

logger = logging.getLogger(__name__)


def list_environments(store: ConfigStore, org: str, ctx: RunContext) -> list[str]:
    """All environment names in ``org``, in backend order.

    Raises:
        BackendError: If the backend call itself fails.
    """
    envs = [env for env in store.list_environments(org, ctx) if env]
    logger.info("Found %d environments in %s", len(envs), org)
    return envs


def filter_environments(
    store: ConfigStore,
    org: str,
    envs: list[str],
    selector: ConfigSelector,
    ctx: RunContext,
    *,
    namespace: str = DEFAULT_NAMESPACE,
    max_workers: int | None = None,
    sink: DiagnosticSink | None = None,
    failures: list[OperationFailure] | None = None,
) -> list[str]:
    """Environments whose ``<namespace>.<key>`` equals the desired value.

    Lookups run concurrently, so the result is in completion order,
    not input order.

    Args:
        failures: When given, one ``OperationFailure`` is appended per
            environment whose lookup failed.

    Raises:
        OperationCancelled: If the run is cancelled mid-stage.
    """
    sink = sink or LoggingSink(logger)
    path = selector.path(namespace)

    def lookup(env: str) -> str:
        with environment_scope(env):
            return store.get_config_value(org, env, path, ctx)

    group: TaskGroup[str, str] = TaskGroup(lookup, max_workers=max_workers, name="filter")
    matched: list[str] = []

    for outcome in group.run(envs):
        env = outcome.item
        if not outcome.ok:
            sink.emit(Diagnostic(
                message=f"failed to get config {path} for environment {env}: {outcome.error}",
                environment=env,
                stage="filter",
            ))
            if failures is not None:
                failures.append(OperationFailure(
                    environment=env, stage="filter", error=str(outcome.error),
                ))
            continue
        if selector.matches(outcome.value):
            matched.append(env)
        else:
            logger.debug("Environment %s: %s=%r, skipping", env, path, outcome.value)

    logger.info("%d of %d environments match %s", len(matched), len(envs), selector)
    return matched
