"""
Stack resolution — enforce one stack per environment and pick the
stack each selected environment will run against.
"""

from __future__ import annotations

import logging

from paralumi.adapters.base import StackEngine
from paralumi.core.context import RunContext
from paralumi.core.errors import AmbiguousStackBindingError
from paralumi.core.models.stack import ExistingStackIndex, StackIdentifier, StackTarget

logger = logging.getLogger(__name__)


def build_stack_index(
    engine: StackEngine,
    envs: list[str],
    ctx: RunContext,
) -> ExistingStackIndex:
    """Map each selected environment to the stacks already bound to it.

    Queries every stack in the workspace once, sequentially, and keeps
    only bindings to environments in ``envs``.

    Raises:
        BackendError: If listing stacks or their environments fails.
        AmbiguousStackBindingError: If an environment is bound to more
            than one stack.
    """
    selected = set(envs)
    index = ExistingStackIndex()

    for stack_name in engine.list_stacks(ctx):
        for env in engine.list_bound_environments(stack_name, ctx):
            if env in selected:
                index.add(env, stack_name)

    index.validate()
    logger.info("%d of %d environments already have a stack", len(index), len(envs))
    return index


def resolve_stack(
    org: str,
    project: str,
    env: str,
    base_stack_name: str,
    index: ExistingStackIndex,
) -> StackIdentifier:
    """The stack to operate on for one environment."""
    existing = index.stacks_for(env)
    if len(existing) > 1:
        raise AmbiguousStackBindingError(env, existing)
    if existing:
        return StackIdentifier.from_existing(org, project, existing[0])
    return StackIdentifier.for_environment(org, project, env, base_stack_name)


def resolve_stacks(
    org: str,
    project: str,
    envs: list[str],
    base_stack_name: str,
    index: ExistingStackIndex,
) -> list[StackTarget]:
    """Resolve every environment before any operation runs.

    Raises:
        AmbiguousStackBindingError: Aborts the whole resolution.
    """
    targets = [
        StackTarget(
            environment=env,
            stack=resolve_stack(org, project, env, base_stack_name, index),
        )
        for env in envs
    ]
    for target in targets:
        logger.debug("Environment %s → %s", target.environment, target.stack.fqsn)
    return targets
