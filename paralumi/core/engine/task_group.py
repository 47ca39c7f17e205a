"""
Task group — bounded fan-out with a join barrier.

Both fan-out stages (config filtering and stack operations) run one
task per environment through a ``TaskGroup``:

    - every item is submitted before any result is read,
    - ``max_workers=None`` means one worker thread per item,
    - outcomes come back in completion order,
    - ``run()`` returns only after every task has finished, so no caller
      ever sees a partially-populated outcome list.

A task that raises is reported as a failed ``TaskOutcome``; the
exception is never lost and never aborts sibling tasks.  The one
exception that is re-raised after the join is ``OperationCancelled``,
since a cancelled run must stop rather than shrink.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Generic, TypeVar

from paralumi.core.errors import OperationCancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class TaskOutcome(Generic[T, R]):
    """What one task produced: a value or an error, never both."""

    item: T
    value: R | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class TaskGroup(Generic[T, R]):
    """Run ``fn(item)`` for every item concurrently and join.

    Args:
        fn: Called once per item on a worker thread.
        max_workers: Cap on in-flight tasks.  None = one per item.
        name: Thread name prefix, shows up in verbose logs.
    """

    def __init__(
        self,
        fn: Callable[[T], R],
        max_workers: int | None = None,
        name: str = "paralumi",
    ) -> None:
        if max_workers is not None and max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")
        self._fn = fn
        self._max_workers = max_workers
        self._name = name

    def run(self, items: Iterable[T]) -> list[TaskOutcome[T, R]]:
        items = list(items)
        if not items:
            return []

        workers = len(items)
        if self._max_workers is not None:
            workers = min(workers, self._max_workers)

        logger.debug("%s: %d tasks on %d workers", self._name, len(items), workers)

        outcomes: list[TaskOutcome[T, R]] = []
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix=self._name) as pool:
            futures = {pool.submit(self._fn, item): item for item in items}
            for future in as_completed(futures):
                item = futures[future]
                try:
                    outcomes.append(TaskOutcome(item=item, value=future.result()))
                except Exception as exc:
                    outcomes.append(TaskOutcome(item=item, error=exc))

        for outcome in outcomes:
            if isinstance(outcome.error, OperationCancelled):
                raise outcome.error

        return outcomes
