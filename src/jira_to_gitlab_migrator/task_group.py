"""Bounded fan-out/fan-in execution of fallible tasks."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

logger: logging.Logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 5


class BoundedTaskGroup:
    """Runs zero-argument tasks with at most ``limit`` of them in flight.

    ``run()`` blocks until every submitted task has finished, even after one
    failed: tasks already started may have issued remote writes, and those
    are not cancelled. The first exception in completion order is re-raised;
    later ones are logged and discarded.

    Each group is one phase barrier. Use a new ``run()`` call per phase.
    """

    limit: int
    name: str

    def __init__(self, limit: int = DEFAULT_LIMIT, name: str = "tasks") -> None:
        if limit < 1:
            msg = f"Concurrency limit must be at least 1, got {limit}"
            raise ValueError(msg)
        self.limit = limit
        self.name = name

    def run(self, tasks: Iterable[Callable[[], object]]) -> None:
        """Run all tasks and wait for them.

        Raises:
            Exception: The first exception raised by any task
        """
        task_list = list(tasks)
        if not task_list:
            return

        first_error: BaseException | None = None
        with ThreadPoolExecutor(max_workers=min(self.limit, len(task_list)), thread_name_prefix=self.name) as pool:
            futures: list[Future[object]] = [pool.submit(task) for task in task_list]
            for future in as_completed(futures):
                error = future.exception()
                if error is None:
                    continue
                if first_error is None:
                    first_error = error
                else:
                    logger.debug(f"Discarding additional {self.name} error: {error}")

        if first_error is not None:
            raise first_error
        logger.debug(f"Completed {len(task_list)} {self.name}")
