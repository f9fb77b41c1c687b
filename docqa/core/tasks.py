"""Detached background coroutines.

Work spawned here is never awaited by the caller. Failures are logged and
dropped, and nothing guarantees completion before the process exits, so a
detached conversation log is delivered at most once.
"""

import asyncio
import logging
from typing import Any, Coroutine, Set

logger = logging.getLogger(__name__)

# Strong references so running tasks are not garbage collected
_background_tasks: Set[asyncio.Task] = set()


def _on_done(task: asyncio.Task) -> None:
    _background_tasks.discard(task)
    if task.cancelled():
        logger.warning(f"Detached task {task.get_name()} was cancelled")
        return
    exc = task.exception()
    if exc is not None:
        logger.error(f"Detached task {task.get_name()} failed: {exc}", exc_info=exc)


def spawn_detached(coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task:
    """Schedule a coroutine without joining it.

    Args:
        coro: Coroutine to run
        name: Task name used in log lines

    Returns:
        The scheduled task
    """
    task = asyncio.get_running_loop().create_task(coro, name=name)
    _background_tasks.add(task)
    task.add_done_callback(_on_done)
    return task


def pending_tasks() -> int:
    """Number of detached tasks still running."""
    return len(_background_tasks)
