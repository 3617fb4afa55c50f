"""Shared background task utilities."""

import asyncio
from collections.abc import Coroutine, Iterable
from typing import Any

import structlog

logger = structlog.get_logger(__name__)


def create_background_task(
    coro: Coroutine[Any, Any, Any], *, name: str = ""
) -> asyncio.Task[Any]:
    """Create an asyncio task with exception logging.

    The done-callback always retrieves the exception, so a task whose
    awaiters have all gone away never triggers "exception was never
    retrieved" warnings.
    """
    task: asyncio.Task[Any] = asyncio.create_task(coro, name=name or None)

    def _done(t: asyncio.Task[Any]) -> None:
        if t.cancelled():
            return
        if exc := t.exception():
            logger.warning("Background task failed", task_name=name, error=str(exc))

    task.add_done_callback(_done)
    return task


async def cancel_tasks(tasks: Iterable[asyncio.Task[Any]]) -> int:
    """Cancel unfinished tasks and wait until they settle.

    Returns the number of tasks that were still running.
    """
    pending = [task for task in tasks if not task.done()]
    for task in pending:
        task.cancel()
    if pending:
        await asyncio.gather(*pending, return_exceptions=True)
    return len(pending)
