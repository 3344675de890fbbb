"""
Fire-and-forget background tasks that must not block or fail a request.

Tasks are tracked in a module-level set so the application can drain them on
shutdown (see ``drain_tasks``, called from the FastAPI shutdown hook).
"""

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

logger = logging.getLogger(__name__)

active_tasks: set[asyncio.Task[Any]] = set()


def schedule_task(
    coro: Coroutine[Any, Any, Any],
    name: str = "background",
    error_callback: Callable[[Exception], None] | None = None,
) -> asyncio.Task[Any]:
    """
    Schedule a coroutine on the running loop without awaiting it.

    Args:
        coro: The coroutine to run.
        name: Label used in log lines.
        error_callback: Called with the exception if the task fails. Failures
            are always logged; they never propagate to the scheduler.
    """
    task: asyncio.Task[Any] = asyncio.create_task(coro, name=name)
    active_tasks.add(task)

    def handle_completion(t: asyncio.Task[Any]) -> None:
        try:
            t.result()
        except asyncio.CancelledError:
            logger.info(f"Background task {name} cancelled")
        except Exception as e:
            logger.error(f"Background task {name} failed: {e}")
            if error_callback:
                error_callback(e)
        finally:
            active_tasks.discard(t)

    task.add_done_callback(handle_completion)
    return task


async def drain_tasks(timeout: float = 10.0) -> None:
    """Await pending tasks, cancelling whatever is still running after ``timeout``."""
    if not active_tasks:
        return
    tasks = list(active_tasks)
    logger.info(f"Awaiting {len(tasks)} pending background tasks...")
    done, pending = await asyncio.wait(tasks, timeout=timeout)
    for task in pending:
        task.cancel()
    if pending:
        logger.warning(f"Cancelled {len(pending)} background tasks at shutdown ({len(done)} completed)")
