"""A collection of helper utilities for async code"""

import asyncio
from collections.abc import Coroutine
from typing import Any, TypeVar

T = TypeVar("T")


def create_task(
    loop: asyncio.AbstractEventLoop, coroutine: Coroutine[Any, Any, T], owner: Any = None
) -> asyncio.Task[T]:
    """
    Wraps :code:`loop.create_task` to assign a name derived from the owner and the coroutine.

    Parameters
    ----------
    loop : asyncio.AbstractEventLoop
        The loop to schedule the task on
    coroutine : Coroutine[Any, Any, T]
        The coroutine to run
    owner : Any, optional
        Object the task belongs to, its :code:`name` attribute or class name prefixes the
        task name

    Returns
    -------
    asyncio.Task[T]
        The scheduled task
    """
    name = getattr(coroutine, "__qualname__", type(coroutine).__name__)
    if owner is not None:
        name = f"{getattr(owner, 'name', owner.__class__.__name__)}.{name}"
    return loop.create_task(coroutine, name=name)


async def cancel_tasks_and_wait(tasks: list[asyncio.Task[T]], timeout_s: float) -> None:
    """Cancels the given tasks and waits for them to actually stop.
    Raises a :code:`TimeoutError` if timeout expires.

    Parameters
    ----------
    tasks : list[asyncio.Task[T]]
        The tasks to cancel
    timeout_s : float
        The timeout in seconds to wait

    Raises
    ------
    TimeoutError
        Raised if the timeout expires and a task is still not done.
    """
    if not tasks:
        return
    for task in tasks:
        task.cancel()
    _, pending = await asyncio.wait(tasks, timeout=timeout_s)
    if pending:
        names = ", ".join(task.get_name() for task in pending)
        raise TimeoutError(f"Tasks [{names}] did not stop in time after cancellation")
