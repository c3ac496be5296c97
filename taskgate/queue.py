"""
Queue
=====

A queue hands opaque items to a single worker and caps the number of workers
running at the same time. It is meant for throttling asynchronous work like
network calls without writing semaphore logic around it.

..  code-block:: python
    :linenos:

    async def fetch(url):
        async with session.get(url) as response:
            response.raise_for_status()

    queue = create_queue({"concurrency": 4, "worker": fetch})
    for url in urls:
        queue.add(url)
    queue.close()
    await queue.join()

Items are dispatched in the order they were added. Dispatching always happens on
the event loop, never inside the call to :code:`add`. Once the queue is closed and
all items are processed, the completion callback is invoked without an error.

The first error reported by a worker aborts the queue: it gets closed, all pending
items are discarded and the completion callback receives the error. Items that are
still running at that moment finish, but do not cause another callback. The
callback fires at most once per epoch, a new epoch starts by reopening the queue
with :code:`open`.
"""

import asyncio
import functools
import inspect
import logging
import threading
import time
from collections import deque
from collections.abc import Mapping
from typing import Any, Callable

from attrs import asdict, define, field
from prometheus_client import CollectorRegistry

from taskgate.abc.exceptions import InvalidOptionError, QueueAbortedError
from taskgate.metrics.metrics import CounterMetric, GaugeMetric, HistogramMetric, Metric
from taskgate.util.async_helpers import cancel_tasks_and_wait, create_task
from taskgate.util.configuration import QueueOptions
from taskgate.util.defaults import DEFAULT_QUEUE_NAME, DEFAULT_SHUTDOWN_TIMEOUT

logger = logging.getLogger("Queue")


class _Completion:
    """The :code:`done` handle given to a callback style worker for one item."""

    __slots__ = ("_queue", "_epoch", "_started", "_called")

    def __init__(self, queue: "Queue", epoch: int, started: float) -> None:
        self._queue = queue
        self._epoch = epoch
        self._started = started
        self._called = False

    @property
    def called(self) -> bool:
        """Tell if the worker already reported the completion."""
        return self._called

    def __call__(self, error: Any = None) -> None:
        if self._called:
            logger.warning(
                "Worker of queue '%s' reported completion twice for one item, ignoring %r",
                self._queue.name,
                error,
            )
            return
        self._called = True
        self._queue._complete(self._epoch, self._started, error)  # pylint: disable=protected-access


class Queue:
    """Bounded concurrency queue for a single worker."""

    @define(kw_only=True)
    class Metrics:
        """Metrics to track and expose statistics about a queue"""

        _labels: dict
        _registry: CollectorRegistry | None = field(default=None)

        number_of_added_items: CounterMetric = field(
            factory=lambda: CounterMetric(
                description="Number of items accepted by the queue",
                name="number_of_added_items",
            )
        )
        """Number of items accepted by the queue"""
        number_of_processed_items: CounterMetric = field(
            factory=lambda: CounterMetric(
                description="Number of items the worker completed without error",
                name="number_of_processed_items",
            )
        )
        """Number of items the worker completed without error"""
        number_of_failed_items: CounterMetric = field(
            factory=lambda: CounterMetric(
                description="Number of items the worker reported an error for",
                name="number_of_failed_items",
            )
        )
        """Number of items the worker reported an error for"""
        number_of_dropped_items: CounterMetric = field(
            factory=lambda: CounterMetric(
                description="Number of items refused while closed or discarded before dispatch",
                name="number_of_dropped_items",
            )
        )
        """Number of items refused while closed or discarded before dispatch"""
        number_of_running_items: GaugeMetric = field(
            factory=lambda: GaugeMetric(
                description="Number of items currently handed to the worker",
                name="number_of_running_items",
            )
        )
        """Number of items currently handed to the worker"""
        number_of_pending_items: GaugeMetric = field(
            factory=lambda: GaugeMetric(
                description="Number of items waiting for dispatch",
                name="number_of_pending_items",
            )
        )
        """Number of items waiting for dispatch"""
        processing_time_per_item: HistogramMetric = field(
            factory=lambda: HistogramMetric(
                description="Time in seconds from dispatch to completion of an item",
                name="processing_time_per_item",
            )
        )
        """Time in seconds from dispatch to completion of an item"""

        def __attrs_post_init__(self):
            for attribute in asdict(self, recurse=False).values():
                if isinstance(attribute, Metric):
                    attribute.labels = self._labels
                    attribute._registry = self._registry  # pylint: disable=protected-access
                    attribute.init_tracker()

    def __init__(
        self,
        options: Any = None,
        name: str = DEFAULT_QUEUE_NAME,
        loop: asyncio.AbstractEventLoop | None = None,
        registry: CollectorRegistry | None = None,
    ) -> None:
        self.name = name
        self._options = QueueOptions.from_mapping(options)
        self._loop = loop
        self._lock = threading.RLock()
        self._pending: deque = deque()
        self._running = 0
        self._closed = False
        self._dispatching = False
        self._epoch = 0
        self._finished = False
        self._error: Any = None
        self._waiters: list[asyncio.Future] = []
        self._tasks: set[asyncio.Task] = set()
        self.metrics = self.Metrics(labels={"queue": name}, registry=registry)

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return (
            f"<Queue {self.name!r} {state} running={self._running} "
            f"pending={len(self._pending)} concurrency={self.concurrency}>"
        )

    @property
    def worker(self) -> Callable:
        """The worker invoked for every item."""
        return self._options.worker

    @property
    def callback(self) -> Callable:
        """The completion callback."""
        return self._options.callback

    @property
    def concurrency(self) -> int:
        """Maximum number of concurrently running workers."""
        return self._options.concurrency

    @property
    def options(self) -> dict:
        """A snapshot of the current options. Changing it does not affect the queue."""
        return self._options.snapshot()

    @property
    def running(self) -> int:
        """Number of items handed to the worker and not yet completed."""
        return self._running

    @property
    def pending(self) -> int:
        """Number of items waiting for dispatch."""
        return len(self._pending)

    def set_worker(self, worker: Callable) -> "Queue":
        """Set the worker, a non callable value is ignored."""
        return self._set_option("worker", worker)

    def set_callback(self, callback: Callable) -> "Queue":
        """Set the completion callback, a non callable value is ignored."""
        return self._set_option("callback", callback)

    def set_concurrency(self, concurrency: int) -> "Queue":
        """Set the concurrency limit, values other than positive integers are ignored.

        A raised limit is filled up with pending items on the next dispatch attempt.
        """
        self._set_option("concurrency", concurrency)
        self._schedule_work()
        return self

    def set_options(self, options: Any) -> "Queue":
        """Apply every recognized option found in :code:`options`."""
        if not isinstance(options, Mapping):
            logger.warning(
                "Queue '%s' ignores options of type %s", self.name, type(options).__name__
            )
            return self
        for key in QueueOptions.keys():
            if key in options:
                getattr(self, f"set_{key}")(options[key])
        return self

    def _set_option(self, key: str, value: Any) -> "Queue":
        with self._lock:
            try:
                self._options = self._options.merge(key, value)
            except InvalidOptionError as error:
                logger.warning("Queue '%s': %s, option is left unchanged", self.name, error.message)
        return self

    def add(self, item: Any) -> "Queue":
        """Append an item, it is dropped if the queue is closed.

        The dispatch attempt is scheduled on the event loop.
        """
        with self._lock:
            if self._closed:
                logger.debug("Queue '%s' is closed, dropping item", self.name)
                self.metrics.number_of_dropped_items += 1
                return self
            self._pending.append(item)
            self.metrics.number_of_added_items += 1
            self.metrics.number_of_pending_items += len(self._pending)
        self._schedule_work()
        return self

    def clear(self) -> "Queue":
        """Discard all pending items. Running items are not affected."""
        with self._lock:
            self._discard_pending()
        return self

    def open(self) -> "Queue":
        """(Re-)open the queue and resume dispatching.

        If the previous epoch has already ended, a new one starts and the completion
        callback may fire again.
        """
        with self._lock:
            self._closed = False
            if self._finished:
                self._epoch += 1
                self._finished = False
                self._error = None
                logger.debug("Queue '%s' reopened, starting epoch %d", self.name, self._epoch)
        self._schedule_work()
        return self

    def close(self) -> "Queue":
        """Refuse further items. Fires the completion callback if nothing is left to do."""
        notify = None
        with self._lock:
            self._closed = True
            if not self._running and not self._pending:
                notify = self._finish()
        if notify is not None:
            notify()
        return self

    def is_closed(self) -> bool:
        """Tell if the queue refuses new items."""
        return self._closed

    async def join(self) -> None:
        """Wait for the current epoch to end.

        Raises
        ------
        QueueAbortedError
            If a worker reported an error. The reported value is available as
            :code:`error` of the exception.
        """
        waiter = None
        with self._lock:
            if self._finished:
                error = self._error
            else:
                waiter = asyncio.get_running_loop().create_future()
                self._waiters.append(waiter)
        if waiter is not None:
            error = await waiter
        if error:
            cause = error if isinstance(error, BaseException) else None
            raise QueueAbortedError(self.name, error) from cause

    async def shut_down(self, timeout_s: float = DEFAULT_SHUTDOWN_TIMEOUT) -> None:
        """Close the queue, discard pending items and stop running coroutine workers.

        Coroutine workers get :code:`timeout_s` seconds to finish, the remaining ones are
        cancelled. Callback style workers can not be cancelled and keep their slots.
        """
        notify = None
        with self._lock:
            self._closed = True
            self._discard_pending()
            if not self._running:
                notify = self._finish()
        if notify is not None:
            notify()
        current_task = asyncio.current_task()
        tasks = [task for task in self._tasks if task is not current_task]
        if not tasks:
            return
        logger.debug("Waiting for termination of %d workers of queue '%s'", len(tasks), self.name)
        _, unfinished = await asyncio.wait(tasks, timeout=timeout_s)
        if unfinished:
            logger.warning(
                "[%d/%d] workers of queue '%s' did not finish in time. Cancelling",
                len(unfinished),
                len(tasks),
                self.name,
            )
            await cancel_tasks_and_wait(list(unfinished), timeout_s)

    def _discard_pending(self) -> None:
        if self._pending:
            logger.debug("Queue '%s' discards %d pending items", self.name, len(self._pending))
            self.metrics.number_of_dropped_items += len(self._pending)
            self._pending.clear()
            self.metrics.number_of_pending_items += len(self._pending)

    def _get_loop(self) -> asyncio.AbstractEventLoop | None:
        """The loop to dispatch on. A closed loop is replaced by the running one, if any."""
        if self._loop is None or self._loop.is_closed():
            try:
                self._loop = asyncio.get_running_loop()
            except RuntimeError:
                self._loop = None
        return self._loop

    def _schedule_work(self) -> None:
        loop = self._get_loop()
        if loop is None:
            logger.debug("No event loop available, dispatch of queue '%s' deferred", self.name)
            return
        loop.call_soon_threadsafe(self._work)

    def _work(self) -> None:
        """Dispatch pending items as long as the concurrency limit allows.

        A call while a dispatch is already in progress returns right away, the active
        one keeps filling the window.
        """
        with self._lock:
            if self._dispatching:
                return
            self._dispatching = True
        while True:
            with self._lock:
                if self._running >= self._options.concurrency or not self._pending:
                    self._dispatching = False
                    return
                item = self._pending.popleft()
                self._running += 1
                self.metrics.number_of_pending_items += len(self._pending)
                self.metrics.number_of_running_items += self._running
                worker = self._options.worker
                epoch = self._epoch
            logger.debug("Queue '%s' dispatches item, %d running", self.name, self._running)
            try:
                self._start(worker, item, epoch)
            except BaseException:
                with self._lock:
                    self._dispatching = False
                # completions during this attempt returned early, pick up the rest
                self._schedule_work()
                raise

    def _start(self, worker: Callable, item: Any, epoch: int) -> None:
        started = time.perf_counter()
        if inspect.iscoroutinefunction(worker):
            self._start_task(worker, item, epoch, started)
            return
        done = _Completion(self, epoch, started)
        try:
            worker(item, done)
        except Exception as error:  # pylint: disable=broad-except
            if done.called:
                raise
            logger.error("Worker of queue '%s' raised %r", self.name, error)
            done(error)

    def _start_task(self, worker: Callable, item: Any, epoch: int, started: float) -> None:
        loop = self._get_loop()
        if loop is None:
            self._complete(epoch, started, RuntimeError("no running event loop for worker task"))
            return
        try:
            running_loop = asyncio.get_running_loop()
        except RuntimeError:
            running_loop = None
        if running_loop is not loop:
            loop.call_soon_threadsafe(self._start_task, worker, item, epoch, started)
            return
        try:
            task = create_task(loop, worker(item), owner=self)
        except Exception as error:  # pylint: disable=broad-except
            logger.error("Worker of queue '%s' raised %r", self.name, error)
            self._complete(epoch, started, error)
            return
        self._tasks.add(task)
        task.add_done_callback(functools.partial(self._on_task_done, epoch, started))

    def _on_task_done(self, epoch: int, started: float, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            error: Any = asyncio.CancelledError()
        else:
            error = task.exception()
        self._complete(epoch, started, error)

    def _complete(self, epoch: int, started: float, error: Any) -> None:
        """Book the completion of one item and keep the queue going.

        A failed item releases its slot as well, so a reopened queue starts with the
        full concurrency limit.
        """
        notify = None
        with self._lock:
            self._running -= 1
            self.metrics.number_of_running_items += self._running
            self.metrics.processing_time_per_item += time.perf_counter() - started
            if error:
                self.metrics.number_of_failed_items += 1
                if epoch == self._epoch and not self._finished:
                    notify = self._abort(error)
                else:
                    logger.debug("Queue '%s' ignores error of an already ended epoch", self.name)
            else:
                self.metrics.number_of_processed_items += 1
            if notify is None and self._closed and not self._pending and not self._running:
                notify = self._finish()
        if notify is not None:
            notify()
            return
        self._work()

    def _abort(self, error: Any) -> Callable | None:
        logger.error("Worker of queue '%s' reported an error, aborting: %r", self.name, error)
        self._closed = True
        self._discard_pending()
        return self._finish(error)

    def _finish(self, error: Any = None) -> Callable | None:
        """End the current epoch.

        Returns the completion callback bound to its arguments, the caller invokes it
        after releasing the lock. Returns :code:`None` if the epoch already ended.
        """
        if self._finished:
            return None
        self._finished = True
        self._error = error
        if not error:
            logger.info("Queue '%s' drained", self.name)
        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.get_loop().call_soon_threadsafe(_resolve_waiter, waiter, error)
        if error:
            return functools.partial(self._options.callback, error)
        return self._options.callback


def _resolve_waiter(waiter: asyncio.Future, error: Any) -> None:
    if not waiter.done():
        waiter.set_result(error)


def create_queue(options: Any = None, **kwargs) -> Queue:
    """Create a new open and empty queue.

    Parameters
    ----------
    options : Mapping, optional
        The recognized keys are :code:`concurrency`, :code:`worker` and :code:`callback`,
        unknown keys and invalid values are ignored.
    kwargs :
        Passed on to :class:`Queue`, e.g. :code:`name` or :code:`registry`.
    """
    return Queue(options, **kwargs)
