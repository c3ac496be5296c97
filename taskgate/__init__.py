"""taskgate runs opaque work items through a single worker with bounded concurrency."""

from taskgate.abc.exceptions import InvalidOptionError, QueueAbortedError, TaskgateException
from taskgate.queue import Queue, create_queue
from taskgate.util.configuration import LoggerConfig, QueueOptions

__all__ = [
    "InvalidOptionError",
    "LoggerConfig",
    "Queue",
    "QueueAbortedError",
    "QueueOptions",
    "TaskgateException",
    "create_queue",
]
