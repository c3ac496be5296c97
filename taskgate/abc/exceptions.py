"""abstract module for exceptions"""

from typing import Any


class TaskgateException(Exception):
    """Base class for taskgate related exceptions."""

    def __init__(self, message: str, *args) -> None:
        self.message = message
        super().__init__(message, *args)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, TaskgateException):
            return self.args == other.args
        return NotImplemented

    __hash__ = Exception.__hash__


class InvalidOptionError(TaskgateException):
    """Raise if a queue option has an unsupported value."""

    def __init__(self, key: str, value: Any) -> None:
        super().__init__(f"Invalid value for option '{key}': {value!r}", key)


class QueueAbortedError(TaskgateException):
    """Raise if a queue was terminated by a worker-reported error.

    The original error value is kept in :code:`error`. It is not necessarily an
    exception, a callback-style worker may report any truthy value.
    """

    def __init__(self, queue_name: str, error: Any) -> None:
        self.error = error
        super().__init__(f"Queue '{queue_name}' aborted: {error!r}", queue_name)
