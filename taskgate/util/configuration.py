"""
Configuration
=============

Queue options
-------------

A queue recognizes three options which can be handed over as a mapping on creation
or changed later on through the queue commands.

..  code-block:: python
    :linenos:

    queue = create_queue({"concurrency": 4, "worker": fetch, "callback": on_done})

concurrency
    Maximum number of items handed to the worker at the same time. Must be a
    positive integer. Defaults to :code:`10`.

worker
    Callable that processes one item. Either a plain function with the signature
    :code:`worker(item, done)` which has to call :code:`done()` or
    :code:`done(error)` exactly once, or a coroutine function
    :code:`async def worker(item)` which reports an error by raising.
    Defaults to a worker which completes every item immediately.

callback
    Callable invoked with an optional error once the queue drained or aborted.
    Defaults to a no-op.

Unknown keys are ignored. Values with an unsupported type are ignored as well and
the previous value is kept.

Logger
------

The :code:`LoggerConfig` derives its schema from the python logging module and is
applied with :code:`logging.config.dictConfig`.
"""

import logging
from collections.abc import Mapping
from copy import deepcopy
from logging.config import dictConfig
from typing import Any, Callable

from attrs import asdict, define, evolve, field, fields, validators

from taskgate.abc.exceptions import InvalidOptionError
from taskgate.util.defaults import DEFAULT_CONCURRENCY, DEFAULT_LOG_CONFIG

logger = logging.getLogger("Config")


def noop(*args, **kwargs) -> None:
    """The default completion callback."""


def noop_worker(item: Any, done: Callable) -> None:  # pylint: disable=unused-argument
    """The default worker, completes every item right away."""
    done()


def _is_positive_int(_, attribute, value) -> None:
    # bool is a subclass of int but no sensible concurrency
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise InvalidOptionError(attribute.name, value)


def _is_callable(_, attribute, value) -> None:
    if not callable(value):
        raise InvalidOptionError(attribute.name, value)


@define(kw_only=True, frozen=True)
class QueueOptions:
    """The options of a queue.

    It is frozen, every change produces a new instance through :code:`merge`.
    """

    concurrency: int = field(validator=_is_positive_int, default=DEFAULT_CONCURRENCY)
    """Maximum number of concurrently running workers. Defaults to :code:`10`."""
    worker: Callable = field(validator=_is_callable, default=noop_worker)
    """The worker invoked for every item."""
    callback: Callable = field(validator=_is_callable, default=noop)
    """The completion callback invoked on drain or abort."""

    @classmethod
    def keys(cls) -> tuple[str, ...]:
        """Names of the recognized options."""
        return tuple(attribute.name for attribute in fields(cls))

    @classmethod
    def from_mapping(cls, mapping: Any = None) -> "QueueOptions":
        """Create options from a mapping.

        Unknown keys and invalid values are skipped, so the result always holds a
        complete and valid set of options.
        """
        options = cls()
        if mapping is None:
            return options
        if not isinstance(mapping, Mapping):
            logger.warning("Ignoring options of type %s", type(mapping).__name__)
            return options
        for key in cls.keys():
            if key not in mapping:
                continue
            try:
                options = options.merge(key, mapping[key])
            except InvalidOptionError as error:
                logger.warning("%s, keeping %r", error.message, getattr(options, key))
        return options

    def merge(self, key: str, value: Any) -> "QueueOptions":
        """Return a copy with the option :code:`key` replaced by :code:`value`.

        Raises
        ------
        InvalidOptionError
            If the key is unknown or the value does not pass validation.
        """
        if key not in self.keys():
            raise InvalidOptionError(key, value)
        return evolve(self, **{key: value})

    def snapshot(self) -> dict:
        """Return the options as a new dictionary."""
        return asdict(self, recurse=False)


@define(kw_only=True)
class LoggerConfig:
    """The logger config class.
    The schema for this class is derived from the python logging module:
    https://docs.python.org/3/library/logging.config.html#dictionary-schema-details
    """

    _LOG_LEVELS = (
        logging.NOTSET,  # 0
        logging.DEBUG,  # 10
        logging.INFO,  # 20
        logging.WARNING,  # 30
        logging.ERROR,  # 40
        logging.CRITICAL,  # 50
    )

    version: int = field(validator=validators.instance_of(int), default=1)
    formatters: dict = field(validator=validators.instance_of(dict), factory=dict)
    filters: dict = field(validator=validators.instance_of(dict), factory=dict)
    handlers: dict = field(validator=validators.instance_of(dict), factory=dict)
    disable_existing_loggers: bool = field(validator=validators.instance_of(bool), default=False)
    level: str = field(
        default="INFO",
        validator=[
            validators.instance_of(str),
            validators.in_([logging.getLevelName(level) for level in _LOG_LEVELS]),
        ],
        eq=False,
    )
    """The log level of the root logger. Defaults to :code:`INFO`."""
    format: str = field(default="", validator=validators.instance_of(str), eq=False)
    """The format of the log message as supported by the :code:`TaskgateFormatter`.
    Defaults to :code:`"%(asctime)-15s %(process)-6s %(name)-10s %(levelname)-8s: %(message)s"`.
    """
    datefmt: str = field(default="", validator=validators.instance_of(str), eq=False)
    """The date format of the log message. Defaults to :code:`"%Y-%m-%d %H:%M:%S"`."""
    loggers: dict = field(validator=validators.instance_of(dict), factory=dict)
    """The loggers loglevel configuration, e.g. :code:`{"Queue": {"level": "DEBUG"}}`.
    Loggers are not hierarchical, each queue related module logs under its own name."""

    def __attrs_post_init__(self) -> None:
        self._set_defaults()
        if self.loggers:
            self._set_loggers_levels()
        self.loggers = deepcopy(DEFAULT_LOG_CONFIG["loggers"]) | self.loggers
        self.loggers["root"] = self.loggers["root"] | {"level": self.level}
        formatter = self.formatters.get("taskgate", {})
        if self.format:
            formatter["format"] = self.format
        if self.datefmt:
            formatter["datefmt"] = self.datefmt

    def setup_logging(self) -> None:
        """Apply the logging configuration."""
        log_config = asdict(self)
        for key in ("level", "format", "datefmt"):
            log_config.pop(key)
        dictConfig(log_config)

    def _set_loggers_levels(self) -> None:
        """keeps only the level of the configured loggers."""
        for logger_name, logger_config in self.loggers.items():
            default_logger_config = deepcopy(DEFAULT_LOG_CONFIG["loggers"].get(logger_name, {}))
            if "level" in logger_config:
                default_logger_config.update({"level": logger_config["level"]})
            self.loggers[logger_name] = default_logger_config

    def _set_defaults(self) -> None:
        """resets all keys to the defined defaults except :code:`loggers`."""
        for key, value in DEFAULT_LOG_CONFIG.items():
            if key == "loggers":
                continue
            setattr(self, key, deepcopy(value))
