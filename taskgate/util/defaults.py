"""Default values for taskgate."""

DEFAULT_CONCURRENCY = 10
DEFAULT_QUEUE_NAME = "queue"
DEFAULT_SHUTDOWN_TIMEOUT = 5.0
DEFAULT_METRIC_PREFIX = "taskgate_"
DEFAULT_LOG_FORMAT = "%(asctime)-15s %(process)-6s %(name)-10s %(levelname)-8s: %(message)s"
DEFAULT_LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# dictconfig as described in
# https://docs.python.org/3/library/logging.config.html#configuration-dictionary-schema
DEFAULT_LOG_CONFIG: dict = {
    "version": 1,
    "formatters": {
        "taskgate": {
            "class": "taskgate.util.logging.TaskgateFormatter",
            "format": DEFAULT_LOG_FORMAT,
            "datefmt": DEFAULT_LOG_DATE_FORMAT,
        }
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "taskgate",
            "stream": "ext://sys.stdout",
        },
    },
    "loggers": {
        "root": {"level": "INFO", "handlers": ["console"]},
        "asyncio": {"level": "WARNING"},
    },
    "filters": {},
    "disable_existing_loggers": False,
}
