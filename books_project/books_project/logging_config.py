"""
Logging configuration for the books engine.

- LOG_FORMAT: "json" (one JSON object per line) or "console"
- LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO, DEBUG when debugging)
"""
import json
import logging
import os
from datetime import datetime, timezone

# Attributes every LogRecord has; anything else came in through `extra=`
_STANDARD_ATTRS = frozenset({
    "name", "msg", "args", "levelname", "levelno", "pathname",
    "filename", "module", "lineno", "funcName", "created",
    "msecs", "relativeCreated", "thread", "threadName", "taskName",
    "processName", "process", "exc_info", "exc_text", "stack_info",
    "message",
})


def get_logging_config(debug: bool = False) -> dict:
    """Build the Django LOGGING dict."""
    log_level = os.environ.get("LOG_LEVEL", "DEBUG" if debug else "INFO")
    log_format = os.environ.get("LOG_FORMAT", "console" if debug else "json")

    if log_format == "json":
        formatters = {"default": {"()": "books_project.logging_config.JsonFormatter"}}
    else:
        formatters = {
            "default": {
                "format": "[{asctime}] {levelname} {name} {message}",
                "style": "{",
            },
        }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": formatters,
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
            },
            "null": {"class": "logging.NullHandler"},
        },
        "loggers": {
            "": {"handlers": ["console"], "level": log_level},
            "django": {"handlers": ["console"], "level": log_level, "propagate": False},
            "django.db.backends": {
                "handlers": ["console"] if debug else ["null"],
                "level": "DEBUG" if debug else "INFO",
                "propagate": False,
            },
            # engine loggers: posting, stock, state changes, ledger checks
            "books_core": {"handlers": ["console"], "level": log_level, "propagate": False},
            "celery": {"handlers": ["console"], "level": log_level, "propagate": False},
        },
    }


class JsonFormatter(logging.Formatter):
    """JSON lines: timestamp, level, logger, message, location, exception, extra."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            },
        }
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        extras = {}
        for key, value in record.__dict__.items():
            if key in _STANDARD_ATTRS:
                continue
            try:
                json.dumps(value)
                extras[key] = value
            except (TypeError, ValueError):
                extras[key] = str(value)
        if extras:
            log_entry["extra"] = extras

        return json.dumps(log_entry, default=str)
