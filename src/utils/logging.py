"""Structured logging for the ingestion service.

Importing this module configures structlog. Output is pretty-printed when
BUILDERS_ENVIRONMENT is 'local' and JSON everywhere else, so New Relic and the
log pipeline can index fields.

```
from src.utils.logging import LogContext, get_logger

logger = get_logger(__name__)

with LogContext(provider="stripe", organization_id="org_123"):
    logger.info("Webhook received", payload_size=512)
```

Context bound with LogContext (or add_log_context) is merged into every log line
emitted in the same async context, including lines from stdlib `logging` loggers,
which are routed through the same formatter.
"""

from __future__ import annotations

import logging
import os
from typing import Any

import structlog
import structlog.contextvars

from src.utils.config import get_builders_environment
from src.utils.newrelic_logging import newrelic_error_processor


def _get_log_renderer() -> structlog.types.Processor:
    """Pick the final renderer.

    LOG_RENDERER=console|json overrides the environment-based default.
    """
    log_renderer = os.getenv("LOG_RENDERER", "").lower()
    if log_renderer == "console":
        use_console = True
    elif log_renderer == "json":
        use_console = False
    else:
        use_console = get_builders_environment() == "local"

    if use_console:
        return structlog.dev.ConsoleRenderer(
            colors=True,
            pad_event=0,
            force_colors=False,
            repr_native_str=False,
            exception_formatter=structlog.dev.plain_traceback,
            sort_keys=True,
            event_key="message",
        )
    return structlog.processors.JSONRenderer()


def configure_logging() -> None:
    """Configure structlog and route the root stdlib logger through it."""
    common_processors: list[structlog.types.Processor] = [
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.contextvars.merge_contextvars,
        newrelic_error_processor,
        structlog.processors.EventRenamer("message"),  # New Relic expects 'message'
        structlog.stdlib.filter_by_level,  # Must come after add_log_level
    ]

    structlog.configure(
        processors=common_processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # stdlib loggers filter by level themselves, and filter_by_level expects a structlog logger
    foreign_processors = [p for p in common_processors if p != structlog.stdlib.filter_by_level]
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=_get_log_renderer(),
            foreign_pre_chain=foreign_processors,
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(stream_handler)

    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    numeric_log_level = getattr(logging, log_level, logging.INFO)
    root_logger.setLevel(numeric_log_level)

    if numeric_log_level <= logging.DEBUG:
        for logger_name in ["uvicorn", "uvicorn.access", "uvicorn.error", "apscheduler"]:
            library_logger = logging.getLogger(logger_name)
            if library_logger.level > numeric_log_level:
                library_logger.setLevel(numeric_log_level)


configure_logging()


def add_log_context(**kwargs: Any) -> None:
    """Bind values into the logging context for the rest of the current async context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_log_context() -> None:
    """Clear all values from the logging context."""
    structlog.contextvars.clear_contextvars()


# Context manager binding values for the duration of a `with` block
LogContext = structlog.contextvars.bound_contextvars


def get_logger(name: str, **kwargs: Any) -> structlog.BoundLogger:
    """Get a structlog logger, optionally with initial bound values.

    Args:
        name: Logger name (usually __name__ from the calling module)
    """
    return structlog.get_logger(name, **kwargs)


def get_uvicorn_log_config() -> dict[str, Any]:
    """Uvicorn dictConfig that renders access and error logs like application logs."""
    handler_names = ["default"]
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "()": structlog.stdlib.ProcessorFormatter,
                "processor": _get_log_renderer(),
                "foreign_pre_chain": [
                    structlog.stdlib.add_log_level,
                    structlog.stdlib.add_logger_name,
                    structlog.processors.TimeStamper(fmt="iso"),
                    structlog.processors.EventRenamer("message"),
                ],
            },
        },
        "handlers": {
            "default": {
                "formatter": "default",
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {
            name: {"handlers": handler_names, "level": "INFO", "propagate": False}
            for name in ("", "uvicorn", "uvicorn.access", "uvicorn.error")
        },
    }
