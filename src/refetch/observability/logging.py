"""Structured logging setup for fetch events."""

import logging
import sys
from collections.abc import Mapping
from typing import TextIO

import structlog
from structlog.typing import EventDict, WrappedLogger

from refetch.fetch.redact import redact_headers, redact_url_credentials


# Event keys that hold locators
URL_KEYS = ("url", "from_url", "to_url")


def mask_secrets(
    _logger: WrappedLogger, _method_name: str, event_dict: EventDict
) -> EventDict:
    """Mask credentials in locator and header fields of an event."""
    for key in URL_KEYS:
        value = event_dict.get(key)
        if isinstance(value, str):
            event_dict[key] = redact_url_credentials(value)
    headers = event_dict.get("headers")
    if isinstance(headers, Mapping):
        event_dict["headers"] = redact_headers(headers)
    return event_dict


def configure_logging(
    level: int | str = logging.INFO,
    output: TextIO = sys.stderr,
    json_format: bool | None = None,
) -> None:
    """Configure structlog for fetch events.

    Events carry bound context, the log level and a UTC timestamp, and pass
    through ``mask_secrets`` before rendering.

    Args:
        level: Logging level, as a number or a name such as ``"DEBUG"``.
        output: Output stream (default: stderr).
        json_format: Render JSON lines when True and console output when
            False. By default JSON is used unless ``output`` is a terminal.
    """
    if isinstance(level, str):
        level = logging.getLevelNamesMapping()[level.upper()]
    interactive = output.isatty()
    if json_format is None:
        json_format = not interactive

    renderer: structlog.types.Processor
    if json_format:
        renderer = structlog.processors.JSONRenderer(sort_keys=True)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=interactive)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            mask_secrets,
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=output),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=output, level=level)


def bind_fetch_context(**context: str) -> None:
    """Attach context (e.g. a job or feed name) to all later events."""
    structlog.contextvars.bind_contextvars(**context)


def clear_fetch_context(*keys: str) -> None:
    """Remove bound context; everything is cleared when no keys are given."""
    if keys:
        structlog.contextvars.unbind_contextvars(*keys)
    else:
        structlog.contextvars.clear_contextvars()
