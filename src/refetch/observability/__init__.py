"""Observability module for structured logging."""

from refetch.observability.logging import (
    bind_fetch_context,
    clear_fetch_context,
    configure_logging,
)


__all__ = [
    "bind_fetch_context",
    "clear_fetch_context",
    "configure_logging",
]
