"""Shared, deterministic timestamps for tests."""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta


# Fixed evaluation time so cooldown and record timestamps are reproducible.
FIXED_NOW = datetime(2017, 6, 13, 0, 0, 0, tzinfo=UTC)


class FakeClock:
    """Manually advanced clock for fetchers under test."""

    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        """Move the clock forward by a timedelta given as keyword arguments."""
        self.now += timedelta(**kwargs)


def fixed_clock(now: datetime = FIXED_NOW) -> Callable[[], datetime]:
    """Get a clock that always returns the same instant."""
    return lambda: now
