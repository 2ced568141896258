"""Metrics collection for the fetch engine."""

from dataclasses import dataclass, field
from typing import ClassVar

from refetch.errors import FetchErrorClass


@dataclass
class FetchMetrics:
    """Metrics for fetch operations.

    Singleton class that tracks outcome counts, unchanged reasons,
    failures by class, transferred bytes and durations.
    """

    fetch_total: int = 0
    fetch_changed_total: int = 0
    fetch_unchanged_total: dict[str, int] = field(default_factory=dict)
    fetch_failures_total: dict[str, int] = field(default_factory=dict)
    transport_requests_total: dict[str, int] = field(default_factory=dict)
    bytes_total: int = 0
    duration_ms_total: float = 0.0
    cache_write_failures_total: int = 0

    _instance: ClassVar["FetchMetrics | None"] = None

    @classmethod
    def get_instance(cls) -> "FetchMetrics":
        """Get singleton metrics instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset metrics (primarily for testing)."""
        cls._instance = None

    def record_request(self, scheme: str, bytes_received: int) -> None:
        """Record a completed transport call.

        Args:
            scheme: Locator scheme ("http", "ftp", "file", ...).
            bytes_received: Number of body bytes received.
        """
        key = scheme or "file"
        self.transport_requests_total[key] = (
            self.transport_requests_total.get(key, 0) + 1
        )
        self.bytes_total += bytes_received

    def record_changed(self) -> None:
        """Record a CHANGED outcome."""
        self.fetch_total += 1
        self.fetch_changed_total += 1

    def record_unchanged(self, reason: str) -> None:
        """Record an UNCHANGED outcome.

        Args:
            reason: Unchanged reason value.
        """
        self.fetch_total += 1
        self.fetch_unchanged_total[reason] = (
            self.fetch_unchanged_total.get(reason, 0) + 1
        )

    def record_failure(self, error_class: FetchErrorClass) -> None:
        """Record a FAILED outcome.

        Args:
            error_class: Classification of the failure.
        """
        self.fetch_total += 1
        key = error_class.value
        self.fetch_failures_total[key] = self.fetch_failures_total.get(key, 0) + 1

    def record_cache_write_failure(self) -> None:
        """Record a swallowed cache write failure."""
        self.cache_write_failures_total += 1

    def record_duration(self, duration_ms: float) -> None:
        """Record fetch duration.

        Args:
            duration_ms: Duration in milliseconds.
        """
        self.duration_ms_total += duration_ms

    def to_dict(self) -> dict[str, int | float | dict[str, int]]:
        """Convert metrics to dictionary.

        Returns:
            Dictionary of metric name to value.
        """
        return {
            "fetch_total": self.fetch_total,
            "fetch_changed_total": self.fetch_changed_total,
            "fetch_unchanged_total": dict(self.fetch_unchanged_total),
            "fetch_failures_total": dict(self.fetch_failures_total),
            "transport_requests_total": dict(self.transport_requests_total),
            "bytes_total": self.bytes_total,
            "duration_ms_total": self.duration_ms_total,
            "cache_write_failures_total": self.cache_write_failures_total,
        }

    @property
    def avg_duration_ms(self) -> float:
        """Calculate average fetch duration.

        Returns:
            Average duration in milliseconds.
        """
        if self.fetch_total == 0:
            return 0.0
        return self.duration_ms_total / self.fetch_total
