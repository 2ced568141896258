"""Cache management for conditional fetches.

Encapsulates all cache-related logic: loading prior records, building
conditional request headers (ETag/Last-Modified), and persisting successor
records without letting disk faults turn a fetch into a failure.
"""

from datetime import datetime
from typing import Protocol

import structlog

from refetch.errors import CacheWriteError
from refetch.fetch.constants import HEADER_IF_MODIFIED_SINCE, HEADER_IF_NONE_MATCH
from refetch.fetch.metrics import FetchMetrics
from refetch.fetch.models import TransportResponse
from refetch.store.models import CacheRecord


logger = structlog.get_logger()


class RecordStore(Protocol):
    """Protocol for cache record storage.

    Abstracts the storage layer to enable testing and alternative implementations.
    """

    async def load(self, cache_key: str) -> CacheRecord | None:
        """Retrieve the record for a cache identifier.

        Args:
            cache_key: Cache identifier.

        Returns:
            Stored record if one exists and is readable, None otherwise.
        """
        ...

    async def save(self, cache_key: str, record: CacheRecord) -> None:
        """Replace the record for a cache identifier.

        Args:
            cache_key: Cache identifier.
            record: Record to store.

        Raises:
            CacheWriteError: If the record could not be written.
        """
        ...


class CacheManager:
    """Manages cache records for conditional fetches.

    Encapsulates the logic for:
    - Building conditional request headers (If-None-Match, If-Modified-Since)
    - Building successor records after a changed fetch
    - Refreshing the timestamp on transport-level hits, keeping hashes
    - Best-effort persistence (write failures are logged, never raised)
    """

    def __init__(self, store: RecordStore) -> None:
        """Initialize the cache manager.

        Args:
            store: Storage backend for cache records.
        """
        self._store = store
        self._metrics = FetchMetrics.get_instance()
        self._log = logger.bind(component="cache")

    async def load(self, cache_key: str) -> CacheRecord | None:
        """Load the prior record for a fetch.

        Args:
            cache_key: Cache identifier.

        Returns:
            Prior record, or None on first fetch.
        """
        record = await self._store.load(cache_key)
        self._log.debug(
            "cache_lookup",
            cache_key=cache_key,
            found=record is not None,
            has_etag=record is not None and record.etag is not None,
            has_last_modified=record is not None and record.last_modified is not None,
        )
        return record

    @staticmethod
    def conditional_headers(
        record: CacheRecord | None, enabled: bool
    ) -> dict[str, str]:
        """Get conditional request headers from a prior record.

        An ETag takes precedence; Last-Modified is only used without one.

        Args:
            record: Prior record, if any.
            enabled: Whether caching is enabled for the request.

        Returns:
            Dictionary with If-None-Match or If-Modified-Since, or empty.
        """
        if not enabled or record is None:
            return {}
        if record.etag:
            return {HEADER_IF_NONE_MATCH: record.etag}
        if record.last_modified:
            return {HEADER_IF_MODIFIED_SINCE: record.last_modified}
        return {}

    @staticmethod
    def build_record(
        response: TransportResponse,
        now: datetime,
        raw_hash: str | None = None,
        processed_hash: str | None = None,
    ) -> CacheRecord:
        """Build the successor record for a changed fetch.

        Args:
            response: Transport response the fetch was evaluated on.
            now: Evaluation time.
            raw_hash: Hash of the (preprocessed) bytes; None for streams.
            processed_hash: Hash of the decoded value; None for streams.

        Returns:
            New cache record.
        """
        return CacheRecord(
            last_fetched_ms=CacheRecord.now_ms(now),
            raw_hash=raw_hash,
            processed_hash=processed_hash,
            last_modified=response.last_modified,
            etag=response.etag,
            content_length=response.content_length,
        )

    @staticmethod
    def refresh_record(
        record: CacheRecord, response: TransportResponse, now: datetime
    ) -> CacheRecord:
        """Refresh a record after a transport-level hit.

        Content hashes are kept; validators present on the response replace
        the stored ones, others are preserved.

        Args:
            record: Prior record.
            response: Not-modified (or heuristically unchanged) response.
            now: Evaluation time.

        Returns:
            Record with an advanced timestamp.
        """
        return record.model_copy(
            update={
                "last_fetched_ms": CacheRecord.now_ms(now),
                "etag": response.etag or record.etag,
                "last_modified": response.last_modified or record.last_modified,
                "content_length": (
                    record.content_length
                    if response.not_modified
                    else response.content_length or record.content_length
                ),
            }
        )

    async def save(self, cache_key: str, record: CacheRecord) -> bool:
        """Persist a record, logging instead of raising on failure.

        Args:
            cache_key: Cache identifier.
            record: Record to persist.

        Returns:
            True if the record was written.
        """
        try:
            await self._store.save(cache_key, record)
        except CacheWriteError as e:
            self._metrics.record_cache_write_failure()
            self._log.error(
                "cache_write_failed",
                cache_key=cache_key,
                error=e.message,
            )
            return False

        self._log.debug(
            "cache_update",
            cache_key=cache_key,
            etag=record.etag is not None,
            last_modified=record.last_modified is not None,
            has_hash=record.raw_hash is not None,
        )
        return True
