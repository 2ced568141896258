"""Directory-backed cache store, one JSON file per cache identifier."""

import asyncio
import json
import tempfile
from pathlib import Path

import structlog
from pydantic import ValidationError

from refetch.errors import CacheReadCorruptionError, CacheWriteError
from refetch.store.models import CacheRecord


logger = structlog.get_logger()

CACHE_FILE_SUFFIX = ".json"


class CacheStore:
    """Reads and replaces per-resource cache records on disk.

    Records live in a flat directory as ``<cache_key>.json``. A missing or
    unreadable record is a cache miss, never an error. Writes go to a
    temporary file in the same directory that is then renamed over the
    target, so readers see either the complete old record or the complete
    new one. Concurrent writes to the same key are not serialized; the last
    rename wins.
    """

    def __init__(self, cache_dir: Path) -> None:
        """Initialize the cache store.

        Args:
            cache_dir: Directory holding the record files.
        """
        self._cache_dir = Path(cache_dir).resolve()
        self._log = logger.bind(component="cache_store")

    @property
    def cache_dir(self) -> Path:
        """Get the cache directory."""
        return self._cache_dir

    def path_for(self, cache_key: str) -> Path:
        """Get the record file path for a cache identifier.

        Args:
            cache_key: Filesystem-safe cache identifier.

        Returns:
            Path of the record file.

        Raises:
            ValueError: If the identifier would escape the cache directory.
        """
        if not cache_key or "/" in cache_key or "\\" in cache_key or cache_key in {
            ".",
            "..",
        }:
            msg = f"Cache identifier is not filesystem-safe: {cache_key!r}"
            raise ValueError(msg)
        return self._cache_dir / f"{cache_key}{CACHE_FILE_SUFFIX}"

    async def load(self, cache_key: str) -> CacheRecord | None:
        """Load the record for a cache identifier.

        Args:
            cache_key: Cache identifier.

        Returns:
            The stored record, or None if absent, unreadable or corrupt.
        """
        return await asyncio.to_thread(self.load_sync, cache_key)

    async def save(self, cache_key: str, record: CacheRecord) -> None:
        """Replace the record for a cache identifier.

        Args:
            cache_key: Cache identifier.
            record: Record to persist.

        Raises:
            CacheWriteError: If the record could not be written.
        """
        await asyncio.to_thread(self.save_sync, cache_key, record)

    def load_sync(self, cache_key: str) -> CacheRecord | None:
        """Blocking variant of ``load``."""
        path = self.path_for(cache_key)
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            self._log.warning(
                "cache_read_failed", cache_key=cache_key, path=str(path), error=str(e)
            )
            return None

        try:
            return self._parse(cache_key, raw)
        except CacheReadCorruptionError as e:
            self._log.warning(
                "cache_read_corrupt",
                cache_key=cache_key,
                path=str(path),
                error=e.message,
            )
            return None

    def save_sync(self, cache_key: str, record: CacheRecord) -> None:
        """Blocking variant of ``save``."""
        path = self.path_for(cache_key)
        content = json.dumps(record.to_json_dict(), indent="\t").encode("utf-8")

        temp_path: Path | None = None
        try:
            self._cache_dir.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                mode="wb",
                dir=self._cache_dir,
                prefix=f".{cache_key[:16]}_",
                suffix=".tmp",
                delete=False,
            ) as temp_file:
                temp_path = Path(temp_file.name)
                temp_file.write(content)

            temp_path.replace(path)
            temp_path = None
        except OSError as e:
            raise CacheWriteError(cache_key, str(e)) from e
        finally:
            if temp_path is not None and temp_path.exists():
                temp_path.unlink()

        self._log.debug(
            "cache_record_written",
            cache_key=cache_key,
            bytes=len(content),
            has_hash=record.raw_hash is not None,
        )

    def delete(self, cache_key: str) -> bool:
        """Remove the record for a cache identifier.

        Args:
            cache_key: Cache identifier.

        Returns:
            True if a record was removed.
        """
        path = self.path_for(cache_key)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True

    @staticmethod
    def _parse(cache_key: str, raw: bytes) -> CacheRecord:
        """Parse raw file content into a record.

        Raises:
            CacheReadCorruptionError: If the content is not a valid record.
        """
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise CacheReadCorruptionError(cache_key, f"invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise CacheReadCorruptionError(cache_key, "record is not an object")

        try:
            return CacheRecord.model_validate(data)
        except ValidationError as e:
            raise CacheReadCorruptionError(
                cache_key, f"invalid record: {e.error_count()} errors"
            ) from e
