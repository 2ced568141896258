"""Data models for the on-disk cache store."""

from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CacheRecord(BaseModel):
    """Metadata persisted for one resource between fetches.

    Serialized with the short field names other tooling reads out-of-band:
    ``last``, ``hash``, ``hashp``, ``modified``, ``etag``, ``size``.
    Streaming fetches store no content hashes.
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    last_fetched_ms: Annotated[
        int,
        Field(alias="last", ge=0, description="Last evaluation time (epoch millis)"),
    ]
    raw_hash: str | None = Field(
        default=None, alias="hash", description="Hash of retrieved bytes"
    )
    processed_hash: str | None = Field(
        default=None, alias="hashp", description="Hash after decode + postprocess"
    )
    last_modified: str | None = Field(
        default=None, alias="modified", description="Last-Modified validator"
    )
    etag: str | None = Field(default=None, description="ETag validator")
    content_length: int | None = Field(
        default=None, alias="size", ge=0, description="Last observed byte size"
    )

    @field_validator(
        "raw_hash", "processed_hash", "last_modified", "etag", mode="before"
    )
    @classmethod
    def coerce_missing_validator(cls, v: Any) -> Any:
        """Treat empty strings and ``false`` as absent."""
        if v is False or v == "":
            return None
        return v

    @field_validator("content_length", mode="before")
    @classmethod
    def coerce_missing_size(cls, v: Any) -> Any:
        """Treat ``false`` as absent."""
        if v is False:
            return None
        return v

    @classmethod
    def now_ms(cls, now: datetime | None = None) -> int:
        """Convert a timestamp into epoch milliseconds.

        Args:
            now: Timestamp to convert (default: current UTC time).

        Returns:
            Milliseconds since the epoch.
        """
        now = now or datetime.now(UTC)
        return int(now.timestamp() * 1000)

    @property
    def last_fetched_at(self) -> datetime:
        """Get the last evaluation time as an aware UTC datetime."""
        return datetime.fromtimestamp(self.last_fetched_ms / 1000, tz=UTC)

    def to_json_dict(self) -> dict[str, Any]:
        """Convert to the persisted JSON shape, omitting absent fields.

        Returns:
            Dictionary keyed by the short on-disk field names.
        """
        return self.model_dump(by_alias=True, exclude_none=True)
