"""Data models for the fetch layer."""

from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from refetch.errors import RefetchError
from refetch.fetch.constants import (
    DEFAULT_SUCCESS_CODES,
    HEADER_CONTENT_LENGTH,
    HEADER_CONTENT_TYPE,
    HEADER_ETAG,
    HEADER_LAST_MODIFIED,
    HTTP_STATUS_NOT_MODIFIED,
)
from refetch.fetch.state_machine import FetchState
from refetch.store.hash import fingerprint


# hook(data, meta) -> data; may return an awaitable
Hook = Callable[..., Any]


class OutcomeKind(str, Enum):
    """Tri-state result of a fetch.

    - CHANGED: Content fetched and new or updated
    - UNCHANGED: Nothing to do downstream (see UnchangedReason)
    - FAILED: Fetch aborted with an error
    """

    CHANGED = "CHANGED"
    UNCHANGED = "UNCHANGED"
    FAILED = "FAILED"


class UnchangedReason(str, Enum):
    """Why a fetch reported no change.

    - CACHE_HIT: Transport said not-modified (or a validator heuristic did)
    - NO_CHANGE: Content hash comparison found no change
    - COOLDOWN: Skipped because the minimum interval has not elapsed
    """

    CACHE_HIT = "cache-hit"
    NO_CHANGE = "no-change"
    COOLDOWN = "cooldown"


class FetchRequest(BaseModel):
    """Caller-supplied description of one fetch.

    Immutable; every optional field carries its default here so a request
    is fully specified once constructed. Two requests with equal fields map
    to the same cache record unless ``cache_id`` is given explicitly.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    url: Annotated[str, Field(min_length=1, description="Target locator")]
    method: Annotated[str, Field(min_length=1)] = "GET"
    data: bytes | str | dict[str, Any] | None = Field(
        default=None, description="Request body; mappings are sent form-encoded"
    )
    headers: dict[str, str] = Field(
        default_factory=dict, description="Header overrides"
    )
    success_codes: tuple[int, ...] = Field(
        default=DEFAULT_SUCCESS_CODES, description="Status codes counted as success"
    )
    cache: bool = Field(
        default=False, description="Use prior record for validators and hashes"
    )
    cache_id: (
        Annotated[str, Field(pattern=r"^[A-Za-z0-9_-][A-Za-z0-9._-]*$")] | None
    ) = None
    format: str | None = Field(default=None, description="Decoder format tag")
    format_options: dict[str, Any] = Field(default_factory=dict)
    preprocess: Hook | None = None
    postprocess: Hook | None = None
    cooldown: timedelta | None = Field(
        default=None, description="Minimum interval between fetches"
    )
    size_only: bool = Field(
        default=False, description="Treat an unchanged size as not-modified"
    )
    follow_meta_refresh: bool = False
    charset: str | None = Field(default=None, description="Text-decoding charset")
    stream: bool = False

    @field_validator("method")
    @classmethod
    def normalize_method(cls, v: str) -> str:
        """Uppercase the HTTP verb."""
        return v.upper()

    @field_validator("success_codes")
    @classmethod
    def validate_success_codes(cls, v: tuple[int, ...]) -> tuple[int, ...]:
        """Ensure the allowlist is not empty."""
        if not v:
            msg = "success_codes must not be empty"
            raise ValueError(msg)
        return v

    @model_validator(mode="after")
    def validate_cache_key(self) -> "FetchRequest":
        """Ensure a cache identifier can be derived when none is given."""
        try:
            _ = self.cache_key
        except TypeError as e:
            msg = f"cannot derive a cache identifier ({e}); set cache_id"
            raise ValueError(msg) from e
        return self

    @property
    def cache_key(self) -> str:
        """Get the cache identifier for this request.

        Returns:
            The explicit ``cache_id``, or the fingerprint of every other field.
        """
        if self.cache_id:
            return self.cache_id
        fields = {
            name: getattr(self, name)
            for name in type(self).model_fields
            if name != "cache_id"
        }
        return fingerprint(fields)


class ResponseMeta(BaseModel):
    """Response metadata handed to hooks and returned with outcomes."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    url: str
    status_code: int
    headers: dict[str, str] = Field(default_factory=dict)

    @property
    def etag(self) -> str | None:
        """Get the ETag validator, if any."""
        return self.headers.get(HEADER_ETAG) or None

    @property
    def last_modified(self) -> str | None:
        """Get the Last-Modified validator, if any."""
        return self.headers.get(HEADER_LAST_MODIFIED) or None

    @property
    def content_type(self) -> str | None:
        """Get the Content-Type header, if any."""
        return self.headers.get(HEADER_CONTENT_TYPE) or None

    @property
    def content_length(self) -> int | None:
        """Get the reported Content-Length, if parseable."""
        value = self.headers.get(HEADER_CONTENT_LENGTH)
        if value is None:
            return None
        try:
            return int(value)
        except ValueError:
            return None


@dataclass
class TransportResponse:
    """Protocol-independent response shape.

    Exactly one of ``body`` and ``stream`` is set for a full response;
    neither is set for a not-modified response. Header names are lowercase.
    """

    url: str
    status_code: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes | None = None
    stream: AsyncIterator[bytes] | None = None
    close: Callable[[], Awaitable[None]] | None = None

    @classmethod
    def normalize_headers(cls, headers: Mapping[str, str]) -> dict[str, str]:
        """Lowercase header names."""
        return {key.lower(): value for key, value in headers.items()}

    @property
    def not_modified(self) -> bool:
        """Check if the transport reported not-modified."""
        return self.status_code == HTTP_STATUS_NOT_MODIFIED

    @property
    def meta(self) -> ResponseMeta:
        """Get the response metadata."""
        return ResponseMeta(
            url=self.url, status_code=self.status_code, headers=dict(self.headers)
        )

    @property
    def etag(self) -> str | None:
        """Get the ETag validator, if any."""
        return self.headers.get(HEADER_ETAG) or None

    @property
    def last_modified(self) -> str | None:
        """Get the Last-Modified validator, if any."""
        return self.headers.get(HEADER_LAST_MODIFIED) or None

    @property
    def content_type(self) -> str:
        """Get the Content-Type header (empty if missing)."""
        return self.headers.get(HEADER_CONTENT_TYPE, "")

    @property
    def content_length(self) -> int | None:
        """Get the body size: reported length, else the buffered length."""
        length = self.meta.content_length
        if length is not None:
            return length
        if self.body is not None:
            return len(self.body)
        return None

    async def aclose(self) -> None:
        """Release transport resources held by a streaming response."""
        if self.close is not None:
            close, self.close = self.close, None
            await close()


@dataclass(frozen=True)
class FetchOutcome:
    """Result of a fetch returned to the caller.

    ``data`` holds the raw bytes, decoded value, or stream handle for a
    CHANGED outcome. ``reason`` is set for UNCHANGED, ``error`` for FAILED.
    """

    kind: OutcomeKind
    data: Any = None
    reason: UnchangedReason | None = None
    error: RefetchError | None = None
    meta: ResponseMeta | None = None
    cache_key: str | None = None
    state: FetchState | None = None

    @classmethod
    def changed_with(
        cls,
        data: Any,
        meta: ResponseMeta | None = None,
        cache_key: str | None = None,
        state: FetchState | None = None,
    ) -> "FetchOutcome":
        """Build a CHANGED outcome."""
        return cls(
            kind=OutcomeKind.CHANGED,
            data=data,
            meta=meta,
            cache_key=cache_key,
            state=state,
        )

    @classmethod
    def unchanged_because(
        cls,
        reason: UnchangedReason,
        meta: ResponseMeta | None = None,
        cache_key: str | None = None,
        state: FetchState | None = None,
    ) -> "FetchOutcome":
        """Build an UNCHANGED outcome."""
        return cls(
            kind=OutcomeKind.UNCHANGED,
            reason=reason,
            meta=meta,
            cache_key=cache_key,
            state=state,
        )

    @classmethod
    def failed_with(
        cls,
        error: RefetchError,
        meta: ResponseMeta | None = None,
        cache_key: str | None = None,
        state: FetchState | None = None,
    ) -> "FetchOutcome":
        """Build a FAILED outcome."""
        return cls(
            kind=OutcomeKind.FAILED,
            error=error,
            meta=meta,
            cache_key=cache_key,
            state=state,
        )

    @property
    def changed(self) -> bool:
        """Check if the content changed."""
        return self.kind == OutcomeKind.CHANGED

    @property
    def unchanged(self) -> bool:
        """Check if the fetch reported no change."""
        return self.kind == OutcomeKind.UNCHANGED

    @property
    def failed(self) -> bool:
        """Check if the fetch failed."""
        return self.kind == OutcomeKind.FAILED

    def raise_for_error(self) -> None:
        """Re-raise the captured error of a FAILED outcome.

        Raises:
            RefetchError: The error that aborted the fetch.
        """
        if self.error is not None:
            raise self.error
