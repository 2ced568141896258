"""Error types for the conditional fetch engine.

Every failure the engine can report is a ``RefetchError``. Errors raised while
a fetch pipeline runs are converted into a failed ``FetchOutcome`` by the
controller; only ``CacheWriteError`` and ``CacheReadCorruptionError`` are
swallowed (logged) instead of being reported.
"""

from enum import Enum


class FetchErrorClass(str, Enum):
    """Classification of engine errors for logging and metrics.

    - TRANSPORT: Connection, DNS, or protocol failure
    - RESPONSE_SIZE_EXCEEDED: Response body exceeded the configured limit
    - UNSUPPORTED_PROTOCOL: Locator scheme has no transport
    - STATUS_CODE: Response status not in the success allowlist
    - DECODE: Format-specific parse failure
    - DECODER_UNAVAILABLE: Decoder missing or its library is not installed
    - HOOK: Caller preprocess/postprocess hook failed
    - CACHE_WRITE: Cache record could not be persisted
    - CACHE_READ_CORRUPTION: Cache record could not be read back
    """

    TRANSPORT = "TRANSPORT"
    RESPONSE_SIZE_EXCEEDED = "RESPONSE_SIZE_EXCEEDED"
    UNSUPPORTED_PROTOCOL = "UNSUPPORTED_PROTOCOL"
    STATUS_CODE = "STATUS_CODE"
    DECODE = "DECODE"
    DECODER_UNAVAILABLE = "DECODER_UNAVAILABLE"
    HOOK = "HOOK"
    CACHE_WRITE = "CACHE_WRITE"
    CACHE_READ_CORRUPTION = "CACHE_READ_CORRUPTION"


class RefetchError(Exception):
    """Base exception for engine errors.

    Provides structured error information for logging and reporting.
    """

    error_class: FetchErrorClass = FetchErrorClass.TRANSPORT

    def __init__(
        self,
        message: str,
        url: str | None = None,
        details: dict[str, str | int | bool | None] | None = None,
    ) -> None:
        """Initialize the error.

        Args:
            message: Human-readable error message.
            url: Locator of the resource being fetched, if known.
            details: Additional structured error details.
        """
        super().__init__(message)
        self.message = message
        self.url = url
        self.details = details or {}

    def to_dict(
        self,
    ) -> dict[str, str | int | bool | None | dict[str, str | int | bool | None]]:
        """Convert error to dictionary for logging/serialization.

        Returns:
            Dictionary representation of the error.
        """
        return {
            "error_class": self.error_class.value,
            "message": self.message,
            "url": self.url,
            "details": self.details,
        }


class TransportError(RefetchError):
    """Connection, DNS, or protocol failure while retrieving a resource."""

    error_class = FetchErrorClass.TRANSPORT


class ResponseSizeExceededError(TransportError):
    """Raised when a buffered response exceeds the configured size limit."""

    error_class = FetchErrorClass.RESPONSE_SIZE_EXCEEDED

    def __init__(self, limit: int, received: int, url: str | None = None) -> None:
        """Initialize the error.

        Args:
            limit: Configured maximum size in bytes.
            received: Bytes received when the limit was hit.
            url: Locator of the resource.
        """
        self.limit = limit
        self.received = received
        super().__init__(
            f"Response size exceeded limit of {limit} bytes (read {received} bytes)",
            url=url,
            details={"limit": limit, "received": received},
        )


class UnsupportedProtocolError(RefetchError):
    """Raised when the locator scheme has no transport."""

    error_class = FetchErrorClass.UNSUPPORTED_PROTOCOL

    def __init__(self, scheme: str, url: str | None = None) -> None:
        """Initialize the error.

        Args:
            scheme: The unsupported scheme.
            url: Locator of the resource.
        """
        self.scheme = scheme
        super().__init__(
            f"Unsupported protocol: {scheme!r}", url=url, details={"scheme": scheme}
        )


class StatusCodeError(RefetchError):
    """Raised when the response status is not in the success allowlist."""

    error_class = FetchErrorClass.STATUS_CODE

    def __init__(self, status_code: int, url: str | None = None) -> None:
        """Initialize the error.

        Args:
            status_code: The status code received.
            url: Locator of the resource.
        """
        self.status_code = status_code
        super().__init__(
            f"Got Status Code {status_code}",
            url=url,
            details={"status_code": status_code},
        )


class DecodeError(RefetchError):
    """Raised when a decoder fails to parse content."""

    error_class = FetchErrorClass.DECODE

    def __init__(self, format_tag: str, message: str, url: str | None = None) -> None:
        """Initialize the error.

        Args:
            format_tag: Format tag of the decoder that failed.
            message: Human-readable error message.
            url: Locator of the resource.
        """
        self.format_tag = format_tag
        super().__init__(
            f"{format_tag} decode error: {message}",
            url=url,
            details={"format": format_tag},
        )


class DecoderUnavailableError(RefetchError):
    """Raised when no usable decoder exists for a format tag.

    ``reason`` is ``"unknown"`` when no decoder is registered for the tag and
    ``"missing_dependency"`` when the backing library is not installed.
    """

    error_class = FetchErrorClass.DECODER_UNAVAILABLE

    def __init__(
        self,
        format_tag: str,
        reason: str = "unknown",
        missing: str | None = None,
        url: str | None = None,
    ) -> None:
        """Initialize the error.

        Args:
            format_tag: Requested format tag.
            reason: Why the decoder cannot be used.
            missing: Name of the missing module, if any.
            url: Locator of the resource.
        """
        self.format_tag = format_tag
        self.reason = reason
        self.missing = missing
        if missing:
            message = f"{format_tag} decoder not available: {missing} is not installed"
        else:
            message = f"No decoder registered for format {format_tag!r}"
        super().__init__(
            message,
            url=url,
            details={"format": format_tag, "reason": reason, "missing": missing},
        )


class HookError(RefetchError):
    """Raised when a caller-supplied hook fails."""

    error_class = FetchErrorClass.HOOK

    def __init__(self, stage: str, message: str, url: str | None = None) -> None:
        """Initialize the error.

        Args:
            stage: Hook stage ("preprocess" or "postprocess").
            message: Human-readable error message.
            url: Locator of the resource.
        """
        self.stage = stage
        super().__init__(
            f"{stage} hook failed: {message}", url=url, details={"stage": stage}
        )


class CacheWriteError(RefetchError):
    """Raised by the cache store when a record cannot be persisted."""

    error_class = FetchErrorClass.CACHE_WRITE

    def __init__(self, cache_key: str, message: str) -> None:
        """Initialize the error.

        Args:
            cache_key: Cache identifier of the record.
            message: Human-readable error message.
        """
        self.cache_key = cache_key
        super().__init__(
            f"Unable to write cache record {cache_key}: {message}",
            details={"cache_key": cache_key},
        )


class CacheReadCorruptionError(RefetchError):
    """A stored cache record could not be parsed.

    Never surfaced to callers; the store treats it as a cache miss.
    """

    error_class = FetchErrorClass.CACHE_READ_CORRUPTION

    def __init__(self, cache_key: str, message: str) -> None:
        """Initialize the error.

        Args:
            cache_key: Cache identifier of the record.
            message: Human-readable error message.
        """
        self.cache_key = cache_key
        super().__init__(
            f"Corrupt cache record {cache_key}: {message}",
            details={"cache_key": cache_key},
        )
