"""Unit tests for engine error types."""

import pytest

from refetch.errors import (
    CacheReadCorruptionError,
    CacheWriteError,
    DecodeError,
    DecoderUnavailableError,
    FetchErrorClass,
    HookError,
    RefetchError,
    ResponseSizeExceededError,
    StatusCodeError,
    TransportError,
    UnsupportedProtocolError,
)


class TestFetchErrorClass:
    """Tests for FetchErrorClass enum."""

    def test_values_match_names(self) -> None:
        """Verify each error class value equals its name."""
        for error_class in FetchErrorClass:
            assert error_class.value == error_class.name

    def test_class_count(self) -> None:
        """Verify exactly 9 error classes exist."""
        assert len(FetchErrorClass) == 9


class TestRefetchError:
    """Tests for the base RefetchError."""

    def test_basic_error(self) -> None:
        """Create a basic error."""
        error = RefetchError("Connection failed")

        assert error.message == "Connection failed"
        assert str(error) == "Connection failed"
        assert error.url is None
        assert error.details == {}

    def test_to_dict(self) -> None:
        """Serialize an error for logging."""
        error = TransportError(
            "DNS lookup failed", url="https://example.com/", details={"attempt": 1}
        )

        assert error.to_dict() == {
            "error_class": "TRANSPORT",
            "message": "DNS lookup failed",
            "url": "https://example.com/",
            "details": {"attempt": 1},
        }


class TestSubclasses:
    """Tests for specific error types."""

    @pytest.mark.parametrize(
        ("error", "error_class"),
        [
            (TransportError("reset"), FetchErrorClass.TRANSPORT),
            (ResponseSizeExceededError(10, 20), FetchErrorClass.RESPONSE_SIZE_EXCEEDED),
            (UnsupportedProtocolError("gopher"), FetchErrorClass.UNSUPPORTED_PROTOCOL),
            (StatusCodeError(500), FetchErrorClass.STATUS_CODE),
            (DecodeError("json", "bad"), FetchErrorClass.DECODE),
            (DecoderUnavailableError("xlsx"), FetchErrorClass.DECODER_UNAVAILABLE),
            (HookError("preprocess", "boom"), FetchErrorClass.HOOK),
            (CacheWriteError("key", "disk full"), FetchErrorClass.CACHE_WRITE),
            (
                CacheReadCorruptionError("key", "bad json"),
                FetchErrorClass.CACHE_READ_CORRUPTION,
            ),
        ],
    )
    def test_error_class(
        self, error: RefetchError, error_class: FetchErrorClass
    ) -> None:
        """Each subclass reports its own error class."""
        assert error.error_class == error_class
        assert isinstance(error, RefetchError)

    def test_size_exceeded_is_transport_error(self) -> None:
        """Size limit errors are caught as transport errors."""
        error = ResponseSizeExceededError(1024, 2048, url="https://example.com/big")

        assert isinstance(error, TransportError)
        assert error.limit == 1024
        assert error.received == 2048
        assert error.details == {"limit": 1024, "received": 2048}

    def test_status_code_message(self) -> None:
        """Status errors carry the code in message and details."""
        error = StatusCodeError(404)

        assert error.message == "Got Status Code 404"
        assert error.status_code == 404
        assert error.details == {"status_code": 404}

    def test_decoder_unavailable_unknown(self) -> None:
        """Unknown formats are reported distinctly from missing libraries."""
        error = DecoderUnavailableError("parquet")

        assert error.reason == "unknown"
        assert error.missing is None
        assert "parquet" in error.message

    def test_decoder_unavailable_missing_dependency(self) -> None:
        """Missing libraries are named in the error."""
        error = DecoderUnavailableError(
            "xlsx", reason="missing_dependency", missing="openpyxl"
        )

        assert error.reason == "missing_dependency"
        assert error.missing == "openpyxl"
        assert "openpyxl is not installed" in error.message

    def test_hook_error_stage(self) -> None:
        """Hook errors record the stage that failed."""
        error = HookError("postprocess", "KeyError")

        assert error.stage == "postprocess"
        assert error.message == "postprocess hook failed: KeyError"
