"""Format tag to decoder capability registry."""

import asyncio
from collections.abc import Iterable, Mapping
from typing import Any

import structlog

from refetch.decoders.base import Decoder, DecodeOptions
from refetch.decoders.document import PdfDecoder
from refetch.decoders.markup import HtmlDecoder, XmlDecoder
from refetch.decoders.spreadsheet import XlsxDecoder
from refetch.decoders.structured import (
    ConfigDecoder,
    JsonDecoder,
    JsonLinesDecoder,
    YamlDecoder,
)
from refetch.decoders.tabular import TabularTextDecoder
from refetch.errors import DecodeError, DecoderUnavailableError, RefetchError


logger = structlog.get_logger()


def default_decoders() -> list[Decoder]:
    """Get instances of all built-in decoders."""
    return [
        TabularTextDecoder(),
        JsonDecoder(),
        JsonLinesDecoder(),
        YamlDecoder(),
        ConfigDecoder(),
        HtmlDecoder(),
        XmlDecoder(),
        XlsxDecoder(),
        PdfDecoder(),
    ]


class DecoderRegistry:
    """Maps format tags to decoders whose dependencies are installed.

    Availability is resolved when a decoder is registered. A tag whose
    backing library is missing stays known, so requesting it reports
    "missing dependency" rather than "unknown format".
    """

    def __init__(self, decoders: Iterable[Decoder] = ()) -> None:
        """Initialize the registry.

        Args:
            decoders: Decoders to register.
        """
        self._available: dict[str, Decoder] = {}
        self._unavailable: dict[str, str] = {}
        self._log = logger.bind(component="decoders")
        for decoder in decoders:
            self.register(decoder)

    @classmethod
    def default(cls) -> "DecoderRegistry":
        """Build a registry with all built-in decoders."""
        return cls(default_decoders())

    def register(self, decoder: Decoder) -> None:
        """Register a decoder for all of its format tags.

        Args:
            decoder: Decoder to register.
        """
        missing = decoder.missing_dependency()
        for tag in decoder.format_tags:
            key = tag.lower()
            if missing:
                self._available.pop(key, None)
                self._unavailable[key] = missing
            else:
                self._unavailable.pop(key, None)
                self._available[key] = decoder

        if missing:
            self._log.debug(
                "decoder_not_registered",
                formats=list(decoder.format_tags),
                missing=missing,
            )

    @property
    def available_formats(self) -> list[str]:
        """Get the sorted list of usable format tags."""
        return sorted(self._available)

    @property
    def unavailable_formats(self) -> dict[str, str]:
        """Get known format tags whose dependency is missing."""
        return dict(self._unavailable)

    def is_available(self, format_tag: str) -> bool:
        """Check if a format tag can be decoded."""
        return format_tag.lower() in self._available

    def get(self, format_tag: str) -> Decoder:
        """Get the decoder for a format tag.

        Args:
            format_tag: Format tag.

        Returns:
            The registered decoder.

        Raises:
            DecoderUnavailableError: If the tag is unknown or its library is missing.
        """
        key = format_tag.lower()
        decoder = self._available.get(key)
        if decoder is not None:
            return decoder
        missing = self._unavailable.get(key)
        if missing is not None:
            raise DecoderUnavailableError(
                format_tag, reason="missing_dependency", missing=missing
            )
        raise DecoderUnavailableError(format_tag, reason="unknown")

    async def decode(
        self,
        format_tag: str,
        data: bytes | str,
        charset: str | None = None,
        content_type: str | None = None,
        options: Mapping[str, Any] | None = None,
        url: str | None = None,
    ) -> Any:
        """Decode content with the decoder registered for a format tag.

        Decoding runs in a worker thread to keep the event loop free.

        Args:
            format_tag: Format tag.
            data: Raw (possibly preprocessed) content.
            charset: Explicit text charset.
            content_type: Content-Type reported by the transport.
            options: Format-specific options.
            url: Locator of the resource, for error reporting.

        Returns:
            Decoded value.

        Raises:
            DecoderUnavailableError: If no usable decoder exists for the tag.
            DecodeError: If decoding failed.
        """
        try:
            decoder = self.get(format_tag)
        except DecoderUnavailableError as e:
            e.url = url
            self._log.warning(
                "decoder_unavailable",
                format=format_tag,
                reason=e.reason,
                missing=e.missing,
            )
            raise

        decode_options = DecodeOptions(
            format_tag=format_tag.lower(),
            charset=charset,
            content_type=content_type,
            options=dict(options or {}),
        )
        try:
            return await asyncio.to_thread(decoder.decode, data, decode_options)
        except RefetchError as e:
            e.url = url
            self._log.warning("decode_failed", format=format_tag, error=e.message)
            raise
        except Exception as e:  # noqa: BLE001
            self._log.warning("decode_failed", format=format_tag, error=str(e))
            raise DecodeError(format_tag, str(e), url=url) from e
