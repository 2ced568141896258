"""Decoder interface shared by all format decoders."""

import importlib.util
import re
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, ClassVar

from refetch.errors import DecodeError


DEFAULT_CHARSET = "utf-8"

_CHARSET_PARAM = re.compile(r"charset\s*=\s*[\"']?([\w.:-]+)", re.IGNORECASE)


def charset_from_content_type(content_type: str | None) -> str | None:
    """Extract the charset parameter from a Content-Type header value."""
    if not content_type:
        return None
    match = _CHARSET_PARAM.search(content_type)
    return match.group(1) if match else None


@dataclass(frozen=True)
class DecodeOptions:
    """Per-fetch decoding options.

    Attributes:
        format_tag: Format tag the decoder was selected by.
        charset: Explicit text charset requested by the caller.
        content_type: Content-Type reported by the transport.
        options: Format-specific options supplied by the caller.
    """

    format_tag: str
    charset: str | None = None
    content_type: str | None = None
    options: Mapping[str, Any] = field(default_factory=dict)

    @property
    def effective_charset(self) -> str:
        """Get the charset: explicit, else from Content-Type, else UTF-8."""
        return (
            self.charset
            or charset_from_content_type(self.content_type)
            or DEFAULT_CHARSET
        )

    def get(self, key: str, default: Any = None) -> Any:
        """Get a format-specific option."""
        return self.options.get(key, default)

    def text(self, data: bytes | str) -> str:
        """Decode bytes to text using the effective charset.

        Raises:
            DecodeError: If the bytes are not valid in that charset.
        """
        if isinstance(data, str):
            return data
        charset = self.effective_charset
        try:
            return bytes(data).decode(charset)
        except LookupError as e:
            raise DecodeError(self.format_tag, f"unknown charset {charset!r}") from e
        except UnicodeDecodeError as e:
            raise DecodeError(self.format_tag, f"invalid {charset} text: {e}") from e

    def binary(self, data: bytes | str) -> bytes:
        """Get raw bytes for binary formats.

        Raises:
            DecodeError: If the content is not bytes.
        """
        if isinstance(data, bytes | bytearray | memoryview):
            return bytes(data)
        raise DecodeError(self.format_tag, "binary format requires bytes input")


class Decoder(ABC):
    """Base class for format decoders.

    A decoder is pure with respect to its input. ``requires`` lists the
    top-level modules that must be importable for the decoder to be usable;
    the registry checks them once when it is built.
    """

    format_tags: ClassVar[tuple[str, ...]] = ()
    requires: ClassVar[tuple[str, ...]] = ()

    def missing_dependency(self) -> str | None:
        """Get the first required module that is not installed, if any."""
        for module in self.requires:
            if importlib.util.find_spec(module) is None:
                return module
        return None

    @abstractmethod
    def decode(self, data: bytes | str, options: DecodeOptions) -> Any:
        """Decode content into a value.

        Args:
            data: Raw (possibly preprocessed) content.
            options: Decoding options.

        Returns:
            Decoded value.

        Raises:
            DecodeError: If the content cannot be parsed.
        """
