"""Pluggable content decoders keyed by format tag.

Decoders whose backing library is not installed are known but unavailable;
requesting them raises ``DecoderUnavailableError``.
"""

from refetch.decoders.base import Decoder, DecodeOptions, charset_from_content_type
from refetch.decoders.registry import DecoderRegistry, default_decoders


__all__ = [
    "Decoder",
    "DecodeOptions",
    "DecoderRegistry",
    "charset_from_content_type",
    "default_decoders",
]
