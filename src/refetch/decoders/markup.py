"""Markup decoders: HTML documents and XML trees."""

from typing import Any

from refetch.decoders.base import Decoder, DecodeOptions
from refetch.errors import DecodeError


class HtmlDecoder(Decoder):
    """Decodes HTML into a BeautifulSoup document.

    Options:
        parser: BeautifulSoup tree builder (default "lxml").
    """

    format_tags = ("html",)
    requires = ("bs4", "lxml")

    def decode(self, data: bytes | str, options: DecodeOptions) -> Any:
        from bs4 import BeautifulSoup, FeatureNotFound

        parser = options.get("parser", "lxml")
        markup: bytes | str = data
        if options.charset and isinstance(data, bytes):
            markup = options.text(data)
        try:
            return BeautifulSoup(markup, parser)
        except FeatureNotFound as e:
            msg = f"parser {parser!r} unavailable"
            raise DecodeError(options.format_tag, msg) from e


class XmlDecoder(Decoder):
    """Decodes XML into an ElementTree root element.

    Parsing goes through defusedxml, so entity expansion and external
    references are rejected.
    """

    format_tags = ("xml",)
    requires = ("defusedxml",)

    def decode(self, data: bytes | str, options: DecodeOptions) -> Any:
        from xml.etree.ElementTree import ParseError

        import defusedxml.ElementTree as DefusedET
        from defusedxml import DefusedXmlException

        markup: bytes | str = data
        if options.charset and isinstance(data, bytes):
            markup = options.text(data)
        try:
            return DefusedET.fromstring(markup)
        except ParseError as e:
            raise DecodeError(options.format_tag, str(e)) from e
        except DefusedXmlException as e:
            raise DecodeError(options.format_tag, f"rejected: {e}") from e
