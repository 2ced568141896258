"""Delimiter-separated tabular text decoder (csv, tsv, ssv)."""

import csv
import io
from typing import Any, ClassVar

from refetch.decoders.base import Decoder, DecodeOptions
from refetch.errors import DecodeError


class TabularTextDecoder(Decoder):
    """Decodes delimiter-separated text into rows.

    With a header row (the default) each record becomes a dict keyed by the
    header; otherwise records are lists. Quote is ``"`` and escape is ``\\``.

    Options:
        header: Treat the first row as column names (default True).
        delimiter: Override the delimiter implied by the format tag.
        quotechar: Override the quote character.
        escapechar: Override the escape character.
    """

    format_tags = ("csv", "tsv", "ssv")

    DELIMITERS: ClassVar[dict[str, str]] = {"csv": ",", "tsv": "\t", "ssv": ";"}

    def decode(self, data: bytes | str, options: DecodeOptions) -> Any:
        text = options.text(data)
        reader = csv.reader(
            io.StringIO(text, newline=""),
            delimiter=options.get("delimiter", self.DELIMITERS[options.format_tag]),
            quotechar=options.get("quotechar", '"'),
            escapechar=options.get("escapechar", "\\"),
            strict=True,
        )
        try:
            rows = [row for row in reader if row]
        except csv.Error as e:
            raise DecodeError(options.format_tag, f"line {reader.line_num}: {e}") from e

        if not options.get("header", True):
            return rows
        if not rows:
            return []

        columns, *records = rows
        return [dict(zip(columns, record, strict=False)) for record in records]
