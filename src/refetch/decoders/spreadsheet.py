"""Spreadsheet decoder (xlsx). Requires the 'openpyxl' package."""

import io
from typing import Any

from refetch.decoders.base import Decoder, DecodeOptions


class XlsxDecoder(Decoder):
    """Decodes an xlsx workbook into ``{sheet name: [[cell, ...], ...]}``.

    Cells hold computed values (formulas are not evaluated here); dates come
    back as ``datetime`` objects.
    """

    format_tags = ("xlsx",)
    requires = ("openpyxl",)

    def decode(self, data: bytes | str, options: DecodeOptions) -> Any:
        import openpyxl

        workbook = openpyxl.load_workbook(
            io.BytesIO(options.binary(data)), read_only=True, data_only=True
        )
        try:
            return {
                sheet.title: [list(row) for row in sheet.iter_rows(values_only=True)]
                for sheet in workbook.worksheets
            }
        finally:
            workbook.close()
