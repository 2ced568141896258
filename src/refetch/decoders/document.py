"""Binary document decoder (pdf). Requires the 'pymupdf' package."""

from typing import Any

from refetch.decoders.base import Decoder, DecodeOptions


class PdfDecoder(Decoder):
    """Decodes a PDF into a list of page texts."""

    format_tags = ("pdf",)
    requires = ("fitz",)

    def decode(self, data: bytes | str, options: DecodeOptions) -> Any:
        import fitz  # PyMuPDF

        with fitz.open(stream=options.binary(data), filetype="pdf") as doc:
            return [page.get_text("text") for page in doc]
