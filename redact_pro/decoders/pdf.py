from __future__ import annotations
import logging

import fitz  # PyMuPDF

from .base import BaseDecoder, TextBuilder
from ..config import settings
from ..exceptions import DecodeError, DecodeErrorKind
from ..export import PDF_CREATOR, PDF_LEADING, PDF_TOP_BASELINE
from ..models import DocumentFormat, NormalizedText

logger = logging.getLogger(__name__)

INSUFFICIENT_TEXT = "insufficient_text"


def _grid_lines(page: fitz.Page) -> list[str]:
    """Lines of a page written by export_pdf, blank grid rows included."""
    rows: dict[int, str] = {}
    for block in page.get_text("dict")["blocks"]:
        if block.get("type") != 0:
            continue
        for line in block["lines"]:
            spans = line["spans"]
            if not spans:
                continue
            row = round((spans[0]["origin"][1] - PDF_TOP_BASELINE) / PDF_LEADING)
            rows[row] = rows.get(row, "") + "".join(s["text"] for s in spans)
    if not rows:
        return []
    return [rows.get(n, "") for n in range(max(rows) + 1)]


def _text_lines(page: fitz.Page) -> list[str]:
    return page.get_text("text").rstrip("\n").split("\n")


class PdfDecoder(BaseDecoder):
    """Text layer of a PDF, page by page, with a blank line between pages.

    Files produced by export_pdf are read back on their baseline grid, so
    blank lines survive a round trip. Scanned pages carry no text layer;
    when the average page yields fewer than min_chars_per_page characters
    the result is flagged with the "insufficient_text" warning so callers
    can try the extraction fallback.
    """

    format = DocumentFormat.PDF

    def __init__(self, min_chars_per_page: int | None = None) -> None:
        self.min_chars_per_page = (
            settings.pdf_min_chars_per_page if min_chars_per_page is None else min_chars_per_page
        )

    def decode(self, data: bytes) -> NormalizedText:
        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except (RuntimeError, ValueError) as exc:
            raise DecodeError(DecodeErrorKind.CORRUPT, f"unreadable PDF: {exc}") from exc

        with doc:
            if doc.needs_pass:
                raise DecodeError(DecodeErrorKind.UNSUPPORTED_SUBFORMAT, "encrypted PDF")
            own_export = (doc.metadata or {}).get("creator") == PDF_CREATOR
            page_lines = _grid_lines if own_export else _text_lines
            builder = TextBuilder()
            visible = 0
            page_count = doc.page_count
            for p, page in enumerate(doc, start=1):
                if p > 1:
                    builder.line("")
                for n, line in enumerate(page_lines(page), start=1):
                    builder.line(line, {"page": p, "line": n})
                    visible += sum(1 for c in line if not c.isspace())

        if visible == 0:
            raise DecodeError(
                DecodeErrorKind.EMPTY_CONTENT,
                "PDF has no text layer (image-only or scanned)",
            )
        if page_count and visible / page_count < self.min_chars_per_page:
            logger.info("PDF yields %d characters over %d pages", visible, page_count)
            builder.warn(INSUFFICIENT_TEXT)
        return builder.build(self.format, page_count=page_count)
