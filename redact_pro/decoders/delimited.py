from __future__ import annotations
import csv
import io
from .base import BaseDecoder, TextBuilder
from ..exceptions import DecodeError, DecodeErrorKind
from ..models import DocumentFormat, NormalizedText
from ..text import decode_bytes

_SNIFF_BYTES = 8192


class CsvDecoder(BaseDecoder):
    """One line per non-empty row, cells joined by " | "."""

    format = DocumentFormat.CSV

    def decode(self, data: bytes) -> NormalizedText:
        text, warnings = decode_bytes(data)
        builder = TextBuilder()
        for warning in warnings:
            builder.warn(warning)

        try:
            dialect = csv.Sniffer().sniff(text[:_SNIFF_BYTES], delimiters=",;\t")
        except csv.Error:
            dialect = csv.excel

        try:
            for r, row in enumerate(csv.reader(io.StringIO(text), dialect), start=1):
                if not any(cell.strip() for cell in row):
                    continue
                builder.cells([(cell, {"row": r, "col": c}) for c, cell in enumerate(row, start=1)])
        except csv.Error as exc:
            raise DecodeError(DecodeErrorKind.CORRUPT, f"malformed CSV: {exc}") from exc
        return builder.build(self.format)
