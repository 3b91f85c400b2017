from __future__ import annotations
from .base import BaseDecoder, TextBuilder
from ..models import DocumentFormat, NormalizedText
from ..text import decode_bytes


class PlainTextDecoder(BaseDecoder):
    format = DocumentFormat.TXT

    def decode(self, data: bytes) -> NormalizedText:
        text, warnings = decode_bytes(data)
        builder = TextBuilder()
        for warning in warnings:
            builder.warn(warning)
        for n, line in enumerate(text.split("\n"), start=1):
            builder.line(line, {"line": n})
        return builder.build(self.format)


class MarkdownDecoder(PlainTextDecoder):
    """Markdown is kept verbatim; headings and list markers already sit on their own lines."""

    format = DocumentFormat.MD
