from __future__ import annotations
import json
from typing import Any
from .base import BaseDecoder, TextBuilder
from ..exceptions import DecodeError, DecodeErrorKind
from ..models import DocumentFormat, NormalizedText
from ..text import decode_bytes


def _scalar(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class JsonDecoder(BaseDecoder):
    """Flattens a JSON document into "path: value" lines (a.b[0].c: value)."""

    format = DocumentFormat.JSON

    def decode(self, data: bytes) -> NormalizedText:
        text, warnings = decode_bytes(data)
        try:
            doc = json.loads(text)
        except json.JSONDecodeError as exc:
            raise DecodeError(DecodeErrorKind.CORRUPT, f"invalid JSON: {exc}") from exc

        builder = TextBuilder()
        for warning in warnings:
            builder.warn(warning)
        self._walk(doc, "", builder)
        return builder.build(self.format)

    def _walk(self, value: Any, path: str, builder: TextBuilder) -> None:
        if isinstance(value, dict):
            for key, child in value.items():
                self._walk(child, f"{path}.{key}" if path else str(key), builder)
        elif isinstance(value, list):
            for i, child in enumerate(value):
                self._walk(child, f"{path}[{i}]", builder)
        elif path:
            builder.line(f"{path}: {_scalar(value)}", {"path": path})
        else:
            builder.line(_scalar(value), {"path": "$"})
