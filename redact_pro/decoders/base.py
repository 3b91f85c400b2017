from __future__ import annotations
from abc import ABC, abstractmethod
from io import BytesIO
from typing import Any
from zipfile import BadZipFile, ZipFile

from ..exceptions import DecodeError, DecodeErrorKind
from ..models import DocumentFormat, NormalizedText, OffsetMap, TextSegment

CELL_SEPARATOR = " | "

# guards against zip bombs in container formats
MAX_PART_BYTES = 200 * 1024 * 1024


class BaseDecoder(ABC):
    format: DocumentFormat

    @abstractmethod
    def decode(self, data: bytes) -> NormalizedText:
        """Extract normalized text and an offset map from raw bytes."""
        ...


class TextBuilder:
    """Collects output lines together with the source location of each piece."""

    def __init__(self) -> None:
        self._lines: list[str] = []
        self._segments: list[TextSegment] = []
        self._pos = 0
        self.warnings: list[str] = []

    def __len__(self) -> int:
        return len(self._lines)

    def line(self, text: str, location: dict[str, Any] | None = None) -> None:
        if location is not None:
            self._segments.append(TextSegment(self._pos, self._pos + len(text), location))
        self._lines.append(text)
        self._pos += len(text) + 1

    def cells(self, cells: list[tuple[str, dict[str, Any]]], separator: str = CELL_SEPARATOR) -> None:
        """Add one line made of cells joined by separator; each cell keeps its location."""
        parts: list[str] = []
        pos = self._pos
        for i, (value, location) in enumerate(cells):
            if i:
                parts.append(separator)
                pos += len(separator)
            self._segments.append(TextSegment(pos, pos + len(value), location))
            parts.append(value)
            pos += len(value)
        text = "".join(parts)
        self._lines.append(text)
        self._pos += len(text) + 1

    def warn(self, warning: str) -> None:
        if warning not in self.warnings:
            self.warnings.append(warning)

    def build(self, fmt: DocumentFormat, page_count: int | None = None) -> NormalizedText:
        return NormalizedText(
            text="\n".join(self._lines),
            source_format=fmt,
            offset_map=OffsetMap(tuple(self._segments)),
            warnings=tuple(self.warnings),
            page_count=page_count,
        )


def local_name(tag: str) -> str:
    """Tag name without its namespace: "{ns}p" -> "p"."""
    return tag.rsplit("}", 1)[-1]


def open_zip(data: bytes) -> ZipFile:
    try:
        return ZipFile(BytesIO(data))
    except BadZipFile as exc:
        raise DecodeError(DecodeErrorKind.CORRUPT, f"not a zip container: {exc}") from exc


def read_part(archive: ZipFile, name: str) -> bytes | None:
    """Read one archive entry, or None when it is absent."""
    try:
        info = archive.getinfo(name)
    except KeyError:
        return None
    if info.file_size > MAX_PART_BYTES:
        raise DecodeError(DecodeErrorKind.SIZE_EXCEEDED, f"{name} expands to {info.file_size} bytes")
    try:
        return archive.read(info)
    except (BadZipFile, OSError, EOFError) as exc:
        raise DecodeError(DecodeErrorKind.CORRUPT, f"cannot read {name}: {exc}") from exc
