from __future__ import annotations
from bisect import bisect_right
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable


class PiiCategory(str, Enum):
    NAME = "name"
    ADDRESS = "address"
    EMAIL = "email"
    URL = "url"
    SNS = "sns"
    ID_NUMBER = "id_number"
    PHONE = "phone"
    POSTAL_CODE = "postal_code"
    DATE_OF_BIRTH = "date_of_birth"
    ORGANIZATION = "organization"
    CUSTOM_KEYWORD = "custom_keyword"


class MaskStrategy(str, Enum):
    FULL = "full"
    PARTIAL = "partial"
    INITIAL = "initial"
    LITERAL = "literal"


class DocumentFormat(str, Enum):
    TXT = "txt"
    MD = "md"
    HTML = "html"
    RTF = "rtf"
    CSV = "csv"
    JSON = "json"
    XLSX = "xlsx"
    DOCX = "docx"
    ODT = "odt"
    PDF = "pdf"
    DOC = "doc"
    UNKNOWN = "unknown"


class ExportFormat(str, Enum):
    TXT = "txt"
    MD = "md"
    CSV = "csv"
    XLSX = "xlsx"
    DOCX = "docx"
    PDF = "pdf"


class ViewMode(str, Enum):
    RAW = "raw"
    MASKED = "masked"
    DIFF = "diff"
    AI = "ai"
    AI_DIFF = "ai-diff"


class DiffKind(str, Enum):
    UNCHANGED = "unchanged"
    REPLACED = "replaced"
    INSERTED = "inserted"
    DELETED = "deleted"


@dataclass(frozen=True)
class Document:
    data: bytes
    declared_format: DocumentFormat = DocumentFormat.UNKNOWN
    file_name: str = ""


@dataclass(frozen=True)
class SubSpan:
    """Tagged slice inside a detection, e.g. the prefecture of an address."""

    label: str
    start: int
    end: int


@dataclass(frozen=True)
class DetectionSpan:
    category: PiiCategory
    start: int
    end: int
    text: str
    confidence: float
    rule_id: str | None = None  # which pattern rule produced the span
    segments: tuple[SubSpan, ...] = ()

    def __len__(self) -> int:
        return self.end - self.start

    def overlaps(self, other: DetectionSpan) -> bool:
        return self.start < other.end and other.start < self.end

    def segment(self, label: str) -> SubSpan | None:
        for seg in self.segments:
            if seg.label == label:
                return seg
        return None


@dataclass(frozen=True)
class TextSegment:
    start: int
    end: int
    location: dict[str, Any]


@dataclass(frozen=True)
class OffsetMap:
    """Maps normalized-text indices back to a location in the source document.

    Segments are sorted, non-overlapping and may leave gaps (separator
    characters inserted by a decoder); a gap resolves to the segment before it.
    """

    segments: tuple[TextSegment, ...] = ()
    _starts: tuple[int, ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_starts", tuple(s.start for s in self.segments))

    def __len__(self) -> int:
        return len(self.segments)

    def __iter__(self):
        return iter(self.segments)

    def locate(self, index: int) -> TextSegment | None:
        if not self.segments or index < 0:
            return None
        pos = bisect_right(self._starts, index) - 1
        if pos < 0:
            return None
        return self.segments[pos]

    def origin(self, index: int) -> dict[str, Any] | None:
        seg = self.locate(index)
        return dict(seg.location) if seg else None

    def translate(self, replacements: Iterable[tuple[DetectionSpan, str]]) -> OffsetMap:
        """Shift segment boundaries through a set of span replacements.

        A replacement that starts inside a segment is attributed entirely to
        that segment, so the segment grows or shrinks by the length delta.
        """
        ordered = sorted(replacements, key=lambda r: r[0].start)
        if not ordered:
            return self

        def shift(pos: int, is_end: bool) -> int:
            delta = 0
            for span, repl in ordered:
                if span.end <= pos:
                    delta += len(repl) - len(span)
                elif span.start < pos:
                    # pos falls inside a replaced span
                    return span.start + delta + (len(repl) if is_end else 0)
                else:
                    break
            return pos + delta

        segs = []
        for seg in self.segments:
            new_start = shift(seg.start, is_end=False)
            new_end = shift(seg.end, is_end=True)
            segs.append(TextSegment(new_start, max(new_start, new_end), dict(seg.location)))
        return OffsetMap(tuple(segs))

    @classmethod
    def from_lines(cls, text: str, key: str = "line") -> OffsetMap:
        segs = []
        pos = 0
        for n, line in enumerate(text.split("\n"), start=1):
            segs.append(TextSegment(pos, pos + len(line), {key: n}))
            pos += len(line) + 1
        return cls(tuple(segs))


@dataclass(frozen=True)
class NormalizedText:
    text: str
    source_format: DocumentFormat
    offset_map: OffsetMap = field(default_factory=OffsetMap)
    warnings: tuple[str, ...] = ()
    page_count: int | None = None

    def __len__(self) -> int:
        return len(self.text)

    def origin(self, index: int) -> dict[str, Any] | None:
        return self.offset_map.origin(index)


@dataclass(frozen=True)
class MaskedText:
    text: str
    span_replacements: tuple[tuple[DetectionSpan, str], ...] = ()

    @property
    def spans(self) -> list[DetectionSpan]:
        return [span for span, _ in self.span_replacements]

    def replacement_for(self, span: DetectionSpan) -> str | None:
        for s, repl in self.span_replacements:
            if s == span:
                return repl
        return None


@dataclass(frozen=True)
class DiffSegment:
    kind: DiffKind
    original: str
    replacement: str
    span: DetectionSpan | None = None
