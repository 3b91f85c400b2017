"""redact-pro: PII detection, masking and review views for resume documents."""
from .decoders import decode, sniff_format
from .diff import span_diff, text_diff
from .exceptions import (
    DecodeError,
    DecodeErrorKind,
    DetectionError,
    ExternalCallError,
    ExternalCallErrorKind,
    RedactProError,
    ViewStateError,
)
from .export import export
from .masking import mask
from .models import (
    DetectionSpan,
    DiffKind,
    DiffSegment,
    Document,
    DocumentFormat,
    ExportFormat,
    MaskedText,
    MaskStrategy,
    NormalizedText,
    OffsetMap,
    PiiCategory,
    ViewMode,
)
from .pipeline import DocumentResult, process_batch, process_document
from .policy import PRESETS, CategoryPolicy, CategorySetting
from .scanner import PiiScanner, detect, resolve_spans
from .views import DocumentSession, EditableDraft

diff = span_diff

__all__ = [
    "CategoryPolicy",
    "CategorySetting",
    "DecodeError",
    "DecodeErrorKind",
    "DetectionError",
    "DetectionSpan",
    "DiffKind",
    "DiffSegment",
    "Document",
    "DocumentFormat",
    "DocumentResult",
    "DocumentSession",
    "EditableDraft",
    "ExportFormat",
    "ExternalCallError",
    "ExternalCallErrorKind",
    "MaskedText",
    "MaskStrategy",
    "NormalizedText",
    "OffsetMap",
    "PRESETS",
    "PiiCategory",
    "PiiScanner",
    "RedactProError",
    "ViewMode",
    "ViewStateError",
    "decode",
    "detect",
    "diff",
    "export",
    "mask",
    "process_batch",
    "process_document",
    "resolve_spans",
    "sniff_format",
    "span_diff",
    "text_diff",
]
