"""decode -> detect -> mask -> diff for one document or a batch of them."""

from __future__ import annotations
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from .config import settings
from .decoders import decode
from .diff import span_diff
from .exceptions import DecodeError
from .masking import mask
from .models import DetectionSpan, DiffSegment, Document, MaskedText, NormalizedText
from .policy import CategoryPolicy
from .scanner import PiiScanner

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DocumentResult:
    document: Document
    normalized: NormalizedText | None = None
    spans: tuple[DetectionSpan, ...] = ()
    masked: MaskedText | None = None
    diff: tuple[DiffSegment, ...] = ()
    error: str | None = None
    error_kind: str | None = None
    warnings: tuple[str, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return self.error is None


def process_document(
    document: Document,
    policy: CategoryPolicy | None = None,
    custom_keywords: list[str] | None = None,
    *,
    scanner: PiiScanner | None = None,
) -> DocumentResult:
    """Run one document through the pipeline.

    Decode failures come back as an error result. Detection or masking
    failures are programmer errors and propagate.
    """
    policy = policy or CategoryPolicy.from_preset(settings.default_preset)
    try:
        normalized = decode(document)
    except DecodeError as exc:
        logger.warning("Could not decode %s: %s", document.file_name or "document", exc.kind.value)
        return DocumentResult(document=document, error=exc.message, error_kind=exc.kind.value)

    scanner = scanner or PiiScanner(custom_keywords=custom_keywords)
    spans = scanner.scan(normalized.text, policy)
    masked = mask(normalized.text, spans, policy)
    return DocumentResult(
        document=document,
        normalized=normalized,
        spans=tuple(spans),
        masked=masked,
        diff=tuple(span_diff(normalized.text, masked)),
        warnings=normalized.warnings,
    )


def _process_isolated(
    document: Document, policy: CategoryPolicy | None, custom_keywords: list[str] | None
) -> DocumentResult:
    try:
        return process_document(document, policy, custom_keywords)
    except Exception as exc:
        # one broken document must not take the batch down
        logger.exception("Processing failed for %s", document.file_name or "document")
        return DocumentResult(document=document, error=str(exc) or type(exc).__name__, error_kind="fatal")


def process_batch(
    documents: Iterable[Document],
    policy: CategoryPolicy | None = None,
    custom_keywords: list[str] | None = None,
    max_workers: int | None = None,
) -> list[DocumentResult]:
    """Process documents in parallel, one worker per document; results keep input order."""
    docs: Sequence[Document] = list(documents)
    if not docs:
        return []
    workers = max(1, min(max_workers or settings.batch_max_workers, len(docs)))
    with ThreadPoolExecutor(max_workers=workers) as pool:
        results = list(pool.map(lambda d: _process_isolated(d, policy, custom_keywords), docs))
    failed = sum(1 for r in results if not r.ok)
    logger.info("Batch of %d documents finished, %d failed", len(results), failed)
    return results
