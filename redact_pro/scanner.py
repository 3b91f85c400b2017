from __future__ import annotations
import logging
from bisect import bisect_left
from collections import Counter
from dataclasses import replace
from typing import Iterable

from .config import settings
from .detectors.base import BaseDetector
from .detectors.address import AddressDetector
from .detectors.birthday import DateOfBirthDetector
from .detectors.custom_keyword import CustomKeywordDetector
from .detectors.email import EmailDetector
from .detectors.id_number import IdNumberDetector
from .detectors.name import NameDetector
from .detectors.organization import OrganizationDetector
from .detectors.phone import PhoneDetector
from .detectors.postal import PostalCodeDetector
from .detectors.sns import SnsDetector
from .detectors.url import UrlDetector
from .models import DetectionSpan, NormalizedText, PiiCategory
from .policy import CategoryPolicy, category_rule, priority

logger = logging.getLogger(__name__)

_MERGE_GAP = frozenset(" \t　")


def _propagate(text: str, spans: list[DetectionSpan]) -> list[DetectionSpan]:
    """Add every other occurrence of values from propagating categories."""
    extra: list[DetectionSpan] = []
    seen: set[tuple[PiiCategory, str]] = set()
    for span in spans:
        if not category_rule(span.category).propagate:
            continue
        key = (span.category, span.text)
        if key in seen:
            continue
        seen.add(key)
        pos = text.find(span.text)
        while pos != -1:
            if pos != span.start:
                extra.append(replace(span, start=pos, end=pos + len(span.text), segments=()))
            pos = text.find(span.text, pos + 1)
    return spans + extra


def _dedupe(spans: Iterable[DetectionSpan]) -> list[DetectionSpan]:
    best: dict[tuple[PiiCategory, int, int], DetectionSpan] = {}
    for span in spans:
        key = (span.category, span.start, span.end)
        current = best.get(key)
        if current is None or span.confidence > current.confidence:
            best[key] = span
    return sorted(best.values(), key=lambda s: (s.start, s.end))


def _merge_adjacent(text: str, spans: list[DetectionSpan]) -> list[DetectionSpan]:
    merged: list[DetectionSpan] = []
    for span in spans:
        if merged:
            prev = merged[-1]
            gap = text[prev.end:span.start]
            if (
                prev.category == span.category
                and category_rule(span.category).merge_adjacent
                and all(c in _MERGE_GAP for c in gap)
            ):
                merged[-1] = replace(
                    prev,
                    end=span.end,
                    text=text[prev.start:span.end],
                    confidence=min(prev.confidence, span.confidence),
                    segments=prev.segments + span.segments,
                )
                continue
        merged.append(span)
    return merged


def resolve_spans(
    candidates: Iterable[DetectionSpan],
    policy: CategoryPolicy,
    text: str | None = None,
) -> list[DetectionSpan]:
    """Turn raw candidates into non-overlapping spans sorted by start.

    Disabled categories are dropped first. Overlaps are resolved span for
    span: higher category priority wins, then greater length, then the
    earlier start. When text is given, adjacent same-category spans of a
    merging category are joined.
    """
    active = [s for s in candidates if policy.is_enabled(s.category) and s.end > s.start]
    ordered = sorted(active, key=lambda s: (-priority(s.category), -len(s), s.start))

    starts: list[int] = []
    accepted: list[DetectionSpan] = []
    for span in ordered:
        i = bisect_left(starts, span.start)
        if i > 0 and accepted[i - 1].end > span.start:
            continue
        if i < len(accepted) and accepted[i].start < span.end:
            continue
        starts.insert(i, span.start)
        accepted.insert(i, span)

    if text is not None:
        accepted = _merge_adjacent(text, accepted)
    return accepted


class PiiScanner:
    def __init__(
        self,
        custom_keywords: list[str] | None = None,
        ignore_case: bool = True,
        ner_model: str | None = None,
        reference_year: int | None = None,
    ) -> None:
        self._detectors: list[BaseDetector] = [
            NameDetector(),
            AddressDetector(),
            EmailDetector(),
            UrlDetector(),
            SnsDetector(),
            IdNumberDetector(),
            PhoneDetector(),
            PostalCodeDetector(),
            DateOfBirthDetector(reference_year=reference_year),
            OrganizationDetector(),
            CustomKeywordDetector(custom_keywords, ignore_case=ignore_case),
        ]
        model = ner_model if ner_model is not None else settings.ner_model
        if model:
            from .detectors.ner import NerDetector

            self._detectors.append(NerDetector(model))

    @property
    def detectors(self) -> list[BaseDetector]:
        return list(self._detectors)

    def collect_candidates(
        self, text: str, categories: Iterable[PiiCategory] | None = None
    ) -> list[DetectionSpan]:
        """Run the detectors for the given categories (all by default).

        Candidates may overlap; resolve_spans() makes them consistent.
        """
        wanted = set(categories) if categories is not None else set(PiiCategory)
        found: list[DetectionSpan] = []
        for detector in self._detectors:
            if not wanted.intersection(detector.categories):
                continue
            found.extend(s for s in detector.detect(text) if s.category in wanted)

        candidates = _dedupe(_propagate(text, found))
        counts = Counter(s.category.value for s in candidates)
        logger.debug("Collected %d candidates %s", len(candidates), dict(counts))
        return candidates

    def scan(self, text: str, policy: CategoryPolicy) -> list[DetectionSpan]:
        candidates = self.collect_candidates(text, policy.enabled_categories)
        return resolve_spans(candidates, policy, text)


def detect(
    text: str | NormalizedText,
    policy: CategoryPolicy,
    custom_keywords: list[str] | None = None,
) -> list[DetectionSpan]:
    """Detect PII spans of the enabled categories, sorted and non-overlapping."""
    raw = text.text if isinstance(text, NormalizedText) else text
    return PiiScanner(custom_keywords=custom_keywords).scan(raw, policy)
