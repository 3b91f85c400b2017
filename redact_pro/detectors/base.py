"""Detector interface and the table-driven pattern detector.

Rules are loaded from redact_pro/data/patterns.toml. Each rule names a
category and a group: 0 means the full match is the span, N > 0 means only
that capture group is (the label in front of a value stays visible).
"""

from __future__ import annotations

import re
import tomllib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

from ..exceptions import DetectionError
from ..models import DetectionSpan, PiiCategory, SubSpan
from ..text import fold_width, line_bounds

_DATA_DIR = Path(__file__).parent.parent / "data"

MIN_SPAN_LENGTH = 2

_FLAGS: dict[str, int] = {"i": re.IGNORECASE, "m": re.MULTILINE}


@dataclass(frozen=True)
class _Rule:
    id: str
    category: PiiCategory
    pattern: re.Pattern[str]
    group: int
    confidence: float


def _load_rules() -> tuple[list[_Rule], dict[str, str]]:
    with (_DATA_DIR / "patterns.toml").open("rb") as fh:
        data = tomllib.load(fh)

    variables: dict[str, str] = data.get("vars", {})
    rules: list[_Rule] = []
    for r in data["rules"]:
        source = r["pattern"]
        for name, value in variables.items():
            source = source.replace(f"<{name.upper()}>", value)
        flags = 0
        for flag in r.get("flags", ""):
            flags |= _FLAGS[flag]
        try:
            pattern = re.compile(source, flags)
        except re.error as exc:
            raise DetectionError(f"Rule {r['id']!r} does not compile: {exc}") from exc
        rules.append(_Rule(
            id=r["id"],
            category=PiiCategory(r["category"]),
            pattern=pattern,
            group=r.get("group", 0),
            confidence=r.get("confidence", 0.9),
        ))
    return rules, variables


_RULES, PATTERN_VARS = _load_rules()


def rules_for(category: PiiCategory) -> list[_Rule]:
    return [r for r in _RULES if r.category == category]


# Contact labels that make a number in a dated line a real contact detail
_CONTACT_LABEL = re.compile(
    r"(?:電話|TEL|Tel|tel|携帯|FAX|Fax|fax|連絡先|〒|郵便)[ \t]*[：:・]?[ \t]*\Z"
)
_YEAR_RANGE = re.compile(
    r"(?:19|20)\d{2}\s*(?:年\s*\d{0,2}\s*月?\s*)?[-~〜]\s*(?:(?:19|20)\d{2}|現在|至|present)",
    re.IGNORECASE,
)
_DATED_LINE = re.compile(r"^\s*(?:(?:19|20)\d{2}|(?:昭和|平成|令和)\s?\d{1,2})\s*[年/.\-]")


def in_year_context(text: str, start: int, end: int) -> bool:
    """True when a numeric match is really part of a year range or a dated line."""
    tight = text[max(0, start - 8):min(len(text), end + 8)]
    if _YEAR_RANGE.search(tight):
        return True
    if _CONTACT_LABEL.search(text[max(0, start - 20):start]):
        return False
    line_start, line_end = line_bounds(text, start)
    return bool(_DATED_LINE.match(text[line_start:line_end]))


class BaseDetector(ABC):
    categories: tuple[PiiCategory, ...] = ()

    @abstractmethod
    def detect(self, text: str) -> list[DetectionSpan]:
        """Return all candidate spans in text."""
        ...


class PatternDetector(BaseDetector):
    """Run every patterns.toml rule of one category over the folded text."""

    category: PiiCategory

    def __init__(self) -> None:
        self.categories = (self.category,)
        self._rules = rules_for(self.category)

    def accept(self, folded: str, start: int, end: int, rule: _Rule) -> bool:
        return True

    def detect(self, text: str) -> list[DetectionSpan]:
        folded = fold_width(text)
        spans: list[DetectionSpan] = []

        for rule in self._rules:
            for match in rule.pattern.finditer(folded):
                start, end = match.span(rule.group)
                if start < 0:
                    continue
                # trim surrounding whitespace picked up by separators
                while start < end and folded[start].isspace():
                    start += 1
                while end > start and folded[end - 1].isspace():
                    end -= 1
                if end - start < MIN_SPAN_LENGTH:
                    continue
                if not self.accept(folded, start, end, rule):
                    continue

                segments = tuple(
                    SubSpan(name, s, e)
                    for name in rule.pattern.groupindex
                    for s, e in [match.span(name)]
                    if s >= 0
                )
                spans.append(DetectionSpan(
                    category=self.category,
                    start=start,
                    end=end,
                    text=text[start:end],
                    confidence=rule.confidence,
                    rule_id=rule.id,
                    segments=segments,
                ))

        return spans
