from __future__ import annotations
import re
from .base import BaseDetector
from ..models import DetectionSpan, PiiCategory


class CustomKeywordDetector(BaseDetector):
    """Literal, user-supplied keywords (company names, project code names …)."""

    categories = (PiiCategory.CUSTOM_KEYWORD,)

    def __init__(self, keywords: list[str] | None = None, ignore_case: bool = True) -> None:
        cleaned = {k.strip() for k in (keywords or []) if k and k.strip()}
        self.keywords = tuple(sorted(cleaned, key=len, reverse=True))
        self.ignore_case = ignore_case
        self._pattern: re.Pattern[str] | None = None
        if self.keywords:
            self._pattern = re.compile(
                "|".join(re.escape(k) for k in self.keywords),
                re.IGNORECASE if ignore_case else 0,
            )

    def detect(self, text: str) -> list[DetectionSpan]:
        if self._pattern is None:
            return []
        return [
            DetectionSpan(
                category=PiiCategory.CUSTOM_KEYWORD,
                start=m.start(),
                end=m.end(),
                text=m.group(0),
                confidence=1.0,
                rule_id="custom_keyword",
            )
            for m in self._pattern.finditer(text)
        ]
