from __future__ import annotations
from .base import PatternDetector, in_year_context
from ..models import PiiCategory


class IdNumberDetector(PatternDetector):
    """Twelve-digit My Number candidates."""

    category = PiiCategory.ID_NUMBER

    def accept(self, folded, start, end, rule) -> bool:
        return not in_year_context(folded, start, end)
