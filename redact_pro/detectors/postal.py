from __future__ import annotations
from .base import PatternDetector, in_year_context
from ..models import PiiCategory


class PostalCodeDetector(PatternDetector):
    category = PiiCategory.POSTAL_CODE

    def accept(self, folded, start, end, rule) -> bool:
        if folded[start] == "〒":
            return True
        return not in_year_context(folded, start, end)
