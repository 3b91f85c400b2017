from __future__ import annotations
from .base import PatternDetector, in_year_context
from ..models import PiiCategory

_MIN_DIGITS = 10


def _digit_count(s: str) -> int:
    return sum(1 for c in s if c.isdigit())


class PhoneDetector(PatternDetector):
    """Japanese landline, mobile and +81 numbers."""

    category = PiiCategory.PHONE

    def accept(self, folded, start, end, rule) -> bool:
        if _digit_count(folded[start:end]) < _MIN_DIGITS:
            return False
        # "2019-04" style runs followed by 年/月 are dates
        if folded[end:end + 1] in ("年", "月"):
            return False
        return not in_year_context(folded, start, end)
