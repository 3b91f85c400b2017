from __future__ import annotations
import re
from datetime import date
from .base import PatternDetector
from ..models import PiiCategory

_BIRTHDAY_LABEL = re.compile(
    r"(?:生年月日|誕生日|生まれ|DOB|Date of Birth)[ \t]*[：:・]?[ \t]*\Z", re.IGNORECASE
)
_DOCUMENT_DATE_LABEL = re.compile(
    r"(?:作成日|提出日|更新日|記入日|発行日|印刷日|出力日|日付|現在|応募日|送付日|記載日)"
    r"[ \t]*[：:・]?[ \t]*\Z"
)
_WESTERN_YEAR = re.compile(r"^((?:19|20)\d{2})")
_ERA_YEAR = re.compile(r"^(昭和|平成|令和)[ \t]?(\d{1,2})")
_ERA_BASE = {"昭和": 1925, "平成": 1988, "令和": 2018}

# nobody applying for a job was born within the last twenty years
_MIN_AGE = 20


def _year_of(value: str) -> int | None:
    m = _WESTERN_YEAR.match(value)
    if m:
        return int(m.group(1))
    m = _ERA_YEAR.match(value)
    if m:
        return _ERA_BASE[m.group(1)] + int(m.group(2))
    return None


class DateOfBirthDetector(PatternDetector):
    """Dates that are plausibly a date of birth.

    reference_year fixes "now" so detection stays deterministic; it defaults
    to the current year.
    """

    category = PiiCategory.DATE_OF_BIRTH

    def __init__(self, reference_year: int | None = None) -> None:
        super().__init__()
        self.reference_year = reference_year or date.today().year

    def accept(self, folded, start, end, rule) -> bool:
        before = folded[max(0, start - 30):start]
        if _DOCUMENT_DATE_LABEL.search(before):
            return False
        if _BIRTHDAY_LABEL.search(before):
            return True
        year = _year_of(folded[start:end])
        return year is None or year <= self.reference_year - _MIN_AGE
