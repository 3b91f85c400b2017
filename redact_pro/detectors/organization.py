from __future__ import annotations
from .base import PatternDetector
from ..models import PiiCategory
from ..wordlists import non_name_words

_LEGAL_FORMS = ("株式会社", "有限会社", "合同会社")


class OrganizationDetector(PatternDetector):
    """Company names carrying a legal form (株式会社…, …Inc.)."""

    category = PiiCategory.ORGANIZATION

    def accept(self, folded, start, end, rule) -> bool:
        value = folded[start:end]
        # a bare legal form or department word is not a company name
        stripped = value
        for form in _LEGAL_FORMS:
            stripped = stripped.replace(form, "")
        return bool(stripped.strip()) and value not in non_name_words()
