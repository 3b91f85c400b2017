from __future__ import annotations
import re
from .base import PatternDetector
from ..models import PiiCategory

_EMAIL_LOCAL_BEFORE = re.compile(r"[a-zA-Z0-9._%+\-]@")
_DOMAIN_AFTER = re.compile(r"\.\w+")
_URL_BEFORE = re.compile(r"https?://\S*\Z")


class SnsDetector(PatternDetector):
    """Handles behind a Twitter/X, GitHub, LinkedIn, Instagram or Facebook label."""

    category = PiiCategory.SNS

    def accept(self, folded, start, end, rule) -> bool:
        before = folded[max(0, start - 20):start]
        if _EMAIL_LOCAL_BEFORE.search(before) and _DOMAIN_AFTER.search(folded[end:end + 10]):
            return False
        if _URL_BEFORE.search(before):
            return False
        return True
