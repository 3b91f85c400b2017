from __future__ import annotations
from .base import PatternDetector
from ..models import PiiCategory


class AddressDetector(PatternDetector):
    """Japanese postal addresses from prefecture down to block number.

    The prefecture is tagged as the "region" sub-span so the partial
    strategy can keep it visible.
    """

    category = PiiCategory.ADDRESS
