from __future__ import annotations
from .base import PatternDetector
from ..models import PiiCategory


class UrlDetector(PatternDetector):
    category = PiiCategory.URL
