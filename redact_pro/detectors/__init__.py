from .base import BaseDetector, PatternDetector
from .address import AddressDetector
from .birthday import DateOfBirthDetector
from .custom_keyword import CustomKeywordDetector
from .email import EmailDetector
from .id_number import IdNumberDetector
from .name import NameDetector
from .organization import OrganizationDetector
from .phone import PhoneDetector
from .postal import PostalCodeDetector
from .sns import SnsDetector
from .url import UrlDetector

__all__ = [
    "BaseDetector",
    "PatternDetector",
    "AddressDetector",
    "DateOfBirthDetector",
    "CustomKeywordDetector",
    "EmailDetector",
    "IdNumberDetector",
    "NameDetector",
    "OrganizationDetector",
    "PhoneDetector",
    "PostalCodeDetector",
    "SnsDetector",
    "UrlDetector",
]
