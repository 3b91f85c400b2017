from __future__ import annotations
from enum import Enum


class RedactProError(Exception):
    """Base class for all errors raised by redact_pro."""


class DecodeErrorKind(str, Enum):
    CORRUPT = "corrupt"
    UNSUPPORTED_SUBFORMAT = "unsupported_subformat"
    EMPTY_CONTENT = "empty_content"
    SIZE_EXCEEDED = "size_exceeded"


class DecodeError(RedactProError):
    def __init__(self, kind: DecodeErrorKind, message: str = "") -> None:
        self.kind = kind
        self.message = message or kind.value
        super().__init__(f"{kind.value}: {self.message}")


class DetectionError(RedactProError):
    """A detection rule could not be compiled or loaded."""


class ExternalCallErrorKind(str, Enum):
    TIMEOUT = "timeout"
    RATE_LIMITED = "rate_limited"
    BLOCKED_SSRF = "blocked_ssrf"
    UPSTREAM_STATUS = "upstream_status"
    TOOL_UNAVAILABLE = "tool_unavailable"
    TOOL_FAILED = "tool_failed"
    RESPONSE_REJECTED = "response_rejected"


class ExternalCallError(RedactProError):
    def __init__(
        self,
        kind: ExternalCallErrorKind,
        message: str = "",
        status_code: int | None = None,
    ) -> None:
        self.kind = kind
        self.message = message or kind.value
        self.status_code = status_code
        super().__init__(f"{kind.value}: {self.message}")


class ViewStateError(RedactProError):
    """A view or edit was requested that the session cannot serve."""
