from .context import (
    MAX_TEXT_LENGTH,
    TRUNCATION_MARKER,
    AdvisorContext,
    AdvisorDetection,
    build_advisor_context,
)
from .local import build_local_chat_url, build_local_messages, build_local_request_body
from .providers import AdvisorReply, call_advisor, extract_openai_text

__all__ = [
    "MAX_TEXT_LENGTH",
    "TRUNCATION_MARKER",
    "AdvisorContext",
    "AdvisorDetection",
    "AdvisorReply",
    "build_advisor_context",
    "build_local_chat_url",
    "build_local_messages",
    "build_local_request_body",
    "call_advisor",
    "extract_openai_text",
]
