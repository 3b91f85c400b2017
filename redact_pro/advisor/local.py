"""Helpers for OpenAI-compatible local servers (Ollama, LM Studio, LocalAI)."""

from __future__ import annotations
from typing import Any, Iterable, Mapping

LOCAL_AUTO_MODEL = "local-auto"


def build_local_chat_url(endpoint: str) -> str:
    return endpoint.rstrip("/") + "/chat/completions"


def message_text(content: str | Iterable[Mapping[str, Any]]) -> str:
    """Plain text of a message; content blocks other than text are dropped."""
    if isinstance(content, str):
        return content
    return "\n".join(block.get("text") or "" for block in content if block.get("type") == "text")


def build_local_messages(
    messages: Iterable[Mapping[str, Any]], system: str | None = None
) -> list[dict[str, str]]:
    out: list[dict[str, str]] = []
    if system:
        out.append({"role": "system", "content": system})
    for m in messages:
        out.append({"role": m["role"], "content": message_text(m["content"])})
    return out


def build_local_request_body(
    model: str,
    messages: Iterable[Mapping[str, Any]],
    max_tokens: int,
    system: str | None = None,
) -> dict[str, Any]:
    body: dict[str, Any] = {
        "messages": build_local_messages(messages, system),
        "max_tokens": max_tokens,
    }
    # the server picks its loaded model when none is named
    if model and model != LOCAL_AUTO_MODEL:
        body["model"] = model
    return body
