"""Resume advisor calls to OpenAI, Anthropic, Google and local OpenAI-compatible servers."""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

import httpx

from .context import AdvisorContext
from .local import build_local_chat_url, build_local_request_body, message_text
from ..config import settings
from ..exceptions import ExternalCallError, ExternalCallErrorKind
from ..net import is_allowed_local_endpoint

logger = logging.getLogger(__name__)

MAX_HISTORY = 10
MAX_TOKENS = 4000
REWRITE_MAX_TOKENS = 8000
REWRITE_PRESET = "rewrite-full"
MAX_JOB_DESCRIPTION = 3000

PROVIDERS = ("openai", "anthropic", "google", "local")
DEFAULT_MODELS = {
    "openai": "gpt-5-nano",
    "anthropic": "claude-sonnet-4-20250514",
    "google": "gemini-2.5-flash",
    "local": "local-auto",
}

OPENAI_URL = "https://api.openai.com/v1/chat/completions"
ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"
GOOGLE_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

ADVISOR_SYSTEM_PROMPT = (
    "あなたは日本の転職市場に詳しい経歴書アドバイザーです。"
    "与えられた経歴書テキストを読み、構成・表現・実績の伝え方について具体的に助言してください。"
    "[氏名非公開] のような角括弧の表記は個人情報をマスクしたプレースホルダーです。"
    "プレースホルダーを推測で埋めたり、個人情報を復元しようとしたりしないでください。"
)
REWRITE_INSTRUCTION = (
    "【重要な指示】改善後の経歴書テキスト全文のみを出力してください。"
    "Markdown見出し・箇条書きによる説明・コメント・前置き・後書きは一切不要です。"
    "元テキストと同じ構造で、改善後のプレーンテキストのみを返してください。"
)


@dataclass(frozen=True)
class AdvisorReply:
    text: str
    provider: str
    model: str


def build_system_prompt(
    context: AdvisorContext | str,
    preset_id: str | None = None,
    job_description: str | None = None,
) -> str:
    rendered = context.render() if isinstance(context, AdvisorContext) else context
    system = f"{ADVISOR_SYSTEM_PROMPT}\n\n{rendered}"
    if job_description:
        system += f"\n\n【参考: 求人票】\n{job_description[:MAX_JOB_DESCRIPTION]}"
    if preset_id == REWRITE_PRESET:
        system += f"\n\n{REWRITE_INSTRUCTION}"
    return system


def recent_history(messages: Iterable[Mapping[str, Any]]) -> list[dict[str, str]]:
    """The last MAX_HISTORY turns as plain role/content pairs."""
    turns = [{"role": m["role"], "content": message_text(m["content"])} for m in messages]
    return turns[-MAX_HISTORY:]


def extract_openai_text(body: Mapping[str, Any]) -> str:
    """Visible text of a chat completion, or the refusal when the model declined."""
    choices = body.get("choices") or []
    message = (choices[0] or {}).get("message") if choices else None
    if not message:
        return ""
    content = message.get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        for part in content:
            refusal = part.get("refusal")
            if part.get("type") == "refusal" or (isinstance(refusal, str) and refusal.strip()):
                return refusal or ""
        joined = "".join(p["text"] for p in content if isinstance(p.get("text"), str)).strip()
        if joined:
            return joined
    refusal = message.get("refusal")
    if isinstance(refusal, str) and refusal.strip():
        return refusal
    return ""


def _anthropic_text(body: Mapping[str, Any]) -> str:
    return "".join(c.get("text") or "" for c in body.get("content") or [] if c.get("type") == "text")


def _google_text(body: Mapping[str, Any]) -> str:
    candidates = body.get("candidates") or []
    if not candidates:
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return "".join(p.get("text") or "" for p in parts)


def _require_key(value: str | None, name: str) -> str:
    if not value:
        raise ValueError(f"{name} API key is not configured")
    return value


def _post(
    client: httpx.Client, label: str, url: str, payload: dict[str, Any], **kwargs: Any
) -> dict[str, Any]:
    response = client.post(url, json=payload, **kwargs)
    if not response.is_success:
        raise ExternalCallError(
            ExternalCallErrorKind.UPSTREAM_STATUS,
            f"{label} {response.status_code}: {response.text[:200]}",
            status_code=response.status_code,
        )
    return response.json()


def call_advisor(
    messages: Iterable[Mapping[str, Any]],
    context: AdvisorContext | str,
    *,
    provider: str = "openai",
    model: str | None = None,
    preset_id: str | None = None,
    job_description: str | None = None,
    api_key: str | None = None,
    local_endpoint: str | None = None,
    timeout: float | None = None,
    transport: httpx.BaseTransport | None = None,
) -> AdvisorReply:
    """Send the conversation plus resume context to one provider and return its text.

    ValueError for an unknown provider or a missing key; ExternalCallError
    for timeouts, blocked local endpoints and non-2xx answers.
    """
    if provider not in PROVIDERS:
        raise ValueError(f"Unknown provider: {provider}")
    model = model or DEFAULT_MODELS[provider]
    system = build_system_prompt(context, preset_id, job_description)
    history = recent_history(messages)
    max_tokens = REWRITE_MAX_TOKENS if preset_id == REWRITE_PRESET else MAX_TOKENS
    timeout = settings.ai_timeout_seconds if timeout is None else timeout

    try:
        with httpx.Client(timeout=timeout, transport=transport) as client:
            if provider == "openai":
                key = _require_key(api_key or settings.openai_api_key, "OpenAI")
                payload: dict[str, Any] = {
                    "model": model,
                    "messages": [{"role": "system", "content": system}, *history],
                    "max_completion_tokens": max_tokens,
                }
                # gpt-5 models can spend the whole budget on hidden reasoning
                if model.startswith("gpt-5"):
                    payload["reasoning_effort"] = "minimal"
                body = _post(client, "OpenAI", OPENAI_URL, payload,
                             headers={"Authorization": f"Bearer {key}"})
                text = extract_openai_text(body)

            elif provider == "anthropic":
                key = _require_key(api_key or settings.anthropic_api_key, "Anthropic")
                payload = {
                    "model": model,
                    "max_tokens": max_tokens,
                    "system": system,
                    "messages": history,
                }
                body = _post(client, "Claude", ANTHROPIC_URL, payload,
                             headers={"x-api-key": key, "anthropic-version": ANTHROPIC_VERSION})
                text = _anthropic_text(body)

            elif provider == "google":
                key = _require_key(api_key or settings.google_ai_api_key, "Gemini")
                parts = [{"text": system + "\n\n"}] + [{"text": m["content"]} for m in history]
                payload = {
                    "contents": [{"parts": parts}],
                    "generationConfig": {"maxOutputTokens": max_tokens},
                }
                body = _post(client, "Gemini", GOOGLE_URL.format(model=model), payload,
                             params={"key": key})
                text = _google_text(body)

            else:
                endpoint = local_endpoint or settings.local_llm_endpoint
                if not is_allowed_local_endpoint(endpoint):
                    raise ExternalCallError(
                        ExternalCallErrorKind.BLOCKED_SSRF,
                        "Local AI endpoint must be localhost, 127.0.0.1, ::1 or 0.0.0.0",
                    )
                payload = build_local_request_body(model, history, max_tokens, system)
                body = _post(client, "Local AI", build_local_chat_url(endpoint), payload)
                text = extract_openai_text(body)
    except httpx.TimeoutException as exc:
        raise ExternalCallError(
            ExternalCallErrorKind.TIMEOUT, f"AI request timed out ({timeout:g}s)"
        ) from exc
    except httpx.HTTPError as exc:
        raise ExternalCallError(ExternalCallErrorKind.UPSTREAM_STATUS, str(exc)) from exc

    logger.info("Advisor reply from %s/%s: %d chars", provider, model, len(text))
    return AdvisorReply(text=text, provider=provider, model=model)
