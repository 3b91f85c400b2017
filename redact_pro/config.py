from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _get_env(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value


def _get_env_bool(name: str, default: bool) -> bool:
    raw = _get_env(name, None)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _get_env_int(name: str, default: int) -> int:
    raw = _get_env(name, None)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _get_env_list(name: str, default: list[str]) -> tuple[str, ...]:
    raw = _get_env(name, None)
    if raw is None:
        return tuple(default)
    values = [item.strip() for item in raw.split(",")]
    clean = [item for item in values if item]
    return tuple(clean) if clean else tuple(default)


@dataclass(frozen=True)
class Settings:
    api_key: str | None
    api_db_path: str
    cors_allowed_origins: tuple[str, ...]
    log_level: str
    trust_x_forwarded_for: bool
    max_document_bytes: int
    pdf_min_chars_per_page: int
    ner_model: str | None
    default_preset: str
    batch_max_workers: int
    session_ttl_seconds: int
    max_sessions: int
    fetch_enabled: bool
    fetch_timeout_seconds: float
    fetch_max_bytes: int
    fetch_rate_limit: int
    fetch_rate_window_seconds: int
    extract_timeout_seconds: float
    extract_max_output_bytes: int
    extract_rate_limit: int
    extract_rate_window_seconds: int
    ai_timeout_seconds: float
    ai_rate_limit: int
    ai_rate_window_seconds: int
    openai_api_key: str | None
    anthropic_api_key: str | None
    google_ai_api_key: str | None
    local_llm_endpoint: str


settings = Settings(
    api_key=_get_env("API_KEY"),
    api_db_path=_get_env("API_DB_PATH", "redact_pro.db") or "redact_pro.db",
    cors_allowed_origins=_get_env_list("CORS_ORIGINS", ["*"]),
    log_level=_get_env("LOG_LEVEL", "INFO") or "INFO",
    trust_x_forwarded_for=_get_env_bool("TRUST_X_FORWARDED_FOR", False),
    max_document_bytes=_get_env_int("MAX_DOCUMENT_BYTES", 20 * 1024 * 1024),
    pdf_min_chars_per_page=_get_env_int("PDF_MIN_CHARS_PER_PAGE", 20),
    ner_model=_get_env("NER_MODEL"),
    default_preset=_get_env("DEFAULT_PRESET", "standard") or "standard",
    batch_max_workers=_get_env_int("BATCH_MAX_WORKERS", 4),
    session_ttl_seconds=_get_env_int("SESSION_TTL_SECONDS", 60 * 60),
    max_sessions=_get_env_int("MAX_SESSIONS", 500),
    fetch_enabled=_get_env_bool("FETCH_ENABLED", True),
    fetch_timeout_seconds=float(_get_env("FETCH_TIMEOUT_SECONDS", "15") or "15"),
    fetch_max_bytes=_get_env_int("FETCH_MAX_BYTES", 5 * 1024 * 1024),
    fetch_rate_limit=_get_env_int("FETCH_RATE_LIMIT", 30),
    fetch_rate_window_seconds=_get_env_int("FETCH_RATE_WINDOW_SECONDS", 60),
    extract_timeout_seconds=float(_get_env("EXTRACT_TIMEOUT_SECONDS", "30") or "30"),
    extract_max_output_bytes=_get_env_int("EXTRACT_MAX_OUTPUT_BYTES", 10 * 1024 * 1024),
    extract_rate_limit=_get_env_int("EXTRACT_RATE_LIMIT", 30),
    extract_rate_window_seconds=_get_env_int("EXTRACT_RATE_WINDOW_SECONDS", 24 * 60 * 60),
    ai_timeout_seconds=float(_get_env("AI_TIMEOUT_SECONDS", "90") or "90"),
    ai_rate_limit=_get_env_int("AI_RATE_LIMIT", 30),
    ai_rate_window_seconds=_get_env_int("AI_RATE_WINDOW_SECONDS", 24 * 60 * 60),
    openai_api_key=_get_env("OPENAI_API_KEY"),
    anthropic_api_key=_get_env("ANTHROPIC_API_KEY"),
    google_ai_api_key=_get_env("GOOGLE_AI_API_KEY"),
    local_llm_endpoint=_get_env("LOCAL_LLM_ENDPOINT", "http://localhost:11434/v1")
    or "http://localhost:11434/v1",
)
