from __future__ import annotations

import base64
from dataclasses import replace

import pytest
from fastapi.testclient import TestClient

import api.db as db
import api.main as api_main
from api.main import app
from redact_pro.advisor import AdvisorReply
from redact_pro.exceptions import ExternalCallError, ExternalCallErrorKind
from redact_pro.extract import ExtractionResult
from redact_pro.ratelimit import RateLimiter
from redact_pro.sessions import SessionStore

RESUME = "氏名: 山田 太郎\n住所: 東京都千代田区丸の内1-2-3\n前職: 株式会社サンプル商事"


@pytest.fixture(scope="module")
def client(tmp_path_factory) -> TestClient:
    db_path = tmp_path_factory.mktemp("db") / "keys.db"
    with pytest.MonkeyPatch.context() as mp:
        mp.setattr(db, "_DB_PATH", str(db_path))
        mp.setattr(api_main, "_API_KEY", None)
        with TestClient(app) as c:
            yield c


@pytest.fixture
def session_id(client: TestClient) -> str:
    r = client.post(
        "/sessions",
        files={"file": ("cv.txt", RESUME.encode(), "text/plain")},
        data={"preset": "standard"},
    )
    assert r.status_code == 201
    return r.json()["id"]


# ---------------------------------------------------------------------------
# /health
# ---------------------------------------------------------------------------


def test_health(client: TestClient) -> None:
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


# ---------------------------------------------------------------------------
# /scan and /anonymize
# ---------------------------------------------------------------------------


def test_scan_masks_name_and_email(client: TestClient) -> None:
    r = client.post("/scan", json={"text": "氏名: 山田 太郎\nメール: taro@example.com"})
    assert r.status_code == 200
    data = r.json()
    assert data["masked_text"] == "氏名: [氏名非公開]\nメール: [メール非公開]"
    categories = {f["category"] for f in data["findings"]}
    assert categories == {"name", "email"}
    assert [s["kind"] for s in data["diff"]].count("replaced") == 2


def test_scan_findings_structure(client: TestClient) -> None:
    r = client.post("/scan", json={"text": "メール: taro@example.com"})
    finding = r.json()["findings"][0]
    assert {"start", "end", "text", "category", "confidence", "rule_id", "replacement"} <= finding.keys()
    assert finding["text"] == "taro@example.com"
    assert finding["replacement"] == "[メール非公開]"


def test_scan_category_filter(client: TestClient) -> None:
    r = client.post(
        "/scan",
        json={"text": "氏名: 山田 太郎\nメール: taro@example.com", "categories": ["email"]},
    )
    assert r.status_code == 200
    assert r.json()["masked_text"] == "氏名: 山田 太郎\nメール: [メール非公開]"


def test_scan_invalid_category(client: TestClient) -> None:
    r = client.post("/scan", json={"text": "test", "categories": ["UNKNOWN"]})
    assert r.status_code == 422


def test_scan_unknown_preset(client: TestClient) -> None:
    r = client.post("/scan", json={"text": "test", "preset": "paranoid"})
    assert r.status_code == 400


def test_scan_strategy_override(client: TestClient) -> None:
    r = client.post(
        "/scan",
        json={"text": "住所: 東京都千代田区丸の内1-2-3", "strategies": {"address": "partial"}},
    )
    assert r.json()["masked_text"] == "住所: 東京都[住所詳細非公開]"


def test_scan_custom_keywords(client: TestClient) -> None:
    r = client.post("/scan", json={"text": "前職: 極秘プロジェクト担当", "custom_keywords": ["極秘プロジェクト"]})
    assert r.json()["masked_text"] == "前職: [非公開]担当"


def test_anonymize_returns_text_only(client: TestClient) -> None:
    r = client.post("/anonymize", json={"text": "メール: taro@example.com"})
    assert r.status_code == 200
    assert r.json() == {"masked_text": "メール: [メール非公開]"}


# ---------------------------------------------------------------------------
# /decode
# ---------------------------------------------------------------------------


def test_decode_text_file(client: TestClient) -> None:
    r = client.post("/decode", files={"file": ("cv.txt", RESUME.encode(), "text/plain")})
    assert r.status_code == 200
    data = r.json()
    assert data["format"] == "txt"
    assert data["text"] == RESUME
    assert data["segments"]


def test_decode_empty_file(client: TestClient) -> None:
    r = client.post("/decode", files={"file": ("cv.txt", b"", "text/plain")})
    assert r.status_code == 422
    assert r.json()["kind"] == "empty_content"


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


def test_session_created_with_state(client: TestClient, session_id: str) -> None:
    r = client.get(f"/sessions/{session_id}")
    assert r.status_code == 200
    data = r.json()
    assert data["file_name"] == "cv.txt"
    assert data["preset"] == "standard"
    assert data["active_view"] == "masked"
    assert data["has_ai_text"] is False
    assert data["categories"]["name"]["enabled"] is True
    assert data["categories"]["organization"]["enabled"] is False
    assert data["span_counts"] == {"name": 1, "address": 1}


def test_session_unknown_id(client: TestClient) -> None:
    assert client.get("/sessions/nope").status_code == 404


def test_session_views(client: TestClient, session_id: str) -> None:
    masked = client.get(f"/sessions/{session_id}/views/masked").json()
    assert masked["text"] == "氏名: [氏名非公開]\n住所: [住所非公開]\n前職: 株式会社サンプル商事"
    assert masked["diff"] is None

    raw = client.get(f"/sessions/{session_id}/views/raw").json()
    assert raw["text"] == RESUME
    assert client.get(f"/sessions/{session_id}").json()["active_view"] == "raw"

    diff = client.get(f"/sessions/{session_id}/views/diff").json()
    assert [s["kind"] for s in diff["diff"]].count("replaced") == 2


def test_session_toggle_category(client: TestClient, session_id: str) -> None:
    r = client.post(f"/sessions/{session_id}/categories", json={"category": "organization"})
    assert r.status_code == 200
    assert r.json()["categories"]["organization"]["enabled"] is True
    text = client.get(f"/sessions/{session_id}/views/masked").json()["text"]
    assert text.endswith("前職: [組織名非公開]")

    r = client.post(f"/sessions/{session_id}/categories", json={"category": "name", "enabled": False})
    assert r.json()["categories"]["name"]["enabled"] is False
    assert "山田 太郎" in client.get(f"/sessions/{session_id}/views/masked").json()["text"]


def test_session_set_strategy(client: TestClient, session_id: str) -> None:
    r = client.post(
        f"/sessions/{session_id}/categories",
        json={"category": "address", "strategy": "partial"},
    )
    assert r.json()["categories"]["address"]["strategy"] == "partial"
    text = client.get(f"/sessions/{session_id}/views/masked").json()["text"]
    assert "住所: 東京都[住所詳細非公開]" in text


def test_session_preset(client: TestClient, session_id: str) -> None:
    r = client.post(f"/sessions/{session_id}/preset", json={"preset": "strict"})
    assert r.status_code == 200
    assert r.json()["preset"] == "strict"
    assert r.json()["categories"]["organization"]["enabled"] is True

    assert client.post(f"/sessions/{session_id}/preset", json={"preset": "nope"}).status_code == 400


def test_session_ai_views(client: TestClient, session_id: str) -> None:
    r = client.get(f"/sessions/{session_id}/views/ai")
    assert r.status_code == 409

    revised = "氏名: [氏名非公開]\n住所: [住所非公開]\n職歴: 株式会社サンプル商事"
    r = client.put(f"/sessions/{session_id}/ai-text", json={"text": revised})
    assert r.json()["has_ai_text"] is True

    assert client.get(f"/sessions/{session_id}/views/ai").json()["text"] == revised
    ai_diff = client.get(f"/sessions/{session_id}/views/ai-diff").json()
    assert ai_diff["view"] == "ai-diff"
    assert any(s["kind"] != "unchanged" for s in ai_diff["diff"])

    r = client.put(f"/sessions/{session_id}/ai-text", json={"text": None})
    assert r.json()["has_ai_text"] is False


def test_session_export_txt(client: TestClient, session_id: str) -> None:
    r = client.get(f"/sessions/{session_id}/export", params={"format": "txt"})
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/plain")
    assert "[氏名非公開]" in r.content.decode("utf-8")


def test_session_export_docx(client: TestClient, session_id: str) -> None:
    r = client.get(f"/sessions/{session_id}/export", params={"format": "docx"})
    assert r.status_code == 200
    assert r.headers["content-disposition"] == "attachment; filename*=UTF-8''cv_redacted.docx"
    assert r.content[:2] == b"PK"


def test_session_export_drop_placeholders(client: TestClient, session_id: str) -> None:
    r = client.get(
        f"/sessions/{session_id}/export",
        params={"format": "txt", "drop_placeholders": "true"},
    )
    text = r.content.decode("utf-8")
    assert "[氏名非公開]" not in text
    assert "前職: 株式会社サンプル商事" in text


def test_session_export_raw_view(client: TestClient, session_id: str) -> None:
    r = client.get(f"/sessions/{session_id}/export", params={"format": "md", "view": "raw"})
    assert "山田 太郎" in r.content.decode("utf-8")


def test_session_delete(client: TestClient, session_id: str) -> None:
    assert client.delete(f"/sessions/{session_id}").status_code == 204
    assert client.get(f"/sessions/{session_id}").status_code == 404
    assert client.delete(f"/sessions/{session_id}").status_code == 404


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def _upload(client: TestClient) -> str:
    r = client.post("/sessions", files={"file": ("cv.txt", RESUME.encode(), "text/plain")})
    assert r.status_code == 201
    return r.json()["id"]


def test_session_expires_when_idle(client: TestClient, monkeypatch) -> None:
    clock = FakeClock()
    monkeypatch.setattr(api_main, "_sessions", SessionStore(60, 10, clock=clock))
    sid = _upload(client)
    clock.now += 30
    assert client.get(f"/sessions/{sid}").status_code == 200
    clock.now += 61
    assert client.get(f"/sessions/{sid}").status_code == 404


def test_oldest_session_evicted_when_full(client: TestClient, monkeypatch) -> None:
    clock = FakeClock()
    monkeypatch.setattr(api_main, "_sessions", SessionStore(3600, 2, clock=clock))
    ids = []
    for _ in range(3):
        ids.append(_upload(client))
        clock.now += 1
    assert client.get(f"/sessions/{ids[0]}").status_code == 404
    assert client.get(f"/sessions/{ids[1]}").status_code == 200
    assert client.get(f"/sessions/{ids[2]}").status_code == 200


# ---------------------------------------------------------------------------
# /fetch
# ---------------------------------------------------------------------------


def test_fetch_disabled(client: TestClient, monkeypatch) -> None:
    monkeypatch.setattr(api_main, "settings", replace(api_main.settings, fetch_enabled=False))
    assert client.get("/fetch", params={"url": "https://example.com"}).status_code == 403


def test_fetch_private_address(client: TestClient) -> None:
    r = client.get("/fetch", params={"url": "http://127.0.0.1/admin"})
    assert r.status_code == 400
    assert r.json()["kind"] == "blocked_ssrf"


def test_fetch_rate_limited(client: TestClient, monkeypatch) -> None:
    monkeypatch.setitem(api_main._limiters, "fetch", RateLimiter(1, 60))
    first = client.get("/fetch", params={"url": "http://10.0.0.1/"})
    assert first.status_code == 400

    second = client.get("/fetch", params={"url": "http://10.0.0.1/"})
    assert second.status_code == 429
    assert second.headers["x-ratelimit-limit"] == "1"


# ---------------------------------------------------------------------------
# /extract
# ---------------------------------------------------------------------------


def test_extract(client: TestClient, monkeypatch) -> None:
    seen = []

    def fake_extract(pdf_base64: str) -> ExtractionResult:
        seen.append(pdf_base64)
        return ExtractionResult(text="--- Page 1 ---\n職務経歴", page_count=1)

    monkeypatch.setattr(api_main, "extract_pdf_text", fake_extract)
    payload = base64.b64encode(b"%PDF-1.4").decode()
    r = client.post("/extract", json={"pdfBase64": payload})
    assert r.status_code == 200
    assert r.json() == {"text": "--- Page 1 ---\n職務経歴", "pageCount": 1}
    assert seen == [payload]


def test_extract_tool_missing(client: TestClient, monkeypatch) -> None:
    def fake_extract(pdf_base64: str) -> ExtractionResult:
        raise ExternalCallError(ExternalCallErrorKind.TOOL_UNAVAILABLE, "pdftotext is not installed")

    monkeypatch.setattr(api_main, "extract_pdf_text", fake_extract)
    r = client.post("/extract", json={"pdfBase64": "AAAA"})
    assert r.status_code == 501


# ---------------------------------------------------------------------------
# /advisor
# ---------------------------------------------------------------------------


@pytest.fixture
def advisor_calls(monkeypatch):
    calls = []

    def fake_call(messages, context, **kwargs):
        calls.append((messages, context, kwargs))
        return AdvisorReply(text="実績を数字で示しましょう", provider=kwargs["provider"], model="gpt-5-nano")

    monkeypatch.setattr(api_main, "call_advisor", fake_call)
    monkeypatch.setitem(api_main._limiters, "ai", RateLimiter(5, 60))
    return calls


MESSAGES = [{"role": "user", "content": "改善点は？"}]


def test_advisor_with_session(client: TestClient, session_id: str, advisor_calls) -> None:
    r = client.post("/advisor", json={"messages": MESSAGES, "session_id": session_id})
    assert r.status_code == 200
    data = r.json()
    assert data["text"] == "実績を数字で示しましょう"
    assert data["remaining"] == 4
    assert data["limit"] == 5

    messages, context, kwargs = advisor_calls[0]
    assert messages == MESSAGES
    assert "[氏名非公開]" in context.source_text
    assert "山田" not in context.source_text
    assert kwargs["provider"] == "openai"


def test_advisor_with_plain_context(client: TestClient, advisor_calls) -> None:
    r = client.post("/advisor", json={"messages": MESSAGES, "context": "経歴テキスト"})
    assert r.status_code == 200
    assert advisor_calls[0][1] == "経歴テキスト"


def test_advisor_requires_context(client: TestClient, advisor_calls) -> None:
    r = client.post("/advisor", json={"messages": MESSAGES})
    assert r.status_code == 400
    assert advisor_calls == []


def test_advisor_requires_messages(client: TestClient, advisor_calls) -> None:
    r = client.post("/advisor", json={"messages": [], "context": "x"})
    assert r.status_code == 422


def test_advisor_bad_provider(client: TestClient, monkeypatch) -> None:
    def fake_call(messages, context, **kwargs):
        raise ValueError("Unknown provider: cohere")

    monkeypatch.setattr(api_main, "call_advisor", fake_call)
    monkeypatch.setitem(api_main._limiters, "ai", RateLimiter(5, 60))
    r = client.post("/advisor", json={"messages": MESSAGES, "context": "x", "provider": "cohere"})
    assert r.status_code == 400
    assert "cohere" in r.json()["detail"]


def test_advisor_timeout(client: TestClient, monkeypatch) -> None:
    def fake_call(messages, context, **kwargs):
        raise ExternalCallError(ExternalCallErrorKind.TIMEOUT, "AI request timed out (60s)")

    monkeypatch.setattr(api_main, "call_advisor", fake_call)
    monkeypatch.setitem(api_main._limiters, "ai", RateLimiter(5, 60))
    r = client.post("/advisor", json={"messages": MESSAGES, "context": "x"})
    assert r.status_code == 504
    assert r.json()["kind"] == "timeout"


def test_advisor_limit(client: TestClient, advisor_calls) -> None:
    client.post("/advisor", json={"messages": MESSAGES, "context": "x"})
    data = client.get("/advisor/limit").json()
    assert data["used"] == 1
    assert data["remaining"] == 4
    assert data["limit"] == 5


# ---------------------------------------------------------------------------
# API key
# ---------------------------------------------------------------------------


def test_api_key_required(client: TestClient, monkeypatch) -> None:
    monkeypatch.setattr(api_main, "_API_KEY", "env-secret")
    assert client.post("/scan", json={"text": "x"}).status_code == 401
    assert client.post("/scan", json={"text": "x"}, headers={"X-API-Key": "wrong"}).status_code == 401
    r = client.post("/scan", json={"text": "x"}, headers={"X-API-Key": "env-secret"})
    assert r.status_code == 200


def test_api_key_from_db(client: TestClient, monkeypatch) -> None:
    monkeypatch.setattr(api_main, "_API_KEY", "env-secret")
    raw = db.create_api_key("ci")
    assert raw.startswith(db.KEY_PREFIX)
    assert client.post("/scan", json={"text": "x"}, headers={"X-API-Key": raw}).status_code == 200

    key_id = next(k.id for k in db.list_api_keys() if k.name == "ci")
    assert db.revoke_api_key(key_id) is True
    assert client.post("/scan", json={"text": "x"}, headers={"X-API-Key": raw}).status_code == 401


def test_health_is_public(client: TestClient, monkeypatch) -> None:
    monkeypatch.setattr(api_main, "_API_KEY", "env-secret")
    assert client.get("/health").status_code == 200
