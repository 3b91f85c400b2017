import json
from dataclasses import replace

import httpx
import pytest
from redact_pro.advisor import AdvisorContext, call_advisor, extract_openai_text
from redact_pro.advisor import providers
from redact_pro.exceptions import ExternalCallError, ExternalCallErrorKind

CONTEXT = AdvisorContext(file_name="cv.txt", format="TXT", source_text="[氏名非公開]の職務経歴")
MESSAGES = [{"role": "user", "content": "改善点を教えてください"}]


class Recorder:
    def __init__(self, body, status=200):
        self.body = body
        self.status = status
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        return httpx.Response(self.status, json=self.body)

    @property
    def payload(self):
        return json.loads(self.requests[0].content)


def _call(recorder, **kwargs):
    return call_advisor(MESSAGES, CONTEXT, transport=httpx.MockTransport(recorder), **kwargs)


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------


def test_openai_request_shape():
    recorder = Recorder({"choices": [{"message": {"content": "構成は良好です"}}]})
    reply = _call(recorder, provider="openai", api_key="sk-test")
    assert reply.text == "構成は良好です"
    assert (reply.provider, reply.model) == ("openai", "gpt-5-nano")

    request = recorder.requests[0]
    assert str(request.url) == providers.OPENAI_URL
    assert request.headers["authorization"] == "Bearer sk-test"
    payload = recorder.payload
    assert payload["max_completion_tokens"] == providers.MAX_TOKENS
    assert payload["reasoning_effort"] == "minimal"
    assert payload["messages"][0]["role"] == "system"
    assert "[氏名非公開]の職務経歴" in payload["messages"][0]["content"]
    assert payload["messages"][1:] == MESSAGES


def test_openai_non_reasoning_model():
    recorder = Recorder({"choices": [{"message": {"content": "ok"}}]})
    _call(recorder, provider="openai", model="gpt-4o-mini", api_key="sk-test")
    assert "reasoning_effort" not in recorder.payload


def test_anthropic_request_shape():
    recorder = Recorder({"content": [{"type": "text", "text": "良い"}, {"type": "text", "text": "です"}]})
    reply = _call(recorder, provider="anthropic", api_key="ak-test")
    assert reply.text == "良いです"
    request = recorder.requests[0]
    assert request.headers["x-api-key"] == "ak-test"
    assert request.headers["anthropic-version"] == providers.ANTHROPIC_VERSION
    assert recorder.payload["system"].startswith(providers.ADVISOR_SYSTEM_PROMPT)
    assert recorder.payload["messages"] == MESSAGES


def test_google_request_shape():
    recorder = Recorder({"candidates": [{"content": {"parts": [{"text": "助言"}]}}]})
    reply = _call(recorder, provider="google", api_key="g-test")
    assert reply.text == "助言"
    request = recorder.requests[0]
    assert request.url.params["key"] == "g-test"
    assert "gemini-2.5-flash:generateContent" in request.url.path


def test_local_provider():
    recorder = Recorder({"choices": [{"message": {"content": "local"}}]})
    reply = _call(recorder, provider="local", local_endpoint="http://localhost:11434/v1")
    assert reply.text == "local"
    assert str(recorder.requests[0].url) == "http://localhost:11434/v1/chat/completions"
    assert "model" not in recorder.payload


def test_local_endpoint_must_be_loopback():
    recorder = Recorder({})
    with pytest.raises(ExternalCallError) as exc:
        _call(recorder, provider="local", local_endpoint="http://localhost.evil.example/v1")
    assert exc.value.kind is ExternalCallErrorKind.BLOCKED_SSRF
    assert recorder.requests == []


# ---------------------------------------------------------------------------
# Prompt and history
# ---------------------------------------------------------------------------


def test_history_limited():
    recorder = Recorder({"choices": [{"message": {"content": "ok"}}]})
    messages = [{"role": "user" if i % 2 == 0 else "assistant", "content": str(i)} for i in range(15)]
    call_advisor(messages, CONTEXT, api_key="sk", transport=httpx.MockTransport(recorder))
    sent = recorder.payload["messages"]
    assert len(sent) == 1 + providers.MAX_HISTORY
    assert sent[-1]["content"] == "14"


def test_rewrite_preset():
    recorder = Recorder({"choices": [{"message": {"content": "ok"}}]})
    _call(recorder, api_key="sk", preset_id=providers.REWRITE_PRESET, job_description="Python 開発者")
    payload = recorder.payload
    assert payload["max_completion_tokens"] == providers.REWRITE_MAX_TOKENS
    system = payload["messages"][0]["content"]
    assert providers.REWRITE_INSTRUCTION in system
    assert "【参考: 求人票】\nPython 開発者" in system


def test_plain_string_context():
    recorder = Recorder({"choices": [{"message": {"content": "ok"}}]})
    call_advisor(MESSAGES, "自由記述の経歴", api_key="sk", transport=httpx.MockTransport(recorder))
    assert recorder.payload["messages"][0]["content"].endswith("自由記述の経歴")


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


def test_unknown_provider():
    with pytest.raises(ValueError):
        _call(Recorder({}), provider="cohere")


def test_missing_key(monkeypatch):
    monkeypatch.setattr(providers, "settings", replace(providers.settings, openai_api_key=None))
    with pytest.raises(ValueError):
        _call(Recorder({}), provider="openai")


def test_upstream_status():
    with pytest.raises(ExternalCallError) as exc:
        _call(Recorder({"error": "boom"}, status=500), api_key="sk")
    assert exc.value.kind is ExternalCallErrorKind.UPSTREAM_STATUS
    assert exc.value.status_code == 500


def test_timeout():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(ExternalCallError) as exc:
        call_advisor(MESSAGES, CONTEXT, api_key="sk", timeout=2, transport=httpx.MockTransport(handler))
    assert exc.value.kind is ExternalCallErrorKind.TIMEOUT


# ---------------------------------------------------------------------------
# extract_openai_text
# ---------------------------------------------------------------------------


def test_extract_plain_content():
    assert extract_openai_text({"choices": [{"message": {"content": "hi"}}]}) == "hi"


def test_extract_content_parts():
    body = {"choices": [{"message": {"content": [{"type": "text", "text": "a"}, {"type": "text", "text": "b"}]}}]}
    assert extract_openai_text(body) == "ab"


def test_extract_refusal():
    body = {"choices": [{"message": {"content": None, "refusal": "I can't help with that"}}]}
    assert extract_openai_text(body) == "I can't help with that"
    parts = {"choices": [{"message": {"content": [{"type": "refusal", "refusal": "no"}]}}]}
    assert extract_openai_text(parts) == "no"


def test_extract_empty():
    assert extract_openai_text({}) == ""
    assert extract_openai_text({"choices": []}) == ""
