from redact_pro.advisor.local import (
    LOCAL_AUTO_MODEL,
    build_local_chat_url,
    build_local_messages,
    build_local_request_body,
    message_text,
)


def test_chat_url():
    assert build_local_chat_url("http://localhost:11434/v1") == "http://localhost:11434/v1/chat/completions"
    assert build_local_chat_url("http://localhost:1234/v1/") == "http://localhost:1234/v1/chat/completions"


def test_message_text_from_blocks():
    content = [
        {"type": "text", "text": "経歴書を"},
        {"type": "image_url", "image_url": {"url": "data:..."}},
        {"type": "text", "text": "見てください"},
    ]
    assert message_text(content) == "経歴書を\n見てください"
    assert message_text("plain") == "plain"


def test_messages_with_system():
    messages = build_local_messages([{"role": "user", "content": "hi"}], system="sys")
    assert messages == [
        {"role": "system", "content": "sys"},
        {"role": "user", "content": "hi"},
    ]


def test_auto_model_omitted():
    body = build_local_request_body(LOCAL_AUTO_MODEL, [{"role": "user", "content": "hi"}], 100)
    assert "model" not in body
    assert body["max_tokens"] == 100


def test_explicit_model_kept():
    body = build_local_request_body("llama3", [{"role": "user", "content": "hi"}], 100, "sys")
    assert body["model"] == "llama3"
    assert body["messages"][0] == {"role": "system", "content": "sys"}
