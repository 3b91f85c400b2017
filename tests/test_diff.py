from redact_pro.diff import original_text, render_diff, revised_text, span_diff, text_diff
from redact_pro.masking import mask
from redact_pro.models import DetectionSpan, DiffKind, PiiCategory
from redact_pro.policy import CategoryPolicy


def _masked(text, *spans):
    return mask(text, list(spans), CategoryPolicy.all_enabled())


def test_span_diff_alignment():
    raw = "mail: taro@example.com です"
    span = DetectionSpan(PiiCategory.EMAIL, 6, 22, raw[6:22], 0.95)
    masked = _masked(raw, span)
    segments = span_diff(raw, masked)
    assert [s.kind for s in segments] == [DiffKind.UNCHANGED, DiffKind.REPLACED, DiffKind.UNCHANGED]
    assert segments[1].original == "taro@example.com"
    assert segments[1].replacement == "[メール非公開]"
    assert segments[1].span == span
    assert original_text(segments) == raw
    assert revised_text(segments) == masked.text


def test_span_diff_without_spans():
    segments = span_diff("no pii", _masked("no pii"))
    assert [(s.kind, s.original) for s in segments] == [(DiffKind.UNCHANGED, "no pii")]


def test_span_diff_subset():
    raw = "a@b.jp c@d.jp"
    first = DetectionSpan(PiiCategory.EMAIL, 0, 6, "a@b.jp", 0.95)
    second = DetectionSpan(PiiCategory.EMAIL, 7, 13, "c@d.jp", 0.95)
    segments = span_diff(raw, _masked(raw, first, second), spans=[second])
    assert [s.kind for s in segments].count(DiffKind.REPLACED) == 1


def test_text_diff_replacement():
    segments = text_diff("a\nb\n", "a\nc\n")
    assert [s.kind for s in segments] == [DiffKind.UNCHANGED, DiffKind.REPLACED, DiffKind.UNCHANGED]
    assert original_text(segments) == "a\nb\n"
    assert revised_text(segments) == "a\nc\n"


def test_text_diff_insertion():
    segments = text_diff("a\n", "a\nb\n")
    assert segments[-1].kind is DiffKind.INSERTED
    assert segments[-1].replacement == "b\n"


def test_render_diff():
    raw = "mail: a@b.jp"
    span = DetectionSpan(PiiCategory.EMAIL, 6, 12, "a@b.jp", 0.95)
    rendered = render_diff(span_diff(raw, _masked(raw, span)))
    assert rendered == "mail: [-a@b.jp-]{+[メール非公開]+}"
