import pytest
from redact_pro import (
    CategoryPolicy,
    DocumentFormat,
    DocumentSession,
    MaskStrategy,
    PiiCategory,
    PiiScanner,
    ViewMode,
    ViewStateError,
    decode,
)
from redact_pro.diff import original_text, revised_text

RESUME = "氏名: 山田 太郎\n住所: 東京都千代田区丸の内1-2-3\n前職: 株式会社サンプル商事"


@pytest.fixture
def session():
    normalized = decode(RESUME.encode(), DocumentFormat.TXT)
    return DocumentSession(
        normalized,
        CategoryPolicy.from_preset("standard"),
        file_name="cv.txt",
        scanner=PiiScanner(reference_year=2024),
    )


def test_default_view_is_masked(session):
    assert session.active_view is ViewMode.MASKED
    assert session.view_text() == "氏名: [氏名非公開]\n住所: [住所非公開]\n前職: 株式会社サンプル商事"


def test_raw_view_is_untouched(session):
    assert session.view_text(ViewMode.RAW) == RESUME


def test_toggle_reuses_candidates(session):
    candidates = session.candidates
    assert session.toggle_category(PiiCategory.ORGANIZATION) is True
    assert session.candidates is candidates
    assert "[組織名非公開]" in session.view_text()
    assert session.toggle_category(PiiCategory.ORGANIZATION) is False
    assert "株式会社サンプル商事" in session.view_text()


@pytest.mark.parametrize("category", [PiiCategory.NAME, PiiCategory.ADDRESS, PiiCategory.ORGANIZATION])
def test_toggle_off_and_on_restores_masked_text(session, category):
    before = session.masked()
    enabled = session.policy.is_enabled(category)
    session.toggle_category(category)
    assert session.masked().text != before.text
    session.toggle_category(category)
    assert session.policy.is_enabled(category) is enabled
    assert session.masked().text == before.text
    assert session.masked().span_replacements == before.span_replacements


def test_toggle_to_explicit_state(session):
    assert session.toggle_category("name", False) is False
    assert session.view_text().startswith("氏名: 山田 太郎")


def test_derived_views_are_cached_until_policy_changes(session):
    first = session.masked()
    assert session.masked() is first
    session.set_strategy(PiiCategory.ADDRESS, MaskStrategy.PARTIAL)
    assert session.masked() is not first
    assert "東京都[住所詳細非公開]" in session.view_text()


def test_set_same_policy_keeps_cache(session):
    first = session.masked()
    session.set_policy(session.policy)
    assert session.masked() is first


def test_apply_preset_keeps_strategy_overrides(session):
    session.set_strategy(PiiCategory.NAME, MaskStrategy.INITIAL)
    session.apply_preset("basic")
    assert session.policy.preset == "basic"
    assert session.policy.setting(PiiCategory.NAME).strategy is MaskStrategy.INITIAL
    assert not session.policy.is_enabled(PiiCategory.ADDRESS)
    assert "東京都千代田区丸の内1-2-3" in session.view_text()


def test_masked_offset_map_follows_replacements(session):
    masked = session.view_text(ViewMode.MASKED)
    offsets = session.view_offset_map(ViewMode.MASKED)
    assert offsets.origin(masked.index("[住所非公開]")) == {"line": 2}
    assert offsets.origin(masked.index("前職")) == {"line": 3}


def test_diff_view(session):
    rendered = session.view_text(ViewMode.DIFF)
    assert "[-山田 太郎-]{+[氏名非公開]+}" in rendered
    assert session.view_offset_map(ViewMode.DIFF) is None


# ---------------------------------------------------------------------------
# AI views
# ---------------------------------------------------------------------------


def test_ai_view_needs_text(session):
    with pytest.raises(ViewStateError):
        session.set_view(ViewMode.AI)
    with pytest.raises(ViewStateError):
        session.view_text(ViewMode.AI_DIFF)


def test_ai_text_and_diff(session):
    masked = session.view_text()
    session.set_ai_text(masked.replace("前職", "職歴"))
    assert session.set_view("ai-diff") is ViewMode.AI_DIFF
    segments = session.ai_diff()
    assert original_text(segments) == masked
    assert revised_text(segments) == session.ai_text
    assert "{+歴+}" in session.view_text()
    assert session.view_text(ViewMode.AI).endswith("職歴: 株式会社サンプル商事")


def test_clearing_ai_text_falls_back_to_masked(session):
    session.set_ai_text("rewritten")
    session.set_view(ViewMode.AI)
    session.set_ai_text(None)
    assert session.active_view is ViewMode.MASKED


def test_request_ai_rewrite_uses_masked_text(session):
    seen = []

    def rewriter(text):
        seen.append(text)
        return text.upper()

    session.request_ai_rewrite(rewriter)
    assert seen == [session.masked().text]
    assert session.ai_text == seen[0].upper()


def test_failed_rewrite_leaves_session_unchanged(session):
    def rewriter(text):
        raise RuntimeError("provider down")

    with pytest.raises(RuntimeError):
        session.request_ai_rewrite(rewriter)
    assert session.ai_text is None
    assert session.active_view is ViewMode.MASKED


# ---------------------------------------------------------------------------
# Export / editing
# ---------------------------------------------------------------------------


def test_export_active_view(session):
    assert session.export("txt").decode("utf-8") == session.view_text()


def test_export_diff_view(session):
    data = session.export("txt", ViewMode.DIFF).decode("utf-8")
    assert "{+[住所非公開]+}" in data


def test_editable_draft(session):
    draft = session.fork_editable()
    assert draft.offset_map is not None
    start = draft.text.index("前職")
    draft.replace(start, start + 2, "職歴")
    assert draft.offset_map is None
    assert "職歴: 株式会社サンプル商事" in draft.export("txt").decode("utf-8")
    # the session itself is not affected by draft edits
    assert "前職" in session.view_text()


def test_editable_draft_range_check(session):
    draft = session.fork_editable()
    with pytest.raises(ViewStateError):
        draft.replace(5, len(draft.text) + 1, "x")


# ---------------------------------------------------------------------------
# Advisor context
# ---------------------------------------------------------------------------


def test_advisor_context_counts(session):
    context = session.advisor_context()
    assert context.detection_summary == {"氏名": 1, "住所": 1}
    assert context.enabled_count == 2
    assert context.total_count == 3
    assert context.format == "TXT"
    assert context.source_text == session.masked().text


def test_advisor_context_raw_text(session):
    assert session.advisor_context(use_masked=False).source_text == RESUME


def test_detection_counts(session):
    counts = session.detection_counts()
    assert counts[PiiCategory.NAME] == 1
    assert counts[PiiCategory.ORGANIZATION] == 0
