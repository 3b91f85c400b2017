import pytest
from redact_pro.exceptions import DetectionError
from redact_pro.models import MaskStrategy, PiiCategory
from redact_pro.policy import CATEGORY_RULES, PRESETS, CategoryPolicy, _load_table, priority


def test_every_category_has_a_rule():
    assert set(CATEGORY_RULES) == set(PiiCategory)


def test_incomplete_category_table_rejected(tmp_path):
    table = tmp_path / "categories.toml"
    table.write_text(
        "[categories.name]\n"
        "label = \"氏名\"\n"
        "placeholder = \"[氏名非公開]\"\n"
        "priority = 100\n"
        "[presets.basic]\n"
        "label = \"Basic\"\n"
        "enabled = [\"name\"]\n",
        encoding="utf-8",
    )
    with pytest.raises(DetectionError, match="email"):
        _load_table(table)


def test_presets_available():
    assert {"basic", "standard", "strict"} <= set(PRESETS)


def test_basic_preset():
    policy = CategoryPolicy.from_preset("basic")
    assert policy.enabled_categories == {
        PiiCategory.NAME,
        PiiCategory.EMAIL,
        PiiCategory.PHONE,
        PiiCategory.SNS,
        PiiCategory.CUSTOM_KEYWORD,
    }
    assert policy.preset == "basic"


def test_strict_adds_organization():
    assert not CategoryPolicy.from_preset("standard").is_enabled(PiiCategory.ORGANIZATION)
    assert CategoryPolicy.from_preset("strict").is_enabled(PiiCategory.ORGANIZATION)


def test_unknown_preset():
    with pytest.raises(ValueError):
        CategoryPolicy.from_preset("paranoid")


def test_policy_is_immutable():
    policy = CategoryPolicy.from_preset("basic")
    changed = policy.with_enabled(PiiCategory.ADDRESS, True)
    assert not policy.is_enabled(PiiCategory.ADDRESS)
    assert changed.is_enabled(PiiCategory.ADDRESS)
    assert changed.preset == "basic"


def test_with_strategy_keeps_enablement():
    policy = CategoryPolicy.from_preset("standard").with_strategy(
        PiiCategory.NAME, MaskStrategy.LITERAL, "候補者A"
    )
    setting = policy.setting(PiiCategory.NAME)
    assert setting.enabled
    assert setting.strategy is MaskStrategy.LITERAL
    assert setting.literal == "候補者A"


def test_with_only():
    policy = CategoryPolicy.all_enabled().with_only([PiiCategory.EMAIL])
    assert policy.enabled_categories == {PiiCategory.EMAIL}


def test_priority_order():
    assert priority(PiiCategory.NAME) > priority(PiiCategory.ADDRESS) > priority(PiiCategory.EMAIL)
    assert priority(PiiCategory.ORGANIZATION) > priority(PiiCategory.CUSTOM_KEYWORD)
