"""Category table and masking policies.

Categories, their placeholders and their overlap priority live in
redact_pro/data/categories.toml so that adding a category only touches data
and a detector, never the resolution or masking flow.
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Mapping

from .exceptions import DetectionError
from .models import MaskStrategy, PiiCategory

_DATA_DIR = Path(__file__).parent / "data"


@dataclass(frozen=True)
class CategoryRule:
    category: PiiCategory
    label: str
    placeholder: str
    priority: int
    merge_adjacent: bool = False
    propagate: bool = False
    partial_keep: str | None = None
    partial_suffix: str | None = None
    initial_keep: str = "1"
    rule_placeholders: Mapping[str, str] = field(default_factory=dict)

    def placeholder_for(self, rule_id: str | None) -> str:
        if rule_id and rule_id in self.rule_placeholders:
            return self.rule_placeholders[rule_id]
        return self.placeholder


@dataclass(frozen=True)
class Preset:
    id: str
    label: str
    enabled: frozenset[PiiCategory]


def _load_table(
    path: Path = _DATA_DIR / "categories.toml",
) -> tuple[dict[PiiCategory, CategoryRule], dict[str, Preset]]:
    with path.open("rb") as fh:
        data = tomllib.load(fh)

    rules: dict[PiiCategory, CategoryRule] = {}
    for key, c in data["categories"].items():
        category = PiiCategory(key)
        rules[category] = CategoryRule(
            category=category,
            label=c["label"],
            placeholder=c["placeholder"],
            priority=c["priority"],
            merge_adjacent=c.get("merge_adjacent", False),
            propagate=c.get("propagate", False),
            partial_keep=c.get("partial_keep"),
            partial_suffix=c.get("partial_suffix"),
            initial_keep=str(c.get("initial_keep", "1")),
            rule_placeholders=MappingProxyType(dict(c.get("rule_placeholders", {}))),
        )

    missing = set(PiiCategory) - set(rules)
    if missing:
        names = ", ".join(sorted(c.value for c in missing))
        raise DetectionError(f"{path.name} has no entry for: {names}")

    presets: dict[str, Preset] = {}
    for key, p in data["presets"].items():
        presets[key] = Preset(
            id=key,
            label=p["label"],
            enabled=frozenset(PiiCategory(c) for c in p["enabled"]),
        )
    return rules, presets


_RULES, PRESETS = _load_table()
CATEGORY_RULES: Mapping[PiiCategory, CategoryRule] = MappingProxyType(_RULES)


def category_rule(category: PiiCategory) -> CategoryRule:
    return CATEGORY_RULES[category]


def priority(category: PiiCategory) -> int:
    return CATEGORY_RULES[category].priority


@dataclass(frozen=True)
class CategorySetting:
    enabled: bool = True
    strategy: MaskStrategy = MaskStrategy.FULL
    literal: str = ""


@dataclass(frozen=True)
class CategoryPolicy:
    """Immutable per-category enablement and mask strategy.

    Every mutator returns a new policy, so a session can swap policies
    atomically and compare them for cache invalidation.
    """

    settings: Mapping[PiiCategory, CategorySetting]
    preset: str | None = None

    @classmethod
    def from_preset(cls, preset_id: str) -> CategoryPolicy:
        try:
            preset = PRESETS[preset_id]
        except KeyError:
            raise ValueError(f"Unknown preset: {preset_id!r}") from None
        return cls(
            settings=MappingProxyType(
                {c: CategorySetting(enabled=c in preset.enabled) for c in PiiCategory}
            ),
            preset=preset_id,
        )

    @classmethod
    def all_enabled(cls) -> CategoryPolicy:
        return cls(settings=MappingProxyType({c: CategorySetting() for c in PiiCategory}))

    def setting(self, category: PiiCategory) -> CategorySetting:
        return self.settings.get(category, CategorySetting(enabled=False))

    def is_enabled(self, category: PiiCategory) -> bool:
        return self.setting(category).enabled

    @property
    def enabled_categories(self) -> frozenset[PiiCategory]:
        return frozenset(c for c, s in self.settings.items() if s.enabled)

    def _with(self, category: PiiCategory, **changes) -> CategoryPolicy:
        updated = dict(self.settings)
        updated[category] = replace(self.setting(category), **changes)
        return CategoryPolicy(settings=MappingProxyType(updated), preset=self.preset)

    def with_enabled(self, category: PiiCategory, enabled: bool) -> CategoryPolicy:
        return self._with(category, enabled=enabled)

    def with_strategy(
        self, category: PiiCategory, strategy: MaskStrategy, literal: str = ""
    ) -> CategoryPolicy:
        return self._with(category, strategy=strategy, literal=literal)

    def with_only(self, categories: Iterable[PiiCategory]) -> CategoryPolicy:
        keep = set(categories)
        return CategoryPolicy(
            settings=MappingProxyType(
                {c: replace(self.setting(c), enabled=c in keep) for c in PiiCategory}
            ),
            preset=self.preset,
        )
