from __future__ import annotations
import re
from functools import lru_cache
from typing import Iterable, Mapping

from .models import DetectionSpan, MaskedText, MaskStrategy, NormalizedText
from .policy import CATEGORY_RULES, CategoryPolicy, CategoryRule, CategorySetting

_ELLIPSIS = "…"

_KANA_ROWS: dict[str, str] = {
    "A": "ア", "I": "イ", "U": "ウ", "E": "エ", "O": "オ",
    "K": "カキクケコ", "G": "ガギグゲゴ",
    "S": "サシスセソ", "Z": "ザジズゼゾ",
    "T": "タツテト", "C": "チ", "D": "ダヂヅデド",
    "N": "ナニヌネノン",
    "H": "ハヒヘホ", "F": "フ", "B": "バビブベボ", "P": "パピプペポ",
    "M": "マミムメモ", "Y": "ヤユヨ", "R": "ラリルレロ", "W": "ワヲ",
}
_KANA_INITIAL: dict[str, str] = {
    kana: latin for latin, row in _KANA_ROWS.items() for kana in row
}

_ONLY_KANA = re.compile(r"^[゠-ヿ぀-ゟー\s　]+$")
_SPLIT = re.compile(r"[\s　]+")
_NAME_LINE = re.compile(r"(?:氏\s?名|名\s?前)\s*[：:・|｜]\s*(.+)")
_READING_LINE = re.compile(r"(?:フリガナ|ふりがな|カナ)\s*[：:・|｜]\s*([゠-ヿー぀-ゟ\s　]+)")
_READING_LOOKAHEAD = 3


def _hira_to_kata(c: str) -> str:
    cp = ord(c)
    return chr(cp + 0x60) if 0x3041 <= cp <= 0x3096 else c


def _kana_initial(c: str) -> str | None:
    return _KANA_INITIAL.get(c) or _KANA_INITIAL.get(_hira_to_kata(c))


def build_reading_map(text: str) -> dict[str, str]:
    """Map written names to the furigana given within three lines below them."""
    readings: dict[str, str] = {}
    lines = text.split("\n")
    for i, line in enumerate(lines):
        name = _NAME_LINE.search(line)
        if not name:
            continue
        for following in lines[i + 1:i + 1 + _READING_LOOKAHEAD]:
            kana = _READING_LINE.search(following)
            if kana:
                readings[name.group(1).strip()] = kana.group(1).strip()
                break
    return readings


def name_to_initial(name: str, reading_map: Mapping[str, str] | None = None) -> str:
    """Initials for a name: "T.Y." from a reading, else the first characters."""
    if not name:
        return ""
    reading = name if _ONLY_KANA.match(name) else (reading_map or {}).get(name, "")
    if reading:
        parts = [p for p in _SPLIT.split(reading) if p]
        initials = ".".join(_kana_initial(p[0]) or p[0] for p in parts)
        return initials + "." if initials else ""
    parts = [p for p in _SPLIT.split(name) if p]
    if len(parts) >= 2:
        return ".".join(p[0] for p in parts) + "."
    if len(name) >= 2:
        return f"{name[0]}.{name[1]}."
    return name[0] + "."


def replacement_for(
    text: str,
    span: DetectionSpan,
    setting: CategorySetting,
    reading_map: Mapping[str, str] | None = None,
) -> str:
    rule: CategoryRule = CATEGORY_RULES[span.category]
    placeholder = rule.placeholder_for(span.rule_id)
    strategy = setting.strategy

    if strategy is MaskStrategy.PARTIAL:
        seg = span.segment(rule.partial_keep) if rule.partial_keep else None
        if seg is None:
            return placeholder
        return text[seg.start:seg.end] + (rule.partial_suffix or placeholder)

    if strategy is MaskStrategy.INITIAL:
        if rule.initial_keep == "reading":
            return name_to_initial(span.text, reading_map) or placeholder
        keep = int(rule.initial_keep)
        return span.text[:keep] + _ELLIPSIS

    if strategy is MaskStrategy.LITERAL:
        return setting.literal or placeholder

    return placeholder


def mask(
    text: str | NormalizedText,
    spans: Iterable[DetectionSpan],
    policy: CategoryPolicy,
    reading_map: Mapping[str, str] | None = None,
) -> MaskedText:
    """Replace every enabled span, right to left, and record each replacement.

    spans must be sorted and non-overlapping (see scanner.resolve_spans).
    """
    raw = text.text if isinstance(text, NormalizedText) else text
    active = [s for s in spans if policy.is_enabled(s.category)]
    if reading_map is None and any(
        policy.setting(s.category).strategy is MaskStrategy.INITIAL for s in active
    ):
        reading_map = build_reading_map(raw)

    replacements = [
        (span, replacement_for(raw, span, policy.setting(span.category), reading_map))
        for span in active
    ]

    pieces: list[str] = []
    cursor = len(raw)
    for span, repl in reversed(replacements):
        if span.end > cursor:
            raise ValueError(f"Overlapping span at {span.start}-{span.end}")
        pieces.append(raw[span.end:cursor])
        pieces.append(repl)
        cursor = span.start
    pieces.append(raw[:cursor])

    return MaskedText(text="".join(reversed(pieces)), span_replacements=tuple(replacements))


@lru_cache(maxsize=1)
def placeholder_pattern() -> re.Pattern[str]:
    """Regex matching any placeholder this engine can produce."""
    values: set[str] = set()
    for rule in CATEGORY_RULES.values():
        values.add(rule.placeholder)
        values.update(rule.rule_placeholders.values())
        if rule.partial_suffix:
            values.add(rule.partial_suffix)
    alternatives = "|".join(re.escape(v) for v in sorted(values, key=len, reverse=True))
    return re.compile(f"(?:{alternatives})")
