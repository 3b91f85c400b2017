from __future__ import annotations
import re
from .base import PATTERN_VARS, PatternDetector
from ..models import DetectionSpan, PiiCategory
from ..text import fold_width
from ..wordlists import given_names, non_name_words, surnames

# Characters allowed right before a surname (or the end of a label such as 担当者)
_NAME_BEFORE_OK = re.compile(r"[：:・、。，．\s　|｜/／()（）「」『』【】\-~\d.,;!?'\"]")
_LABEL_ENDS = re.compile(r"[名者当員長任師生客様方人]")

# A surname directly behind one of these is a person even without a given name
_PERSON_LABEL_BEFORE = re.compile(
    r"(?:氏名|名前|担当|著者|記入者|申請者|連絡先|責任者|作成者|報告者|代表者|上司|部長|課長|主任|対応者)"
    r"[：:・\s　/|]*\Z"
)
_PERSON_LABEL = re.compile(
    r"(?:氏名|名前|担当者?|著者|記入者|申請者|連絡先|責任者|作成者|報告者|代表者|上司|所属長|管理者|承認者)"
    r"[ \t]*[：:・ \t　/|｜][ \t　]*"
)
_KANJI_AFTER_SURNAME = re.compile(r"[ \t　]*[一-鿿々]{1,4}")
_NAME_AFTER_SURNAME = re.compile(r"[ \t　]*[一-鿿々぀-ゟ゠-ヿ]{1,4}")
_NAME_GUESS = re.compile(r"[一-鿿々]{2,4}[ \t　]?[一-鿿々]{1,4}")
_PREFECTURE_START = re.compile(f"(?:{PATTERN_VARS['prefecture']})")
_KANJI = re.compile(r"[一-鿿々]")
_ONLY_KATAKANA = re.compile(r"^[゠-ヿ\s　]+$")
_SPACES = re.compile(r"[\s　]")


def _alternation(words: tuple[str, ...]) -> str:
    return "|".join(re.escape(w) for w in words)


_SURNAME_AT = re.compile(f"(?=({_alternation(surnames())}))")
_SURNAME_PREFIX = re.compile(f"(?:{_alternation(surnames())})")
_GIVEN_AFTER = re.compile(f"[ \\t　]*(?:{_alternation(given_names())})")


def is_likely_name(value: str) -> bool:
    if not value or len(value) < 2 or len(value) > 10:
        return False
    clean = _SPACES.sub("", value)
    if clean in non_name_words():
        return False
    if not _KANJI.search(clean):
        return False
    return not _ONLY_KATAKANA.match(clean)


class NameDetector(PatternDetector):
    """Personal names.

    Combines the labelled patterns of patterns.toml with a surname/given-name
    dictionary, surnames behind a person label, and a lower-confidence guess
    for kanji runs right after a label.
    """

    category = PiiCategory.NAME

    def accept(self, folded, start, end, rule) -> bool:
        return _SPACES.sub("", folded[start:end]) not in non_name_words()

    def detect(self, text: str) -> list[DetectionSpan]:
        spans = super().detect(text)
        folded = fold_width(text)
        spans.extend(self._dictionary_names(text, folded))
        spans.extend(self._labelled_names(text, folded))
        return spans

    def _span(self, text: str, start: int, end: int, confidence: float, rule_id: str) -> DetectionSpan:
        return DetectionSpan(
            category=PiiCategory.NAME,
            start=start,
            end=end,
            text=text[start:end],
            confidence=confidence,
            rule_id=rule_id,
        )

    def _dictionary_names(self, text: str, folded: str) -> list[DetectionSpan]:
        spans: list[DetectionSpan] = []
        for match in _SURNAME_AT.finditer(folded):
            start = match.start()
            after = start + len(match.group(1))

            given = _GIVEN_AFTER.match(folded, after)
            if given:
                before = folded[start - 1] if start > 0 else " "
                boundary = (
                    start == 0
                    or _NAME_BEFORE_OK.match(before)
                    or _LABEL_ENDS.match(before)
                )
                if boundary and is_likely_name(folded[start:given.end()]):
                    spans.append(self._span(text, start, given.end(), 0.92, "name_dict"))
                continue

            if not _PERSON_LABEL_BEFORE.search(folded[max(0, start - 30):start]):
                continue
            rest = _KANJI_AFTER_SURNAME.match(folded, after)
            end = rest.end() if rest else after
            if is_likely_name(folded[start:end]):
                spans.append(self._span(text, start, end, 0.88, "name_context"))
        return spans

    def _labelled_names(self, text: str, folded: str) -> list[DetectionSpan]:
        spans: list[DetectionSpan] = []
        for label in _PERSON_LABEL.finditer(folded):
            pos = label.end()
            window_end = min(len(folded), pos + 16)

            surname = _SURNAME_PREFIX.match(folded, pos, window_end)
            if surname:
                rest = _NAME_AFTER_SURNAME.match(folded, surname.end(), window_end)
                end = rest.end() if rest else surname.end()
                if is_likely_name(folded[pos:end]):
                    spans.append(self._span(text, pos, end, 0.9, "name_context"))
                continue

            guess = _NAME_GUESS.match(folded, pos, window_end)
            if not guess or _PREFECTURE_START.match(guess.group(0)):
                continue
            end = guess.end()
            while end > pos and folded[end - 1].isspace():
                end -= 1
            if is_likely_name(folded[pos:end]):
                spans.append(self._span(text, pos, end, 0.75, "name_guess"))
        return spans
