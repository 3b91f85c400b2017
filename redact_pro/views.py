"""Per-document review session: raw, masked, diff and AI views kept in step.

Detection runs once, for every category. Policy changes only re-resolve the
stored candidates and re-mask, so toggling a category costs O(spans log
spans) and never touches the detectors.
"""

from __future__ import annotations
import logging
import threading
from collections import Counter
from dataclasses import dataclass
from typing import Callable

from .advisor.context import AdvisorContext, AdvisorDetection, build_advisor_context
from .config import settings
from .diff import render_diff, span_diff, text_diff
from .exceptions import ViewStateError
from .export import export
from .masking import build_reading_map, mask
from .models import (
    DetectionSpan,
    DiffSegment,
    ExportFormat,
    MaskedText,
    MaskStrategy,
    NormalizedText,
    OffsetMap,
    PiiCategory,
    ViewMode,
)
from .policy import CATEGORY_RULES, CategoryPolicy
from .scanner import PiiScanner, resolve_spans

logger = logging.getLogger(__name__)

_AI_VIEWS = frozenset({ViewMode.AI, ViewMode.AI_DIFF})


@dataclass
class EditableDraft:
    """Hand-editable copy of a view. Edits are kept; policy changes no longer apply."""

    text: str
    offset_map: OffsetMap | None = None

    def replace(self, start: int, end: int, replacement: str) -> None:
        if not 0 <= start <= end <= len(self.text):
            raise ViewStateError(f"edit range {start}-{end} is outside the draft")
        self.text = self.text[:start] + replacement + self.text[end:]
        # positions after a manual edit cannot be traced back to the source
        self.offset_map = None

    def export(self, fmt: ExportFormat | str, drop_placeholders: bool = False) -> bytes:
        return export(self.text, self.offset_map, fmt, drop_placeholders=drop_placeholders)


class DocumentSession:
    def __init__(
        self,
        normalized: NormalizedText,
        policy: CategoryPolicy | None = None,
        *,
        file_name: str = "",
        custom_keywords: list[str] | None = None,
        scanner: PiiScanner | None = None,
    ) -> None:
        self.normalized = normalized
        self.file_name = file_name
        self._lock = threading.RLock()
        self._policy = policy or CategoryPolicy.from_preset(settings.default_preset)
        scanner = scanner or PiiScanner(custom_keywords=custom_keywords)
        self._candidates = tuple(scanner.collect_candidates(normalized.text))
        self._reading_map = build_reading_map(normalized.text)
        self._active_view = ViewMode.MASKED
        self._ai_text: str | None = None
        self._cache: dict[str, object] = {}
        logger.info(
            "Session created: %s, %d chars, %d candidates",
            normalized.source_format.value,
            len(normalized.text),
            len(self._candidates),
        )

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def raw_text(self) -> str:
        return self.normalized.text

    @property
    def policy(self) -> CategoryPolicy:
        with self._lock:
            return self._policy

    @property
    def active_view(self) -> ViewMode:
        with self._lock:
            return self._active_view

    @property
    def ai_text(self) -> str | None:
        with self._lock:
            return self._ai_text

    @property
    def candidates(self) -> tuple[DetectionSpan, ...]:
        return self._candidates

    def _invalidate(self) -> None:
        # raw and the AI text survive every policy change
        self._cache.clear()

    def _cached(self, key: str, build: Callable[[], object]):
        with self._lock:
            if key not in self._cache:
                self._cache[key] = build()
            return self._cache[key]

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def set_view(self, view: ViewMode | str) -> ViewMode:
        view = ViewMode(view)
        with self._lock:
            if view in _AI_VIEWS and self._ai_text is None:
                raise ViewStateError(f"{view.value} view needs AI-rewritten text first")
            self._active_view = view
            return view

    def set_policy(self, policy: CategoryPolicy) -> None:
        with self._lock:
            if policy == self._policy:
                return
            self._policy = policy
            self._invalidate()

    def toggle_category(self, category: PiiCategory | str, enabled: bool | None = None) -> bool:
        """Flip (or set) one category; returns the new enabled state."""
        category = PiiCategory(category)
        with self._lock:
            state = (not self._policy.is_enabled(category)) if enabled is None else enabled
            self.set_policy(self._policy.with_enabled(category, state))
            return state

    def set_strategy(
        self, category: PiiCategory | str, strategy: MaskStrategy | str, literal: str = ""
    ) -> None:
        category, strategy = PiiCategory(category), MaskStrategy(strategy)
        with self._lock:
            self.set_policy(self._policy.with_strategy(category, strategy, literal))

    def apply_preset(self, preset_id: str) -> None:
        """Switch enablement to a preset; per-category strategy overrides are kept."""
        preset = CategoryPolicy.from_preset(preset_id)
        with self._lock:
            policy = preset
            for category in PiiCategory:
                current = self._policy.setting(category)
                if current.strategy is not MaskStrategy.FULL or current.literal:
                    policy = policy.with_strategy(category, current.strategy, current.literal)
            self.set_policy(policy)

    def set_ai_text(self, text: str | None) -> None:
        with self._lock:
            self._ai_text = text
            self._cache.pop("ai_diff", None)
            if text is None and self._active_view in _AI_VIEWS:
                self._active_view = ViewMode.MASKED

    def request_ai_rewrite(self, rewriter: Callable[[str], str], use_masked: bool = True) -> str:
        """Run rewriter on the current masked (or raw) text and store its result.

        The rewriter runs outside the session lock; if it raises, the session
        is left exactly as it was.
        """
        source = self.masked().text if use_masked else self.raw_text
        rewritten = rewriter(source)
        self.set_ai_text(rewritten)
        return rewritten

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    def spans(self) -> list[DetectionSpan]:
        return self._cached(
            "spans", lambda: resolve_spans(self._candidates, self._policy, self.raw_text)
        )

    def masked(self) -> MaskedText:
        return self._cached(
            "masked", lambda: mask(self.raw_text, self.spans(), self._policy, self._reading_map)
        )

    def masked_offset_map(self) -> OffsetMap:
        return self._cached(
            "masked_map",
            lambda: self.normalized.offset_map.translate(self.masked().span_replacements),
        )

    def diff(self) -> list[DiffSegment]:
        return self._cached("diff", lambda: span_diff(self.raw_text, self.masked()))

    def ai_diff(self) -> list[DiffSegment]:
        with self._lock:
            if self._ai_text is None:
                raise ViewStateError("ai-diff view needs AI-rewritten text first")
            ai_text = self._ai_text
            return self._cached("ai_diff", lambda: text_diff(self.masked().text, ai_text))

    def view_text(self, view: ViewMode | str | None = None) -> str:
        with self._lock:
            view = self._active_view if view is None else ViewMode(view)
            if view is ViewMode.RAW:
                return self.raw_text
            if view is ViewMode.MASKED:
                return self.masked().text
            if view is ViewMode.DIFF:
                return render_diff(self.diff())
            if self._ai_text is None:
                raise ViewStateError(f"{view.value} view needs AI-rewritten text first")
            if view is ViewMode.AI:
                return self._ai_text
            return render_diff(self.ai_diff())

    def view_offset_map(self, view: ViewMode | str | None = None) -> OffsetMap | None:
        """Offset map for views that still line up with the source; None otherwise."""
        with self._lock:
            view = self._active_view if view is None else ViewMode(view)
            if view is ViewMode.RAW:
                return self.normalized.offset_map
            if view is ViewMode.MASKED:
                return self.masked_offset_map()
            return None

    def export(
        self,
        fmt: ExportFormat | str,
        view: ViewMode | str | None = None,
        drop_placeholders: bool = False,
    ) -> bytes:
        with self._lock:
            text = self.view_text(view)
            offset_map = self.view_offset_map(view)
        return export(text, offset_map, fmt, drop_placeholders=drop_placeholders)

    def fork_editable(self, view: ViewMode | str | None = None) -> EditableDraft:
        with self._lock:
            return EditableDraft(text=self.view_text(view), offset_map=self.view_offset_map(view))

    # ------------------------------------------------------------------
    # Advisor
    # ------------------------------------------------------------------

    def detection_counts(self) -> Counter:
        return Counter(span.category for span in self.spans())

    def advisor_detections(self) -> list[AdvisorDetection]:
        """Active spans as enabled detections plus disabled-category spans as disabled ones."""
        with self._lock:
            policy = self._policy
            active = self.spans()
            disabled = set(PiiCategory) - policy.enabled_categories
            hidden = resolve_spans(self._candidates, policy.with_only(disabled), self.raw_text)
        records = [
            AdvisorDetection(s.category.value, CATEGORY_RULES[s.category].label, True) for s in active
        ]
        records += [
            AdvisorDetection(s.category.value, CATEGORY_RULES[s.category].label, False) for s in hidden
        ]
        return records

    def advisor_context(self, use_masked: bool = True) -> AdvisorContext:
        with self._lock:
            return build_advisor_context(
                original_text=self.raw_text,
                masked_text=self.masked().text,
                detections=self.advisor_detections(),
                file_name=self.file_name,
                fmt=self.normalized.source_format.value.upper(),
                page_count=self.normalized.page_count,
                use_masked=use_masked,
            )
