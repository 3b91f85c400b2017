"""Context handed to the resume advisor: detection summary plus the resume text."""

from __future__ import annotations
from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable, Mapping

MAX_TEXT_LENGTH = 6000
TRUNCATION_MARKER = "\n...(以下省略)"


@dataclass(frozen=True)
class AdvisorDetection:
    category: str
    label: str
    enabled: bool


@dataclass(frozen=True)
class AdvisorContext:
    file_name: str
    format: str
    source_text: str
    page_count: int | None = None
    detection_summary: Mapping[str, int] = field(default_factory=dict)
    total_count: int = 0
    enabled_count: int = 0

    def summary_line(self) -> str:
        if not self.detection_summary:
            return "なし"
        return ", ".join(f"{label}: {count}件" for label, count in self.detection_summary.items())

    def render(self) -> str:
        pages = f", {self.page_count}ページ" if self.page_count else ""
        return (
            "【経歴書データ】\n"
            f"ファイル: {self.file_name} ({self.format}{pages})\n"
            f"PII検出結果: {self.summary_line()}\n"
            f"検出総数: {self.total_count}件（マスク有効: {self.enabled_count}件）\n"
            "\n"
            "【経歴書テキスト】\n"
            f"{self.source_text}"
        )


def truncate(text: str, limit: int = MAX_TEXT_LENGTH) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + TRUNCATION_MARKER


def build_advisor_context(
    *,
    original_text: str,
    masked_text: str,
    detections: Iterable[AdvisorDetection],
    file_name: str,
    fmt: str,
    page_count: int | None = None,
    use_masked: bool = True,
) -> AdvisorContext:
    """Build the advisor context for one AI turn.

    Only enabled detections appear in the per-category summary; the total
    still counts every detection so the advisor can tell that some were
    left unmasked on purpose.
    """
    detections = list(detections)
    enabled = [d for d in detections if d.enabled]
    summary = Counter(d.label or d.category for d in enabled)
    source = masked_text if use_masked else original_text
    return AdvisorContext(
        file_name=file_name,
        format=fmt,
        source_text=truncate(source),
        page_count=page_count,
        detection_summary=dict(summary),
        total_count=len(detections),
        enabled_count=len(enabled),
    )
