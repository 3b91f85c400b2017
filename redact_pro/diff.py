"""Diff views.

span_diff() walks the same span list that drove masking, so raw and masked
text stay aligned however long each placeholder is. text_diff() is a plain
textual diff for AI-rewritten text, which is not span-anchored.
"""

from __future__ import annotations
from difflib import SequenceMatcher
from typing import Iterable

from .models import DetectionSpan, DiffKind, DiffSegment, MaskedText

# character-level refinement of a changed line block is skipped above this size
_REFINE_LIMIT = 2000


def span_diff(
    raw: str,
    masked: MaskedText,
    spans: Iterable[DetectionSpan] | None = None,
) -> list[DiffSegment]:
    pairs = list(masked.span_replacements)
    if spans is not None:
        lookup = dict(pairs)
        pairs = [(s, lookup[s]) for s in spans if s in lookup]

    segments: list[DiffSegment] = []
    cursor = 0
    for span, repl in sorted(pairs, key=lambda p: p[0].start):
        if span.start > cursor:
            run = raw[cursor:span.start]
            segments.append(DiffSegment(DiffKind.UNCHANGED, run, run))
        segments.append(DiffSegment(DiffKind.REPLACED, raw[span.start:span.end], repl, span))
        cursor = span.end
    if cursor < len(raw):
        run = raw[cursor:]
        segments.append(DiffSegment(DiffKind.UNCHANGED, run, run))
    return segments


def original_text(segments: Iterable[DiffSegment]) -> str:
    return "".join(s.original for s in segments)


def revised_text(segments: Iterable[DiffSegment]) -> str:
    return "".join(s.replacement for s in segments)


def _segment(tag: str, a: str, b: str) -> DiffSegment:
    if tag == "equal":
        return DiffSegment(DiffKind.UNCHANGED, a, b)
    if tag == "insert":
        return DiffSegment(DiffKind.INSERTED, "", b)
    if tag == "delete":
        return DiffSegment(DiffKind.DELETED, a, "")
    return DiffSegment(DiffKind.REPLACED, a, b)


def text_diff(before: str, after: str) -> list[DiffSegment]:
    """Line diff of two texts, refined to characters inside changed blocks."""
    a_lines = before.splitlines(keepends=True)
    b_lines = after.splitlines(keepends=True)
    segments: list[DiffSegment] = []

    matcher = SequenceMatcher(None, a_lines, b_lines, autojunk=False)
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        a = "".join(a_lines[i1:i2])
        b = "".join(b_lines[j1:j2])
        if tag != "replace" or len(a) + len(b) > _REFINE_LIMIT:
            segments.append(_segment(tag, a, b))
            continue
        inner = SequenceMatcher(None, a, b, autojunk=False)
        for itag, k1, k2, l1, l2 in inner.get_opcodes():
            segments.append(_segment(itag, a[k1:k2], b[l1:l2]))

    # coalesce neighbours of the same kind
    merged: list[DiffSegment] = []
    for seg in segments:
        if merged and merged[-1].kind == seg.kind:
            prev = merged[-1]
            merged[-1] = DiffSegment(seg.kind, prev.original + seg.original, prev.replacement + seg.replacement)
        else:
            merged.append(seg)
    return merged


def render_diff(segments: Iterable[DiffSegment]) -> str:
    """Plain-text rendering of a diff: removed text as [-...-], added text as {+...+}."""
    out: list[str] = []
    for seg in segments:
        if seg.kind is DiffKind.UNCHANGED:
            out.append(seg.original)
            continue
        if seg.original:
            out.append(f"[-{seg.original}-]")
        if seg.replacement:
            out.append(f"{{+{seg.replacement}+}}")
    return "".join(out)
