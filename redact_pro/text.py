"""Character-level helpers shared by decoders and detectors."""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

_DASHES = "‐‑‒–—―−－﹣"

# Full-width ASCII block (！ .. ～) folds to its half-width counterpart,
# dash variants fold to "-". Every entry maps one char to one char.
_FOLD_TABLE: dict[int, str] = {cp: chr(cp - 0xFEE0) for cp in range(0xFF01, 0xFF5F)}
_FOLD_TABLE.update({ord(c): "-" for c in _DASHES})
# keep the full-width colon so label patterns can match either form
_FOLD_TABLE.pop(0xFF1A)

_FALLBACK_ENCODINGS = ("cp932", "euc_jp")


def fold_width(text: str) -> str:
    """Return a same-length copy of text suitable for pattern matching."""
    return text.translate(_FOLD_TABLE)


def normalize_newlines(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def decode_bytes(data: bytes) -> tuple[str, list[str]]:
    """Decode raw bytes to text, returning (text, warnings).

    Tries UTF-8 (with or without BOM), then UTF-16 when a BOM says so, then
    the Japanese legacy encodings, and finally Latin-1 which never fails.
    """
    warnings: list[str] = []
    if data.startswith(b"\xef\xbb\xbf"):
        return normalize_newlines(data[3:].decode("utf-8", errors="replace")), warnings
    if data.startswith((b"\xff\xfe", b"\xfe\xff")):
        return normalize_newlines(data.decode("utf-16")), warnings
    try:
        return normalize_newlines(data.decode("utf-8")), warnings
    except UnicodeDecodeError:
        pass
    for encoding in _FALLBACK_ENCODINGS:
        try:
            text = data.decode(encoding)
        except UnicodeDecodeError:
            continue
        logger.info("Decoded non-UTF-8 input as %s", encoding)
        warnings.append(f"decoded_as_{encoding}")
        return normalize_newlines(text), warnings
    warnings.append("decoded_as_latin_1")
    return normalize_newlines(data.decode("latin-1")), warnings


def line_bounds(text: str, index: int) -> tuple[int, int]:
    start = text.rfind("\n", 0, index) + 1
    end = text.find("\n", index)
    return start, len(text) if end == -1 else end
