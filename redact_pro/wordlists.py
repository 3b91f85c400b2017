from __future__ import annotations
from functools import lru_cache
from pathlib import Path

_DATA_DIR = Path(__file__).parent / "data"


def _load_file(path: Path) -> list[str]:
    words: list[str] = []
    if not path.exists():
        return words
    with path.open(encoding="utf-8") as fh:
        for line in fh:
            word = line.strip()
            if word and not word.startswith("#"):
                words.append(word)
    return words


@lru_cache(maxsize=None)
def surnames() -> tuple[str, ...]:
    """Known surnames, longest first so 佐々木 is tried before 佐."""
    return tuple(sorted(set(_load_file(_DATA_DIR / "surnames.txt")), key=len, reverse=True))


@lru_cache(maxsize=None)
def given_names() -> tuple[str, ...]:
    return tuple(sorted(set(_load_file(_DATA_DIR / "given_names.txt")), key=len, reverse=True))


@lru_cache(maxsize=None)
def non_name_words() -> frozenset[str]:
    return frozenset(_load_file(_DATA_DIR / "non_name_words.txt"))
