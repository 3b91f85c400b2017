from __future__ import annotations
import codecs
import logging
import re
from dataclasses import dataclass, replace
from .base import CELL_SEPARATOR, BaseDecoder, TextBuilder
from ..exceptions import DecodeError, DecodeErrorKind
from ..models import DocumentFormat, NormalizedText

logger = logging.getLogger(__name__)

_TOKEN = re.compile(
    r"\\([a-zA-Z]{1,32})(-?\d{1,10})? ?"  # control word with optional parameter
    r"|\\'([0-9a-fA-F]{2})"  # hex-escaped byte
    r"|\\([^a-zA-Z'])"  # control symbol
    r"|([{}])"
    r"|([^\\{}\r\n]+)"
    r"|[\r\n]+",
    re.DOTALL,
)

# destinations whose text is never document content
_SKIP_DESTINATIONS = frozenset({
    "fonttbl", "colortbl", "stylesheet", "info", "pict", "listtable",
    "listoverridetable", "rsidtbl", "generator", "xmlnstbl", "themedata",
    "colorschememapping", "latentstyles", "datastore", "fldinst", "filetbl",
    "revtbl", "pgdsctbl", "bkmkstart", "bkmkend", "mmathPr", "object",
    "wgrffmtfilter", "nonshppict", "shpinst", "private", "xe", "tc", "txe",
    "operator", "author", "comment", "title", "subject", "keywords", "doccomm",
})

_WORD_TEXT: dict[str, str] = {
    "par": "\n", "line": "\n", "sect": "\n", "page": "\n", "row": "\n",
    "tab": "\t", "cell": CELL_SEPARATOR, "nestcell": CELL_SEPARATOR,
    "emdash": "—", "endash": "–", "bullet": "•", "emspace": " ", "enspace": " ",
    "lquote": "‘", "rquote": "’", "ldblquote": "“", "rdblquote": "”",
}
_REPLACEMENT = "\ufffd"

_SYMBOL_TEXT: dict[str, str] = {
    "\\": "\\", "{": "{", "}": "}", "~": " ", "_": "-", "-": "",
    "\n": "\n", "\r": "\n",
}


@dataclass(frozen=True)
class _State:
    skip: bool = False
    uc: int = 1


def _codec_for(codepage: int) -> str:
    name = f"cp{codepage}"
    try:
        codecs.lookup(name)
    except LookupError:
        return "cp1252"
    return name


def _clean_line(line: str) -> str:
    line = line.rstrip()
    # a table row ends with a dangling cell separator
    if line.endswith(CELL_SEPARATOR.rstrip()):
        line = line[:-len(CELL_SEPARATOR.rstrip())].rstrip()
    return line


class RtfDecoder(BaseDecoder):
    """Plain-text extraction from RTF with Unicode and code-page escapes."""

    format = DocumentFormat.RTF

    def decode(self, data: bytes) -> NormalizedText:
        if not data.lstrip().startswith(b"{\\rtf"):
            raise DecodeError(DecodeErrorKind.CORRUPT, "missing {\\rtf header")
        # RTF is 7-bit; anything else arrives through \' and \u escapes
        source = data.decode("latin-1")
        text, balanced, replaced = self._extract(source)

        builder = TextBuilder()
        if not balanced:
            builder.warn("unbalanced_groups")
        if replaced:
            builder.warn("invalid_unicode_escape")
        lines = [_clean_line(line) for line in text.split("\n")]
        while lines and not lines[0]:
            lines.pop(0)
        while lines and not lines[-1]:
            lines.pop()
        for n, line in enumerate(lines, start=1):
            builder.line(line, {"paragraph": n})
        return builder.build(self.format)

    def _extract(self, source: str) -> tuple[str, bool, int]:
        """Document text, whether groups balance, and how many \\u escapes became U+FFFD."""
        out: list[str] = []
        pending: bytearray = bytearray()
        codec = "cp1252"
        stack: list[_State] = []
        state = _State()
        skip_chars = 0
        group_start = False
        balanced = True
        high: int | None = None  # UTF-16 high surrogate waiting for its pair
        replaced = 0

        def settle() -> None:
            nonlocal high, replaced
            if high is not None:
                out.append(_REPLACEMENT)
                replaced += 1
                high = None

        def flush() -> None:
            settle()
            if pending:
                out.append(pending.decode(codec, errors="replace"))
                pending.clear()

        for m in _TOKEN.finditer(source):
            word, param, hexbyte, symbol, brace, chunk = m.groups()

            if brace == "{":
                flush()
                stack.append(state)
                group_start = True
                continue
            if brace == "}":
                flush()
                if stack:
                    state = stack.pop()
                else:
                    balanced = False
                skip_chars = 0
                group_start = False
                continue

            first_in_group = group_start
            group_start = False

            if word is not None:
                if first_in_group and word in _SKIP_DESTINATIONS:
                    state = replace(state, skip=True)
                    continue
                if word == "ansicpg" and param:
                    flush()
                    codec = _codec_for(int(param))
                    continue
                if word == "uc" and param:
                    state = replace(state, uc=int(param))
                    continue
                if state.skip:
                    continue
                if word == "u" and param:
                    unit = int(param)
                    if unit < 0:
                        unit += 65536
                    skip_chars = state.uc
                    if high is not None and 0xDC00 <= unit <= 0xDFFF:
                        out.append(chr(0x10000 + ((high - 0xD800) << 10) + (unit - 0xDC00)))
                        high = None
                        continue
                    flush()
                    if 0xD800 <= unit <= 0xDBFF:
                        high = unit
                    elif 0 <= unit <= 0xFFFF and not 0xDC00 <= unit <= 0xDFFF:
                        out.append(chr(unit))
                    else:
                        out.append(_REPLACEMENT)
                        replaced += 1
                    continue
                text = _WORD_TEXT.get(word)
                if text is not None:
                    flush()
                    out.append(text)
                    skip_chars = 0
                continue

            if symbol is not None:
                if symbol == "*":
                    # ignorable destination we do not understand
                    if first_in_group:
                        state = replace(state, skip=True)
                    continue
                if state.skip:
                    continue
                if symbol in _SYMBOL_TEXT:
                    flush()
                    out.append(_SYMBOL_TEXT[symbol])
                continue

            if state.skip:
                continue

            if hexbyte is not None:
                if skip_chars:
                    skip_chars -= 1
                    continue
                settle()
                pending.append(int(hexbyte, 16))
                continue

            if chunk is not None:
                if skip_chars:
                    dropped = min(skip_chars, len(chunk))
                    chunk = chunk[dropped:]
                    skip_chars -= dropped
                if chunk:
                    flush()
                    out.append(chunk)

        flush()
        if stack:
            balanced = False
        if not balanced:
            logger.info("RTF document has unbalanced groups")
        return "".join(out), balanced, replaced
