from __future__ import annotations
import logging
from xml.etree.ElementTree import Element, ParseError

import defusedxml.ElementTree as ET

from .base import CELL_SEPARATOR, BaseDecoder, TextBuilder, local_name, open_zip, read_part
from ..exceptions import DecodeError, DecodeErrorKind
from ..models import DocumentFormat, NormalizedText

logger = logging.getLogger(__name__)

_OFFICE_NS = "urn:oasis:names:tc:opendocument:xmlns:office:1.0"
_TEXT_NS = "urn:oasis:names:tc:opendocument:xmlns:text:1.0"
_MIMETYPE = "application/vnd.oasis.opendocument.text"

_SKIP = frozenset({"annotation", "note", "tracked-changes", "sequence-decls", "bookmark", "soft-page-break"})
# upper bound for a single text:s run
_MAX_SPACES = 1024


def _space_count(raw: str | None) -> int:
    if raw is None:
        return 1
    try:
        count = int(raw)
    except ValueError:
        logger.debug("Ignoring malformed text:c value %r", raw)
        return 1
    return max(1, min(count, _MAX_SPACES))


def inline_text(el: Element) -> str:
    """Mixed-content text of a text:p / text:h, honouring text:s, tab and line-break."""
    parts = [el.text or ""]
    for child in el:
        tag = local_name(child.tag)
        if tag == "s":
            parts.append(" " * _space_count(child.get(f"{{{_TEXT_NS}}}c")))
        elif tag == "tab":
            parts.append("\t")
        elif tag == "line-break":
            parts.append("\n")
        elif tag in ("p", "h"):
            parts.append("\n" + inline_text(child))
        elif tag not in _SKIP:
            parts.append(inline_text(child))
        parts.append(child.tail or "")
    return "".join(parts)


def _cell_text(cell: Element) -> str:
    lines = [inline_text(p) for p in cell.iter() if local_name(p.tag) in ("p", "h")]
    return " ".join(line for line in lines if line)


class OdtDecoder(BaseDecoder):
    """OpenDocument text: office:text paragraphs, headings, lists and tables in order."""

    format = DocumentFormat.ODT

    def decode(self, data: bytes) -> NormalizedText:
        with open_zip(data) as archive:
            mimetype = read_part(archive, "mimetype")
            if mimetype is not None and mimetype.strip().decode("ascii", "replace") != _MIMETYPE:
                raise DecodeError(
                    DecodeErrorKind.UNSUPPORTED_SUBFORMAT,
                    f"OpenDocument subtype {mimetype.strip().decode('ascii', 'replace')}",
                )
            content = read_part(archive, "content.xml")
        if content is None:
            raise DecodeError(DecodeErrorKind.CORRUPT, "missing content.xml")
        try:
            root = ET.fromstring(content)
        except ParseError as exc:
            raise DecodeError(DecodeErrorKind.CORRUPT, f"malformed content.xml: {exc}") from exc

        builder = TextBuilder()
        counters = {"paragraph": 0, "table": 0}
        for node in root.iter():
            if node.tag == f"{{{_OFFICE_NS}}}text":
                self._walk(node, builder, counters)
                break
        return builder.build(self.format)

    def _walk(self, node: Element, builder: TextBuilder, counters: dict[str, int]) -> None:
        for child in node:
            tag = local_name(child.tag)
            if tag in ("p", "h"):
                counters["paragraph"] += 1
                builder.line(inline_text(child), {"paragraph": counters["paragraph"]})
            elif tag == "table":
                counters["table"] += 1
                self._table(child, counters["table"], builder)
            elif tag in ("list", "list-item", "list-header", "section", "index-body"):
                self._walk(child, builder, counters)

    def _table(self, table: Element, number: int, builder: TextBuilder) -> None:
        r = 0
        for row in table.iter():
            if local_name(row.tag) != "table-row":
                continue
            r += 1
            cells = [c for c in row if local_name(c.tag) in ("table-cell", "covered-table-cell")]
            if not cells:
                continue
            builder.cells(
                [(_cell_text(c), {"table": number, "row": r, "col": i}) for i, c in enumerate(cells, start=1)],
                separator=CELL_SEPARATOR,
            )
