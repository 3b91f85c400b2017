from __future__ import annotations
import logging
import posixpath
import re
from xml.etree.ElementTree import Element, ParseError

import defusedxml.ElementTree as ET

from .base import BaseDecoder, TextBuilder, local_name, open_zip, read_part
from ..exceptions import DecodeError, DecodeErrorKind
from ..models import DocumentFormat, NormalizedText

logger = logging.getLogger(__name__)

_REL_NS = "http://schemas.openxmlformats.org/officeDocument/2006/relationships"
_CELL_REF = re.compile(r"^([A-Z]{1,3})(\d+)$")

SHEET_HEADER = "--- Sheet: {name} ---"


def column_index(letters: str) -> int:
    """"A" -> 1, "Z" -> 26, "AA" -> 27."""
    index = 0
    for ch in letters:
        index = index * 26 + (ord(ch) - 64)
    return index


def _row_number(ref: str | None, previous: int) -> int:
    """The r attribute of a row, or the next sequential number when it is missing or bad."""
    if ref:
        try:
            number = int(ref)
        except ValueError:
            logger.debug("Ignoring malformed row reference %r", ref)
        else:
            if number > 0:
                return number
    return previous + 1


def _parse(data: bytes, part: str) -> Element:
    try:
        return ET.fromstring(data)
    except ParseError as exc:
        raise DecodeError(DecodeErrorKind.CORRUPT, f"malformed {part}: {exc}") from exc


def _rich_text(node: Element) -> str:
    """Text of an <si>/<is> element, skipping phonetic (furigana) runs."""
    parts: list[str] = []

    def walk(el: Element) -> None:
        for child in el:
            tag = local_name(child.tag)
            if tag == "rPh":
                continue
            if tag == "t":
                parts.append(child.text or "")
            else:
                walk(child)

    walk(node)
    return "".join(parts)


class XlsxDecoder(BaseDecoder):
    """Every sheet in workbook order: a header line, then one line per non-empty row."""

    format = DocumentFormat.XLSX

    def decode(self, data: bytes) -> NormalizedText:
        with open_zip(data) as archive:
            workbook = read_part(archive, "xl/workbook.xml")
            if workbook is None:
                raise DecodeError(DecodeErrorKind.CORRUPT, "missing xl/workbook.xml")
            targets = self._sheet_targets(archive)
            shared = self._shared_strings(archive)

            builder = TextBuilder()
            root = _parse(workbook, "xl/workbook.xml")
            for n, sheet in enumerate(el for el in root.iter() if local_name(el.tag) == "sheet"):
                name = sheet.get("name") or f"Sheet{n + 1}"
                rel_id = sheet.get(f"{{{_REL_NS}}}id")
                path = targets.get(rel_id or "", f"xl/worksheets/sheet{n + 1}.xml")
                part = read_part(archive, path)
                builder.line(SHEET_HEADER.format(name=name), {"sheet": name, "header": True})
                if part is None:
                    builder.warn(f"missing_sheet:{name}")
                    continue
                self._rows(_parse(part, path), name, shared, builder)
        return builder.build(self.format)

    def _sheet_targets(self, archive) -> dict[str, str]:
        rels = read_part(archive, "xl/_rels/workbook.xml.rels")
        if rels is None:
            return {}
        targets: dict[str, str] = {}
        for rel in _parse(rels, "workbook relationships").iter():
            if local_name(rel.tag) != "Relationship":
                continue
            target = rel.get("Target", "")
            if target.startswith("/"):
                path = target.lstrip("/")
            else:
                path = posixpath.normpath(posixpath.join("xl", target))
            targets[rel.get("Id", "")] = path
        return targets

    def _shared_strings(self, archive) -> list[str]:
        data = read_part(archive, "xl/sharedStrings.xml")
        if data is None:
            return []
        root = _parse(data, "xl/sharedStrings.xml")
        return [_rich_text(si) for si in root if local_name(si.tag) == "si"]

    def _cell_value(self, cell: Element, shared: list[str]) -> str:
        kind = cell.get("t", "n")
        if kind == "inlineStr":
            for child in cell:
                if local_name(child.tag) == "is":
                    return _rich_text(child)
            return ""
        raw = ""
        for child in cell:
            if local_name(child.tag) == "v":
                raw = child.text or ""
                break
        if kind == "s":
            try:
                return shared[int(raw)]
            except (ValueError, IndexError):
                logger.debug("Dangling shared string index %r", raw)
                return ""
        if kind == "b":
            return "TRUE" if raw == "1" else "FALSE"
        return raw

    def _rows(self, root: Element, sheet: str, shared: list[str], builder: TextBuilder) -> None:
        row_number = 0
        for row in root.iter():
            if local_name(row.tag) != "row":
                continue
            row_number = _row_number(row.get("r"), row_number)
            values: dict[int, str] = {}
            next_col = 1
            for cell in row:
                if local_name(cell.tag) != "c":
                    continue
                ref = _CELL_REF.match(cell.get("r", ""))
                col = column_index(ref.group(1)) if ref else next_col
                next_col = col + 1
                values[col] = self._cell_value(cell, shared)

            filled = [c for c, v in values.items() if v.strip()]
            if not filled:
                continue
            builder.cells([
                (values.get(c, ""), {"sheet": sheet, "row": row_number, "col": c})
                for c in range(1, max(filled) + 1)
            ])
