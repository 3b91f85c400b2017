from __future__ import annotations
import logging
import re
from xml.etree.ElementTree import Element, ParseError

import defusedxml.ElementTree as ET

from .base import CELL_SEPARATOR, BaseDecoder, TextBuilder, local_name, open_zip, read_part
from ..exceptions import DecodeError, DecodeErrorKind
from ..models import DocumentFormat, NormalizedText

logger = logging.getLogger(__name__)

_BODY = "word/document.xml"
_HEADER_PART = re.compile(r"^word/header\d*\.xml$")
_FOOTER_PART = re.compile(r"^word/footer\d*\.xml$")

_SKIP = frozenset({"delText", "instrText", "rPr", "pPr", "sectPr", "fldData"})


def paragraph_text(el: Element) -> str:
    """Text of a w:p including tabs, breaks and nested text-box paragraphs."""
    parts: list[str] = []

    def walk(node: Element) -> None:
        for child in node:
            tag = local_name(child.tag)
            if tag in _SKIP:
                continue
            if tag == "t":
                parts.append(child.text or "")
            elif tag == "tab":
                parts.append("\t")
            elif tag in ("br", "cr"):
                parts.append("\n")
            elif tag == "noBreakHyphen":
                parts.append("-")
            elif tag == "p":
                parts.append("\n")
                walk(child)
            else:
                walk(child)

    walk(el)
    return "".join(parts)


def _cell_text(cell: Element) -> str:
    lines = [paragraph_text(p) for p in cell.iter() if local_name(p.tag) == "p"]
    return " ".join(line for line in lines if line)


class DocxDecoder(BaseDecoder):
    """OpenXML word-processor documents: header, body and footer paragraphs in order."""

    format = DocumentFormat.DOCX

    def decode(self, data: bytes) -> NormalizedText:
        with open_zip(data) as archive:
            body = read_part(archive, _BODY)
            if body is None:
                raise DecodeError(DecodeErrorKind.CORRUPT, f"missing {_BODY}")
            names = sorted(archive.namelist())

            builder = TextBuilder()
            for name in (n for n in names if _HEADER_PART.match(n)):
                self._optional_part(archive, name, builder)
            try:
                root = ET.fromstring(body)
            except ParseError as exc:
                raise DecodeError(DecodeErrorKind.CORRUPT, f"malformed {_BODY}: {exc}") from exc
            self._blocks(root, builder, part=None)
            for name in (n for n in names if _FOOTER_PART.match(n)):
                self._optional_part(archive, name, builder)
        return builder.build(self.format)

    def _optional_part(self, archive, name: str, builder: TextBuilder) -> None:
        data = read_part(archive, name)
        if data is None:
            return
        try:
            root = ET.fromstring(data)
        except ParseError:
            logger.info("Ignoring malformed part %s", name)
            builder.warn(f"malformed_part:{name}")
            return
        part = name.rsplit("/", 1)[-1].removesuffix(".xml")
        self._blocks(root, builder, part=part)

    def _blocks(self, root: Element, builder: TextBuilder, part: str | None) -> None:
        counters = {"paragraph": 0, "table": 0}

        def location(**loc) -> dict:
            return {"part": part, **loc} if part else loc

        def walk(node: Element) -> None:
            for child in node:
                tag = local_name(child.tag)
                if tag == "p":
                    counters["paragraph"] += 1
                    builder.line(paragraph_text(child), location(paragraph=counters["paragraph"]))
                elif tag == "tbl":
                    counters["table"] += 1
                    self._table(child, counters["table"], builder, location)
                elif tag in ("body", "sdt", "sdtContent", "hdr", "ftr", "customXml"):
                    walk(child)

        walk(root)

    def _table(self, table: Element, number: int, builder: TextBuilder, location) -> None:
        r = 0
        for row in table:
            if local_name(row.tag) != "tr":
                continue
            r += 1
            cells = [c for c in row if local_name(c.tag) == "tc"]
            if not cells:
                continue
            builder.cells(
                [(_cell_text(c), location(table=number, row=r, col=i)) for i, c in enumerate(cells, start=1)],
                separator=CELL_SEPARATOR,
            )
