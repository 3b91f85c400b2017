"""Serialize a view into an output document.

Container formats get only the minimal skeleton a standard reader needs to
open them; text content is exact, structure is approximated from the offset
map (cell coordinates for csv/xlsx, one paragraph per line for docx).
"""

from __future__ import annotations

import csv
import io
import logging
import re
from typing import Callable
from xml.sax.saxutils import escape, quoteattr
from zipfile import ZIP_DEFLATED, ZipFile

import fitz  # PyMuPDF

from .masking import placeholder_pattern
from .models import ExportFormat, OffsetMap

logger = logging.getLogger(__name__)

_INVALID_XML = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f￾￿]")
_LABEL_RESIDUE = re.compile(r"[\s　:：|｜・,、()（）\[\]【】-]+")
_MAX_LABEL = 12

_XML_DECL = '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
_PKG_REL_NS = "http://schemas.openxmlformats.org/package/2006/relationships"
_DOC_REL = "http://schemas.openxmlformats.org/officeDocument/2006/relationships"
_CT_NS = "http://schemas.openxmlformats.org/package/2006/content-types"
_W_NS = "http://schemas.openxmlformats.org/wordprocessingml/2006/main"
_S_NS = "http://schemas.openxmlformats.org/spreadsheetml/2006/main"

_SHEET_NAME_BAD = re.compile(r"[\[\]:*?/\\]")
_DEFAULT_SHEET = "Sheet1"

# A4 in points
_PAGE_WIDTH, _PAGE_HEIGHT = 595, 842
_MARGIN = 50
_FONT_SIZE = 10
_TEXT_WIDTH = _PAGE_WIDTH - 2 * _MARGIN
# the PDF decoder reads files tagged with PDF_CREATOR back on this grid
PDF_CREATOR = "redact-pro"
PDF_LEADING = 14
PDF_TOP_BASELINE = _MARGIN + _FONT_SIZE


def _xml(text: str) -> str:
    return escape(_INVALID_XML.sub("", text))


def _is_placeholder_line(line: str) -> bool:
    """A line holding placeholders and at most a short label, e.g. "氏名：[氏名非公開]"."""
    pattern = placeholder_pattern()
    if not pattern.search(line):
        return False
    residue = _LABEL_RESIDUE.sub("", pattern.sub("", line))
    return len(residue) <= _MAX_LABEL and not any(c.isdigit() for c in residue)


def drop_placeholder_lines(text: str) -> str:
    return "\n".join(line for line in text.split("\n") if not _is_placeholder_line(line))


# ----------------------------------------------------------------------
# Cell reconstruction
# ----------------------------------------------------------------------

def _is_cell(location: dict) -> bool:
    return ("row" in location and "col" in location) or bool(location.get("header"))


def _cell_grid(text: str, offset_map: OffsetMap | None) -> dict[str, dict[int, dict[int, str]]]:
    """sheet -> row -> col -> value, sheets in order of first appearance.

    Cell coordinates are only used when every mapped segment is a cell (or
    a sheet header); anything else is laid out one line per row in column 1
    so that no text is lost.
    """
    segments = list(offset_map or ())
    if not segments or not all(_is_cell(seg.location) for seg in segments):
        rows = {n: {1: line} for n, line in enumerate(text.split("\n"), start=1)}
        return {_DEFAULT_SHEET: rows}

    grid: dict[str, dict[int, dict[int, str]]] = {}
    for seg in segments:
        loc = seg.location
        if "table" in loc:
            sheet = f"Table{loc['table']}"
        else:
            sheet = str(loc.get("sheet", _DEFAULT_SHEET))
        rows = grid.setdefault(sheet, {})
        if loc.get("header"):
            continue
        rows.setdefault(int(loc["row"]), {})[int(loc["col"])] = text[seg.start:seg.end]
    return grid


def _rows_in_order(rows: dict[int, dict[int, str]]) -> list[list[str]]:
    out: list[list[str]] = []
    for r in sorted(rows):
        cells = rows[r]
        width = max(cells) if cells else 0
        out.append([cells.get(c, "") for c in range(1, width + 1)])
    return out


def column_letters(index: int) -> str:
    """1 -> "A", 27 -> "AA"."""
    letters = ""
    while index > 0:
        index, rem = divmod(index - 1, 26)
        letters = chr(65 + rem) + letters
    return letters


def _sheet_name(name: str, taken: set[str]) -> str:
    clean = _SHEET_NAME_BAD.sub("_", name).strip("'")[:31] or _DEFAULT_SHEET
    candidate, n = clean, 2
    while candidate.lower() in taken:
        suffix = f" ({n})"
        candidate = clean[:31 - len(suffix)] + suffix
        n += 1
    taken.add(candidate.lower())
    return candidate


# ----------------------------------------------------------------------
# Writers
# ----------------------------------------------------------------------

def export_text(text: str, offset_map: OffsetMap | None = None) -> bytes:
    return text.encode("utf-8")


def export_csv(text: str, offset_map: OffsetMap | None = None) -> bytes:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    for rows in _cell_grid(text, offset_map).values():
        writer.writerows(_rows_in_order(rows))
    return buf.getvalue().encode("utf-8")


def _paragraph(line: str) -> str:
    if not line:
        return "<w:p/>"
    runs: list[str] = []
    for i, piece in enumerate(line.split("\t")):
        if i:
            runs.append("<w:tab/>")
        if piece:
            runs.append(f'<w:t xml:space="preserve">{_xml(piece)}</w:t>')
    return f"<w:p><w:r>{''.join(runs)}</w:r></w:p>"


def export_docx(text: str, offset_map: OffsetMap | None = None) -> bytes:
    body = "".join(_paragraph(line) for line in text.split("\n"))
    document = (
        f'{_XML_DECL}<w:document xmlns:w="{_W_NS}"><w:body>{body}<w:sectPr/></w:body></w:document>'
    )
    content_types = (
        f'{_XML_DECL}<Types xmlns="{_CT_NS}">'
        '<Default Extension="rels" ContentType="application/vnd.openxmlformats-package.relationships+xml"/>'
        '<Default Extension="xml" ContentType="application/xml"/>'
        '<Override PartName="/word/document.xml" ContentType="application/'
        'vnd.openxmlformats-officedocument.wordprocessingml.document.main+xml"/>'
        "</Types>"
    )
    rels = (
        f'{_XML_DECL}<Relationships xmlns="{_PKG_REL_NS}">'
        f'<Relationship Id="rId1" Type="{_DOC_REL}/officeDocument" Target="word/document.xml"/>'
        "</Relationships>"
    )
    doc_rels = f'{_XML_DECL}<Relationships xmlns="{_PKG_REL_NS}"></Relationships>'

    buf = io.BytesIO()
    with ZipFile(buf, "w", ZIP_DEFLATED) as archive:
        archive.writestr("[Content_Types].xml", content_types)
        archive.writestr("_rels/.rels", rels)
        archive.writestr("word/document.xml", document)
        archive.writestr("word/_rels/document.xml.rels", doc_rels)
    return buf.getvalue()


def _worksheet(rows: dict[int, dict[int, str]]) -> str:
    out: list[str] = []
    for r in sorted(rows):
        cells = [
            f'<c r="{column_letters(c)}{r}" t="inlineStr"><is><t xml:space="preserve">{_xml(v)}</t></is></c>'
            for c, v in sorted(rows[r].items())
            if v
        ]
        if cells:
            out.append(f'<row r="{r}">{"".join(cells)}</row>')
    return f'{_XML_DECL}<worksheet xmlns="{_S_NS}"><sheetData>{"".join(out)}</sheetData></worksheet>'


def export_xlsx(text: str, offset_map: OffsetMap | None = None) -> bytes:
    grid = _cell_grid(text, offset_map)
    taken: set[str] = set()
    sheets = [(_sheet_name(name, taken), rows) for name, rows in grid.items()]

    overrides = "".join(
        f'<Override PartName="/xl/worksheets/sheet{i}.xml" ContentType="application/'
        'vnd.openxmlformats-officedocument.spreadsheetml.worksheet+xml"/>'
        for i in range(1, len(sheets) + 1)
    )
    content_types = (
        f'{_XML_DECL}<Types xmlns="{_CT_NS}">'
        '<Default Extension="rels" ContentType="application/vnd.openxmlformats-package.relationships+xml"/>'
        '<Default Extension="xml" ContentType="application/xml"/>'
        '<Override PartName="/xl/workbook.xml" ContentType="application/'
        'vnd.openxmlformats-officedocument.spreadsheetml.sheet.main+xml"/>'
        f"{overrides}</Types>"
    )
    rels = (
        f'{_XML_DECL}<Relationships xmlns="{_PKG_REL_NS}">'
        f'<Relationship Id="rId1" Type="{_DOC_REL}/officeDocument" Target="xl/workbook.xml"/>'
        "</Relationships>"
    )
    sheet_entries = "".join(
        f'<sheet name={quoteattr(_INVALID_XML.sub("", name))} sheetId="{i}" r:id="rId{i}"/>'
        for i, (name, _) in enumerate(sheets, start=1)
    )
    workbook = (
        f'{_XML_DECL}<workbook xmlns="{_S_NS}" xmlns:r="{_DOC_REL}">'
        f"<sheets>{sheet_entries}</sheets></workbook>"
    )
    workbook_rels = (
        f'{_XML_DECL}<Relationships xmlns="{_PKG_REL_NS}">'
        + "".join(
            f'<Relationship Id="rId{i}" Type="{_DOC_REL}/worksheet" Target="worksheets/sheet{i}.xml"/>'
            for i in range(1, len(sheets) + 1)
        )
        + "</Relationships>"
    )

    buf = io.BytesIO()
    with ZipFile(buf, "w", ZIP_DEFLATED) as archive:
        archive.writestr("[Content_Types].xml", content_types)
        archive.writestr("_rels/.rels", rels)
        archive.writestr("xl/workbook.xml", workbook)
        archive.writestr("xl/_rels/workbook.xml.rels", workbook_rels)
        for i, (_, rows) in enumerate(sheets, start=1):
            archive.writestr(f"xl/worksheets/sheet{i}.xml", _worksheet(rows))
    return buf.getvalue()


def _fitted_size(line: str, font: str) -> float:
    """Largest font size up to _FONT_SIZE that keeps line on one printed line."""
    width = fitz.get_text_length(line, fontname=font, fontsize=_FONT_SIZE)
    if width <= _TEXT_WIDTH:
        return _FONT_SIZE
    return _FONT_SIZE * _TEXT_WIDTH / width


def _paginate(lines: list[str], per_page: int) -> list[list[str]]:
    """Split lines into pages, letting a page break stand in for a blank line.

    The PDF decoder separates pages with one blank line, so a break is placed
    on the first blank line of the last blank run within reach, and that
    line is consumed by the break. A page without any blank line to break on
    is cut where it is full.
    """
    pages: list[list[str]] = []
    start = 0
    while len(lines) - start > per_page:
        end = start + per_page
        cut = next(
            (i for i in range(end, start, -1) if lines[i] == "" and lines[i - 1] != ""),
            None,
        )
        if cut is None:
            pages.append(lines[start:end])
            start = end
        else:
            pages.append(lines[start:cut])
            start = cut + 1
    pages.append(lines[start:])
    return pages


def export_pdf(text: str, offset_map: OffsetMap | None = None) -> bytes:
    """A4 pages, one printed line per text line, on a fixed baseline grid."""
    lines_per_page = int((_PAGE_HEIGHT - 2 * _MARGIN) // PDF_LEADING)
    pages = _paginate(text.expandtabs(4).split("\n"), lines_per_page)

    doc = fitz.open()
    with doc:
        for page_lines in pages:
            page = doc.new_page(width=_PAGE_WIDTH, height=_PAGE_HEIGHT)
            for n, line in enumerate(page_lines):
                if not line.strip():
                    continue
                font = "helv" if all(ord(c) < 0x100 for c in line) else "japan"
                page.insert_text(
                    (_MARGIN, PDF_TOP_BASELINE + n * PDF_LEADING),
                    line,
                    fontname=font,
                    fontsize=_fitted_size(line, font),
                )
        doc.set_metadata({"creator": PDF_CREATOR, "producer": PDF_CREATOR})
        return doc.tobytes(garbage=3, deflate=True)


EXPORTERS: dict[ExportFormat, Callable[[str, OffsetMap | None], bytes]] = {
    ExportFormat.TXT: export_text,
    ExportFormat.MD: export_text,
    ExportFormat.CSV: export_csv,
    ExportFormat.XLSX: export_xlsx,
    ExportFormat.DOCX: export_docx,
    ExportFormat.PDF: export_pdf,
}


def export(
    view_text: str,
    offset_map: OffsetMap | None = None,
    fmt: ExportFormat | str = ExportFormat.TXT,
    *,
    drop_placeholders: bool = False,
) -> bytes:
    """Serialize view_text to fmt.

    With drop_placeholders, lines that hold only a label and placeholders
    are removed; the offset map no longer lines up then and is ignored.
    """
    fmt = ExportFormat(fmt)
    if drop_placeholders:
        view_text = drop_placeholder_lines(view_text)
        offset_map = None
    data = EXPORTERS[fmt](view_text, offset_map)
    logger.info("Exported %d chars as %s (%d bytes)", len(view_text), fmt.value, len(data))
    return data
