"""Format decoders and the format -> decoder dispatch table."""

from __future__ import annotations

import json
import logging
from io import BytesIO
from pathlib import PurePath
from zipfile import BadZipFile, ZipFile

from .base import BaseDecoder, TextBuilder
from .delimited import CsvDecoder
from .html import HtmlDecoder
from .json_doc import JsonDecoder
from .opendocument import OdtDecoder
from .pdf import PdfDecoder
from .plain import MarkdownDecoder, PlainTextDecoder
from .rtf import RtfDecoder
from .spreadsheet import XlsxDecoder
from .wordprocessor import DocxDecoder
from ..config import settings
from ..exceptions import DecodeError, DecodeErrorKind
from ..models import Document, DocumentFormat, NormalizedText

logger = logging.getLogger(__name__)

DECODERS: dict[DocumentFormat, BaseDecoder] = {
    DocumentFormat.TXT: PlainTextDecoder(),
    DocumentFormat.MD: MarkdownDecoder(),
    DocumentFormat.HTML: HtmlDecoder(),
    DocumentFormat.RTF: RtfDecoder(),
    DocumentFormat.CSV: CsvDecoder(),
    DocumentFormat.JSON: JsonDecoder(),
    DocumentFormat.XLSX: XlsxDecoder(),
    DocumentFormat.DOCX: DocxDecoder(),
    DocumentFormat.ODT: OdtDecoder(),
    DocumentFormat.PDF: PdfDecoder(),
}

# formats that are only resolved by sniffing
SNIFFED_FORMATS = frozenset({DocumentFormat.DOC, DocumentFormat.UNKNOWN})

_OLE2_MAGIC = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"

_EXTENSIONS: dict[str, DocumentFormat] = {
    ".txt": DocumentFormat.TXT,
    ".text": DocumentFormat.TXT,
    ".md": DocumentFormat.MD,
    ".markdown": DocumentFormat.MD,
    ".html": DocumentFormat.HTML,
    ".htm": DocumentFormat.HTML,
    ".xhtml": DocumentFormat.HTML,
    ".rtf": DocumentFormat.RTF,
    ".csv": DocumentFormat.CSV,
    ".tsv": DocumentFormat.CSV,
    ".json": DocumentFormat.JSON,
    ".xlsx": DocumentFormat.XLSX,
    ".docx": DocumentFormat.DOCX,
    ".odt": DocumentFormat.ODT,
    ".pdf": DocumentFormat.PDF,
    ".doc": DocumentFormat.DOC,
}


def _sniff_zip(data: bytes) -> DocumentFormat:
    try:
        with ZipFile(BytesIO(data)) as archive:
            names = set(archive.namelist())
            if "word/document.xml" in names:
                return DocumentFormat.DOCX
            if "xl/workbook.xml" in names:
                return DocumentFormat.XLSX
            if "content.xml" in names:
                return DocumentFormat.ODT
    except BadZipFile:
        pass
    return DocumentFormat.UNKNOWN


def _sniff_text(data: bytes) -> DocumentFormat:
    head = data[:4096].lstrip(b"\xef\xbb\xbf \t\r\n").lower()
    if head.startswith((b"<!doctype html", b"<html")) or b"<body" in head:
        return DocumentFormat.HTML
    if head.startswith((b"{", b"[")):
        try:
            json.loads(data.decode("utf-8-sig"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            return DocumentFormat.TXT
        return DocumentFormat.JSON
    return DocumentFormat.TXT


def sniff_format(data: bytes, file_name: str = "") -> DocumentFormat:
    """Guess a format from magic bytes, then the file extension, then the content."""
    if data.startswith(b"%PDF"):
        return DocumentFormat.PDF
    if data.lstrip().startswith(b"{\\rtf"):
        return DocumentFormat.RTF
    if data.startswith(_OLE2_MAGIC):
        return DocumentFormat.DOC
    if data.startswith(b"PK\x03\x04"):
        return _sniff_zip(data)
    by_name = _EXTENSIONS.get(PurePath(file_name).suffix.lower()) if file_name else None
    if by_name is not None and by_name not in SNIFFED_FORMATS:
        return by_name
    return _sniff_text(data)


def resolve_format(data: bytes, declared: DocumentFormat, file_name: str = "") -> DocumentFormat:
    if declared not in SNIFFED_FORMATS:
        return declared
    sniffed = sniff_format(data, file_name)
    if sniffed is DocumentFormat.DOC:
        raise DecodeError(
            DecodeErrorKind.UNSUPPORTED_SUBFORMAT,
            "legacy binary .doc is not supported; save the file as .docx",
        )
    if sniffed is DocumentFormat.UNKNOWN:
        raise DecodeError(DecodeErrorKind.UNSUPPORTED_SUBFORMAT, "unrecognised container")
    return sniffed


def decode(
    data: bytes | Document,
    fmt: DocumentFormat | str = DocumentFormat.UNKNOWN,
    *,
    file_name: str = "",
    max_bytes: int | None = None,
) -> NormalizedText:
    """Decode raw bytes (or a Document) into NormalizedText.

    Raises DecodeError; never returns partially extracted text without a
    warning on the result.
    """
    if isinstance(data, Document):
        fmt, file_name, data = data.declared_format, data.file_name, data.data
    fmt = DocumentFormat(fmt)
    limit = settings.max_document_bytes if max_bytes is None else max_bytes

    if len(data) > limit:
        raise DecodeError(DecodeErrorKind.SIZE_EXCEEDED, f"{len(data)} bytes exceeds {limit}")
    if not data.strip():
        raise DecodeError(DecodeErrorKind.EMPTY_CONTENT, "document is empty")

    resolved = resolve_format(data, fmt, file_name)
    decoder = DECODERS[resolved]
    result = decoder.decode(data)
    if not result.text.strip():
        raise DecodeError(DecodeErrorKind.EMPTY_CONTENT, f"no text found in {resolved.value} document")

    logger.info(
        "Decoded %s document: %d chars, %d segments, warnings=%s",
        resolved.value,
        len(result.text),
        len(result.offset_map),
        list(result.warnings),
    )
    return result


__all__ = [
    "BaseDecoder",
    "DECODERS",
    "SNIFFED_FORMATS",
    "TextBuilder",
    "decode",
    "resolve_format",
    "sniff_format",
]
