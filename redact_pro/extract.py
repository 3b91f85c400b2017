"""pdftotext fallback for PDFs whose text layer the primary decoder cannot read well."""

from __future__ import annotations
import base64
import binascii
import logging
import os
import subprocess
import tempfile
from dataclasses import dataclass

from .config import settings
from .exceptions import ExternalCallError, ExternalCallErrorKind

logger = logging.getLogger(__name__)

PDFTOTEXT = "pdftotext"
MAX_PDF_BYTES = 20 * 1024 * 1024


@dataclass(frozen=True)
class ExtractionResult:
    text: str
    page_count: int


def format_pages(raw: str) -> ExtractionResult:
    """Turn form-feed separated pdftotext output into "--- Page N ---" blocks."""
    pages = [p.strip() for p in raw.split("\f") if p.strip()]
    text = "\n\n".join(f"--- Page {i} ---\n{page}" for i, page in enumerate(pages, start=1))
    return ExtractionResult(text=text, page_count=len(pages))


def extract_pdf_text(
    pdf_base64: str,
    *,
    timeout: float | None = None,
    max_output_bytes: int | None = None,
) -> ExtractionResult:
    """Run `pdftotext -layout` over a base-64 encoded PDF.

    TOOL_UNAVAILABLE when the binary is missing, TOOL_FAILED when it fails
    or exceeds the output cap, TIMEOUT when it runs too long.
    """
    timeout = settings.extract_timeout_seconds if timeout is None else timeout
    max_output_bytes = settings.extract_max_output_bytes if max_output_bytes is None else max_output_bytes

    if len(pdf_base64) * 3 // 4 > MAX_PDF_BYTES:
        raise ExternalCallError(
            ExternalCallErrorKind.RESPONSE_REJECTED,
            f"PDF too large (> {MAX_PDF_BYTES // (1024 * 1024)}MB)",
            status_code=413,
        )
    try:
        data = base64.b64decode(pdf_base64, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ExternalCallError(
            ExternalCallErrorKind.RESPONSE_REJECTED, "pdfBase64 is not valid base64", status_code=400
        ) from exc

    fd, path = tempfile.mkstemp(prefix="rp_pdf_", suffix=".pdf")
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
        try:
            proc = subprocess.run(
                [PDFTOTEXT, "-layout", path, "-"],
                capture_output=True,
                timeout=timeout,
                check=False,
            )
        except FileNotFoundError as exc:
            raise ExternalCallError(
                ExternalCallErrorKind.TOOL_UNAVAILABLE, "pdftotext is not available on this server"
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise ExternalCallError(
                ExternalCallErrorKind.TIMEOUT, f"pdftotext timed out after {timeout:g}s"
            ) from exc
    finally:
        try:
            os.unlink(path)
        except OSError:
            logger.warning("Could not remove temporary file %s", path)

    if proc.returncode != 0:
        stderr = proc.stderr.decode("utf-8", errors="replace").strip()
        raise ExternalCallError(
            ExternalCallErrorKind.TOOL_FAILED, f"pdftotext failed: {stderr or proc.returncode}"
        )
    if len(proc.stdout) > max_output_bytes:
        raise ExternalCallError(
            ExternalCallErrorKind.TOOL_FAILED, f"pdftotext output exceeds {max_output_bytes} bytes"
        )

    result = format_pages(proc.stdout.decode("utf-8", errors="replace"))
    logger.info("pdftotext extracted %d chars from %d pages", len(result.text), result.page_count)
    return result
