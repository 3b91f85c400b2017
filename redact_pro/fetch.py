"""Server-side fetch of a public resume/profile page."""

from __future__ import annotations
import logging
from dataclasses import dataclass

import httpx

from .config import settings
from .decoders.html import html_to_lines
from .exceptions import ExternalCallError, ExternalCallErrorKind
from .net import validate_target_url

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
)
MAX_REDIRECTS = 5

# pages rendered client-side; the fetched HTML rarely carries the content
SPA_DOMAINS = (
    "canva.com",
    "figma.com",
    "notion.so",
    "docs.google.com",
    "drive.google.com",
    "adobe.com",
    "miro.com",
)
SPA_WARNING = "spa_domain"


@dataclass(frozen=True)
class FetchResult:
    url: str
    final_url: str
    content_type: str
    html: str
    text: str
    warnings: tuple[str, ...] = ()


def is_spa_domain(hostname: str) -> bool:
    host = hostname.lower()
    return any(host == d or host.endswith("." + d) for d in SPA_DOMAINS)


def _is_text_content(content_type: str) -> bool:
    return "text/" in content_type or "application/xhtml" in content_type


def _check_hop(request: httpx.Request) -> None:
    # every request, including each redirect hop, must target a public host
    validate_target_url(str(request.url))


def fetch_url(
    url: str,
    *,
    timeout: float | None = None,
    max_bytes: int | None = None,
    transport: httpx.BaseTransport | None = None,
) -> FetchResult:
    """Fetch a public http(s) page and return its HTML plus a script-free text rendering.

    Raises ExternalCallError: BLOCKED_SSRF for a disallowed URL or redirect,
    TIMEOUT, UPSTREAM_STATUS for a non-2xx answer, RESPONSE_REJECTED for a
    non-text or oversized body.
    """
    parsed = validate_target_url(url)
    timeout = settings.fetch_timeout_seconds if timeout is None else timeout
    max_bytes = settings.fetch_max_bytes if max_bytes is None else max_bytes

    warnings: list[str] = []
    if is_spa_domain(parsed.hostname or ""):
        warnings.append(SPA_WARNING)

    headers = {
        "User-Agent": USER_AGENT,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": "ja,en;q=0.9",
    }
    try:
        with httpx.Client(
            timeout=timeout,
            follow_redirects=True,
            max_redirects=MAX_REDIRECTS,
            headers=headers,
            event_hooks={"request": [_check_hop]},
            transport=transport,
        ) as client:
            with client.stream("GET", url) as response:
                final_url = str(response.url)
                validate_target_url(final_url)
                if not response.is_success:
                    raise ExternalCallError(
                        ExternalCallErrorKind.UPSTREAM_STATUS,
                        f"Upstream returned {response.status_code}",
                        status_code=response.status_code,
                    )
                content_type = response.headers.get("content-type", "")
                if not _is_text_content(content_type):
                    raise ExternalCallError(
                        ExternalCallErrorKind.RESPONSE_REJECTED,
                        "Response is not HTML/text content",
                        status_code=415,
                    )
                body = bytearray()
                for chunk in response.iter_bytes():
                    body.extend(chunk)
                    if len(body) > max_bytes:
                        raise ExternalCallError(
                            ExternalCallErrorKind.RESPONSE_REJECTED,
                            f"Response too large (>{max_bytes} bytes)",
                            status_code=413,
                        )
                encoding = response.encoding or "utf-8"
    except httpx.TimeoutException as exc:
        raise ExternalCallError(
            ExternalCallErrorKind.TIMEOUT, f"Timeout ({timeout:g}s)"
        ) from exc
    except httpx.TooManyRedirects as exc:
        raise ExternalCallError(ExternalCallErrorKind.UPSTREAM_STATUS, "Too many redirects") from exc
    except httpx.HTTPError as exc:
        raise ExternalCallError(ExternalCallErrorKind.UPSTREAM_STATUS, str(exc)) from exc

    try:
        html = bytes(body).decode(encoding, errors="replace")
    except LookupError:
        html = bytes(body).decode("utf-8", errors="replace")
    text = "\n".join(html_to_lines(html))
    logger.info(
        "Fetched %s (%s, %d bytes, redirected=%s)",
        parsed.hostname,
        content_type.split(";")[0],
        len(body),
        final_url != url,
    )
    return FetchResult(
        url=url,
        final_url=final_url,
        content_type=content_type,
        html=html,
        text=text,
        warnings=tuple(warnings),
    )
