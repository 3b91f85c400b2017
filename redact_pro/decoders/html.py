from __future__ import annotations

from bs4 import BeautifulSoup

from .base import CELL_SEPARATOR, BaseDecoder, TextBuilder
from ..models import DocumentFormat, NormalizedText
from ..text import decode_bytes

_DROP_TAGS = ["script", "style", "noscript", "template", "head"]
_BLOCK_TAGS = [
    "address", "article", "aside", "blockquote", "dd", "div", "dl", "dt",
    "fieldset", "figcaption", "figure", "footer", "form", "h1", "h2", "h3",
    "h4", "h5", "h6", "header", "hr", "li", "main", "nav", "ol", "p", "pre",
    "section", "table", "tbody", "thead", "tfoot", "ul", "caption",
]


def html_to_lines(markup: str) -> list[str]:
    """Visible text of an HTML document, one logical block per line."""
    soup = BeautifulSoup(markup, "html.parser")
    for tag in soup(_DROP_TAGS):
        tag.decompose()
    for br in soup.find_all("br"):
        br.replace_with("\n")
    for row in soup.find_all("tr"):
        cells = [c.get_text(" ", strip=True) for c in row.find_all(["td", "th"])]
        row.replace_with("\n" + CELL_SEPARATOR.join(cells) + "\n")
    for block in soup.find_all(_BLOCK_TAGS):
        block.insert_before("\n")
        block.insert_after("\n")

    lines = []
    for raw in soup.get_text().split("\n"):
        line = " ".join(raw.split())
        if line:
            lines.append(line)
    return lines


class HtmlDecoder(BaseDecoder):
    format = DocumentFormat.HTML

    def decode(self, data: bytes) -> NormalizedText:
        text, warnings = decode_bytes(data)
        builder = TextBuilder()
        for warning in warnings:
            builder.warn(warning)
        for n, line in enumerate(html_to_lines(text), start=1):
            builder.line(line, {"block": n})
        return builder.build(self.format)
