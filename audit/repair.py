"""
Repair transforms for stored text: entity decoding, markdown conversion, tag balancing.
"""

import html

import markdown
from bs4 import BeautifulSoup

from audit.formats import ContentFormat

UNSAFE_TAGS = ["script", "style", "iframe", "object", "embed"]
URL_ATTRS = ("href", "src")


def unescape_entities(value: str) -> str:
    """html.unescape until stable (text escaped on every re-save nests arbitrarily deep)."""
    # each effective pass shortens the string, so len(value) passes always suffice
    for _ in range(len(value) + 1):
        decoded = html.unescape(value)
        if decoded == value:
            break
        value = decoded
    return value


def sanitize_html(markup: str) -> str:
    """
    Re-serialize markup with balanced tags, dropping script-like elements,
    on* event attributes and javascript: URLs.
    """
    soup = BeautifulSoup(markup, "html.parser")
    for tag in soup.find_all(UNSAFE_TAGS):
        tag.decompose()
    for tag in soup.find_all(True):
        for attr in list(tag.attrs):
            if attr.lower().startswith("on"):
                del tag[attr]
            elif attr.lower() in URL_ATTRS and str(tag[attr]).strip().lower().startswith("javascript:"):
                del tag[attr]
    return str(soup).strip()


def propose_repair(value: str | None, fmt: ContentFormat) -> str | None:
    """Repaired value for html-escaped and markdown fields; None for every other format."""
    if value is None:
        return None
    if fmt is ContentFormat.HTML_ESCAPED:
        return sanitize_html(unescape_entities(value))
    if fmt is ContentFormat.MARKDOWN:
        return sanitize_html(markdown.markdown(value))
    return None
