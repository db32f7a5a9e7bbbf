"""
Classify stored text by markup dialect.

Order: empty, then escaped tags (&lt;p&gt;), then raw tags, then markdown markers.
Anything else is UNKNOWN; it is never coerced to a guessed format.
"""

import re
from enum import Enum


class ContentFormat(str, Enum):
    HTML_ESCAPED = "html-escaped"
    HTML = "html"
    MARKDOWN = "markdown"
    EMPTY = "empty"
    UNKNOWN = "unknown"


# also matches doubly escaped tags (&amp;lt;p&amp;gt;)
ESCAPED_TAG_RE = re.compile(r"&(?:amp;)*lt;/?[a-z][a-z0-9]*[^&]*&(?:amp;)*gt;", re.IGNORECASE)
RAW_TAG_RE = re.compile(r"<(/?)([a-z][a-z0-9]*)\b[^>]*>", re.IGNORECASE)
MARKDOWN_RES = [
    re.compile(r"^\s{0,3}#{1,6}\s+\S", re.MULTILINE),  # heading
    re.compile(r"^\s{0,3}(?:[-*+]|\d{1,3}[.)])\s+\S", re.MULTILINE),  # list item
    re.compile(r"(\*\*|__)(?=\S).+?(?<=\S)\1"),  # bold
    re.compile(r"\[[^\]\n]+\]\([^)\s]+\)"),  # link
]


def classify(value: str | None) -> ContentFormat:
    if value is None or not value.strip():
        return ContentFormat.EMPTY
    if ESCAPED_TAG_RE.search(value):
        return ContentFormat.HTML_ESCAPED
    if RAW_TAG_RE.search(value):
        return ContentFormat.HTML
    if any(p.search(value) for p in MARKDOWN_RES):
        return ContentFormat.MARKDOWN
    return ContentFormat.UNKNOWN
