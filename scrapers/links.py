"""
Extract detail-page links from a listing index page.
"""

import re
from urllib.parse import urldefrag, urljoin, urlparse

from bs4 import BeautifulSoup

_SKIP_SCHEMES = ("#", "javascript:", "mailto:", "tel:")


def _same_page(a: str, b: str) -> bool:
    return a.rstrip("/") == b.rstrip("/")


def parse_listing_links(
    html: str,
    index_url: str,
    link_patterns: list[re.Pattern],
) -> list[str]:
    """
    Find all <a href> whose path matches one of link_patterns, resolve against index_url,
    drop fragments and the index page itself. Returns absolute URLs, deduped, in document order.
    """
    if not html:
        return []
    soup = BeautifulSoup(html, "html.parser")
    seen: set[str] = set()
    out: list[str] = []

    for a in soup.find_all("a", href=True):
        href = (a.get("href") or "").strip()
        if not href or href.lower().startswith(_SKIP_SCHEMES):
            continue
        full, _ = urldefrag(urljoin(index_url, href))
        if not full.startswith(("http://", "https://")):
            continue
        path = urlparse(full).path
        if not any(p.search(path) for p in link_patterns):
            continue
        if _same_page(full, index_url) or full in seen:
            continue
        seen.add(full)
        out.append(full)

    return out
