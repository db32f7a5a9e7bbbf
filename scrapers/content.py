"""
Extract a raw listing candidate from a detail page.
Each field is read by an ordered list of named strategies (see scrapers.strategies);
the first non-empty result wins. Extraction never raises.
"""

import logging
import re
from itertools import islice
from urllib.parse import urljoin

from bs4 import BeautifulSoup, ParserRejectedMarkup
from pydantic import BaseModel, Field

from config import PipelineSettings
from scrapers.sites import get_site
from scrapers.strategies import Strategy, first_match

logger = logging.getLogger(__name__)


# Selectors to try per source (first match wins). First selector with enough text is used.
SOURCE_SELECTORS = {
    "karasuemlak": [".listing-detail", ".ilan-detay", "main", "article", "[role='main']"],
}
GENERIC_SELECTORS = ["main", "article", "[role='main']"]

CURRENCY = r"(?:₺|€|\$|(?<![A-Za-z])(?:TL|TRY|EUR|USD)(?![A-Za-z]))"
CURRENCY_RE = re.compile(CURRENCY)
PRICE_RE = re.compile(rf"\d[\d.,]*(?:[  ]\d{{3}})*\s*{CURRENCY}|{CURRENCY}\s*\d[\d.,]*")
ROOM_RE = re.compile(
    r"(?:\boda\s*say[ıi]s[ıi]|\boda\b|\brooms?\b)\s*[:\-–]?\s*(\d{1,2}(?:\s*\+\s*\d{1,2})?)",
    re.IGNORECASE,
)
SIZE_RE = re.compile(
    r"(?:\bm²|\bm2\b|\bmetrekare\b|\balan\b|\bsize\b)\s*(?:\([^)]{0,12}\))?\s*[:\-–]?\s*(\d{1,6})",
    re.IGNORECASE,
)
FEATURE_PATTERNS = [("rooms", ROOM_RE), ("size", SIZE_RE)]

PRICE_TAGS = ["span", "strong", "b", "em", "div", "p", "li", "td", "dd", "label", "h2", "h3", "h4", "h5", "h6"]
FEATURE_TAGS = ["li", "td", "th", "dd", "dt", "dl", "tr", "span", "div", "p", "strong", "b", "label"]
FEATURE_TEXT_MAX = 200
MAX_ELEMENTS = 5000
IMAGE_ATTRS = ("src", "data-src", "data-lazy-src")


class RawCandidate(BaseModel):
    """Loosely typed fields read from one detail page, before normalization."""

    source_url: str
    title_text: str
    price_text: str = ""
    description_text: str = ""
    feature_fragments: list[str] = Field(default_factory=list)
    image_urls: list[str] = Field(default_factory=list)


def _clean(text: str | None) -> str:
    return " ".join((text or "").split())


def _strip_noise(soup: BeautifulSoup) -> None:
    for tag in soup.find_all(["script", "style", "noscript", "template"]):
        tag.decompose()


def main_element(soup: BeautifulSoup, source: str | None = None):
    """Return the main listing content element, or body/soup if no selector has enough text."""
    selectors = SOURCE_SELECTORS.get((source or "").lower(), []) + GENERIC_SELECTORS
    for sel in selectors:
        el = soup.select_one(sel)
        if el and len(el.get_text(strip=True)) > 100:
            return el
    return soup.find("body") or soup


# ---------- title ----------


def _title_from(tag_name: str):
    def read(soup: BeautifulSoup) -> str | None:
        tag = soup.find(tag_name)
        return _clean(tag.get_text(" ", strip=True)) if tag else None

    return read


def _title_from_head(soup: BeautifulSoup) -> str | None:
    tag = soup.find("title")
    if not tag:
        return None
    # "Deniz Manzaralı Villa | Karasu Emlak" -> site name dropped
    return _clean(re.split(r"\s+[|–—]\s+", tag.get_text(" ", strip=True))[0])


TITLE_STRATEGIES = [
    Strategy("primary-heading", _title_from("h1")),
    Strategy("secondary-heading", _title_from("h2")),
    Strategy("page-title", _title_from_head),
]


# ---------- price ----------


def _shortest_currency_fragment(soup: BeautifulSoup, settings: PipelineSettings, full_text: str) -> str | None:
    best: str | None = None
    for el in islice(soup.find_all(PRICE_TAGS), MAX_ELEMENTS):
        text = _clean(el.get_text(" ", strip=True))
        if not text or len(text) > settings.price_fragment_max_chars:
            continue
        if not CURRENCY_RE.search(text) or not any(c.isdigit() for c in text):
            continue
        if best is None or len(text) < len(best):
            best = text
    return best


def _price_in_full_text(soup: BeautifulSoup, settings: PipelineSettings, full_text: str) -> str | None:
    m = PRICE_RE.search(full_text)
    return _clean(m.group(0)) if m else None


PRICE_STRATEGIES = [
    Strategy("shortest-currency-fragment", _shortest_currency_fragment),
    Strategy("full-text-pattern", _price_in_full_text),
]


# ---------- features ----------


def _feature_in_elements(pattern: re.Pattern):
    def read(soup: BeautifulSoup, full_text: str) -> str | None:
        for el in islice(soup.find_all(FEATURE_TAGS), MAX_ELEMENTS):
            text = _clean(el.get_text(" ", strip=True))
            if not text or len(text) > FEATURE_TEXT_MAX:
                continue
            m = pattern.search(text)
            if m:
                return _clean(m.group(0))
        return None

    return read


def _feature_in_full_text(pattern: re.Pattern):
    def read(soup: BeautifulSoup, full_text: str) -> str | None:
        m = pattern.search(full_text)
        return _clean(m.group(0)) if m else None

    return read


FEATURE_STRATEGIES = {
    name: [
        Strategy("labeled-element", _feature_in_elements(pattern)),
        Strategy("full-text", _feature_in_full_text(pattern)),
    ]
    for name, pattern in FEATURE_PATTERNS
}


# ---------- images / description ----------


def extract_image_urls(soup: BeautifulSoup, page_url: str, site: dict) -> list[str]:
    """Upload-path image URLs (no logos/icons), absolute, deduped in first-seen order."""
    markers = site["image_path_markers"]
    skip = site["image_skip_markers"]
    seen: set[str] = set()
    out: list[str] = []
    for img in soup.find_all("img"):
        for attr in IMAGE_ATTRS:
            src = (img.get(attr) or "").strip()
            if not src or src.startswith("data:"):
                continue
            full = urljoin(page_url, src)
            lower = full.lower()
            if not any(m in lower for m in markers) or any(s in lower for s in skip):
                continue
            if full not in seen:
                seen.add(full)
                out.append(full)
    return out


def extract_description(root, max_chars: int) -> str:
    """Paragraph texts joined by blank lines, at most max_chars."""
    parts: list[str] = []
    total = 0
    for p in root.find_all("p"):
        text = _clean(p.get_text(" ", strip=True))
        if not text:
            continue
        parts.append(text)
        total += len(text) + 2
        if total >= max_chars:
            break
    return "\n\n".join(parts)[:max_chars]


# ---------- candidate ----------


def extract_candidate(
    html: str | None,
    url: str,
    settings: PipelineSettings,
    site: dict | None = None,
) -> RawCandidate | None:
    """
    Parse one detail page into a RawCandidate. Returns None when no title can be found
    or the markup is rejected by the parser.
    """
    if not html or not html.strip():
        return None
    site = site or get_site()
    try:
        soup = BeautifulSoup(html, "html.parser")
    except ParserRejectedMarkup as e:
        logger.warning("unparseable document %s: %s", url, e)
        return None
    _strip_noise(soup)

    title = first_match(TITLE_STRATEGIES, soup)
    if title is None:
        logger.info("no title found, dropping %s", url)
        return None

    full_text = _clean(soup.get_text(" ", strip=True))[: settings.max_scan_chars]

    price = first_match(PRICE_STRATEGIES, soup, settings, full_text)
    fragments = []
    for name, strategies in FEATURE_STRATEGIES.items():
        found = first_match(strategies, soup, full_text)
        if found:
            logger.debug("%s: %s via %s", url, name, found.strategy)
            fragments.append(found.value)

    return RawCandidate(
        source_url=url,
        title_text=title.value,
        price_text=price.value if price else "",
        description_text=extract_description(main_element(soup, site["id"]), settings.max_description_chars),
        feature_fragments=fragments,
        image_urls=extract_image_urls(soup, url, site),
    )
