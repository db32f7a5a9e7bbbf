"""
Field normalizer: RawCandidate -> NormalizedListing. Pure, deterministic, no I/O.
"""

import html
import re

from config import PipelineSettings
from pipeline.models import NormalizedListing, PropertyType, RawCandidate
from pipeline.slugs import fold, identity_token, slugify, unique_slug
from scrapers.content import ROOM_RE, SIZE_RE

# Ordered: first rule whose keyword starts a word in the folded title wins.
PROPERTY_TYPE_RULES: list[tuple[PropertyType, tuple[str, ...]]] = [
    (PropertyType.VILLA, ("villa",)),
    (PropertyType.LAND, ("arsa", "tarla", "land", "plot")),
    (PropertyType.HOUSE, ("mustakil", "standalone", "detached")),
    (PropertyType.SUMMER_HOUSE, ("yazlik", "summer")),
]

# Longer digit runs are phone numbers or ids, not prices.
MAX_PRICE_DIGITS = 15

_TRAILING_DECIMALS_RE = re.compile(r"[.,]\d{2}(?=\D*$)")
_SENTENCE_END_RE = re.compile(r"[.!?](?=\s|$)")
# tag-shaped text in scraped prose, raw or entity-encoded (<b>, </div>, &lt;br/&gt;)
_TAG_TEXT_RE = re.compile(r"(?:<|&lt;)/?[a-z][a-z0-9]*\b[^<>&]*?/?(?:>|&gt;)", re.IGNORECASE)


def property_type_for(title: str) -> PropertyType:
    folded = fold(title)
    for ptype, keywords in PROPERTY_TYPE_RULES:
        if any(re.search(rf"\b{kw}", folded) for kw in keywords):
            return ptype
    return PropertyType.APARTMENT


def neighborhood_for(title: str, neighborhoods: list[str], default: str) -> str:
    """Gazetteer tag (folded name) of the first neighborhood mentioned in the title."""
    folded = fold(title)
    for name in neighborhoods:
        tag = fold(name).strip()
        if tag and tag in folded:
            return tag
    return default


def parse_price(text: str, default: int) -> int:
    """
    Integer price from free text ("2.750.000 TL" -> 2750000). Zero, unparsable or
    implausibly long values give default.
    """
    text = text or ""
    if "." in text and "," in text:
        text = _TRAILING_DECIMALS_RE.sub("", text, count=1)
    digits = re.sub(r"\D", "", text)
    if not digits or len(digits) > MAX_PRICE_DIGITS:
        return default
    return int(digits) or default


def _first_group(pattern: re.Pattern, fragments: list[str]) -> str | None:
    for fragment in fragments:
        m = pattern.search(fragment)
        if m:
            return m.group(1)
    return None


def parse_room_count(fragments: list[str], default: int) -> int:
    """Digits before the first '+' of the room token ("3+1" -> 3)."""
    token = _first_group(ROOM_RE, fragments)
    if token is None:
        return default
    head = re.sub(r"\D", "", token.split("+", 1)[0])
    return int(head) if head else default


def parse_size(fragments: list[str], default: int) -> int:
    token = _first_group(SIZE_RE, fragments)
    return int(token) if token else default


def excerpt(text: str, max_chars: int) -> str:
    """Up to max_chars, ending at a sentence when one ends past the halfway mark."""
    text = " ".join(text.split())
    if len(text) <= max_chars:
        return text
    cut = text[:max_chars]
    ends = [m.end() for m in _SENTENCE_END_RE.finditer(cut)]
    if ends and ends[-1] >= max_chars * 0.5:
        return cut[: ends[-1]]
    return cut[: max_chars - 3].rstrip() + "..."


def strip_tag_text(text: str) -> str:
    """Drop tag-shaped text so escaping it never stores markup that an audit would revive."""
    return _TAG_TEXT_RE.sub(" ", text)


def short_description(text: str, max_chars: int) -> str:
    return f"<p>{html.escape(excerpt(strip_tag_text(text), max_chars), quote=False)}</p>"


def long_description(text: str, max_chars: int) -> str:
    paragraphs = [" ".join(strip_tag_text(p).split()) for p in text[:max_chars].split("\n\n")]
    return "".join(f"<p>{html.escape(p, quote=False)}</p>" for p in paragraphs if p)


def normalize_candidate(raw: RawCandidate, settings: PipelineSettings) -> NormalizedListing:
    """
    Canonical fields for one candidate. Raises ValueError if the title is blank.
    The slug is the base slug; the reconciler makes it unique against the store.
    """
    title = " ".join((raw.title_text or "").split())
    if not title:
        raise ValueError(f"Blank title for {raw.source_url}")
    description = raw.description_text.strip() or title
    return NormalizedListing(
        title=title,
        slug=slugify(title, settings.max_slug_length),
        property_type=property_type_for(title),
        neighborhood=neighborhood_for(title, settings.neighborhoods, settings.default_neighborhood),
        price_amount=parse_price(raw.price_text, settings.default_price),
        size_sqm=parse_size(raw.feature_fragments, settings.default_size_sqm),
        room_count=parse_room_count(raw.feature_fragments, settings.default_room_count),
        images=list(dict.fromkeys(raw.image_urls))[: settings.max_images],
        description_short=short_description(description, settings.max_short_description_chars),
        description_long=long_description(description, settings.max_description_chars),
        source_url=raw.source_url,
    )


def assign_unique_slug(listing: NormalizedListing, taken_slugs: set[str], max_length: int = 100) -> NormalizedListing:
    """Copy of listing whose slug is not in taken_slugs (suffix derived from its source URL)."""
    token = identity_token(listing.source_url or listing.title)
    slug = unique_slug(listing.slug, taken_slugs, token, max_length)
    if slug == listing.slug:
        return listing
    return listing.model_copy(update={"slug": slug})
