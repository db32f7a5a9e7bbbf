"""
Slug generation: Turkish-aware ASCII folding, hyphenation and word-boundary truncation.

A slug never starts or ends with a hyphen, including after truncation.
"""

import hashlib
import re
import unicodedata

FALLBACK_SLUG = "ilan"

SLUG_RE = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")

_TURKISH_ASCII = str.maketrans(
    {
        "ğ": "g",
        "ü": "u",
        "ş": "s",
        "ı": "i",
        "ö": "o",
        "ç": "c",
        "â": "a",
        "î": "i",
        "û": "u",
    }
)


def turkish_lower(text: str) -> str:
    # str.lower() maps "İ" to "i" + combining dot and "I" to "i"
    return text.replace("İ", "i").replace("I", "ı").lower()


def fold(text: str) -> str:
    """Lowercase and transliterate to ASCII where possible (other accents stripped)."""
    lowered = turkish_lower(text or "").translate(_TURKISH_ASCII)
    decomposed = unicodedata.normalize("NFKD", lowered)
    return "".join(c for c in decomposed if not unicodedata.combining(c))


def truncate_slug(slug: str, max_length: int) -> str:
    """
    Shorten slug to max_length. Cuts at the last hyphen at or before the limit when that
    boundary is at least half the limit, otherwise cuts hard; hyphens are stripped after.
    """
    if len(slug) <= max_length:
        return slug
    boundary = slug.rfind("-", 0, max_length + 1)
    if boundary >= max_length * 0.5:
        cut = slug[:boundary]
    else:
        cut = slug[:max_length]
    return cut.strip("-") or FALLBACK_SLUG[:max_length]


def slugify(title: str, max_length: int = 100) -> str:
    """URL-safe slug for a title: [a-z0-9] runs joined by single hyphens."""
    slug = _NON_ALNUM_RE.sub("-", fold(title)).strip("-")
    if not slug:
        return FALLBACK_SLUG
    return truncate_slug(slug, max_length)


def identity_token(key: str) -> str:
    """Short stable token for a record identity (e.g. its source URL)."""
    return hashlib.sha1(key.encode("utf-8")).hexdigest()[:6]


def with_suffix(base: str, token: str, max_length: int) -> str:
    """base-token, with base shortened so the result fits max_length."""
    suffix = f"-{token}"
    head = truncate_slug(base, max(1, max_length - len(suffix)))
    return f"{head}{suffix}"


def unique_slug(base: str, taken: set[str], token: str, max_length: int = 100) -> str:
    """base if free, else base suffixed with token (then token-2, token-3, ...)."""
    if base not in taken:
        return base
    candidate = with_suffix(base, token, max_length)
    n = 2
    while candidate in taken:
        candidate = with_suffix(base, f"{token}-{n}", max_length)
        n += 1
    return candidate
