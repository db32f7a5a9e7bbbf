"""
Slug drift audit: find listing slugs that are not canonical and regenerate them from the title.

Non-canonical: characters outside [a-z0-9-], leading/trailing or doubled hyphens,
longer than the limit, or ending in a "-<10+ digits>" timestamp suffix.
"""

import logging
import re
import sqlite3
from dataclasses import dataclass

import db
from db import SlugConflictError
from pipeline.slugs import SLUG_RE, slugify, unique_slug

logger = logging.getLogger(__name__)

TIMESTAMP_SUFFIX_RE = re.compile(r"-\d{10,}$")
PAGE_SIZE = 500


@dataclass
class SlugAnomaly:
    row_id: int
    title: str
    slug: str
    proposed: str


def is_valid_slug(slug: str | None, max_length: int = 100) -> bool:
    if not slug or len(slug) > max_length:
        return False
    return bool(SLUG_RE.match(slug)) and not TIMESTAMP_SUFFIX_RE.search(slug)


def find_slug_anomalies(
    conn: sqlite3.Connection,
    max_length: int = 100,
    limit: int | None = None,
    after_id: int = 0,
) -> list[SlugAnomaly]:
    """
    Rows with id > after_id whose slug is not canonical, each with a proposed
    replacement (not yet applied). Stops after limit anomalies.

    A slug whose regenerated form is the slug itself (a title that ends in a long
    number) is left alone.
    """
    _, taken = db.get_existing_keys(conn)
    anomalies = []
    page = limit or PAGE_SIZE
    while True:
        rows = db.get_listing_slugs(conn, page, after_id)
        for row_id, title, slug in rows:
            after_id = row_id
            if is_valid_slug(slug, max_length):
                continue
            proposed = unique_slug(slugify(title, max_length), taken - {slug}, str(row_id), max_length)
            if proposed == slug:
                continue
            taken.add(proposed)
            anomalies.append(SlugAnomaly(row_id, title, slug, proposed))
            if limit is not None and len(anomalies) >= limit:
                return anomalies
        if len(rows) < page:
            return anomalies


def repair_slugs(conn: sqlite3.Connection, anomalies: list[SlugAnomaly]) -> int:
    """Apply proposed slugs. Returns the number of rows changed."""
    changed = 0
    for a in anomalies:
        if a.proposed == a.slug:
            continue
        try:
            db.update_listing_slug(conn, a.row_id, a.proposed)
        except SlugConflictError as e:
            logger.warning("slug repair skipped for listing %s: %s", a.row_id, e)
            continue
        changed += 1
    return changed
