"""
Reconciler: decide insert-or-skip for normalized listings and write them to the store.

The "already seen" titles and slugs are an explicit SeenIndex passed in by the caller,
updated after every insert so repeats within one batch are skipped too.
"""

import logging
import sqlite3
from dataclasses import dataclass, field
from enum import Enum

import db
from db import ListingInsertError, SideWriteResult, SlugConflictError
from pipeline.models import NormalizedListing
from pipeline.normalize import assign_unique_slug
from pipeline.slugs import fold

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    INSERTED = "inserted"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class Decision:
    listing: NormalizedListing
    outcome: Outcome
    reason: str = ""
    row_id: int | None = None
    images: SideWriteResult | None = None


def title_key(title: str) -> str:
    """Comparison key for titles: case-, accent- and whitespace-insensitive."""
    return " ".join(fold(title).split())


@dataclass
class SeenIndex:
    titles: set[str] = field(default_factory=set)
    slugs: set[str] = field(default_factory=set)

    @classmethod
    def from_store(cls, conn: sqlite3.Connection) -> "SeenIndex":
        titles, slugs = db.get_existing_keys(conn)
        return cls({title_key(t) for t in titles}, slugs)

    def has_title(self, title: str) -> bool:
        return title_key(title) in self.titles

    def add(self, listing: NormalizedListing) -> None:
        self.titles.add(title_key(listing.title))
        self.slugs.add(listing.slug)


class Reconciler:
    """
    Sole store writer during an ingestion run.

    StoreUnavailableError propagates out of reconcile(); decisions made before it
    stay in self.decisions and their inserts stay committed.
    """

    def __init__(self, conn: sqlite3.Connection, seen: SeenIndex, max_slug_length: int = 100):
        self.conn = conn
        self.seen = seen
        self.max_slug_length = max_slug_length
        self.decisions: list[Decision] = []

    def reconcile(self, listings: list[NormalizedListing]) -> list[Decision]:
        for listing in listings:
            self.decisions.append(self._reconcile_one(listing))
        return self.decisions

    def _reconcile_one(self, listing: NormalizedListing) -> Decision:
        if self.seen.has_title(listing.title):
            return Decision(listing, Outcome.SKIPPED, "title already present")

        listing = assign_unique_slug(listing, self.seen.slugs, self.max_slug_length)
        try:
            row_id = db.insert_listing(self.conn, listing.to_row())
        except SlugConflictError as e:
            self.seen.slugs.add(listing.slug)
            return Decision(listing, Outcome.SKIPPED, str(e))
        except ListingInsertError as e:
            logger.warning("insert failed for %s: %s", listing.source_url, e)
            return Decision(listing, Outcome.FAILED, str(e))

        self.seen.add(listing)
        images = db.insert_listing_images(self.conn, row_id, listing.images) if listing.images else None
        logger.info("inserted %s (id %s)", listing.slug, row_id)
        return Decision(listing, Outcome.INSERTED, row_id=row_id, images=images)
