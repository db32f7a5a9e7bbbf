"""
Domain models for the ingestion pipeline.
"""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field

from db import SideWriteResult
from scrapers.content import RawCandidate

__all__ = ["NormalizedListing", "PropertyType", "RawCandidate", "RunSummary", "SideWriteResult"]


class PropertyType(str, Enum):
    APARTMENT = "apartment"
    VILLA = "villa"
    LAND = "land"
    HOUSE = "house"
    SUMMER_HOUSE = "summer-house"


class NormalizedListing(BaseModel):
    """Canonical listing, ready for the store."""

    title: str = Field(min_length=1)
    slug: str = Field(min_length=1, description="Base slug; made unique by the reconciler")
    property_type: PropertyType = PropertyType.APARTMENT
    neighborhood: str
    price_amount: int = Field(ge=0)
    size_sqm: int = Field(default=0, ge=0)
    room_count: int = Field(default=0, ge=0)
    images: list[str] = Field(default_factory=list)
    description_short: str = ""
    description_long: str = ""
    source_url: str = ""

    def to_row(self) -> dict:
        """Row dict for db.insert_listing."""
        return self.model_dump(mode="json")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


class RunSummary(BaseModel):
    """
    Counts and diagnostics for one ingestion run. Owned by the orchestrator.

    success is False only when the run hit a fatal store error or could not fetch
    the index page; per-item errors and skips do not affect it.
    """

    links_discovered: int = 0
    candidates_extracted: int = 0
    inserted: int = 0
    skipped: int = 0
    errors: int = 0
    dropped: int = 0
    abandoned: int = 0
    index_fetched: bool = False
    deadline_exceeded: bool = False
    fatal_error: str | None = None
    inserted_slugs: list[str] = Field(default_factory=list)
    messages: list[str] = Field(default_factory=list)
    max_messages: int = Field(default=20, ge=1, exclude=True)
    started_at: str = Field(default_factory=_now)
    finished_at: str | None = None

    def note(self, message: str) -> None:
        """Append a human-readable message (capped at max_messages)."""
        if len(self.messages) < self.max_messages:
            self.messages.append(message)

    def record_error(self, message: str) -> None:
        self.errors += 1
        self.note(message)

    def finish(self) -> None:
        self.finished_at = _now()

    @property
    def success(self) -> bool:
        return self.fatal_error is None and self.index_fetched

    def to_dict(self) -> dict:
        data = self.model_dump(mode="json")
        data["success"] = self.success
        return data
