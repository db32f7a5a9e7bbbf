"""
LangGraph state schema for the ingestion pipeline.
"""

from typing_extensions import TypedDict

from pipeline.models import NormalizedListing, RawCandidate, RunSummary
from pipeline.reconcile import Decision
from scrapers.base import FetchResult


class IngestionState(TypedDict, total=False):
    """
    State passed between pipeline nodes.

    - summary: RunSummary for this run (counts and messages are accumulated in place).
    - deadline: time.monotonic() value after which no new fetches start.
    - links: Detail-page URLs to fetch (already capped at max_candidates).
    - pages: Completed detail fetches, in link order.
    - candidates: Raw candidates extracted from successful pages.
    - listings: Normalized listings handed to the reconciler.
    - decisions: Reconciler decisions, one per listing processed.
    """

    summary: RunSummary
    deadline: float
    links: list[str]
    pages: list[FetchResult]
    candidates: list[RawCandidate]
    listings: list[NormalizedListing]
    decisions: list[Decision]
