"""
LangGraph nodes for the ingestion pipeline.

Collaborators come from config["configurable"]:
  fetcher  - object with async fetch(url, deadline) -> FetchResult
  conn     - sqlite3 connection (the reconciler is its only writer)
  settings - config.PipelineSettings
"""

import logging
import sys
import time
from pathlib import Path

# Allow importing project modules when run from project root or as package
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from langchain_core.runnables import RunnableConfig

from db import StoreUnavailableError
from pipeline.normalize import normalize_candidate
from pipeline.reconcile import Outcome, Reconciler, SeenIndex
from pipeline.state import IngestionState
from scrapers.content import extract_candidate
from scrapers.scraper import discover_links, fetch_index, fetch_listing_pages

logger = logging.getLogger(__name__)


def _deps(config: RunnableConfig) -> dict:
    return config.get("configurable") or {}


async def discover_links_node(state: IngestionState, config: RunnableConfig) -> dict:
    """Fetch the index page and collect detail links, capped at max_candidates."""
    deps = _deps(config)
    settings = deps["settings"]
    summary = state["summary"]

    index = await fetch_index(deps["fetcher"], settings.source_index_url, state["deadline"])
    if not index.ok:
        summary.record_error(f"index unavailable: {index.describe()}")
        return {"summary": summary, "links": []}

    summary.index_fetched = True
    links = discover_links(index.body, settings.source_index_url)
    summary.links_discovered = len(links)
    if len(links) > settings.max_candidates:
        summary.note(f"{len(links)} links found, processing first {settings.max_candidates}")
    logger.info("discovered %d links", len(links))
    return {"summary": summary, "links": links[: settings.max_candidates]}


async def fetch_details_node(state: IngestionState, config: RunnableConfig) -> dict:
    """Fetch detail pages concurrently; failures become summary errors, leftovers are abandoned."""
    deps = _deps(config)
    settings = deps["settings"]
    summary = state["summary"]
    links = state.get("links") or []
    done = 0

    def on_fetched(url: str, success: bool) -> None:
        nonlocal done
        done += 1
        logger.info("[%d/%d] %s %s", done, len(links), "ok" if success else "fail", url)

    pages, abandoned = await fetch_listing_pages(
        deps["fetcher"],
        links,
        max_concurrent=settings.fetch_concurrency,
        deadline=state["deadline"],
        on_page_fetched=on_fetched,
    )
    ok_pages = []
    for page in pages:
        if page.ok:
            ok_pages.append(page)
        else:
            summary.record_error(page.describe())
    if abandoned:
        summary.abandoned = len(abandoned)
        summary.deadline_exceeded = True
        summary.note(f"deadline reached, {len(abandoned)} pages not fetched")
    return {"summary": summary, "pages": ok_pages}


async def extract_node(state: IngestionState, config: RunnableConfig) -> dict:
    """Parse fetched pages into raw candidates; pages without a title are dropped."""
    settings = _deps(config)["settings"]
    summary = state["summary"]
    candidates = []
    for page in state.get("pages") or []:
        candidate = extract_candidate(page.body, page.url, settings)
        if candidate is None:
            summary.dropped += 1
            summary.note(f"{page.url}: no title, dropped")
            continue
        candidates.append(candidate)
    summary.candidates_extracted = len(candidates)
    return {"summary": summary, "candidates": candidates}


async def normalize_node(state: IngestionState, config: RunnableConfig) -> dict:
    settings = _deps(config)["settings"]
    summary = state["summary"]
    listings = []
    for candidate in state.get("candidates") or []:
        try:
            listings.append(normalize_candidate(candidate, settings))
        except ValueError as e:
            summary.dropped += 1
            summary.note(str(e))
    return {"summary": summary, "listings": listings}


async def reconcile_node(state: IngestionState, config: RunnableConfig) -> dict:
    """
    Insert new listings. A StoreUnavailableError stops the batch and is recorded as the
    run's fatal error; inserts committed before it are kept and counted.
    """
    deps = _deps(config)
    summary = state["summary"]
    reconciler = None
    try:
        reconciler = Reconciler(deps["conn"], SeenIndex.from_store(deps["conn"]), deps["settings"].max_slug_length)
        reconciler.reconcile(state.get("listings") or [])
    except StoreUnavailableError as e:
        logger.error("store unavailable: %s", e)
        summary.fatal_error = f"store unavailable: {e}"
    decisions = reconciler.decisions if reconciler else []

    for d in decisions:
        if d.outcome is Outcome.INSERTED:
            summary.inserted += 1
            summary.inserted_slugs.append(d.listing.slug)
        elif d.outcome is Outcome.SKIPPED:
            summary.skipped += 1
        else:
            summary.record_error(f"{d.listing.source_url}: insert failed: {d.reason}")
    return {"summary": summary, "decisions": decisions}


async def finalize_node(state: IngestionState) -> dict:
    summary = state["summary"]
    if time.monotonic() > state["deadline"]:
        summary.deadline_exceeded = True
    summary.finish()
    logger.info(
        "run finished: %d inserted, %d skipped, %d errors, success=%s",
        summary.inserted,
        summary.skipped,
        summary.errors,
        summary.success,
    )
    return {"summary": summary}
