"""
LangGraph workflow for one ingestion run.
LangSmith: set LANGSMITH_API_KEY in .env to trace runs.
"""

import asyncio
import logging
import time
from pathlib import Path

import config  # noqa: E402

from langgraph.graph import END, START, StateGraph

import db
from db import StoreUnavailableError
from pipeline.models import RunSummary
from pipeline.nodes import (
    discover_links_node,
    extract_node,
    fetch_details_node,
    finalize_node,
    normalize_node,
    reconcile_node,
)
from pipeline.state import IngestionState
from scrapers.base import ScrapflyFetcher

logger = logging.getLogger(__name__)

config.setup_langsmith_tracing()


def _after_discover_route(state):
    """Route to fetch_details when there are links to fetch, else straight to finalize."""
    if state.get("links"):
        return "fetch_details"
    return "finalize"


def build_graph():
    """Build and return the compiled ingestion graph."""
    graph = StateGraph(IngestionState)

    graph.add_node("discover_links", discover_links_node)
    graph.add_node("fetch_details", fetch_details_node)
    graph.add_node("extract", extract_node)
    graph.add_node("normalize", normalize_node)
    graph.add_node("reconcile", reconcile_node)
    graph.add_node("finalize", finalize_node)

    graph.add_edge(START, "discover_links")
    graph.add_conditional_edges(
        "discover_links",
        _after_discover_route,
        {"fetch_details": "fetch_details", "finalize": "finalize"},
    )
    graph.add_edge("fetch_details", "extract")
    graph.add_edge("extract", "normalize")
    graph.add_edge("normalize", "reconcile")
    graph.add_edge("reconcile", "finalize")
    graph.add_edge("finalize", END)

    return graph.compile()


app = build_graph()


async def run_ingestion(
    settings: config.PipelineSettings | None = None,
    *,
    fetcher=None,
    conn=None,
    db_path: str | Path | None = None,
) -> RunSummary:
    """
    Run one ingestion: index -> detail pages -> candidates -> store.

    Always returns a RunSummary; RunSummary.success is the overall-success flag.
    fetcher defaults to a ScrapflyFetcher (SCRAPFLY_API_KEY); conn defaults to a
    connection to db_path (or config.get_db_path()), opened and closed here.
    """
    settings = settings or config.load_settings()
    summary = RunSummary(max_messages=settings.max_summary_messages)
    deadline = time.monotonic() + settings.run_deadline_seconds

    if fetcher is None:
        api_key = config.get_scrapfly_api_key()
        if not api_key:
            summary.fatal_error = "SCRAPFLY_API_KEY not set in .env"
            summary.finish()
            return summary
        fetcher = ScrapflyFetcher(api_key)

    own_conn = conn is None
    try:
        if own_conn:
            path = db_path or config.get_db_path()
            db.init_db(path)
            conn = db.get_connection(path)
        initial: IngestionState = {"summary": summary, "deadline": deadline}
        final = await app.ainvoke(
            initial,
            config={"configurable": {"fetcher": fetcher, "conn": conn, "settings": settings}},
        )
        summary = final["summary"]
    except StoreUnavailableError as e:
        logger.error("store unavailable: %s", e)
        summary.fatal_error = f"store unavailable: {e}"
        summary.finish()
    finally:
        if own_conn and conn is not None:
            conn.close()
    return summary


def run_ingestion_sync(settings: config.PipelineSettings | None = None, **kwargs) -> RunSummary:
    """Synchronous wrapper for run_ingestion."""
    return asyncio.run(run_ingestion(settings, **kwargs))
