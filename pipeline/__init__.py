"""
Ingestion pipeline: LangGraph workflow that scrapes, normalizes and reconciles listings.
"""

from pipeline.graph import app, build_graph, run_ingestion, run_ingestion_sync
from pipeline.models import NormalizedListing, PropertyType, RunSummary
from pipeline.state import IngestionState

__all__ = [
    "app",
    "build_graph",
    "IngestionState",
    "NormalizedListing",
    "PropertyType",
    "run_ingestion",
    "run_ingestion_sync",
    "RunSummary",
]
