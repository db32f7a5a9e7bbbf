"""Load .env and expose API keys / config. Copy .env.example to .env and fill in values."""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()

ENV_PREFIX = "ILANSYNC_"

DEFAULT_INDEX_URL = "https://www.karasuemlak.net/ilanlar"

DEFAULT_NEIGHBORHOODS = [
    "Aziziye",
    "Yalı",
    "Çataltepe",
    "Bota",
    "Sahil",
    "Camlık",
    "Kurtuluş",
    "İnköy",
]


def get_scrapfly_api_key() -> str | None:
    """ScrapFly API key for scraping. Required for ingestion runs."""
    return os.environ.get("SCRAPFLY_API_KEY") or None


def get_db_path() -> Path:
    """SQLite database path (default: data/listings.db)."""
    return Path(os.environ.get(ENV_PREFIX + "DB_PATH") or "data/listings.db")


def get_log_level() -> str:
    return (os.environ.get(ENV_PREFIX + "LOG_LEVEL") or "INFO").upper()


def setup_logging(level: str | None = None) -> None:
    """Configure root logging for CLI runs."""
    logging.basicConfig(
        level=level or get_log_level(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ---------- Pipeline settings ----------


class AuditTarget(BaseModel):
    """One (table, column) pair scanned by the content audit."""

    table: str
    column: str


class PipelineSettings(BaseModel):
    """Options for ingestion and audit runs. Every option has a default."""

    source_index_url: str = Field(default=DEFAULT_INDEX_URL, description="Listing index page on the source site")
    max_candidates: int = Field(default=25, ge=1, description="Detail pages processed per run")
    run_deadline_seconds: float = Field(default=50.0, gt=0, description="Wall-clock budget for one run")
    fetch_concurrency: int = Field(default=4, ge=1, le=16, description="Concurrent detail-page fetches")
    default_price: int = Field(default=1_000_000, gt=0, description="Price used when none can be parsed")
    default_room_count: int = Field(default=2, ge=0)
    default_size_sqm: int = Field(default=0, ge=0)
    neighborhoods: list[str] = Field(default_factory=lambda: list(DEFAULT_NEIGHBORHOODS))
    default_neighborhood: str = Field(default="center", min_length=1)
    max_slug_length: int = Field(default=100, ge=16)
    max_description_chars: int = Field(default=5000, ge=100)
    max_short_description_chars: int = Field(default=200, ge=40)
    max_images: int = Field(default=20, ge=0)
    price_fragment_max_chars: int = Field(default=40, ge=5, description="Longest text treated as a price label")
    max_scan_chars: int = Field(default=100_000, ge=1000, description="Cap for full-page fallback scans")
    max_summary_messages: int = Field(default=20, ge=1)
    audit_targets: list[AuditTarget] = Field(
        default_factory=lambda: [
            AuditTarget(table="listings", column="description_short"),
            AuditTarget(table="listings", column="description_long"),
        ]
    )
    audit_batch_size: int = Field(
        default=500, ge=1, description="Per column: rows scanned when reporting, rows rewritten when repairing"
    )


_INT_OPTIONS = (
    "max_candidates",
    "fetch_concurrency",
    "default_price",
    "default_room_count",
    "default_size_sqm",
    "max_slug_length",
    "max_description_chars",
    "max_short_description_chars",
    "max_images",
    "price_fragment_max_chars",
    "max_scan_chars",
    "max_summary_messages",
    "audit_batch_size",
)


def _parse_audit_targets(raw: str) -> list[dict]:
    # "listings.description_long,articles.content"
    targets = []
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        table, _, column = item.partition(".")
        targets.append({"table": table.strip(), "column": column.strip()})
    return targets


def load_settings(**overrides) -> PipelineSettings:
    """
    Build PipelineSettings from ILANSYNC_* environment variables, then apply overrides.
    Raises pydantic.ValidationError for invalid values.
    """
    values: dict = {}
    for name in _INT_OPTIONS:
        raw = os.environ.get(ENV_PREFIX + name.upper())
        if raw:
            values[name] = raw
    if raw := os.environ.get(ENV_PREFIX + "RUN_DEADLINE_SECONDS"):
        values["run_deadline_seconds"] = raw
    if raw := os.environ.get(ENV_PREFIX + "SOURCE_INDEX_URL"):
        values["source_index_url"] = raw
    if raw := os.environ.get(ENV_PREFIX + "DEFAULT_NEIGHBORHOOD"):
        values["default_neighborhood"] = raw
    if raw := os.environ.get(ENV_PREFIX + "NEIGHBORHOODS"):
        values["neighborhoods"] = [n.strip() for n in raw.split(",") if n.strip()]
    if raw := os.environ.get(ENV_PREFIX + "AUDIT_TARGETS"):
        values["audit_targets"] = _parse_audit_targets(raw)
    values.update({k: v for k, v in overrides.items() if v is not None})
    return PipelineSettings(**values)


# ---------- LangSmith tracing (pipeline graph) ----------


def get_langsmith_api_key() -> str | None:
    """LangSmith API key for tracing. EU: https://eu.smith.langchain.com | US: https://smith.langchain.com"""
    return os.environ.get("LANGCHAIN_API_KEY") or os.environ.get("LANGSMITH_API_KEY") or None


def get_langsmith_endpoint() -> str:
    """LangSmith API endpoint. Defaults to EU (eu.api.smith.langchain.com). US: https://api.smith.langchain.com"""
    return (
        os.environ.get("LANGCHAIN_ENDPOINT")
        or os.environ.get("LANGSMITH_ENDPOINT")
        or "https://eu.api.smith.langchain.com"
    )


def is_langsmith_tracing_enabled() -> bool:
    """True if LangSmith tracing is enabled via LANGCHAIN_TRACING_V2=true."""
    return os.environ.get("LANGCHAIN_TRACING_V2", "").lower() in ("true", "1", "yes")


def get_langsmith_project() -> str:
    """Project name for LangSmith traces (default: ilansync)."""
    return os.environ.get("LANGCHAIN_PROJECT") or os.environ.get("LANGCHAIN_PROJECT_NAME") or "ilansync"


def setup_langsmith_tracing() -> None:
    """
    Call once at startup (before building the graph) so ingestion runs are traced.
    If LANGCHAIN_API_KEY or LANGSMITH_API_KEY is set and LANGCHAIN_TRACING_V2 is not,
    enables tracing automatically.
    """
    load_dotenv()
    if not get_langsmith_api_key():
        return
    if not is_langsmith_tracing_enabled():
        os.environ["LANGCHAIN_TRACING_V2"] = "true"
    if not os.environ.get("LANGCHAIN_ENDPOINT") and not os.environ.get("LANGSMITH_ENDPOINT"):
        os.environ["LANGCHAIN_ENDPOINT"] = get_langsmith_endpoint()
    if not os.environ.get("LANGCHAIN_PROJECT") and not os.environ.get("LANGCHAIN_PROJECT_NAME"):
        os.environ["LANGCHAIN_PROJECT"] = get_langsmith_project()
