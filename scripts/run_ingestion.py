"""
Run one ingestion: fetch the source index, fetch detail pages, insert new listings.

Usage:
  python scripts/run_ingestion.py
  python scripts/run_ingestion.py --max-candidates 10 --deadline 30
  python scripts/run_ingestion.py --concurrency 8 --save-summary -o data/last_run.json

Needs SCRAPFLY_API_KEY in .env. Exit code is 0 when the run is overall-successful.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from pydantic import ValidationError  # noqa: E402

import config  # noqa: E402
import db  # noqa: E402
from pipeline.graph import run_ingestion  # noqa: E402


def print_summary(summary) -> None:
    print(
        f"Links: {summary.links_discovered} | candidates: {summary.candidates_extracted} | "
        f"inserted: {summary.inserted} | skipped: {summary.skipped} | errors: {summary.errors} | "
        f"dropped: {summary.dropped} | abandoned: {summary.abandoned}",
        flush=True,
    )
    for slug in summary.inserted_slugs:
        print(f"  + {slug}")
    for msg in summary.messages:
        print(f"  - {msg}")
    if summary.deadline_exceeded:
        print("Deadline exceeded; remaining pages were not fetched.")
    if summary.fatal_error:
        print(f"Fatal: {summary.fatal_error}", file=sys.stderr)


async def main():
    parser = argparse.ArgumentParser(description="Scrape new listings from the source site into the DB")
    parser.add_argument("--max-candidates", type=int, default=None, metavar="N", help="Detail pages per run (default: 25)")
    parser.add_argument("--deadline", type=float, default=None, metavar="SECONDS", help="Run time budget (default: 50)")
    parser.add_argument("--concurrency", type=int, default=None, metavar="N", help="Concurrent page fetches (default: 4)")
    parser.add_argument("--index-url", default=None, help="Listing index URL (default: source site index)")
    parser.add_argument("--save-summary", action="store_true", help="Store the run summary in ingestion_runs")
    parser.add_argument("-o", "--output", default=None, help="Optional: write the run summary JSON to this path")
    args = parser.parse_args()

    config.setup_logging()
    try:
        settings = config.load_settings(
            max_candidates=args.max_candidates,
            run_deadline_seconds=args.deadline,
            fetch_concurrency=args.concurrency,
            source_index_url=args.index_url,
        )
    except ValidationError as e:
        print(f"Invalid settings:\n{e}", file=sys.stderr)
        sys.exit(2)

    if not config.get_scrapfly_api_key():
        print("Set SCRAPFLY_API_KEY in .env", file=sys.stderr)
        sys.exit(1)

    print(
        f"Ingesting from {settings.source_index_url} "
        f"(max_candidates={settings.max_candidates}, deadline={settings.run_deadline_seconds:g}s) ...",
        flush=True,
    )
    summary = await run_ingestion(settings)
    print_summary(summary)

    if args.save_summary and summary.fatal_error is None:
        conn = db.get_connection(config.get_db_path())
        try:
            run_id = db.insert_run_summary(conn, summary.to_dict(), summary.success)
        finally:
            conn.close()
        print(f"Saved run summary (id {run_id}) to DB (ingestion_runs)", flush=True)

    if args.output:
        out_path = Path(args.output).resolve()
        out_path.parent.mkdir(parents=True, exist_ok=True)
        with open(out_path, "w", encoding="utf-8") as f:
            json.dump(summary.to_dict(), f, ensure_ascii=False, indent=2)
        print(f"Wrote summary to {out_path}", flush=True)

    sys.exit(0 if summary.success else 1)


if __name__ == "__main__":
    asyncio.run(main())
