"""
Audit stored text columns for markup drift (escaped HTML, markdown) and non-canonical slugs.
Reports by default; --repair writes the repaired values.

Usage:
  python scripts/run_audit.py
  python scripts/run_audit.py --report data/audit.md
  python scripts/run_audit.py --repair --limit 200
  python scripts/run_audit.py --repair --limit 200 --after-id 1840
  python scripts/run_audit.py --no-slugs

Targets come from ILANSYNC_AUDIT_TARGETS (default: listings.description_short,listings.description_long).
"""

import argparse
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from pydantic import ValidationError  # noqa: E402

import config  # noqa: E402
import db  # noqa: E402
from audit.auditor import run_content_audit, write_audit_report  # noqa: E402


def main():
    parser = argparse.ArgumentParser(description="Classify and optionally repair stored listing text")
    parser.add_argument("--repair", action="store_true", help="Write repaired values (default: report only)")
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        metavar="N",
        help="Max rows scanned (with --repair: rows rewritten) per column (default: 500)",
    )
    parser.add_argument("--after-id", type=int, default=0, metavar="ID", help="Resume: only rows with a larger id")
    parser.add_argument("--no-slugs", action="store_true", help="Skip the listing slug audit")
    parser.add_argument("--report", default=None, metavar="FILE", help="Optional: write a markdown report")
    args = parser.parse_args()

    config.setup_logging()
    try:
        settings = config.load_settings(audit_batch_size=args.limit)
    except ValidationError as e:
        print(f"Invalid settings:\n{e}", file=sys.stderr)
        sys.exit(2)

    db_path = config.get_db_path()
    if not Path(db_path).is_file():
        print(f"Database not found: {db_path}", file=sys.stderr)
        sys.exit(1)

    conn = db.get_connection(db_path)
    try:
        report = run_content_audit(
            conn, repair=args.repair, after_id=args.after_id, check_slugs=not args.no_slugs, settings=settings
        )
    except db.StoreUnavailableError as e:
        print(f"Database unavailable: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        conn.close()

    for key, counts in report.counts.items():
        parts = ", ".join(f"{fmt}={n}" for fmt, n in sorted(counts.items()))
        print(f"{key}: {parts}")
    print(f"Scanned {report.scanned} cells, {report.anomalies_found} need repair", flush=True)
    if report.slug_anomalies:
        print(f"{len(report.slug_anomalies)} non-canonical slugs")
    if args.repair:
        print(f"Modified {report.rows_modified} cells, {report.slugs_repaired} slugs", flush=True)
    if report.next_after_id is not None:
        print(f"Limit reached; continue with --after-id {report.next_after_id}", flush=True)
    for err in report.errors:
        print(f"  ! {err}", file=sys.stderr)

    if args.report:
        path = write_audit_report(report, args.report)
        print(f"Wrote report to {path}", flush=True)


if __name__ == "__main__":
    main()
