"""
Content format audit over stored text columns, with an explicit repair pass.

Reporting never writes. Repair writes a cell only when its repaired value differs
from what is stored, so a second repair run over the same rows changes nothing.
"""

import logging
import sqlite3
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

import db
from audit.formats import ContentFormat, classify
from audit.repair import propose_repair
from audit.slugs import SlugAnomaly, find_slug_anomalies, repair_slugs
from config import AuditTarget, PipelineSettings, load_settings

logger = logging.getLogger(__name__)

MAX_SAMPLES = 20
SAMPLE_CHARS = 120


@dataclass
class ContentField:
    """One stored text cell examined by the audit."""

    table: str
    row_id: int
    column: str
    detected_format: ContentFormat
    original: str | None
    repaired_value: str | None = None


@dataclass
class AuditReport:
    repair: bool = False
    scanned: int = 0
    counts: dict[str, Counter] = field(default_factory=dict)
    anomalies_found: int = 0
    samples: list[ContentField] = field(default_factory=list)
    rows_modified: int = 0
    slug_anomalies: list[SlugAnomaly] = field(default_factory=list)
    slugs_repaired: int = 0
    errors: list[str] = field(default_factory=list)
    # target key -> last rowid handled, for targets the limit cut short
    pending: dict[str, int] = field(default_factory=dict)

    @property
    def next_after_id(self) -> int | None:
        """Cursor for the next bounded run, or None when every target was scanned to the end."""
        return min(self.pending.values()) if self.pending else None

    def totals(self) -> dict[str, int]:
        """Classification counts across all targets, every format listed."""
        total = Counter()
        for c in self.counts.values():
            total.update(c)
        return {fmt.value: total.get(fmt.value, 0) for fmt in ContentFormat}

    def to_dict(self) -> dict:
        return {
            "repair": self.repair,
            "scanned": self.scanned,
            "totals": self.totals(),
            "counts": {k: dict(v) for k, v in self.counts.items()},
            "anomalies_found": self.anomalies_found,
            "rows_modified": self.rows_modified,
            "slug_anomalies": len(self.slug_anomalies),
            "slugs_repaired": self.slugs_repaired,
            "errors": list(self.errors),
            "next_after_id": self.next_after_id,
        }


def _as_text(value) -> str | None:
    if value is None or isinstance(value, str):
        return value
    return str(value)


def audit_column(
    conn: sqlite3.Connection,
    target: AuditTarget,
    report: AuditReport,
    limit: int,
    after_id: int = 0,
) -> None:
    """
    Classify cells of one column with rowid > after_id; in repair mode write changed ones.

    Report mode scans at most limit cells. Repair mode keeps scanning in pages of limit
    until limit cells have been rewritten, so clean rows never stall a bounded repair.
    If the bound stops the scan early, the last rowid handled goes to report.pending.
    """
    key = f"{target.table}.{target.column}"
    cursor = after_id
    written = 0
    while True:
        try:
            rows = db.fetch_text_column(conn, target.table, target.column, limit, after_rowid=cursor)
        except ValueError as e:
            report.errors.append(str(e))
            logger.warning("skipping audit target %s: %s", key, e)
            return

        counts = report.counts.setdefault(key, Counter())
        for row_id, raw in rows:
            cursor = row_id
            value = _as_text(raw)
            fmt = classify(value)
            counts[fmt.value] += 1
            report.scanned += 1

            repaired = propose_repair(value, fmt)
            if repaired is None or repaired == value:
                continue
            report.anomalies_found += 1
            if len(report.samples) < MAX_SAMPLES:
                report.samples.append(ContentField(target.table, row_id, target.column, fmt, value, repaired))
            if report.repair:
                db.update_text_column(conn, target.table, target.column, row_id, repaired)
                report.rows_modified += 1
                written += 1
                if written >= limit:
                    report.pending[key] = row_id
                    return

        if len(rows) < limit:
            return
        if not report.repair:
            report.pending[key] = cursor
            return


def run_content_audit(
    conn: sqlite3.Connection,
    targets: list[AuditTarget] | None = None,
    *,
    repair: bool = False,
    limit: int | None = None,
    after_id: int = 0,
    check_slugs: bool = True,
    settings: PipelineSettings | None = None,
) -> AuditReport:
    """
    Audit configured (table, column) targets and, optionally, listing slugs.

    Args:
        conn: Open database connection.
        targets: Columns to scan (default: settings.audit_targets).
        repair: Apply proposed repairs (only to values that would change).
        limit: Per column, max rows scanned when reporting, max rows rewritten when
            repairing; max slug anomalies either way (default: settings.audit_batch_size).
        after_id: Only look at rows with a larger rowid (resume from report.next_after_id).
        check_slugs: Also audit listings.slug.

    Returns:
        AuditReport. Unknown targets are recorded in report.errors; StoreUnavailableError propagates.
    """
    settings = settings or load_settings()
    targets = targets if targets is not None else settings.audit_targets
    limit = limit or settings.audit_batch_size
    report = AuditReport(repair=repair)

    for target in targets:
        audit_column(conn, target, report, limit, after_id)

    if check_slugs and "listings" in db.get_table_names(conn):
        report.slug_anomalies = find_slug_anomalies(conn, settings.max_slug_length, limit, after_id)
        if len(report.slug_anomalies) >= limit:
            report.pending["listings.slug"] = report.slug_anomalies[-1].row_id
        if repair:
            report.slugs_repaired = repair_slugs(conn, report.slug_anomalies)

    logger.info(
        "audit scanned %d cells, %d anomalies, %d rows modified",
        report.scanned,
        report.anomalies_found,
        report.rows_modified,
    )
    return report


def _clip(value: str | None) -> str:
    text = " ".join((value or "").split())
    text = text if len(text) <= SAMPLE_CHARS else text[: SAMPLE_CHARS - 3] + "..."
    return text.replace("|", "\\|")


def write_audit_report(report: AuditReport, path: str | Path) -> Path:
    """Write the report as a markdown file. Returns the path written."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    lines = [
        "# Content audit report",
        "",
        f"Generated: {datetime.now(timezone.utc).isoformat(timespec='seconds')}",
        f"Mode: {'repair' if report.repair else 'report only'}",
        "",
        "## Summary",
        "",
        f"- Cells scanned: {report.scanned}",
        f"- Anomalies found: {report.anomalies_found}",
        f"- Rows modified: {report.rows_modified}",
        f"- Slug anomalies: {len(report.slug_anomalies)}",
        f"- Slugs repaired: {report.slugs_repaired}",
        f"- Resume after id: {report.next_after_id if report.next_after_id is not None else '-'}",
        "",
        "## Formats",
        "",
        "| Column | " + " | ".join(fmt.value for fmt in ContentFormat) + " |",
        "|---|" + "---|" * len(ContentFormat),
    ]
    for key, counts in report.counts.items():
        lines.append(f"| {key} | " + " | ".join(str(counts.get(fmt.value, 0)) for fmt in ContentFormat) + " |")

    if report.samples:
        lines += ["", "## Sample anomalies", "", "| Field | Format | Stored | Repaired |", "|---|---|---|---|"]
        for f in report.samples:
            lines.append(
                f"| {f.table}.{f.column}#{f.row_id} | {f.detected_format.value} "
                f"| {_clip(f.original)} | {_clip(f.repaired_value)} |"
            )

    if report.slug_anomalies:
        lines += ["", "## Slug anomalies", "", "| Listing | Stored slug | Proposed |", "|---|---|---|"]
        for a in report.slug_anomalies:
            lines.append(f"| {a.row_id} | {_clip(a.slug)} | {_clip(a.proposed)} |")

    if report.errors:
        lines += ["", "## Errors", ""] + [f"- {e}" for e in report.errors]

    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path
