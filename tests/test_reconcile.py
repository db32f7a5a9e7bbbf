import pytest
from conftest import FlakyConnection, make_row

import db
from db import SideWriteResult, StoreUnavailableError
from pipeline.models import NormalizedListing
from pipeline.reconcile import Outcome, Reconciler, SeenIndex


def listing(title: str, slug: str, url: str = "", images=None) -> NormalizedListing:
    return NormalizedListing(
        title=title,
        slug=slug,
        neighborhood="center",
        price_amount=1_000_000,
        images=images or [],
        source_url=url or f"https://www.karasuemlak.net/ilan/{slug}",
    )


def test_inserts_new_and_skips_stored_titles(conn):
    db.insert_listing(conn, make_row("Yalı'da 3+1 Daire", "yali-da-3-1-daire"))
    rec = Reconciler(conn, SeenIndex.from_store(conn))
    decisions = rec.reconcile([listing("  yalı'da 3+1   DAİRE ", "yali-da-3-1-daire"), listing("Bota Villa", "bota-villa")])
    assert [d.outcome for d in decisions] == [Outcome.SKIPPED, Outcome.INSERTED]
    assert decisions[1].row_id is not None
    assert {r["slug"] for r in db.get_listings(conn)} == {"yali-da-3-1-daire", "bota-villa"}


def test_repeat_within_batch_is_skipped(conn):
    rec = Reconciler(conn, SeenIndex())
    decisions = rec.reconcile([listing("Bota Villa", "bota-villa"), listing("Bota Villa", "bota-villa")])
    assert [d.outcome for d in decisions] == [Outcome.INSERTED, Outcome.SKIPPED]
    assert len(db.get_listings(conn)) == 1


def test_slug_collision_gets_stable_suffix(conn):
    db.insert_listing(conn, make_row("Sahil Evi (eski)", "sahil-evi"))
    rec = Reconciler(conn, SeenIndex.from_store(conn))
    [decision] = rec.reconcile([listing("Sahil Evi", "sahil-evi", url="https://x/ilan/42")])
    assert decision.outcome is Outcome.INSERTED
    assert decision.listing.slug.startswith("sahil-evi-")
    assert decision.listing.slug != "sahil-evi"


def test_slug_conflict_from_store_is_skip(conn):
    db.insert_listing(conn, make_row("Sahil Evi (eski)", "sahil-evi"))
    # seen index built before the row existed: the unique index is the last guard
    rec = Reconciler(conn, SeenIndex())
    [decision] = rec.reconcile([listing("Sahil Evi", "sahil-evi")])
    assert decision.outcome is Outcome.SKIPPED
    assert "sahil-evi" in rec.seen.slugs


def test_row_error_does_not_stop_batch(conn):
    rec = Reconciler(conn, SeenIndex())
    decisions = rec.reconcile([listing("   ", "bos"), listing("Bota Villa", "bota-villa")])
    assert [d.outcome for d in decisions] == [Outcome.FAILED, Outcome.INSERTED]


def test_images_side_table(conn):
    rec = Reconciler(conn, SeenIndex())
    [d] = rec.reconcile([listing("Bota Villa", "bota-villa", images=["https://x/uploads/1.jpg", "https://x/uploads/2.jpg"])])
    assert d.images is SideWriteResult.APPLIED
    rows = conn.execute("SELECT url, position FROM listing_images WHERE listing_id = ?", (d.row_id,)).fetchall()
    assert rows == [("https://x/uploads/1.jpg", 0), ("https://x/uploads/2.jpg", 1)]


def test_images_side_table_missing(conn):
    conn.execute("DROP TABLE listing_images")
    conn.commit()
    rec = Reconciler(conn, SeenIndex())
    [d] = rec.reconcile([listing("Bota Villa", "bota-villa", images=["https://x/uploads/1.jpg"])])
    assert d.outcome is Outcome.INSERTED
    assert d.images is SideWriteResult.SKIPPED_MISSING_DEPENDENCY


def test_store_unavailable_propagates_and_keeps_committed_work(conn):
    flaky = FlakyConnection(conn, fail_on="INSERT INTO listings", after=1)
    rec = Reconciler(flaky, SeenIndex())
    with pytest.raises(StoreUnavailableError):
        rec.reconcile([listing("Bota Villa", "bota-villa"), listing("Sahil Evi", "sahil-evi"), listing("Yalı Daire", "yali-daire")])
    assert [d.outcome for d in rec.decisions] == [Outcome.INSERTED]
    assert [r["slug"] for r in db.get_listings(conn)] == ["bota-villa"]
