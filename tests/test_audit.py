import html

import pytest
from conftest import make_row

import db
from audit.auditor import run_content_audit, write_audit_report
from audit.formats import ContentFormat, classify
from audit.repair import propose_repair, sanitize_html, unescape_entities
from audit.slugs import is_valid_slug
from config import AuditTarget

LONG = AuditTarget(table="listings", column="description_long")


@pytest.mark.parametrize(
    "value,expected",
    [
        (None, ContentFormat.EMPTY),
        ("", ContentFormat.EMPTY),
        ("  \n\t", ContentFormat.EMPTY),
        ("&lt;p&gt;Merhaba&lt;/p&gt;", ContentFormat.HTML_ESCAPED),
        ("<p>Karışık</p> &lt;strong&gt;metin&lt;/strong&gt;", ContentFormat.HTML_ESCAPED),
        ("<p>Deniz manzaralı</p>", ContentFormat.HTML),
        ("Satırda <br> var", ContentFormat.HTML),
        ("# Başlık\n\nMetin", ContentFormat.MARKDOWN),
        ("- birinci\n- ikinci", ContentFormat.MARKDOWN),
        ("1. adım", ContentFormat.MARKDOWN),
        ("**Kalın** metin", ContentFormat.MARKDOWN),
        ("Detay için [tıklayın](https://example.com)", ContentFormat.MARKDOWN),
        ("Düz metin, işaret yok.", ContentFormat.UNKNOWN),
        ("5 < 6 ve 7 > 3", ContentFormat.UNKNOWN),
        ("Tom &amp; Jerry", ContentFormat.UNKNOWN),
        ("#etiket", ContentFormat.UNKNOWN),
    ],
)
def test_classify(value, expected):
    assert classify(value) is expected


def test_classify_is_total():
    samples = ["&lt;", "&gt;", "<", ">", "**", "[]()", "# ", "-", "\x00", "ğüşıöç", "<<p>>", "&lt;&gt;"]
    for value in samples:
        assert isinstance(classify(value), ContentFormat)


def test_unescape_until_stable():
    assert unescape_entities("&amp;lt;p&amp;gt;Hi&amp;lt;/p&amp;gt;") == "<p>Hi</p>"
    assert unescape_entities("Tom &amp; Jerry") == "Tom & Jerry"


def test_repair_escaped_html():
    assert propose_repair("&lt;p&gt;Merhaba&lt;/p&gt;", ContentFormat.HTML_ESCAPED) == "<p>Merhaba</p>"
    assert propose_repair("&lt;p&gt;Açık", ContentFormat.HTML_ESCAPED) == "<p>Açık</p>"


def test_repair_sanitizes():
    value = "&lt;p onclick=&quot;x()&quot;&gt;Hi&lt;/p&gt;&lt;script&gt;alert(1)&lt;/script&gt;"
    assert classify(value) is ContentFormat.HTML_ESCAPED
    assert propose_repair(value, ContentFormat.HTML_ESCAPED) == "<p>Hi</p>"
    assert sanitize_html('<a href="javascript:x()">link</a>') == "<a>link</a>"


def test_repair_markdown():
    out = propose_repair("# Başlık\n\n**Deniz** manzaralı", ContentFormat.MARKDOWN)
    assert "<h1>Başlık</h1>" in out
    assert "<strong>Deniz</strong>" in out


@pytest.mark.parametrize("fmt", [ContentFormat.HTML, ContentFormat.UNKNOWN, ContentFormat.EMPTY])
def test_no_repair_for_other_formats(fmt):
    assert propose_repair("<p>x</p>", fmt) is None


def escaped(value: str, times: int) -> str:
    for _ in range(times):
        value = html.escape(value)
    return value


def test_unescape_deeply_nested():
    assert unescape_entities(escaped("<p>Merhaba</p>", 6)) == "<p>Merhaba</p>"


@pytest.mark.parametrize(
    "value",
    [
        "&lt;p&gt;Merhaba&lt;/p&gt;",
        "- bir\n- iki",
        "&amp;lt;b&amp;gt;x&amp;lt;/b&amp;gt;",
        escaped("<p>Merhaba</p>", 4),
        escaped('<p class="a">Deniz &amp; kum</p>', 6),
    ],
)
def test_repaired_value_needs_no_further_repair(value):
    repaired = propose_repair(value, classify(value))
    fmt = classify(repaired)
    assert fmt is ContentFormat.HTML
    assert propose_repair(repaired, fmt) is None


@pytest.mark.parametrize(
    "slug,valid",
    [
        ("deniz-manzarali-villa", True),
        ("deniz-manzarali-villa-", False),
        ("-villa", False),
        ("deniz--villa", False),
        ("Deniz-Villa", False),
        ("deniz-manzaralı-villa", False),
        ("villa-1712345678901", False),
        ("ara-05321234567-villa", True),
        ("villa1712345678901", True),
        ("", False),
        ("a" * 101, False),
    ],
)
def test_is_valid_slug(slug, valid):
    assert is_valid_slug(slug, 100) is valid


def _seed(conn):
    rows = [
        ("Escaped", "escaped", "&lt;p&gt;Deniz manzaralı&lt;/p&gt;"),
        ("Markdown", "markdown", "## Özellikler\n\n- Havuz\n- Bahçe"),
        ("Html", "html", "<p>Zaten düzgün</p>"),
        ("Empty", "empty", None),
        ("Plain", "plain", "Sadece metin"),
    ]
    for title, slug, long_text in rows:
        db.insert_listing(conn, make_row(title, slug, description_long=long_text))


def test_report_only_never_writes(conn, settings):
    _seed(conn)
    before = db.fetch_text_column(conn, "listings", "description_long")
    report = run_content_audit(conn, [LONG], settings=settings)
    assert report.scanned == 5
    assert report.totals() == {"html-escaped": 1, "html": 1, "markdown": 1, "empty": 1, "unknown": 1}
    assert report.anomalies_found == 2
    assert report.rows_modified == 0
    assert db.fetch_text_column(conn, "listings", "description_long") == before


def test_repair_writes_changed_rows_once(conn, settings):
    _seed(conn)
    first = run_content_audit(conn, [LONG], repair=True, settings=settings)
    assert first.rows_modified == 2
    values = dict(db.fetch_text_column(conn, "listings", "description_long"))
    assert values[1] == "<p>Deniz manzaralı</p>"
    assert "<li>Havuz</li>" in values[2]
    second = run_content_audit(conn, [LONG], repair=True, settings=settings)
    assert second.rows_modified == 0
    assert second.anomalies_found == 0
    assert second.totals()["html"] == 3


def test_limit_bounds_rows_per_column(conn, settings):
    _seed(conn)
    report = run_content_audit(conn, [LONG], repair=True, limit=1, settings=settings)
    assert report.scanned == 1
    assert report.rows_modified == 1


def test_bounded_repair_skips_past_clean_rows(conn, settings):
    db.insert_listing(conn, make_row("Temiz", "temiz", description_long="<p>a</p>"))
    db.insert_listing(conn, make_row("Bozuk", "bozuk", description_long="&lt;p&gt;b&lt;/p&gt;"))
    report = run_content_audit(conn, [LONG], repair=True, limit=1, settings=settings)
    assert report.rows_modified == 1
    assert report.scanned == 2
    assert dict(db.fetch_text_column(conn, "listings", "description_long"))[2] == "<p>b</p>"


def test_bounded_repair_resumes_from_cursor(conn, settings):
    for i in range(5):
        db.insert_listing(conn, make_row(f"İlan {i}", f"ilan-{i}", description_long=f"&lt;p&gt;{i}&lt;/p&gt;"))

    first = run_content_audit(conn, [LONG], repair=True, limit=2, settings=settings)
    assert first.rows_modified == 2
    assert first.next_after_id == 2

    second = run_content_audit(conn, [LONG], repair=True, limit=2, after_id=first.next_after_id, settings=settings)
    assert second.rows_modified == 2
    assert second.next_after_id == 4

    third = run_content_audit(conn, [LONG], repair=True, limit=2, after_id=second.next_after_id, settings=settings)
    assert third.rows_modified == 1
    assert third.next_after_id is None
    assert third.to_dict()["next_after_id"] is None

    values = db.fetch_text_column(conn, "listings", "description_long")
    assert [v for _, v in values] == [f"<p>{i}</p>" for i in range(5)]


def test_report_limit_leaves_cursor(conn, settings):
    _seed(conn)
    report = run_content_audit(conn, [LONG], limit=2, check_slugs=False, settings=settings)
    assert report.scanned == 2
    assert report.next_after_id == 2
    rest = run_content_audit(conn, [LONG], after_id=2, check_slugs=False, settings=settings)
    assert rest.scanned == 3
    assert rest.next_after_id is None


def test_unknown_target_is_reported(conn, settings):
    report = run_content_audit(conn, [AuditTarget(table="listings", column="nope")], settings=settings)
    assert report.errors and "nope" in report.errors[0]
    report = run_content_audit(conn, [AuditTarget(table="x; DROP TABLE listings", column="a")], settings=settings)
    assert report.errors
    assert "listings" in db.get_table_names(conn)


def test_slug_audit_and_repair(conn, settings):
    db.insert_listing(conn, make_row("Deniz Manzaralı Villa", "deniz-manzarali-villa-"))
    db.insert_listing(conn, make_row("Bota Arsa", "bota-arsa-1712345678901"))
    db.insert_listing(conn, make_row("Sahil Evi", "sahil-evi"))
    db.insert_listing(conn, make_row("Sahil Evi", "Sahil-Evi"))

    report = run_content_audit(conn, [], settings=settings)
    assert {a.slug for a in report.slug_anomalies} == {"deniz-manzarali-villa-", "bota-arsa-1712345678901", "Sahil-Evi"}
    assert [r[2] for r in db.get_listing_slugs(conn)][0] == "deniz-manzarali-villa-"

    report = run_content_audit(conn, [], repair=True, settings=settings)
    assert report.slugs_repaired == 3
    slugs = [r[2] for r in db.get_listing_slugs(conn)]
    assert slugs == ["deniz-manzarali-villa", "bota-arsa", "sahil-evi", "sahil-evi-4"]

    again = run_content_audit(conn, [], repair=True, settings=settings)
    assert again.slug_anomalies == []
    assert again.slugs_repaired == 0


def test_slug_from_numbered_title_is_not_an_anomaly(conn, settings):
    db.insert_listing(conn, make_row("Villa 05321234567", "villa-05321234567"))
    db.insert_listing(conn, make_row("Ara 05321234567 Villa", "ara-05321234567-villa"))
    report = run_content_audit(conn, [], repair=True, settings=settings)
    assert report.slug_anomalies == []
    assert report.slugs_repaired == 0


def test_slug_audit_limit_counts_anomalies(conn, settings):
    db.insert_listing(conn, make_row("Sahil Evi", "sahil-evi"))
    db.insert_listing(conn, make_row("Bota Arsa", "Bota-Arsa"))
    db.insert_listing(conn, make_row("Yalı Daire", "yali-daire-"))
    report = run_content_audit(conn, [], repair=True, limit=1, settings=settings)
    assert [a.row_id for a in report.slug_anomalies] == [2]
    assert report.next_after_id == 2
    report = run_content_audit(conn, [], repair=True, limit=1, after_id=2, settings=settings)
    assert [a.row_id for a in report.slug_anomalies] == [3]
    assert [r[2] for r in db.get_listing_slugs(conn)] == ["sahil-evi", "bota-arsa", "yali-daire"]


def test_write_audit_report(conn, settings, tmp_path):
    _seed(conn)
    report = run_content_audit(conn, [LONG], settings=settings)
    path = write_audit_report(report, tmp_path / "reports" / "audit.md")
    text = path.read_text(encoding="utf-8")
    assert text.startswith("# Content audit report")
    assert "| listings.description_long | 1 | 1 | 1 | 1 | 1 |" in text
    assert "## Sample anomalies" in text
