import asyncio
import sqlite3

import pytest

import db
from config import PipelineSettings
from scrapers.base import FetchFailure, FetchResult

INDEX_URL = "https://www.karasuemlak.net/ilanlar"
BASE_URL = "https://www.karasuemlak.net"


class FakeFetcher:
    """In-memory fetcher: url -> HTML. Unknown URLs answer 404."""

    def __init__(self, pages: dict[str, str] | None = None, delay: float = 0.0, slow_urls: set[str] | None = None):
        self.pages = dict(pages or {})
        self.delay = delay
        self.slow_urls = slow_urls
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def fetch(self, url: str, deadline: float) -> FetchResult:
        self.calls.append(url)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay and (self.slow_urls is None or url in self.slow_urls):
                await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1
        body = self.pages.get(url)
        if body is None:
            return FetchResult(url, failure=FetchFailure.STATUS, status_code=404)
        return FetchResult(url, body=body, status_code=200)


class FlakyConnection:
    """Wraps a sqlite3 connection; statements containing fail_on raise OperationalError after `after` successes."""

    def __init__(self, conn: sqlite3.Connection, fail_on: str, after: int = 0):
        self._conn = conn
        self.fail_on = fail_on
        self.after = after
        self.seen = 0

    def execute(self, sql, *args):
        if self.fail_on in sql:
            if self.seen >= self.after:
                raise sqlite3.OperationalError("disk I/O error")
            self.seen += 1
        return self._conn.execute(sql, *args)

    def __getattr__(self, name):
        return getattr(self._conn, name)


def index_html(hrefs: list[str]) -> str:
    links = "\n".join(f'<li><a href="{h}">İlan</a></li>' for h in hrefs)
    return f"""<html><head><title>İlanlar | Karasu Emlak</title></head>
<body><nav><a href="/">Ana Sayfa</a><a href="/hakkimizda">Hakkımızda</a></nav>
<ul class="listings">{links}</ul></body></html>"""


def listing_html(
    title: str | None,
    price: str = "",
    features: tuple[str, ...] = (),
    images: tuple[str, ...] = (),
    paragraphs: tuple[str, ...] = (),
) -> str:
    heading = f"<h1>{title}</h1>" if title else ""
    price_html = f'<div class="price"><span>{price}</span></div>' if price else ""
    feats = "".join(f"<li>{f}</li>" for f in features)
    imgs = "".join(f'<img src="{src}" alt="">' for src in images)
    paras = "".join(f"<p>{p}</p>" for p in paragraphs)
    return f"""<html><head><title>{title or ''} | Karasu Emlak</title></head>
<body>
<header><img src="/uploads/site-logo.png" alt="logo"></header>
<main class="listing-detail">{heading}{price_html}
<ul class="features">{feats}</ul>
<div class="gallery">{imgs}</div>
<div class="description">{paras}</div>
</main>
<footer><p>© Karasu Emlak</p></footer>
</body></html>"""


@pytest.fixture
def settings():
    return PipelineSettings()


@pytest.fixture
def db_path(tmp_path):
    path = tmp_path / "listings.db"
    db.init_db(path)
    return path


@pytest.fixture
def conn(db_path):
    c = db.get_connection(db_path)
    yield c
    c.close()


def make_row(title: str, slug: str, **extra) -> dict:
    row = {
        "title": title,
        "slug": slug,
        "property_type": "apartment",
        "neighborhood": "center",
        "price_amount": 1_000_000,
        "size_sqm": 0,
        "room_count": 2,
        "images": [],
        "description_short": None,
        "description_long": None,
        "source_url": None,
    }
    row.update(extra)
    return row
