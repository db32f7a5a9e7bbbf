"""
Fetch the listing index and detail pages under a run deadline.

Usage:
  from scrapers.scraper import fetch_index, fetch_listing_pages

  index = await fetch_index(fetcher, settings.source_index_url, deadline)
  links = discover_links(index.body, settings.source_index_url)
  pages, abandoned = await fetch_listing_pages(fetcher, links, max_concurrent=4, deadline=deadline)
"""

import asyncio
import logging
from typing import Callable, Protocol

from scrapers.base import FetchFailure, FetchResult, remaining
from scrapers.links import parse_listing_links
from scrapers.sites import compile_link_patterns, get_site

logger = logging.getLogger(__name__)


class Fetcher(Protocol):
    async def fetch(self, url: str, deadline: float) -> FetchResult: ...


async def fetch_index(fetcher: Fetcher, index_url: str, deadline: float) -> FetchResult:
    """Fetch the listing index document."""
    result = await fetcher.fetch(index_url, deadline)
    if not result.ok:
        logger.warning("index fetch failed: %s", result.describe())
    return result


def discover_links(html: str | None, index_url: str, site: dict | None = None) -> list[str]:
    """Detail-page URLs found on the index page, using the site's link patterns."""
    site = site or get_site()
    return parse_listing_links(html or "", index_url, compile_link_patterns(site))


async def fetch_listing_pages(
    fetcher: Fetcher,
    urls: list[str],
    *,
    max_concurrent: int = 4,
    deadline: float,
    on_page_fetched: Callable[[str, bool], None] | None = None,
) -> tuple[list[FetchResult], list[str]]:
    """
    Fetch detail pages with at most max_concurrent requests in flight.

    At the deadline, in-flight fetches are cancelled and queued ones are never started.

    Returns:
        (results in the same order as urls, for fetches that completed;
         urls abandoned at the deadline)
    """
    if not urls:
        return [], []
    sem = asyncio.Semaphore(max_concurrent)

    async def get_one(u: str) -> FetchResult | None:
        async with sem:
            if remaining(deadline) <= 0:
                return None
            result = await fetcher.fetch(u, deadline)
            if on_page_fetched:
                on_page_fetched(u, result.ok)
            return result

    tasks = [asyncio.create_task(get_one(u)) for u in urls]
    done, pending = await asyncio.wait(tasks, timeout=remaining(deadline))
    for task in pending:
        task.cancel()
    if pending:
        await asyncio.gather(*pending, return_exceptions=True)
        logger.warning("deadline reached, %d fetches abandoned", len(pending))

    results: list[FetchResult] = []
    abandoned: list[str] = []
    for u, task in zip(urls, tasks):
        if task not in done or task.cancelled():
            abandoned.append(u)
            continue
        exc = task.exception()
        if exc is not None:
            results.append(FetchResult(u, failure=FetchFailure.TRANSPORT, message=f"{type(exc).__name__}: {exc}"))
            continue
        result = task.result()
        if result is None:
            abandoned.append(u)
        else:
            results.append(result)
    return results, abandoned
