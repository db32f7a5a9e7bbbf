"""Scrapers: fetch HTML via Scrapfly, discover listing links and extract raw candidates."""

from scrapers.base import FetchFailure, FetchResult, ScrapflyFetcher
from scrapers.content import RawCandidate, extract_candidate
from scrapers.links import parse_listing_links
from scrapers.scraper import discover_links, fetch_index, fetch_listing_pages
from scrapers.sites import SITES, get_site

__all__ = [
    "discover_links",
    "extract_candidate",
    "fetch_index",
    "fetch_listing_pages",
    "FetchFailure",
    "FetchResult",
    "get_site",
    "parse_listing_links",
    "RawCandidate",
    "ScrapflyFetcher",
    "SITES",
]
