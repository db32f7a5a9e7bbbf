"""
Fetch a URL with Scrapfly under a deadline. Returns a FetchResult; failures are values, not exceptions.
No retries here: retry policy belongs to the caller.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum

from scrapfly import ScrapeConfig, ScrapflyClient, ScrapflyError, UpstreamHttpError

logger = logging.getLogger(__name__)


class FetchFailure(str, Enum):
    TIMEOUT = "timeout"
    TRANSPORT = "transport-error"
    STATUS = "non-2xx-status"


@dataclass
class FetchResult:
    url: str
    body: str | None = None
    failure: FetchFailure | None = None
    status_code: int | None = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.failure is None and self.body is not None

    def describe(self) -> str:
        """One-line diagnostic for run summaries."""
        if self.ok:
            return f"{self.url}: ok"
        detail = f" {self.status_code}" if self.status_code else ""
        msg = f" ({self.message})" if self.message else ""
        return f"{self.url}: {self.failure.value if self.failure else 'empty'}{detail}{msg}"


def remaining(deadline: float) -> float:
    """Seconds left until a time.monotonic() deadline (never negative)."""
    return max(0.0, deadline - time.monotonic())


class ScrapflyFetcher:
    """Fetches documents through Scrapfly (ASP optional, no JS rendering by default)."""

    def __init__(self, api_key: str, *, asp: bool = False, render_js: bool = False, country: str | None = None):
        self.client = ScrapflyClient(key=api_key)
        self.asp = asp
        self.render_js = render_js
        self.country = country

    def _config(self, url: str) -> ScrapeConfig:
        kwargs = {"url": url, "retry": False, "asp": self.asp, "render_js": self.render_js}
        if self.country:
            kwargs["country"] = self.country
        return ScrapeConfig(**kwargs)

    async def fetch(self, url: str, deadline: float) -> FetchResult:
        """Fetch url; gives up with a timeout failure when the deadline passes."""
        budget = remaining(deadline)
        if budget <= 0:
            return FetchResult(url, failure=FetchFailure.TIMEOUT, message="deadline already passed")
        try:
            response = await asyncio.wait_for(self.client.async_scrape(self._config(url)), timeout=budget)
        except asyncio.TimeoutError:
            return FetchResult(url, failure=FetchFailure.TIMEOUT, message=f"no response within {budget:.1f}s")
        except UpstreamHttpError as e:
            return FetchResult(
                url,
                failure=FetchFailure.STATUS,
                status_code=getattr(e, "http_status_code", None),
                message=str(e),
            )
        except ScrapflyError as e:
            failure = FetchFailure.TIMEOUT if "TIMEOUT" in str(getattr(e, "code", "") or "") else FetchFailure.TRANSPORT
            return FetchResult(url, failure=failure, message=str(e))
        except Exception as e:
            logger.debug("transport error for %s", url, exc_info=True)
            return FetchResult(url, failure=FetchFailure.TRANSPORT, message=f"{type(e).__name__}: {e}")
        return result_from_scrape(url, getattr(response, "scrape_result", None))


def result_from_scrape(url: str, scrape_result: dict | None) -> FetchResult:
    """Turn a Scrapfly scrape_result dict into a FetchResult."""
    if not scrape_result:
        return FetchResult(url, failure=FetchFailure.TRANSPORT, message="empty scrape result")
    status = scrape_result.get("status_code")
    if status is not None and not 200 <= int(status) < 300:
        return FetchResult(url, failure=FetchFailure.STATUS, status_code=int(status))
    content = scrape_result.get("content")
    if not content:
        return FetchResult(url, failure=FetchFailure.TRANSPORT, status_code=status, message="empty body")
    return FetchResult(url, body=content, status_code=status)
