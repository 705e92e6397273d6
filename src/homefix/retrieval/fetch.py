"""HTTP fetching for the retailer, image and video scrapers.

Fetches HTML with browser-like headers. There is no retry here: a scraper that
fails just yields no result, and the request moves on.
"""

from typing import Dict, Optional

import httpx
from ..config import get_settings
from ..log import get_logger

settings = get_settings()
logger = get_logger("fetch")

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
}


class Fetcher:
    def __init__(self, headers: Optional[Dict[str, str]] = None):
        self.headers = dict(headers or BROWSER_HEADERS)

    async def fetch_text(self, url: str, timeout: Optional[float] = None) -> str:
        """
        Fetches the content of a URL and returns the body text.
        Raises httpx.HTTPError (including non-2xx statuses) on failure.
        """
        timeout = settings.SCRAPE_TIMEOUT_SECONDS if timeout is None else timeout
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=True, headers=self.headers) as client:
            resp = await client.get(url)
            resp.raise_for_status()
            return resp.text

fetcher = Fetcher()
