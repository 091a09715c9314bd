# scraper/crawler.py
import asyncio
import os
import logging
from bs4 import BeautifulSoup
from httpx import AsyncClient
from dotenv import load_dotenv
from .urls import resolve, directory_of

load_dotenv()
CONCURRENCY = int(os.getenv("CRAWL_CONCURRENCY", "10"))
TIMEOUT = float(os.getenv("CRAWL_TIMEOUT", "30"))
MAX_PAGES = int(os.getenv("CRAWL_MAX_PAGES", "1000"))

logger = logging.getLogger("scraper")
logger.setLevel(logging.INFO)
handler = logging.StreamHandler()
handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
logger.addHandler(handler)


class Crawler:
    def __init__(self, concurrency=CONCURRENCY, max_pages=MAX_PAGES, client=None):
        self.semaphore = asyncio.Semaphore(concurrency)
        self.max_pages = max_pages
        self.client = client or AsyncClient(timeout=TIMEOUT, follow_redirects=True)

    async def close(self):
        """
        Close the HTTP client and release resources.

        Should be called in a finally block once the crawler is no longer
        needed.
        """
        await self.client.aclose()

    async def fetch(self, url):
        """
        Fetch a page's HTML under the crawler's concurrency limit.

        A single GET per call. There is no retry: a failed listing page ends
        the run for that source and the next trigger tries again.

        Args:
            url (str): Absolute URL to fetch

        Returns:
            str: Response body

        Raises:
            httpx.HTTPError: On transport errors or a non-2xx status
                (via raise_for_status())
        """
        async with self.semaphore:
            resp = await self.client.get(url)
            resp.raise_for_status()
            return resp.text

    async def fetch_soup(self, url):
        html = await self.fetch(url)
        return BeautifulSoup(html, "lxml")

    async def walk(self, start_url, next_url):
        """
        Follow a paginated listing from start_url until it runs out.

        Yields each listing page as it is fetched. The loop keeps its own
        state (current URL and the set of URLs already fetched) and stops on
        the first of:
            - the page has no next link
            - the next link points at a page fetched earlier in this walk
            - max_pages pages have been fetched

        Args:
            start_url (str): First listing page
            next_url (callable): (soup, page_url) -> absolute URL of the next
                page, or None

        Yields:
            tuple[str, BeautifulSoup]: (page_url, parsed page)

        Raises:
            httpx.HTTPError: If a listing page cannot be fetched
        """
        current = start_url
        visited = set()
        while current is not None:
            if current in visited:
                logger.warning(f"Next link loops back to {current}, stopping walk")
                return
            if len(visited) >= self.max_pages:
                logger.warning(
                    f"Reached page cap ({self.max_pages}) at {current}, stopping walk"
                )
                return
            visited.add(current)
            logger.info(f"Listing page: {current}")
            soup = await self.fetch_soup(current)
            yield current, soup
            current = next_url(soup, current)


def next_link(soup, page_url, base_url, catalogue=None):
    """Resolve the listing's "next" pager link, or None on the last page."""
    el = soup.select_one("li.next a")
    if el is None or not el.get("href"):
        return None
    return resolve(
        base_url,
        el.get("href"),
        current_dir=directory_of(page_url, base_url),
        catalogue=catalogue,
    )
