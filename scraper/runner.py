# scraper/runner.py
import asyncio
import logging
from .books import crawl_books
from .crawler import Crawler
from .db import BOOKS, QUOTES, replace_snapshot
from .quotes import crawl_quotes

logger = logging.getLogger("scraper")

# source -> (lock, event loop it was created on)
_locks = {}


def _lock(name):
    """Per-source run lock: a second run of the same source waits for the first."""
    loop = asyncio.get_running_loop()
    lock, owner = _locks.get(name, (None, None))
    if owner is not loop:
        lock = asyncio.Lock()
        _locks[name] = (lock, loop)
    return lock


async def _run(name, crawl, crawler):
    async with _lock(name):
        own = crawler is None
        if own:
            crawler = Crawler()
        try:
            records = await crawl(crawler)
        finally:
            if own:
                await crawler.close()

        if not records:
            logger.warning(f"{name} crawl returned nothing, keeping previous snapshot")
            return 0
        logger.info(f"{name} crawl collected {len(records)} records")
        return await replace_snapshot(name, records)


async def run_book_crawl(crawler=None):
    """
    Crawl every book (listing + detail pages) and replace the books snapshot.

    Args:
        crawler (Crawler, optional): Crawler to use. A private one is created
            and closed when omitted.

    Returns:
        int: Number of books persisted (0 if the crawl found nothing and the
            previous snapshot was kept)

    Raises:
        httpx.HTTPError: If a listing page fails; nothing is persisted
    """
    return await _run(BOOKS, crawl_books, crawler)


async def run_quote_crawl(crawler=None):
    """Crawl every quote and replace the quotes snapshot. See run_book_crawl."""
    return await _run(QUOTES, crawl_quotes, crawler)
