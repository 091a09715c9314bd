# scraper/quotes.py
import os
import logging
from dotenv import load_dotenv
from .crawler import next_link
from .extractors import FieldRule, Kind, apply_rules, truncate
from .models import Quote

load_dotenv()
QUOTES_BASE_URL = os.getenv("QUOTES_BASE_URL", "https://quotes.toscrape.com/")
QUOTES_START_URL = QUOTES_BASE_URL
QUOTE_TEXT_MAX_LENGTH = int(os.getenv("QUOTE_TEXT_MAX_LENGTH", "2048"))

logger = logging.getLogger("scraper")

ITEM_SELECTOR = "div.quote"

QUOTE_RULES = {
    "text": FieldRule(Kind.TEXT, "span.text"),
    "author": FieldRule(Kind.TEXT, "small.author"),
    "tags": FieldRule(Kind.TAGS, "div.tags a.tag"),
}


def parse_quote(node, max_text=QUOTE_TEXT_MAX_LENGTH):
    f = apply_rules(node, QUOTE_RULES)
    return Quote(text=truncate(f["text"], max_text), author=f["author"], tags=f["tags"])


async def crawl_quotes(crawler, base_url=QUOTES_BASE_URL, start_url=QUOTES_START_URL):
    """
    Walk every quotes listing page and return the quotes in page order.

    The quotes site has no catalogue section; its pager links are
    site-absolute ("/page/2/").

    Raises:
        httpx.HTTPError: If a listing page cannot be fetched
    """

    def next_url(soup, page_url):
        return next_link(soup, page_url, base_url)

    quotes = []
    async for page_url, soup in crawler.walk(start_url, next_url):
        page_quotes = [parse_quote(node) for node in soup.select(ITEM_SELECTOR)]
        quotes.extend(page_quotes)
        logger.info(f"{len(page_quotes)} quotes on {page_url}, {len(quotes)} so far")
    return quotes
