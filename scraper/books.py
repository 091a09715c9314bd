# scraper/books.py
import asyncio
import os
import logging
from dotenv import load_dotenv
from .crawler import next_link
from .extractors import (
    FieldRule,
    Kind,
    apply_rules,
    parse_int,
    parse_price,
    table_value,
    truncate,
)
from .models import Book, BookDetail, BookSummary
from .urls import CATALOGUE_DIR, directory_of, resolve

load_dotenv()
BOOKS_BASE_URL = os.getenv("BOOKS_BASE_URL", "https://books.toscrape.com/")
BOOKS_START_URL = BOOKS_BASE_URL.rstrip("/") + "/index.html"
DESCRIPTION_MAX_LENGTH = int(os.getenv("DESCRIPTION_MAX_LENGTH", "2048"))
FOLLOW_DETAILS = os.getenv("CRAWL_FOLLOW_DETAILS", "true").lower() in ("1", "true", "yes")

logger = logging.getLogger("scraper")

ITEM_SELECTOR = "section ol.row > li > article.product_pod"

SUMMARY_RULES = {
    "image_src": FieldRule(Kind.ATTR, "div.image_container img", "src"),
    "rating": FieldRule(Kind.RATING, "p.star-rating"),
    "title": FieldRule(Kind.ATTR, "h3 a", "title"),
    "link_text": FieldRule(Kind.TEXT, "h3 a"),
    "price": FieldRule(Kind.PRICE, "div.product_price p.price_color"),
    "href": FieldRule(Kind.ATTR, "h3 a", "href"),
}


def parse_book_summary(node, page_url, base_url=BOOKS_BASE_URL):
    """
    Build a BookSummary from one article.product_pod card.

    The card's link text is cut short by the site ("A Light in the ..."), so
    the title comes from the link's title attribute and only falls back to
    the text when the attribute is missing.
    """
    f = apply_rules(node, SUMMARY_RULES)
    current_dir = directory_of(page_url, base_url)
    return BookSummary(
        image_url=resolve(base_url, f["image_src"], current_dir),
        rating=f["rating"],
        title=f["title"] or f["link_text"],
        price=f["price"],
        product_url=resolve(base_url, f["href"], current_dir),
    )


def parse_book_detail(soup, max_description=DESCRIPTION_MAX_LENGTH):
    """
    Extract the detail-only fields from a book's product page.

    Args:
        soup (BeautifulSoup): Parsed product page
        max_description (int): Description length cap (see truncate())

    Returns:
        BookDetail: Every field is independently optional:
            - category: third breadcrumb link (Home > Books > <category>)
            - description: paragraph following #product_description, truncated
            - availability, upc, product_type, price_excl_tax,
              price_incl_tax, tax, num_reviews: product information table
    """
    category = None
    crumbs = soup.select("ul.breadcrumb li a")
    if len(crumbs) >= 3:
        category = crumbs[2].get_text(strip=True)

    desc = None
    desc_header = soup.find(id="product_description")
    if desc_header:
        desc_p = desc_header.find_next_sibling("p")
        if desc_p:
            desc = truncate(desc_p.get_text(strip=True), max_description)

    reviews = parse_int(table_value(soup, "Number of reviews"))
    if reviews is not None and reviews < 0:
        reviews = None

    return BookDetail(
        category=category,
        description=desc,
        availability=table_value(soup, "Availability"),
        upc=table_value(soup, "UPC"),
        product_type=table_value(soup, "Product Type"),
        price_excl_tax=parse_price(table_value(soup, "Price (excl. tax)")),
        price_incl_tax=parse_price(table_value(soup, "Price (incl. tax)")),
        tax=parse_price(table_value(soup, "Tax")),
        num_reviews=reviews,
    )


async def fetch_book_detail(crawler, url):
    """
    Fetch and parse one product page, isolating its failure.

    Returns:
        BookDetail | None: None if the page could not be fetched or parsed;
            the caller keeps the listing-level fields in that case
    """
    try:
        soup = await crawler.fetch_soup(url)
        return parse_book_detail(soup)
    except Exception as e:
        logger.warning(f"Detail page failed {url}: {e!r}, keeping listing fields")
        return None


async def enrich_book(crawler, summary):
    if not summary.product_url:
        return Book.assemble(summary)
    detail = await fetch_book_detail(crawler, summary.product_url)
    return Book.assemble(summary, detail)


async def crawl_books(
    crawler,
    base_url=BOOKS_BASE_URL,
    start_url=BOOKS_START_URL,
    follow_details=FOLLOW_DETAILS,
):
    """
    Walk every books listing page and return the full, ordered collection.

    Detail pages of one listing page are fetched concurrently (bounded by the
    crawler's semaphore) and gathered before the next listing page, so the
    output keeps listing order. A failing detail page only downgrades its own
    item.

    Returns:
        list[Book]: Books in listing order

    Raises:
        httpx.HTTPError: If a listing page cannot be fetched
    """

    def next_url(soup, page_url):
        return next_link(soup, page_url, base_url, catalogue=CATALOGUE_DIR)

    books = []
    async for page_url, soup in crawler.walk(start_url, next_url):
        summaries = [
            parse_book_summary(node, page_url, base_url)
            for node in soup.select(ITEM_SELECTOR)
        ]
        if follow_details:
            page_books = await asyncio.gather(
                *[enrich_book(crawler, s) for s in summaries]
            )
        else:
            page_books = [Book.assemble(s) for s in summaries]
        books.extend(page_books)
        logger.info(f"{len(summaries)} books on {page_url}, {len(books)} so far")
    return books
