# tests/conftest.py
import sys
import os

ROOT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
sys.path.insert(0, ROOT_DIR)

import asyncio
import re
from bson import ObjectId
from bson.decimal128 import Decimal128
from pymongo.errors import OperationFailure
import pytest
from typing import List, Dict, Any
from httpx import ASGITransport, AsyncClient

from api.main import app


class FakeCursor:
    """
    Cursor over a FakeCollection that hands documents out in batches, like a
    server cursor answering getMore.

    Between batches it yields to the event loop. If the collection it reads
    from has been renamed over or dropped in the meantime, the next batch
    fails with OperationFailure (code 175, QueryPlanKilled) as MongoDB does.
    """

    def __init__(self, collection, docs: List[Dict[str, Any]], batch_size=2):
        self._collection = collection
        self._docs = list(docs)
        self._batch_size = batch_size

    def sort(self, order):
        """
        Sort the documents by the first (field, direction) pair, like Motor's
        cursor.sort(). Returns the cursor for chaining.
        """
        field, direction = order[0]
        self._docs.sort(key=lambda d: d.get(field, None), reverse=(direction < 0))
        return self

    async def to_list(self, length=None):
        docs = self._docs if length is None else self._docs[:length]
        out = []
        for start in range(0, len(docs), self._batch_size):
            if start:
                await asyncio.sleep(0)
                db = self._collection.db
                killed = db.collections.get(self._collection.name) is not self._collection
                if killed or db.fail_reads:
                    db.fail_reads = max(db.fail_reads - 1, 0)
                    raise OperationFailure("collection dropped during query", code=175)
            out.extend(dict(d) for d in docs[start : start + self._batch_size])
        return out


class FakeCollection:
    """
    In-memory stand-in for the slice of AsyncIOMotorCollection the snapshot
    store uses.

    insert_many yields to the event loop between documents so tests can
    interleave readers with a write in progress. rename swaps the collection
    into its new name in a single step, as MongoDB does.
    """

    def __init__(self, db, name, docs=None):
        self.db = db
        self.name = name
        self.docs = list(docs or [])
        for d in self.docs:
            if "_id" not in d:
                d["_id"] = ObjectId()

    def _match(self, q):
        q = q or {}
        return [d for d in self.docs if all(d.get(k) == v for k, v in q.items())]

    def find(self, q=None):
        return FakeCursor(self, self._match(q))

    async def count_documents(self, q=None):
        return len(self._match(q))

    async def insert_many(self, docs, ordered=True):
        self.db.collections.setdefault(self.name, self)
        ids = []
        for i, doc in enumerate(docs):
            if self.db.fail_inserts_after is not None and i >= self.db.fail_inserts_after:
                raise RuntimeError("insert failed")
            doc = dict(doc)
            doc.setdefault("_id", ObjectId())
            self.docs.append(doc)
            ids.append(doc["_id"])
            await asyncio.sleep(0)

        class R:
            inserted_ids = ids

        return R()

    async def drop(self):
        self.docs = []
        self.db.collections.pop(self.name, None)

    async def rename(self, new_name, dropTarget=False):
        if new_name in self.db.collections and not dropTarget:
            raise RuntimeError("target namespace exists")
        self.db.collections.pop(self.name, None)
        self.name = new_name
        self.db.collections[new_name] = self
        return {"ok": 1}


class FakeDB:
    def __init__(self, **collections):
        self.collections = {}
        self.fail_inserts_after = None
        self.fail_reads = 0
        for name, docs in collections.items():
            self.collections[name] = FakeCollection(self, name, docs)

    def __getitem__(self, name):
        if name not in self.collections:
            # motor creates collections lazily; an unknown one reads as empty
            return FakeCollection(self, name)
        return self.collections[name]

    async def list_collection_names(self, filter=None):
        pattern = ((filter or {}).get("name") or {}).get("$regex", "")
        return [n for n in self.collections if re.match(pattern, n)]

    def staging_names(self):
        return [n for n in self.collections if "_staging_" in n]


@pytest.fixture
def sample_books():
    """
    Two stored book documents, deliberately out of position order so that
    readers have to sort.
    """
    return [
        {
            "_id": ObjectId(),
            "position": 1,
            "title": "Tipping the Velvet",
            "rating": "One",
            "price": Decimal128("53.74"),
            "image_url": "https://books.toscrape.com/media/cache/26/0c/260c6ae16bce31c8f8c95daddd9f4a1c.jpg",
            "product_url": "https://books.toscrape.com/catalogue/tipping-the-velvet_999/index.html",
            "category": "Historical Fiction",
            "description": None,
            "availability": "In stock (20 available)",
            "upc": "90fa61229261140a",
            "product_type": "Books",
            "price_excl_tax": Decimal128("53.74"),
            "price_incl_tax": Decimal128("53.74"),
            "tax": Decimal128("0.00"),
            "num_reviews": 0,
        },
        {
            "_id": ObjectId(),
            "position": 0,
            "title": "A Light in the Attic",
            "rating": "Three",
            "price": Decimal128("51.77"),
            "image_url": "https://books.toscrape.com/media/cache/2c/da/2cdad67c44b002e7ead0cc35693c0e8b.jpg",
            "product_url": "https://books.toscrape.com/catalogue/a-light-in-the-attic_1000/index.html",
            "category": "Poetry",
            "description": "It's hard to imagine a world without A Light in the Attic...",
            "availability": "In stock (22 available)",
            "upc": "a897fe39b1053632",
            "product_type": "Books",
            "price_excl_tax": Decimal128("51.77"),
            "price_incl_tax": Decimal128("51.77"),
            "tax": Decimal128("0.00"),
            "num_reviews": 0,
        },
    ]


@pytest.fixture
def sample_quotes():
    return [
        {
            "_id": ObjectId(),
            "position": 0,
            "text": "“The world as we have created it is a process of our thinking.”",
            "author": "Albert Einstein",
            "tags": ["change", "deep-thoughts", "thinking", "world"],
        },
        {
            "_id": ObjectId(),
            "position": 1,
            "text": "“A day without sunshine is like, you know, night.”",
            "author": "Steve Martin",
            "tags": [],
        },
    ]


@pytest.fixture
def fake_db(monkeypatch, sample_books, sample_quotes):
    """
    FakeDB holding sample books and quotes, patched in as scraper.db.get_db
    so the snapshot store and the API both read and write it.
    """
    db = FakeDB(books=sample_books, quotes=sample_quotes)
    monkeypatch.setattr("scraper.db.get_db", lambda: db)
    return db


@pytest.fixture
async def client(fake_db):
    """Async HTTP client talking to the FastAPI app in-process over ASGI."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


BOOKS_BASE = "https://books.toscrape.com/"
QUOTES_BASE = "https://quotes.toscrape.com/"


def book_card(href, img, title, price="£51.77", rating="Three"):
    short = title if len(title) < 20 else title[:16] + "..."
    return f"""
    <li class="col-xs-6 col-sm-4 col-md-3 col-lg-3">
      <article class="product_pod">
        <div class="image_container">
          <a href="{href}"><img src="{img}" alt="{title}" class="thumbnail"></a>
        </div>
        <p class="star-rating {rating}"><i class="icon-star"></i></p>
        <h3><a href="{href}" title="{title}">{short}</a></h3>
        <div class="product_price">
          <p class="price_color">{price}</p>
          <p class="instock availability">In stock</p>
        </div>
      </article>
    </li>
    """


def book_listing(cards, next_href=None):
    pager = f'<li class="next"><a href="{next_href}">next</a></li>' if next_href else ""
    return f"""
    <html><body>
      <section>
        <div class="alert alert-warning" role="alert"></div>
        <div>
          <ol class="row">{"".join(cards)}</ol>
          <div><ul class="pager"><li class="current">Page</li>{pager}</ul></div>
        </div>
      </section>
    </body></html>
    """


def book_detail(
    title="A Light in the Attic",
    category="Poetry",
    description="It's hard to imagine a world without A Light in the Attic.",
    rows=None,
):
    rows = rows if rows is not None else [
        ("UPC", "a897fe39b1053632"),
        ("Product Type", "Books"),
        ("Price (excl. tax)", "£51.77"),
        ("Price (incl. tax)", "£51.77"),
        ("Tax", "£0.00"),
        ("Availability", "In stock (22 available)"),
        ("Number of reviews", "0"),
    ]
    table = "".join(f"<tr><th>{k}</th><td>{v}</td></tr>" for k, v in rows)
    desc = (
        '<div id="product_description" class="sub-header"><h2>Product Description</h2></div>'
        f"<p>{description}</p>"
        if description is not None
        else ""
    )
    return f"""
    <html><body>
      <ul class="breadcrumb">
        <li><a href="../../index.html">Home</a></li>
        <li><a href="../category/books_1/index.html">Books</a></li>
        <li><a href="../category/books/poetry_23/index.html">{category}</a></li>
        <li class="active">{title}</li>
      </ul>
      <article class="product_page">
        <div class="col-sm-6 product_main"><h1>{title}</h1></div>
        {desc}
        <div class="sub-header"><h2>Product Information</h2></div>
        <table class="table table-striped">{table}</table>
      </article>
    </body></html>
    """


def quote_card(text, author, tags):
    links = "".join(f'<a class="tag" href="/tag/{t}/page/1/">{t}</a>' for t in tags)
    return f"""
    <div class="quote" itemscope itemtype="http://schema.org/CreativeWork">
      <span class="text" itemprop="text">{text}</span>
      <span>by <small class="author" itemprop="author">{author}</small></span>
      <div class="tags">Tags: {links}</div>
    </div>
    """


def quote_page(cards, next_href=None):
    pager = (
        f'<li class="next"><a href="{next_href}">Next <span aria-hidden="true">&rarr;</span></a></li>'
        if next_href
        else ""
    )
    return f"""
    <html><body><div class="container">
      <div class="row"><div class="col-md-8">{"".join(cards)}
        <nav><ul class="pager">{pager}</ul></nav>
      </div></div>
    </div></body></html>
    """


@pytest.fixture
def book_site():
    """
    A three-page books site: index.html -> catalogue/page-2.html ->
    catalogue/page-3.html, with one detail page per book.
    """
    return {
        BOOKS_BASE + "index.html": book_listing(
            [
                book_card(
                    "catalogue/a-light-in-the-attic_1000/index.html",
                    "media/cache/2c/da/2cdad67c44b002e7ead0cc35693c0e8b.jpg",
                    "A Light in the Attic",
                ),
                book_card(
                    "catalogue/tipping-the-velvet_999/index.html",
                    "media/cache/26/0c/260c6ae16bce31c8f8c95daddd9f4a1c.jpg",
                    "Tipping the Velvet",
                    price="£53.74",
                    rating="One",
                ),
            ],
            next_href="catalogue/page-2.html",
        ),
        BOOKS_BASE + "catalogue/page-2.html": book_listing(
            [
                book_card(
                    "soumission_998/index.html",
                    "../media/cache/3e/ef/3eef99c9d9adef34639f510662022830.jpg",
                    "Soumission",
                    price="£50.10",
                    rating="One",
                ),
            ],
            next_href="page-3.html",
        ),
        BOOKS_BASE + "catalogue/page-3.html": book_listing(
            [
                book_card(
                    "sharp-objects_997/index.html",
                    "../media/cache/32/51/3251cf3a3412f53f339e42cac2134093.jpg",
                    "Sharp Objects",
                    price="£47.82",
                    rating="Four",
                ),
            ],
        ),
        BOOKS_BASE + "catalogue/a-light-in-the-attic_1000/index.html": book_detail(),
        BOOKS_BASE + "catalogue/tipping-the-velvet_999/index.html": book_detail(
            title="Tipping the Velvet", category="Historical Fiction"
        ),
        BOOKS_BASE + "catalogue/soumission_998/index.html": book_detail(
            title="Soumission", category="Fiction"
        ),
        BOOKS_BASE + "catalogue/sharp-objects_997/index.html": book_detail(
            title="Sharp Objects", category="Mystery"
        ),
    }


@pytest.fixture
def quote_site():
    return {
        QUOTES_BASE: quote_page(
            [
                quote_card(
                    "“The world as we have created it is a process of our thinking.”",
                    "Albert Einstein",
                    ["change", "deep-thoughts", "thinking", "world"],
                ),
                quote_card(
                    "“It is our choices, Harry, that show what we truly are.”",
                    "J.K. Rowling",
                    ["abilities", "choices"],
                ),
            ],
            next_href="/page/2/",
        ),
        QUOTES_BASE + "page/2/": quote_page(
            [
                quote_card(
                    "“A day without sunshine is like, you know, night.”",
                    "Steve Martin",
                    [],
                ),
            ]
        ),
    }


@pytest.fixture
def serve(monkeypatch):
    """
    Route Crawler.fetch to an in-memory page map.

    Returns a function taking {url: html}; unknown URLs raise
    httpx.ConnectError. Every requested URL is recorded in the returned
    list, in request order.
    """
    import httpx

    requested = []

    def install(pages):
        async def fake_fetch(self, url):
            requested.append(url)
            if url not in pages:
                raise httpx.ConnectError(f"no route to {url}")
            return pages[url]

        monkeypatch.setattr("scraper.crawler.Crawler.fetch", fake_fetch)
        return requested

    return install
