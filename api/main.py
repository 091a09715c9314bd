# api/main.py
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
import os
from dotenv import load_dotenv
from bson.decimal128 import Decimal128
from .rate_limit import register_rate_limit, limiter, API_RATE_LIMIT
from scraper.db import BOOKS, QUOTES, load_snapshot
import logging

load_dotenv()
API_PORT = int(os.getenv("API_PORT", "8080"))
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*").split(",")

app = FastAPI(title="Toscrape Snapshot API", version="1.0")

register_rate_limit(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_methods=["GET"],
    allow_headers=["*"],
)

logger = logging.getLogger("api")
logger.setLevel(logging.INFO)

BOOK_FIELDS = [
    "image_url",
    "rating",
    "title",
    "price",
    "category",
    "product_url",
    "description",
    "availability",
    "upc",
    "product_type",
    "price_excl_tax",
    "price_incl_tax",
    "tax",
    "num_reviews",
]
QUOTE_FIELDS = ["text", "author", "tags"]


def _plain(value):
    # money keeps its 2 fraction digits: "0.00", not 0.0
    if isinstance(value, Decimal128):
        return str(value.to_decimal())
    return value


def doc_to_resp(doc, fields):
    """
    Turn a stored snapshot document into its public JSON shape.

    The internal `position` field is dropped, `_id` becomes a string `id`
    and Decimal128 money values become decimal strings such as "51.77".
    """
    resp = {"id": str(doc["_id"])}
    for k in fields:
        resp[k] = _plain(doc.get(k))
    return resp


@app.get("/api/scrapedBooks")
@limiter.limit(API_RATE_LIMIT)
async def list_books(request: Request):
    """
    Return the current books snapshot in listing order.

    Always the complete collection of the last successful crawl; no
    filtering or pagination.
    """
    docs = await load_snapshot(BOOKS)
    logger.info(f"Serving {len(docs)} books")
    return [doc_to_resp(d, BOOK_FIELDS) for d in docs]


@app.get("/api/scrapedQuotes")
@limiter.limit(API_RATE_LIMIT)
async def list_quotes(request: Request):
    """Return the current quotes snapshot in page order."""
    docs = await load_snapshot(QUOTES)
    logger.info(f"Serving {len(docs)} quotes")
    return [doc_to_resp(d, QUOTE_FIELDS) for d in docs]


# Run uvicorn externally or here
if __name__ == "__main__":
    import uvicorn

    uvicorn.run("api.main:app", host="0.0.0.0", port=API_PORT)
