# scraper/db.py
import os
import logging
from decimal import Decimal
from bson import ObjectId
from bson.decimal128 import Decimal128
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import OperationFailure
from dotenv import load_dotenv

load_dotenv()

MONGO_URI = os.getenv("MONGO_URI", "mongodb://localhost:27017")
MONGO_DB = os.getenv("MONGO_DB", "toscrape")

BOOKS = "books"
QUOTES = "quotes"
STAGING_INFIX = "_staging_"
READ_ATTEMPTS = 3

logger = logging.getLogger("scraper")

_client = None
_db = None


def get_client():
    """Initialize and return the MongoDB AsyncIOMotorClient singleton."""
    global _client, _db
    if _client is None:
        _client = AsyncIOMotorClient(MONGO_URI)
        _db = _client[MONGO_DB]
    return _client


def get_db():
    """Return the MongoDB database instance, initializing if needed."""
    global _db
    if _db is None:
        get_client()
    return _db


def to_document(record, position):
    """Serialize a model for MongoDB: Decimal -> Decimal128, plus listing position."""
    doc = {}
    for k, v in record.model_dump().items():
        doc[k] = Decimal128(v) if isinstance(v, Decimal) else v
    doc["position"] = position
    return doc


async def replace_snapshot(name, records):
    """
    Replace the whole collection `name` with `records` in one swap.

    The new documents are written to a private staging collection which is
    then renamed over the live one with dropTarget. MongoDB performs the
    rename atomically, so readers see either the previous snapshot or the new
    one in full, never a half-deleted or half-inserted collection.

    Args:
        name (str): Live collection name (BOOKS or QUOTES)
        records (list[BaseModel]): Records in listing order; must not be empty

    Returns:
        int: Number of documents now live

    Raises:
        ValueError: If records is empty
        pymongo.errors.PyMongoError: On any write failure; the staging
            collection is dropped and the live collection is left as it was
    """
    if not records:
        raise ValueError(f"Refusing to replace {name} with an empty snapshot")

    db = get_db()
    await drop_stale_staging(name)
    staging = db[f"{name}{STAGING_INFIX}{ObjectId()}"]
    docs = [to_document(r, i) for i, r in enumerate(records)]
    try:
        await staging.insert_many(docs, ordered=True)
        await staging.rename(name, dropTarget=True)
    except Exception:
        await staging.drop()
        raise
    logger.info(f"Replaced {name} snapshot with {len(docs)} documents")
    return len(docs)


async def drop_stale_staging(name):
    """Drop staging collections left behind by a replace that never finished."""
    db = get_db()
    stale = await db.list_collection_names(
        filter={"name": {"$regex": f"^{name}{STAGING_INFIX}"}}
    )
    for coll in stale:
        logger.warning(f"Dropping leftover staging collection {coll}")
        await db[coll].drop()
    return stale


async def load_snapshot(name):
    """
    Return every document of collection `name` in listing order.

    A replace that renames over the collection while a large read is still
    fetching batches kills the server-side cursor. The read is then started
    again from scratch so the caller gets one whole snapshot, old or new.

    Raises:
        pymongo.errors.OperationFailure: If READ_ATTEMPTS reads in a row
            are interrupted
    """
    db = get_db()
    for attempt in range(1, READ_ATTEMPTS + 1):
        try:
            return await db[name].find({}).sort([("position", 1)]).to_list(length=None)
        except OperationFailure as e:
            if attempt == READ_ATTEMPTS:
                raise
            logger.warning(f"Read of {name} interrupted ({e}), reading again")
