"""
MongoDB client singleton for database operations.
Provides connection management, collection access and index setup.
"""

import logging
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import ConnectionFailure
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from policyflow.config import get_settings


logger = logging.getLogger(__name__)

_client = None


# Collection names as constants
class Collections:
    """MongoDB collection names."""
    PRODUCTS = "products"
    QUOTES = "quotes"
    APPLICATIONS = "applications"
    UNDERWRITING_CASES = "underwriting_cases"
    OFFERS = "offers"
    POLICIES = "policies"
    COUNTERS = "counters"


# (collection, keys, unique)
INDEXES = [
    (Collections.PRODUCTS, [("slug", ASCENDING)], True),
    (Collections.QUOTES, [("product_slug", ASCENDING)], False),
    (Collections.QUOTES, [("created_at", DESCENDING)], False),
    (Collections.APPLICATIONS, [("quote_id", ASCENDING)], True),
    (Collections.APPLICATIONS, [("status", ASCENDING), ("created_at", ASCENDING)], False),
    (Collections.UNDERWRITING_CASES, [("application_id", ASCENDING)], True),
    (Collections.UNDERWRITING_CASES, [("decision", ASCENDING), ("created_at", ASCENDING)], False),
    (Collections.OFFERS, [("application_id", ASCENDING)], True),
    (Collections.OFFERS, [("status", ASCENDING), ("accepted_at", ASCENDING)], False),
    (Collections.POLICIES, [("offer_id", ASCENDING)], True),
    (Collections.POLICIES, [("number", ASCENDING)], True),
    (Collections.POLICIES, [("application_id", ASCENDING)], False),
    (Collections.POLICIES, [("status", ASCENDING), ("issued_at", DESCENDING)], False),
]


@retry(
    retry=retry_if_exception_type(ConnectionFailure),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=8),
    reraise=True,
)
def _connect() -> MongoClient:
    settings = get_settings()
    client = MongoClient(
        settings.mongodb_uri,
        serverSelectionTimeoutMS=settings.mongo_connect_timeout_sec * 1000,
        tz_aware=True,
    )
    client.admin.command("ping")
    return client


def get_mongodb_client() -> MongoClient:
    """
    Get MongoDB client singleton.
    The first call pings the server, retrying with exponential backoff.
    """
    global _client
    if _client is None:
        _client = _connect()
        logger.info("MongoDB connection established")
    return _client


def get_database() -> Database:
    """Get the configured database."""
    settings = get_settings()
    return get_mongodb_client()[settings.mongodb_database]


def get_collection(collection_name: str) -> Collection:
    """Get a specific collection from the database."""
    return get_database()[collection_name]


def ensure_indexes(database: Database) -> None:
    """Create the unique and lookup indexes the repositories rely on."""
    for name, keys, unique in INDEXES:
        database[name].create_index(keys, unique=unique)
    logger.info(f"Ensured {len(INDEXES)} MongoDB indexes")


def close_mongodb_client() -> None:
    """Close the MongoDB client connection."""
    global _client
    if _client is not None:
        _client.close()
        _client = None
