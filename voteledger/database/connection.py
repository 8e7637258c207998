import logging

from pymongo import MongoClient
from pymongo.database import Database

from ..config import Settings

logger = logging.getLogger(__name__)

CANDIDATES_COLLECTION = "candidates"
VOTERS_COLLECTION = "voters"
ELECTION_COLLECTION = "app_state"
COUNTERS_COLLECTION = "counters"


def get_client(settings: Settings) -> MongoClient:
    if not settings.mongo_uri:
        raise ValueError("❌ MONGO_URI not set. Check your .env file.")

    timeout_ms = int(settings.store_timeout_seconds * 1000)
    # every round-trip is bounded so callers get StoreTimeout instead of hanging
    client = MongoClient(
        settings.mongo_uri,
        serverSelectionTimeoutMS=timeout_ms,
        connectTimeoutMS=timeout_ms,
        socketTimeoutMS=timeout_ms,
    )
    logger.info(f"MongoDB client created for database {settings.mongo_db}")
    return client


def get_database(client: MongoClient, settings: Settings) -> Database:
    return client[settings.mongo_db]
