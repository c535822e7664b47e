"""
MongoDB connection management using Motor (async driver).

A single DatabaseClient instance is shared by the API routes and the
workflow activities. FastAPI's dependency injection (get_db) gives routes
access without importing the singleton; the worker reads db_client.db
after connect_to_mongo().

The API tolerates a missing database at startup (health reports
"disconnected"); the worker refuses to start without one.
"""

import logging
import re

import certifi
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, GEOSPHERE

from autonomy.core.config import settings
from autonomy.models.report import ReportKind

logger = logging.getLogger(__name__)

PROFILE_COLLECTION = "profile"
POI_COLLECTION = "poi"
SYMPTOM_COLLECTION = "symptom"
BOUNDARY_COLLECTION = "boundary"
HELP_COLLECTION = "help"


class DatabaseClient:
    """Holds the Motor client and selected database (patched in tests)."""

    client: AsyncIOMotorClient | None = None
    db: AsyncIOMotorDatabase | None = None


# Module-level singleton: all app code references this object
db_client = DatabaseClient()


async def connect_to_mongo() -> None:
    """
    Create the MongoDB connection and validate it with a ping.

    Fails gracefully if MongoDB is unavailable: db_client.db stays None and
    callers decide whether that is fatal.
    """
    logger.info("Connecting to MongoDB at %s", _redact_uri(settings.mongo_uri))
    try:
        db_client.client = AsyncIOMotorClient(
            settings.mongo_uri,
            serverSelectionTimeoutMS=5000,
            tlsCAFile=certifi.where(),
        )
        db_client.db = db_client.client[settings.mongo_db_name]
        await db_client.client.admin.command("ping")
        logger.info("MongoDB connection established (db: %s)", settings.mongo_db_name)
    except Exception as exc:
        logger.warning(
            "MongoDB unavailable at startup: %s. "
            "Running in degraded mode — DB endpoints will fail.",
            exc,
        )
        db_client.client = None
        db_client.db = None


async def close_mongo_connection() -> None:
    """Close the MongoDB connection gracefully on shutdown."""
    if db_client.client is not None:
        db_client.client.close()
        logger.info("MongoDB connection closed")


def get_db() -> AsyncIOMotorDatabase | None:
    """
    FastAPI dependency — inject the database into route handlers.

    Returns None when MongoDB is unavailable; routes answer 503.
    """
    return db_client.db


async def ensure_indexes(db) -> None:
    """Idempotent index creation — safe to run multiple times."""
    await db[PROFILE_COLLECTION].create_index([("id", ASCENDING)], name="id_unique", unique=True)
    await db[PROFILE_COLLECTION].create_index(
        [("account_number", ASCENDING)], name="account_number_unique", unique=True,
    )
    await db[PROFILE_COLLECTION].create_index([("location", GEOSPHERE)], name="location_2dsphere")
    await db[PROFILE_COLLECTION].create_index(
        [("points_of_interest.id", ASCENDING)], name="poi_ref",
    )
    await db[POI_COLLECTION].create_index([("location", GEOSPHERE)], name="location_2dsphere")

    for kind in ReportKind:
        collection = db[kind.collection]
        await collection.create_index(
            [("profile_id", ASCENDING), ("ts", ASCENDING)], name="profile_ts_unique", unique=True,
        )
        await collection.create_index([("location", GEOSPHERE)], name="location_2dsphere")
        await collection.create_index(
            [("account_number", ASCENDING), ("ts", ASCENDING)], name="account_ts",
        )

    await db[HELP_COLLECTION].create_index(
        [("requester", ASCENDING)],
        name="requester_pending_unique",
        unique=True,
        partialFilterExpression={"state": "PENDING"},
    )
    await db[HELP_COLLECTION].create_index([("state", ASCENDING), ("created_at", ASCENDING)], name="state_created")
    await db[HELP_COLLECTION].create_index([("location", GEOSPHERE)], name="location_2dsphere")

    await db[BOUNDARY_COLLECTION].create_index([("geometry", GEOSPHERE)], name="geometry_2dsphere")
    for collection in settings.confirm_collections.values():
        await db[collection].create_index(
            [("country", ASCENDING), ("state", ASCENDING), ("county", ASCENDING), ("report_ts", ASCENDING)],
            name="area_report_ts",
        )
    logger.info("Indexes ensured")


def _redact_uri(uri: str) -> str:
    """Strip credentials from URI before logging."""
    return re.sub(r"://[^:]+:[^@]+@", "://<redacted>@", uri)
