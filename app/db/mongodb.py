"""
MongoDB Connection Utility

MongoDB stores:
- In-app notifications delivered to students

WHY MongoDB for these?
- Append-heavy, per-user feed with no joins
- Delivery happens off the request path, so it lives outside
  the relational transaction on purpose
"""
from pymongo import MongoClient
from pymongo.database import Database
from pymongo.collection import Collection
from loguru import logger

from app.core.config import get_settings

settings = get_settings()

# Global client (connection pooling handled internally by pymongo)
_client: MongoClient = None
_db: Database = None


def get_mongo_client() -> MongoClient:
    """Get or create MongoDB client (singleton pattern)"""
    global _client
    if _client is None:
        _client = MongoClient(settings.mongodb_uri, serverSelectionTimeoutMS=5000)
    return _client


def get_mongo_db() -> Database:
    """Get the placement_docs database"""
    global _db
    if _db is None:
        client = get_mongo_client()
        _db = client[settings.mongodb_db]
    return _db


def get_collection(name: str) -> Collection:
    """
    Get a specific collection.
    Collections we'll use:
    - notifications: per-student in-app notification feed
    """
    db = get_mongo_db()
    return db[name]


def test_mongo_connection() -> bool:
    """
    Test if MongoDB is reachable.
    Returns True if connection successful, False otherwise.
    """
    try:
        client = get_mongo_client()
        # ping command checks connection
        client.admin.command('ping')
        return True
    except Exception as e:
        logger.error(f"MongoDB connection failed: {e}")
        return False


# Collection name constants (avoid typos)
COLLECTIONS = {
    "notifications": "notifications",
}


def init_mongo_indexes():
    """
    Create indexes for better query performance.
    Call this once during app startup.
    """
    db = get_mongo_db()

    # Feed lookups: newest first per student
    db[COLLECTIONS["notifications"]].create_index([
        ("student_id", 1),
        ("created_at", -1)
    ])

    logger.info("MongoDB indexes created successfully")
