#!/usr/bin/env python3
"""
Connection Check Script

Run this to verify the database connections and create missing tables.
Usage: python scripts/check_connections.py
"""
import sys
sys.path.insert(0, '.')

from app.core.config import get_settings
from app.db.mongodb import init_mongo_indexes, test_mongo_connection
from app.db.postgres import engine, test_postgres_connection
from app.db.tables import create_tables


def main():
    settings = get_settings()
    print("=" * 50)
    print("PLACEMENT DRIVE SERVICE - CONNECTION CHECK")
    print("=" * 50)

    # Relational database
    print("\n[1] Testing relational database...")
    if settings.database_url:
        print(f"    URL: {settings.database_url.split('@')[-1]}")
    else:
        print(f"    URL: postgresql://{settings.postgres_user}:****@{settings.postgres_host}:{settings.postgres_port}/{settings.postgres_db}")
    if test_postgres_connection():
        print("    ✅ Database: CONNECTED")
        create_tables(engine)
        print("    ✅ Tables: READY")
    else:
        print("    ❌ Database: FAILED")

    # MongoDB (notifications)
    print("\n[2] Testing MongoDB...")
    if not settings.notifications_enabled:
        print("    ⚠️  Notifications disabled (skip)")
    else:
        print(f"    URI: {settings.mongodb_uri}")
        print(f"    Database: {settings.mongodb_db}")
        if test_mongo_connection():
            init_mongo_indexes()
            print("    ✅ MongoDB: CONNECTED")
        else:
            print("    ❌ MongoDB: FAILED")

    print("\n" + "=" * 50)
    print("Connection check complete!")
    print("=" * 50)


if __name__ == "__main__":
    main()
