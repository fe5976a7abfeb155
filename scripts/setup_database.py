#!/usr/bin/env python3
"""
Database setup script for the marketplace.

Creates the users and sessions tables on SQLite or PostgreSQL. When
ADMIN_EMAIL and ADMIN_PASSWORD are set, an admin account is created if it
does not exist yet.
"""

import os
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from marketplace.core.config import settings
from marketplace.db.helpers import check_database_health, get_database_info
from marketplace.db.init_db import init_database
from marketplace.db.session import get_db_sync
from marketplace.services import users as user_service


def bootstrap_admin() -> None:
    email = os.environ.get("ADMIN_EMAIL")
    password = os.environ.get("ADMIN_PASSWORD")
    if not email or not password:
        print("ADMIN_EMAIL/ADMIN_PASSWORD not set, skipping admin bootstrap")
        return

    with get_db_sync() as db:
        if user_service.get_user_by_email(db, email) is not None:
            print(f"Admin account {email} already exists")
            return
        user_service.create_user(db, email, password, role="admin", name="Administrator")
        print(f"✅ Admin account {email} created")


def main():
    """Initialize database based on configuration"""
    print("🗄️  Marketplace Database Setup")
    print("=" * 40)
    print(f"Environment: {settings.ENVIRONMENT}")

    db_info = get_database_info()
    print(f"Database Type: {db_info['type']}")
    print(f"Connected: {db_info['connected']}")

    if db_info["error"]:
        print(f"❌ Connection Error: {db_info['error']}")
        return False

    if db_info["version"]:
        print(f"Database Version: {db_info['version']}")

    print(f"Existing Tables: {len(db_info['tables'])}")
    for table in sorted(db_info["tables"]):
        print(f"  - {table}")

    print("\n🔧 Initializing database...")

    try:
        init_database()
        print("✅ Database initialized successfully!")

        health = check_database_health()
        print(f"Health Status: {health['status']}")
        print(f"Table Count: {health['table_count']}")
        if health["status"] != "healthy":
            print(f"⚠️  Warning: {health['last_error']}")

        bootstrap_admin()
        return True

    except Exception as e:
        print(f"❌ Database initialization failed: {e}")
        return False


if __name__ == "__main__":
    success = main()
    sys.exit(0 if success else 1)
