"""
Database helper utilities.

Connection checks used by the health endpoints and the setup script. Works
for both SQLite and PostgreSQL.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine

from marketplace.db.session import engine as default_engine

logger = logging.getLogger(__name__)


def get_database_type(bind: Optional[Engine] = None) -> str:
    """
    Get the database type from the engine URL.

    Returns:
        str: Database type ('sqlite', 'postgresql', etc.)
    """
    bind = bind or default_engine
    return bind.url.get_backend_name()


def get_database_info(bind: Optional[Engine] = None) -> Dict[str, Any]:
    """
    Get database connection information and metadata.

    The connection URL is never included; it may carry credentials.
    """
    bind = bind or default_engine
    db_type = get_database_type(bind)
    info = {
        "type": db_type,
        "connected": False,
        "tables": [],
        "version": None,
        "error": None,
    }

    try:
        with bind.connect() as conn:
            info["connected"] = True

            if db_type == "sqlite":
                info["version"] = conn.execute(text("SELECT sqlite_version()")).scalar()
            elif db_type == "postgresql":
                version_str = conn.execute(text("SELECT version()")).scalar()
                info["version"] = version_str.split()[1] if version_str else "unknown"

            info["tables"] = inspect(conn).get_table_names()
    except Exception as e:
        logger.error("Database connection error: %s", type(e).__name__)
        info["error"] = str(e)

    return info


def check_database_health(bind: Optional[Engine] = None) -> Dict[str, Any]:
    """
    Perform database health check.

    Returns:
        Dict containing health status and metrics
    """
    db_info = get_database_info(bind)
    health = {
        "status": "healthy",
        "database_type": db_info["type"],
        "connected": db_info["connected"],
        "table_count": len(db_info["tables"]),
        "last_error": None,
    }

    if db_info["error"]:
        health["status"] = "unhealthy"
        health["last_error"] = db_info["error"]
    elif "sessions" not in db_info["tables"]:
        health["status"] = "warning"
        health["last_error"] = "Session table missing - database may need initialization"

    return health
