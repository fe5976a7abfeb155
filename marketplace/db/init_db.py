"""Initialize the database with proper schema"""

import logging
from pathlib import Path
from typing import Optional

from sqlalchemy.engine import Engine, make_url

from marketplace.db.base import Base
from marketplace.db.session import engine as default_engine

# Import all models explicitly to register them with SQLAlchemy
from marketplace.db.models import session_record as _model_session_record  # noqa: F401
from marketplace.db.models import user as _model_user  # noqa: F401

logger = logging.getLogger("marketplace.database")


def _ensure_sqlite_directory(bind: Engine) -> None:
    url = make_url(str(bind.url))
    if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)


def init_database(bind: Optional[Engine] = None) -> None:
    """Create all tables with proper schema"""
    bind = bind or default_engine
    try:
        _ensure_sqlite_directory(bind)
        Base.metadata.create_all(bind=bind)

        table_names = [table.name for table in Base.metadata.sorted_tables]
        logger.info("Database initialized", extra={
            "table_count": len(table_names),
            "tables": table_names,
        })
    except Exception as e:
        logger.error(f"Error initializing database: {e}", extra={
            "error_type": type(e).__name__,
            "database_url": "[REDACTED]",  # Don't log connection strings
        })
        raise


if __name__ == "__main__":
    init_database()
