"""
Registration store selection.

The process shares one store: `get_database()` builds it on first use from
DB_TYPE and DATA_DIR, and `reset_database()` drops it so tests can point the
next call at a fresh directory.
"""

import logging
import os
from typing import Optional

from .base import DatabaseInterface
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DB_FILENAME = 'registrations.db'

_db_instance: Optional[DatabaseInterface] = None


def create_database(db_type: str, data_dir: str) -> DatabaseInterface:
    """
    Build an uninitialized store.

    Raises:
        ConfigurationError: If db_type is not a known backend
    """
    if db_type == 'sqlite':
        from .sqlite_db import SQLiteDatabase
        return SQLiteDatabase(db_path=os.path.join(data_dir, DB_FILENAME))

    raise ConfigurationError(f"Unknown DB_TYPE: {db_type}. Valid options: sqlite")


def get_database() -> DatabaseInterface:
    """
    Shared store for the process, created and initialized on first call.

    Environment is read at call time rather than import time:
    - DB_TYPE: backend name, "sqlite" by default
    - DATA_DIR: directory of the database file; falls back to /app/data
      inside a container and to ./data otherwise
    """
    global _db_instance

    if _db_instance is not None:
        return _db_instance

    db_type = os.environ.get('DB_TYPE', 'sqlite').lower()
    data_dir = (
        os.environ.get('DATA_DIR') or
        ('/app/data' if os.path.exists('/app') else 'data')
    )

    db = create_database(db_type, data_dir)
    db.initialize()
    logger.info(f"[*] Registration store: {db_type} in {data_dir}")

    _db_instance = db
    return _db_instance


def reset_database() -> None:
    """Close and forget the shared store."""
    global _db_instance
    if _db_instance is not None:
        _db_instance.close()
        _db_instance = None
