"""
Persistence for races, units, leaders, registrations and teams.

Only SQLite is implemented. Multi-row writes go through
`DatabaseInterface.transaction()`, so a registration and its teams are
committed together or not at all.

Usage:
    from scoutrace.storage import get_database

    db = get_database()  # backend picked by DB_TYPE
    with db.transaction(immediate=True) as conn:
        unit = db.find_unit_by_name("Groupe Saint-Michel", conn=conn)
"""

from .base import MAX_ID, DatabaseInterface
from .factory import create_database, get_database, reset_database
from .exceptions import (
    DatabaseError,
    ConnectionError,
    ConfigurationError,
    SchemaError,
    QueryError,
    IntegrityConstraintError
)

__all__ = [
    'MAX_ID',
    'DatabaseInterface',
    'create_database',
    'get_database',
    'reset_database',
    'DatabaseError',
    'ConnectionError',
    'ConfigurationError',
    'SchemaError',
    'QueryError',
    'IntegrityConstraintError'
]
