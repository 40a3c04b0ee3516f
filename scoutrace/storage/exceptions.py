"""
Storage errors for the registration store.

Services catch `DatabaseError` and answer INTERNAL; the client may simply
retry, since a failed unit of work is always rolled back. The one error a
caller reacts to is `IntegrityConstraintError`, raised when another request
won the race to create the same unit.
"""

from typing import Optional


class DatabaseError(Exception):
    """Any failure of the registration store."""
    pass


class ConnectionError(DatabaseError):
    """The database file could not be opened."""
    pass


class ConfigurationError(DatabaseError):
    """DB_TYPE names a backend that does not exist."""
    pass


class SchemaError(DatabaseError):
    """Creating the registration tables failed."""
    pass


class QueryError(DatabaseError):
    """A statement failed, including 'database is locked' after the busy timeout."""
    pass


class IntegrityConstraintError(DatabaseError):
    """
    A UNIQUE or FOREIGN KEY constraint rejected a write.

    Attributes:
        constraint: The offending column as SQLite reports it
            (e.g. "units.unit_name"), or None when unknown
    """

    def __init__(self, message: str, constraint: Optional[str] = None):
        super().__init__(message)
        if constraint is None:
            _, _, tail = message.partition("constraint failed: ")
            constraint = tail.split(",")[0].strip() or None
        self.constraint = constraint
