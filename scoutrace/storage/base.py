"""
Abstract base class defining the database interface.

All database implementations must inherit from this class and implement
all abstract methods. This ensures consistent behavior across backends.

Write methods accept an optional `conn` obtained from `transaction()` so a
caller can group several of them into one atomic unit of work. Without it,
each call runs in its own transaction.
"""

from abc import ABC, abstractmethod
from typing import Any, ContextManager, Dict, List, Optional, Tuple

# Largest row id SQLite can store; larger ids can never match a row
MAX_ID = 2 ** 63 - 1


class DatabaseInterface(ABC):
    """
    Abstract interface for registration storage.

    All methods must be implemented by concrete database classes.
    Methods should be thread-safe where applicable.
    """

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @abstractmethod
    def initialize(self) -> None:
        """
        Initialize the database connection and schema.

        Should create tables if they don't exist.
        Should be idempotent (safe to call multiple times).
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Close database connections and clean up resources."""
        pass

    @abstractmethod
    def health_check(self) -> bool:
        """
        Check if the database connection is healthy.

        Returns:
            True if database is accessible, False otherwise
        """
        pass

    @abstractmethod
    def transaction(self, immediate: bool = False) -> ContextManager[Any]:
        """
        Open an atomic unit of work.

        Args:
            immediate: Take the write lock up front, so that reads made
                       inside the transaction cannot be invalidated by a
                       concurrent writer before commit.

        Commits on normal exit, rolls back on any exception.
        """
        pass

    # =========================================================================
    # RACES (reference data)
    # =========================================================================

    @abstractmethod
    def save_races(self, races: List[Dict[str, Any]]) -> int:
        """
        Save or update races, keyed by name.

        Args:
            races: Race dicts with 'name', 'participationPrice' (Decimal),
                   'minParticipants', 'maxParticipants', 'raceDate',
                   optional 'description'

        Returns:
            Number of races saved
        """
        pass

    @abstractmethod
    def get_race(self, race_id: int, conn: Any = None) -> Optional[Dict[str, Any]]:
        """Get one race by id, or None."""
        pass

    @abstractmethod
    def get_races(self) -> List[Dict[str, Any]]:
        """Get all races, ordered by race date then name."""
        pass

    # =========================================================================
    # UNITS & LEADERS
    # =========================================================================

    @abstractmethod
    def find_unit_by_name(self, unit_name: str, conn: Any = None) -> Optional[Dict[str, Any]]:
        """
        Find a unit by exact, case-sensitive name.

        Returns:
            Unit dict with its 'leader' dict embedded, or None
        """
        pass

    @abstractmethod
    def create_unit_with_leader(
        self,
        unit: Dict[str, Any],
        leader: Dict[str, Any],
        conn: Any = None
    ) -> Dict[str, Any]:
        """
        Create a unit and its single leader together.

        Raises:
            IntegrityConstraintError: If the unit name is already taken
        """
        pass

    # =========================================================================
    # REGISTRATIONS & TEAMS
    # =========================================================================

    @abstractmethod
    def insert_registration(
        self,
        unit_id: int,
        race_id: int,
        teams: List[Dict[str, Any]],
        total_participants: int,
        total_price_cents: int,
        conn: Any = None
    ) -> int:
        """
        Insert a PENDING registration and all of its teams.

        Returns:
            The new registration id
        """
        pass

    @abstractmethod
    def get_registration_details(self, registration_id: int) -> Optional[Dict[str, Any]]:
        """
        Get a registration with its race, unit, leader and teams.

        Returns:
            Dict with keys 'registration', 'race', 'unit', 'leader', 'teams',
            or None if the id is unknown
        """
        pass

    @abstractmethod
    def mark_registration_paid(self, registration_id: int) -> Optional[Tuple[Dict[str, Any], bool]]:
        """
        Move a registration from PENDING to PAID.

        Returns:
            (registration dict, changed) where changed is False when it was
            already PAID, or None if the id is unknown
        """
        pass

    # =========================================================================
    # ADMIN LISTINGS
    # =========================================================================

    @abstractmethod
    def list_entities(
        self,
        entity: str,
        filters: Dict[str, Any],
        page: int,
        page_size: int,
        sort: Optional[str] = None,
        order: str = "asc"
    ) -> Tuple[List[Dict[str, Any]], int]:
        """
        List one entity type with filters, sorting and pagination.

        Args:
            entity: One of 'teams', 'leaders', 'units', 'registrations'
            filters: Entity-specific filters (raceId, paymentStatus, region, q)
            page: 1-based page number
            page_size: Rows per page
            sort: Sort key, validated against the entity's whitelist
            order: 'asc' or 'desc'

        Returns:
            (rows for the page, total matching rows)
        """
        pass

    @abstractmethod
    def count_rows(self, table: str) -> int:
        """Count rows in a table."""
        pass
