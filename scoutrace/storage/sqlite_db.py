"""
SQLite Database Storage for scout race registrations.

Provides storage and retrieval of registration data with:
- Unique constraints as the final arbiter for units and leaders
- Atomic transactions (BEGIN IMMEDIATE for the registration unit of work)
- Concurrent read access via WAL mode
- Foreign keys with cascade from registration to teams

This is the SQLite implementation of the DatabaseInterface.
"""

import sqlite3
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Iterator, List, Dict, Any, Tuple
import threading

from .base import MAX_ID, DatabaseInterface
from .exceptions import ConnectionError, IntegrityConstraintError, QueryError, SchemaError
from ..utils.money import from_cents, to_cents

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _valid_id(row_id: int) -> bool:
    return 0 < row_id <= MAX_ID


# Per-entity listing definitions. Sort keys and filters are whitelisted
# here; user input never reaches the SQL text.
LISTINGS: Dict[str, Dict[str, Any]] = {
    'registrations': {
        'select': '''
            SELECT r.id, r.created_at, r.paid_at, r.payment_status,
                   r.total_participants, r.total_price_cents,
                   r.race_id, ra.name AS race_name,
                   u.id AS unit_id, u.unit_name, u.region,
                   l.first_name, l.last_name, l.email, l.phone,
                   (SELECT COUNT(*) FROM teams t WHERE t.registration_id = r.id) AS team_count
            FROM registrations r
            JOIN races ra ON ra.id = r.race_id
            JOIN units u ON u.id = r.unit_id
            LEFT JOIN leaders l ON l.unit_id = u.id
        ''',
        'sort': {
            'id': 'r.id',
            'createdAt': 'r.created_at',
            'unitName': 'u.unit_name',
            'raceName': 'ra.name',
            'totalParticipants': 'r.total_participants',
            'totalPrice': 'r.total_price_cents',
            'paymentStatus': 'r.payment_status',
        },
        'default_sort': 'r.created_at',
        'filters': {
            'raceId': 'r.race_id',
            'paymentStatus': 'r.payment_status',
            'region': 'u.region',
            'unitId': 'u.id',
        },
        'search': ('u.unit_name', 'l.last_name', 'l.email'),
    },
    'teams': {
        'select': '''
            SELECT t.id, t.team_name, t.participant_count, t.created_at,
                   t.registration_id, r.payment_status,
                   r.race_id, ra.name AS race_name,
                   u.id AS unit_id, u.unit_name, u.region
            FROM teams t
            JOIN registrations r ON r.id = t.registration_id
            JOIN races ra ON ra.id = r.race_id
            JOIN units u ON u.id = r.unit_id
        ''',
        'sort': {
            'id': 't.id',
            'createdAt': 't.created_at',
            'teamName': 't.team_name',
            'participantCount': 't.participant_count',
            'unitName': 'u.unit_name',
            'raceName': 'ra.name',
        },
        'default_sort': 't.created_at',
        'filters': {
            'raceId': 'r.race_id',
            'paymentStatus': 'r.payment_status',
            'region': 'u.region',
            'registrationId': 't.registration_id',
        },
        'search': ('t.team_name', 'u.unit_name'),
    },
    'leaders': {
        'select': '''
            SELECT l.id, l.first_name, l.last_name, l.email, l.phone, l.created_at,
                   u.id AS unit_id, u.unit_name, u.region
            FROM leaders l
            JOIN units u ON u.id = l.unit_id
        ''',
        'sort': {
            'id': 'l.id',
            'createdAt': 'l.created_at',
            'lastName': 'l.last_name',
            'firstName': 'l.first_name',
            'email': 'l.email',
            'unitName': 'u.unit_name',
        },
        'default_sort': 'l.last_name',
        'filters': {
            'region': 'u.region',
            'unitId': 'u.id',
        },
        'search': ('l.first_name', 'l.last_name', 'l.email', 'u.unit_name'),
    },
    'units': {
        'select': '''
            SELECT u.id, u.unit_name, u.region, u.created_at,
                   (SELECT COUNT(*) FROM registrations r WHERE r.unit_id = u.id) AS registration_count
            FROM units u
        ''',
        'sort': {
            'id': 'u.id',
            'createdAt': 'u.created_at',
            'unitName': 'u.unit_name',
            'region': 'u.region',
        },
        'default_sort': 'u.unit_name',
        'filters': {
            'region': 'u.region',
        },
        'search': ('u.unit_name',),
    },
}

# Column name -> response key
_KEYS = {
    'id': 'id',
    'created_at': 'createdAt',
    'paid_at': 'paidAt',
    'payment_status': 'paymentStatus',
    'total_participants': 'totalParticipants',
    'total_price_cents': 'totalPrice',
    'race_id': 'raceId',
    'race_name': 'raceName',
    'unit_id': 'unitId',
    'unit_name': 'unitName',
    'region': 'region',
    'first_name': 'firstName',
    'last_name': 'lastName',
    'email': 'email',
    'phone': 'phone',
    'team_count': 'teamCount',
    'team_name': 'teamName',
    'participant_count': 'participantCount',
    'registration_id': 'registrationId',
    'registration_count': 'registrationCount',
}


def _row_to_dict(row: sqlite3.Row) -> Dict[str, Any]:
    """Convert a row to a camelCase dict. Cents become Decimal amounts."""
    result: Dict[str, Any] = {}
    for column in row.keys():
        value = row[column]
        if column == 'total_price_cents' and value is not None:
            value = from_cents(value)
        result[_KEYS.get(column, column)] = value
    return result


def _race_to_dict(row: sqlite3.Row) -> Dict[str, Any]:
    return {
        'id': row['id'],
        'name': row['name'],
        'participationPrice': from_cents(row['participation_price_cents']),
        'minParticipants': row['min_participants'],
        'maxParticipants': row['max_participants'],
        'raceDate': row['race_date'],
        'description': row['description'],
        'createdAt': row['created_at'],
    }


class SQLiteDatabase(DatabaseInterface):
    """
    SQLite database for registration storage.
    Thread-safe with connection per thread.

    Implements the DatabaseInterface abstract base class.
    """

    SCHEMA_VERSION = 1

    def __init__(self, db_path: str = "data/registrations.db", timeout: float = 30.0):
        """
        Create SQLite database instance.

        Args:
            db_path: Path to the SQLite database file
            timeout: Seconds to wait on a locked database before failing
        """
        self.db_path = Path(db_path)
        self.timeout = timeout
        self._local = threading.local()
        self._connections: List[sqlite3.Connection] = []
        self._connections_lock = threading.Lock()
        self._initialized = False

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def initialize(self) -> None:
        """Initialize the database connection and schema."""
        if self._initialized:
            return

        # Ensure parent directory exists
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._init_schema()
        self._initialized = True

    def close(self) -> None:
        """Close every connection opened by this instance."""
        with self._connections_lock:
            for conn in self._connections:
                try:
                    conn.close()
                except sqlite3.Error:
                    pass
            self._connections.clear()
        self._local = threading.local()

    def health_check(self) -> bool:
        """Check if the database connection is healthy."""
        try:
            conn = self._get_connection()
            conn.execute("SELECT 1")
            return True
        except (sqlite3.Error, ConnectionError):
            return False

    # =========================================================================
    # CONNECTION MANAGEMENT
    # =========================================================================

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        conn = getattr(self._local, 'conn', None)
        if conn is None:
            try:
                # isolation_level=None: transactions are opened explicitly
                conn = sqlite3.connect(
                    str(self.db_path),
                    check_same_thread=False,
                    timeout=self.timeout,
                    isolation_level=None
                )
            except sqlite3.Error as e:
                raise ConnectionError(f"Cannot open {self.db_path}: {e}") from e
            conn.row_factory = sqlite3.Row
            # Enable WAL mode for better concurrent access
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
            conn.execute("PRAGMA foreign_keys=ON")
            self._local.conn = conn
            with self._connections_lock:
                self._connections.append(conn)
        return conn

    @contextmanager
    def transaction(self, immediate: bool = False) -> Iterator[sqlite3.Connection]:
        """Context manager for database transactions."""
        conn = self._get_connection()
        if conn.in_transaction:
            # Joined an outer unit of work; it owns commit/rollback
            yield conn
            return

        try:
            conn.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
        except sqlite3.OperationalError as e:
            raise QueryError(f"Could not start transaction: {e}") from e

        try:
            yield conn
            conn.execute("COMMIT")
        except sqlite3.IntegrityError as e:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise IntegrityConstraintError(str(e)) from e
        except sqlite3.Error as e:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise QueryError(str(e)) from e
        except BaseException:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise

    @contextmanager
    def _maybe_transaction(self, conn: Optional[sqlite3.Connection]) -> Iterator[sqlite3.Connection]:
        """Use the caller's transaction if given, else open one."""
        if conn is not None:
            yield conn
        else:
            with self.transaction() as own:
                yield own

    def _read(self, conn: Optional[sqlite3.Connection]) -> sqlite3.Connection:
        return conn if conn is not None else self._get_connection()

    def _init_schema(self) -> None:
        """Initialize database schema."""
        conn = self._get_connection()
        try:
            conn.executescript('''
                -- Metadata table
                CREATE TABLE IF NOT EXISTS metadata (
                    key TEXT PRIMARY KEY,
                    value TEXT,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                );

                -- Races (reference data)
                CREATE TABLE IF NOT EXISTS races (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL UNIQUE,
                    participation_price_cents INTEGER NOT NULL CHECK (participation_price_cents >= 0),
                    min_participants INTEGER NOT NULL CHECK (min_participants > 0),
                    max_participants INTEGER NOT NULL,
                    race_date TEXT NOT NULL,
                    description TEXT,
                    created_at TEXT NOT NULL,
                    CHECK (max_participants >= min_participants)
                );

                -- Units
                CREATE TABLE IF NOT EXISTS units (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    unit_name TEXT NOT NULL UNIQUE,
                    region TEXT,
                    created_at TEXT NOT NULL
                );

                -- Leaders (exactly one per unit)
                CREATE TABLE IF NOT EXISTS leaders (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    unit_id INTEGER NOT NULL UNIQUE REFERENCES units(id) ON DELETE CASCADE,
                    first_name TEXT NOT NULL,
                    last_name TEXT NOT NULL,
                    email TEXT NOT NULL,
                    phone TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );

                -- Registrations
                CREATE TABLE IF NOT EXISTS registrations (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    unit_id INTEGER NOT NULL REFERENCES units(id) ON DELETE RESTRICT,
                    race_id INTEGER NOT NULL REFERENCES races(id) ON DELETE RESTRICT,
                    total_participants INTEGER NOT NULL CHECK (total_participants > 0),
                    total_price_cents INTEGER NOT NULL CHECK (total_price_cents >= 0),
                    payment_status TEXT NOT NULL DEFAULT 'PENDING'
                        CHECK (payment_status IN ('PENDING', 'PAID')),
                    created_at TEXT NOT NULL,
                    paid_at TEXT
                );

                -- Teams (owned by a registration)
                CREATE TABLE IF NOT EXISTS teams (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    registration_id INTEGER NOT NULL REFERENCES registrations(id) ON DELETE CASCADE,
                    team_name TEXT NOT NULL,
                    participant_count INTEGER NOT NULL CHECK (participant_count > 0),
                    created_at TEXT NOT NULL
                );

                -- Indexes for admin listings
                CREATE INDEX IF NOT EXISTS idx_registrations_race ON registrations(race_id);
                CREATE INDEX IF NOT EXISTS idx_registrations_unit ON registrations(unit_id);
                CREATE INDEX IF NOT EXISTS idx_registrations_status ON registrations(payment_status);
                CREATE INDEX IF NOT EXISTS idx_teams_registration ON teams(registration_id);
                CREATE INDEX IF NOT EXISTS idx_units_region ON units(region);
            ''')
        except sqlite3.Error as e:
            raise SchemaError(f"Schema initialization failed: {e}") from e

        with self.transaction() as tx:
            tx.execute(
                "INSERT OR REPLACE INTO metadata (key, value) VALUES (?, ?)",
                ('schema_version', str(self.SCHEMA_VERSION))
            )

    # =========================================================================
    # RACES
    # =========================================================================

    def save_races(self, races: List[Dict[str, Any]]) -> int:
        """Upsert races by name. Returns count saved."""
        now = _now()
        with self.transaction() as conn:
            for race in races:
                conn.execute('''
                    INSERT INTO races
                    (name, participation_price_cents, min_participants, max_participants,
                     race_date, description, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(name) DO UPDATE SET
                        participation_price_cents = excluded.participation_price_cents,
                        min_participants = excluded.min_participants,
                        max_participants = excluded.max_participants,
                        race_date = excluded.race_date,
                        description = excluded.description
                ''', (
                    race['name'],
                    to_cents(race['participationPrice']),
                    race['minParticipants'],
                    race['maxParticipants'],
                    str(race['raceDate']),
                    race.get('description'),
                    now
                ))
        return len(races)

    def get_race(self, race_id: int, conn: Optional[sqlite3.Connection] = None) -> Optional[Dict[str, Any]]:
        if not _valid_id(race_id):
            return None
        try:
            row = self._read(conn).execute(
                'SELECT * FROM races WHERE id = ?', (race_id,)
            ).fetchone()
        except sqlite3.Error as e:
            raise QueryError(f"Reading race {race_id} failed: {e}") from e
        return _race_to_dict(row) if row else None

    def get_races(self) -> List[Dict[str, Any]]:
        try:
            rows = self._get_connection().execute(
                'SELECT * FROM races ORDER BY race_date, name'
            ).fetchall()
        except sqlite3.Error as e:
            raise QueryError(f"Reading races failed: {e}") from e
        return [_race_to_dict(r) for r in rows]

    # =========================================================================
    # UNITS & LEADERS
    # =========================================================================

    def find_unit_by_name(
        self,
        unit_name: str,
        conn: Optional[sqlite3.Connection] = None
    ) -> Optional[Dict[str, Any]]:
        try:
            row = self._read(conn).execute('''
                SELECT u.id, u.unit_name, u.region, u.created_at,
                       l.id AS leader_id, l.first_name, l.last_name, l.email, l.phone,
                       l.created_at AS leader_created_at
                FROM units u
                LEFT JOIN leaders l ON l.unit_id = u.id
                WHERE u.unit_name = ?
            ''', (unit_name,)).fetchone()
        except sqlite3.Error as e:
            raise QueryError(f"Reading unit '{unit_name}' failed: {e}") from e
        if row is None:
            return None

        unit = {
            'id': row['id'],
            'unitName': row['unit_name'],
            'region': row['region'],
            'createdAt': row['created_at'],
            'leader': None,
        }
        if row['leader_id'] is not None:
            unit['leader'] = {
                'id': row['leader_id'],
                'unitId': row['id'],
                'firstName': row['first_name'],
                'lastName': row['last_name'],
                'email': row['email'],
                'phone': row['phone'],
                'createdAt': row['leader_created_at'],
            }
        return unit

    def create_unit_with_leader(
        self,
        unit: Dict[str, Any],
        leader: Dict[str, Any],
        conn: Optional[sqlite3.Connection] = None
    ) -> Dict[str, Any]:
        now = _now()
        try:
            with self._maybe_transaction(conn) as tx:
                cursor = tx.execute(
                    'INSERT INTO units (unit_name, region, created_at) VALUES (?, ?, ?)',
                    (unit['unitName'], unit.get('region'), now)
                )
                unit_id = cursor.lastrowid
                cursor = tx.execute('''
                    INSERT INTO leaders (unit_id, first_name, last_name, email, phone, created_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                ''', (
                    unit_id,
                    leader['firstName'],
                    leader['lastName'],
                    leader['email'],
                    leader['phone'],
                    now
                ))
                leader_id = cursor.lastrowid
        except sqlite3.IntegrityError as e:
            raise IntegrityConstraintError(f"Unit '{unit['unitName']}' already exists: {e}") from e

        return {
            'id': unit_id,
            'unitName': unit['unitName'],
            'region': unit.get('region'),
            'createdAt': now,
            'leader': {
                'id': leader_id,
                'unitId': unit_id,
                'firstName': leader['firstName'],
                'lastName': leader['lastName'],
                'email': leader['email'],
                'phone': leader['phone'],
                'createdAt': now,
            },
        }

    # =========================================================================
    # REGISTRATIONS & TEAMS
    # =========================================================================

    def insert_registration(
        self,
        unit_id: int,
        race_id: int,
        teams: List[Dict[str, Any]],
        total_participants: int,
        total_price_cents: int,
        conn: Optional[sqlite3.Connection] = None
    ) -> int:
        now = _now()
        with self._maybe_transaction(conn) as tx:
            cursor = tx.execute('''
                INSERT INTO registrations
                (unit_id, race_id, total_participants, total_price_cents, payment_status, created_at)
                VALUES (?, ?, ?, ?, 'PENDING', ?)
            ''', (unit_id, race_id, total_participants, total_price_cents, now))
            registration_id = cursor.lastrowid

            tx.executemany('''
                INSERT INTO teams (registration_id, team_name, participant_count, created_at)
                VALUES (?, ?, ?, ?)
            ''', [
                (registration_id, t['teamName'], t['participantCount'], now)
                for t in teams
            ])
        return registration_id

    def get_registration_details(self, registration_id: int) -> Optional[Dict[str, Any]]:
        if not _valid_id(registration_id):
            return None
        # Single snapshot read so the teams match the registration row
        with self.transaction() as conn:
            reg = conn.execute(
                'SELECT * FROM registrations WHERE id = ?', (registration_id,)
            ).fetchone()
            if reg is None:
                return None

            race = conn.execute(
                'SELECT * FROM races WHERE id = ?', (reg['race_id'],)
            ).fetchone()
            unit = conn.execute(
                'SELECT * FROM units WHERE id = ?', (reg['unit_id'],)
            ).fetchone()
            leader = conn.execute(
                'SELECT * FROM leaders WHERE unit_id = ?', (reg['unit_id'],)
            ).fetchone()
            teams = conn.execute(
                'SELECT * FROM teams WHERE registration_id = ? ORDER BY id',
                (registration_id,)
            ).fetchall()

        return {
            'registration': {
                'id': reg['id'],
                'unitId': reg['unit_id'],
                'raceId': reg['race_id'],
                'totalParticipants': reg['total_participants'],
                'totalPrice': from_cents(reg['total_price_cents']),
                'paymentStatus': reg['payment_status'],
                'createdAt': reg['created_at'],
                'paidAt': reg['paid_at'],
            },
            'race': _race_to_dict(race),
            'unit': {
                'id': unit['id'],
                'unitName': unit['unit_name'],
                'region': unit['region'],
                'createdAt': unit['created_at'],
            },
            'leader': {
                'id': leader['id'],
                'unitId': leader['unit_id'],
                'firstName': leader['first_name'],
                'lastName': leader['last_name'],
                'email': leader['email'],
                'phone': leader['phone'],
                'createdAt': leader['created_at'],
            } if leader else None,
            'teams': [
                {
                    'id': t['id'],
                    'registrationId': t['registration_id'],
                    'teamName': t['team_name'],
                    'participantCount': t['participant_count'],
                    'createdAt': t['created_at'],
                }
                for t in teams
            ],
        }

    def mark_registration_paid(self, registration_id: int) -> Optional[Tuple[Dict[str, Any], bool]]:
        if not _valid_id(registration_id):
            return None
        with self.transaction(immediate=True) as conn:
            cursor = conn.execute('''
                UPDATE registrations
                SET payment_status = 'PAID', paid_at = ?
                WHERE id = ? AND payment_status = 'PENDING'
            ''', (_now(), registration_id))
            changed = cursor.rowcount == 1

            row = conn.execute(
                'SELECT * FROM registrations WHERE id = ?', (registration_id,)
            ).fetchone()

        if row is None:
            return None

        return {
            'id': row['id'],
            'paymentStatus': row['payment_status'],
            'totalParticipants': row['total_participants'],
            'totalPrice': from_cents(row['total_price_cents']),
            'paidAt': row['paid_at'],
        }, changed

    # =========================================================================
    # ADMIN LISTINGS
    # =========================================================================

    def list_entities(
        self,
        entity: str,
        filters: Dict[str, Any],
        page: int,
        page_size: int,
        sort: Optional[str] = None,
        order: str = "asc"
    ) -> Tuple[List[Dict[str, Any]], int]:
        """List entities with flexible filtering."""
        listing = LISTINGS.get(entity)
        if listing is None:
            raise QueryError(f"Unknown entity: {entity}")

        where = " WHERE 1=1"
        params: List[Any] = []

        for key, column in listing['filters'].items():
            value = filters.get(key)
            if value is not None and value != '':
                where += f" AND {column} = ?"
                params.append(value)

        q = filters.get('q')
        if q:
            clauses = " OR ".join(f"{column} LIKE ?" for column in listing['search'])
            where += f" AND ({clauses})"
            params.extend([f"%{q}%"] * len(listing['search']))

        sort_column = listing['sort'].get(sort or '', listing['default_sort'])
        direction = "DESC" if order.lower() == "desc" else "ASC"

        base = listing['select'] + where
        conn = self._get_connection()
        try:
            total = conn.execute(f"SELECT COUNT(*) FROM ({base})", params).fetchone()[0]
            rows = conn.execute(
                f"{base} ORDER BY {sort_column} {direction}, 1 {direction} LIMIT ? OFFSET ?",
                params + [page_size, (page - 1) * page_size]
            ).fetchall()
        except sqlite3.Error as e:
            raise QueryError(f"Listing {entity} failed: {e}") from e

        return [_row_to_dict(r) for r in rows], total

    def count_rows(self, table: str) -> int:
        if table not in ('races', 'units', 'leaders', 'registrations', 'teams'):
            raise QueryError(f"Unknown table: {table}")
        try:
            return self._get_connection().execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
        except sqlite3.Error as e:
            raise QueryError(f"Counting {table} failed: {e}") from e
