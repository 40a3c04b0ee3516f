"""
Shared test fixtures and configuration.

Provides reusable fixtures for all test files including database instances,
seeded races, sample payloads, settings, a controllable clock and FastAPI
test clients.
"""

import pytest
import os
import shutil
import tempfile
from decimal import Decimal
from typing import Dict, Any, List
from unittest.mock import patch

from fastapi.testclient import TestClient

from scoutrace.config import Settings, hash_password
from scoutrace.storage import get_database, reset_database


ADMIN_PASSWORD = "correct horse battery staple"

# bcrypt is slow; hash once per test session
_ADMIN_HASH = hash_password(ADMIN_PASSWORD)


# =============================================================================
# DATABASE FIXTURES
# =============================================================================

@pytest.fixture
def test_data_dir():
    """Provide a temporary directory for test data."""
    temp_dir = tempfile.mkdtemp(prefix="scoutrace_test_")
    yield temp_dir

    # Cleanup
    if os.path.exists(temp_dir):
        try:
            shutil.rmtree(temp_dir)
        except PermissionError:
            pass  # Windows file locking, ignore


@pytest.fixture
def db_fixture(test_data_dir):
    """Provide a clean test database instance."""
    with patch.dict(os.environ, {'DB_TYPE': 'sqlite', 'DATA_DIR': test_data_dir}, clear=False):
        reset_database()
        db = get_database()
        yield db
        reset_database()  # Close connections before cleanup


# =============================================================================
# SAMPLE DATA FIXTURES
# =============================================================================

@pytest.fixture
def sample_race_data() -> List[Dict[str, Any]]:
    """Provide sample race data."""
    return [
        {
            'name': 'LOUVETEAUX',
            'participationPrice': Decimal('10.00'),
            'minParticipants': 3,
            'maxParticipants': 12,
            'raceDate': '2026-06-13',
            'description': 'Course des 8-12 ans',
        },
        {
            'name': 'ECLAIREURS',
            'participationPrice': Decimal('12.50'),
            'minParticipants': 2,
            'maxParticipants': 6,
            'raceDate': '2026-06-14',
            'description': None,
        },
    ]


@pytest.fixture
def seeded_db(db_fixture, sample_race_data):
    """Database with the sample races stored."""
    db_fixture.save_races(sample_race_data)
    return db_fixture


@pytest.fixture
def louveteaux_id(seeded_db) -> int:
    """Id of the LOUVETEAUX race."""
    return next(r['id'] for r in seeded_db.get_races() if r['name'] == 'LOUVETEAUX')


@pytest.fixture
def eclaireurs_id(seeded_db) -> int:
    """Id of the ECLAIREURS race."""
    return next(r['id'] for r in seeded_db.get_races() if r['name'] == 'ECLAIREURS')


@pytest.fixture
def valid_payload(louveteaux_id) -> Dict[str, Any]:
    """A registration of two teams (4 + 5 participants) for LOUVETEAUX."""
    return {
        'raceId': louveteaux_id,
        'unit': {'unitName': 'Groupe Saint-Michel', 'region': 'Bretagne'},
        'leader': {
            'firstName': 'Camille',
            'lastName': 'Durand',
            'email': 'camille.durand@example.org',
            'phone': '+33 6 12 34 56 78',
        },
        'teams': [
            {'teamName': 'Les Loups', 'participantCount': 4},
            {'teamName': 'Les Renards', 'participantCount': 5},
        ],
    }


def _make_payload(race_id: int, unit_name: str, email: str = 'leader@example.org',
                  teams: List[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {
        'raceId': race_id,
        'unit': {'unitName': unit_name, 'region': 'Alsace'},
        'leader': {
            'firstName': 'Alex',
            'lastName': 'Martin',
            'email': email,
            'phone': '0612345678',
        },
        'teams': teams or [{'teamName': 'Equipe A', 'participantCount': 3}],
    }


@pytest.fixture
def make_payload():
    """Build a payload for another unit."""
    return _make_payload


# =============================================================================
# SETTINGS & CLOCK FIXTURES
# =============================================================================

class FakeClock:
    """Manually advanced clock for TTL and window tests."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    """Provide a controllable clock."""
    return FakeClock()


@pytest.fixture
def admin_password() -> str:
    return ADMIN_PASSWORD


@pytest.fixture
def settings() -> Settings:
    """Settings with a known admin password and a cookie usable over http."""
    return Settings(
        admin_password_hash=_ADMIN_HASH,
        session_cookie_secure=False,
        allowed_origins=('http://localhost:5173',),
    )


# =============================================================================
# FASTAPI TEST CLIENT FIXTURES
# =============================================================================

@pytest.fixture
def client(settings, seeded_db):
    """Provide a test client running the full application lifespan."""
    from scoutrace.main import create_app

    with TestClient(create_app(settings=settings, db=seeded_db)) as test_client:
        yield test_client


@pytest.fixture
def admin_client(client, admin_password):
    """Test client holding an admin session cookie."""
    response = client.post("/api/admin/login", json={"password": admin_password})
    assert response.status_code == 200
    return client
