"""
Application configuration.

Loads settings from environment variables with sensible defaults.

Module-level constants are read at import time. Request handlers never read
them directly: `load_settings()` builds one immutable `Settings` value at
startup and that value is handed to the services that need it.
"""

import os
from dataclasses import dataclass, field
from typing import Optional, Tuple

import bcrypt


def _get_int(key: str, default: int) -> int:
    """Get integer from environment variable."""
    value = os.environ.get(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _get_bool(key: str, default: bool) -> bool:
    """Get boolean from environment variable."""
    value = os.environ.get(key)
    if value is None:
        return default
    return value.lower() in ('true', '1', 'yes')


def _get_str(key: str, default: str) -> str:
    """Get string from environment variable."""
    return os.environ.get(key, default)


def _get_list(key: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    """Get comma-separated list from environment variable."""
    value = os.environ.get(key)
    if not value:
        return default
    return tuple(v.strip() for v in value.split(',') if v.strip())


# =============================================================================
# SERVER SETTINGS
# =============================================================================
PORT = _get_int('PORT', 8000)
HOST = _get_str('HOST', '0.0.0.0')

# Behind a reverse proxy the client address comes from X-Forwarded-For
TRUST_PROXY_HEADERS = _get_bool('TRUST_PROXY_HEADERS', False)

ALLOWED_ORIGINS = _get_list('ALLOWED_ORIGINS', ('http://localhost:3000', 'http://localhost:5173'))

# =============================================================================
# STORAGE SETTINGS
# =============================================================================
# Priority: DATA_DIR > /app/data (container) > data (local)
DATA_DIR = (
    os.environ.get('DATA_DIR') or
    ('/app/data' if os.path.exists('/app') else 'data')
)
DB_TYPE = _get_str('DB_TYPE', 'sqlite')

# =============================================================================
# REGISTRATION RULES
# =============================================================================
MAX_TEAMS_PER_REQUEST = _get_int('MAX_TEAMS_PER_REQUEST', 10)

# When enabled, the race's maxParticipants also caps the sum of all teams
ENFORCE_AGGREGATE_MAX = _get_bool('ENFORCE_AGGREGATE_MAX', False)

CURRENCY = _get_str('CURRENCY', 'EUR')

# =============================================================================
# RATE LIMITING
# =============================================================================
REGISTRATION_WINDOW_SECONDS = _get_int('REGISTRATION_WINDOW_SECONDS', 300)
REGISTRATION_MAX_SUCCESSES = _get_int('REGISTRATION_MAX_SUCCESSES', 3)
REGISTRATION_MAX_FAILURES = _get_int('REGISTRATION_MAX_FAILURES', 5)
REGISTRATION_COOLDOWN_SECONDS = _get_int('REGISTRATION_COOLDOWN_SECONDS', 900)

LOGIN_WINDOW_SECONDS = _get_int('LOGIN_WINDOW_SECONDS', 300)
LOGIN_MAX_ATTEMPTS = _get_int('LOGIN_MAX_ATTEMPTS', 4)

# =============================================================================
# ADMIN SESSIONS
# =============================================================================
SESSION_TTL_SECONDS = _get_int('SESSION_TTL_SECONDS', 3600)
SESSION_IDLE_SECONDS = _get_int('SESSION_IDLE_SECONDS', 900)
SESSION_COOKIE_NAME = _get_str('SESSION_COOKIE_NAME', 'scout_admin_session')
SESSION_COOKIE_SECURE = _get_bool('SESSION_COOKIE_SECURE', True)

ADMIN_MAX_PAGE_SIZE = _get_int('ADMIN_MAX_PAGE_SIZE', 200)

# =============================================================================
# LOGGING
# =============================================================================
LOG_LEVEL = _get_str('LOG_LEVEL', 'INFO')


def hash_password(password: str) -> str:
    """Return a bcrypt hash suitable for ADMIN_PASSWORD_HASH."""
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt()).decode('ascii')


@dataclass(frozen=True)
class Settings:
    """Immutable runtime configuration, built once at startup."""

    admin_password_hash: Optional[str] = None
    max_teams_per_request: int = 10
    enforce_aggregate_max: bool = False
    currency: str = 'EUR'

    registration_window_seconds: int = 300
    registration_max_successes: int = 3
    registration_max_failures: int = 5
    registration_cooldown_seconds: int = 900
    login_window_seconds: int = 300
    login_max_attempts: int = 4

    session_ttl_seconds: int = 3600
    session_idle_seconds: int = 900
    session_cookie_name: str = 'scout_admin_session'
    session_cookie_secure: bool = True

    trust_proxy_headers: bool = False
    allowed_origins: Tuple[str, ...] = field(default_factory=tuple)
    admin_max_page_size: int = 200


def load_settings() -> Settings:
    """
    Build the Settings value from the environment.

    ADMIN_PASSWORD_HASH takes precedence. A plaintext ADMIN_PASSWORD is
    accepted for local setups and hashed here, so only the hash is kept.
    """
    password_hash = os.environ.get('ADMIN_PASSWORD_HASH') or None
    if password_hash is None:
        plaintext = os.environ.get('ADMIN_PASSWORD')
        if plaintext:
            password_hash = hash_password(plaintext)

    return Settings(
        admin_password_hash=password_hash,
        max_teams_per_request=_get_int('MAX_TEAMS_PER_REQUEST', MAX_TEAMS_PER_REQUEST),
        enforce_aggregate_max=_get_bool('ENFORCE_AGGREGATE_MAX', ENFORCE_AGGREGATE_MAX),
        currency=_get_str('CURRENCY', CURRENCY),
        registration_window_seconds=_get_int('REGISTRATION_WINDOW_SECONDS', REGISTRATION_WINDOW_SECONDS),
        registration_max_successes=_get_int('REGISTRATION_MAX_SUCCESSES', REGISTRATION_MAX_SUCCESSES),
        registration_max_failures=_get_int('REGISTRATION_MAX_FAILURES', REGISTRATION_MAX_FAILURES),
        registration_cooldown_seconds=_get_int('REGISTRATION_COOLDOWN_SECONDS', REGISTRATION_COOLDOWN_SECONDS),
        login_window_seconds=_get_int('LOGIN_WINDOW_SECONDS', LOGIN_WINDOW_SECONDS),
        login_max_attempts=_get_int('LOGIN_MAX_ATTEMPTS', LOGIN_MAX_ATTEMPTS),
        session_ttl_seconds=_get_int('SESSION_TTL_SECONDS', SESSION_TTL_SECONDS),
        session_idle_seconds=_get_int('SESSION_IDLE_SECONDS', SESSION_IDLE_SECONDS),
        session_cookie_name=_get_str('SESSION_COOKIE_NAME', SESSION_COOKIE_NAME),
        session_cookie_secure=_get_bool('SESSION_COOKIE_SECURE', SESSION_COOKIE_SECURE),
        trust_proxy_headers=_get_bool('TRUST_PROXY_HEADERS', TRUST_PROXY_HEADERS),
        allowed_origins=_get_list('ALLOWED_ORIGINS', ALLOWED_ORIGINS),
        admin_max_page_size=_get_int('ADMIN_MAX_PAGE_SIZE', ADMIN_MAX_PAGE_SIZE),
    )
