"""
Admin Session Authority.

Session lifecycle:
    LoggedOut --valid password--> Active
    Active --TTL expiry | inactivity timeout | logout--> LoggedOut
    LoggedOut --invalid password--> LoggedOut (counts against the login limit)

Tokens are opaque random strings. The server keeps one record per session,
keyed by the SHA-256 of the token, and recomputes expiry on every check;
nothing the client sends is trusted beyond the token itself.
"""

import hashlib
import logging
import secrets
import threading
import time
from dataclasses import dataclass, replace
from typing import Callable, Dict, Optional, Union

import bcrypt

from ..config import Settings
from ..errors import MESSAGES, ErrorKind, Failure, fail
from ..models import PaymentSummary
from ..storage import DatabaseError, DatabaseInterface
from .abuse_guard import AbuseGuard, Action, Outcome
from .audit import record_event

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionRecord:
    issued_at: float
    last_active_at: float
    expires_at: float
    ip: str


@dataclass(frozen=True)
class SessionToken:
    """Returned once at login; the raw token is never stored."""

    token: str
    expires_at: float
    max_age: int


@dataclass(frozen=True)
class SessionContext:
    """An Active session, as seen by an admin request."""

    issued_at: float
    last_active_at: float
    expires_at: float
    idle_expires_at: float
    ip: str


def _digest(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class SessionStore:
    """In-memory session records, safe for concurrent requests."""

    def __init__(self):
        self._sessions: Dict[str, SessionRecord] = {}
        self._lock = threading.Lock()

    def put(self, token: str, record: SessionRecord) -> None:
        with self._lock:
            self._sessions[_digest(token)] = record

    def get(self, token: str) -> Optional[SessionRecord]:
        with self._lock:
            return self._sessions.get(_digest(token))

    def touch(self, token: str, now: float) -> Optional[SessionRecord]:
        with self._lock:
            key = _digest(token)
            record = self._sessions.get(key)
            if record is None:
                return None
            record = replace(record, last_active_at=now)
            self._sessions[key] = record
            return record

    def delete(self, token: str) -> bool:
        with self._lock:
            return self._sessions.pop(_digest(token), None) is not None

    def purge(self, is_expired: Callable[[SessionRecord], bool]) -> int:
        with self._lock:
            dead = [k for k, r in self._sessions.items() if is_expired(r)]
            for key in dead:
                del self._sessions[key]
            return len(dead)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


class AdminAuthority:
    """
    Issues, validates and revokes admin sessions, and gates admin mutations.

    Args:
        settings: Immutable configuration holding the admin password hash
        guard: Abuse Guard consulted before each login attempt
        db: Storage used by mark_paid
        store: Session store (a fresh in-memory one by default)
        clock: Wall clock in seconds, injectable for tests
    """

    def __init__(
        self,
        settings: Settings,
        guard: AbuseGuard,
        db: DatabaseInterface,
        store: Optional[SessionStore] = None,
        clock: Callable[[], float] = time.time
    ):
        self.settings = settings
        self.guard = guard
        self.db = db
        self.store = store or SessionStore()
        self._clock = clock

        if not settings.admin_password_hash:
            logger.warning("[!] No admin password configured; admin login is disabled")

    # =========================================================================
    # PASSWORD
    # =========================================================================

    def _verify_password(self, password: str) -> bool:
        password_hash = self.settings.admin_password_hash
        if not password_hash or not password:
            return False
        try:
            return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("ascii"))
        except ValueError:
            # Malformed hash, or a password bcrypt refuses (> 72 bytes)
            return False

    # =========================================================================
    # SESSIONS
    # =========================================================================

    def _expired(self, record: SessionRecord, now: float) -> Optional[str]:
        if now >= record.expires_at:
            return "expired"
        if now - record.last_active_at >= self.settings.session_idle_seconds:
            return "idle"
        return None

    def login(self, password: str, ip: str) -> Union[SessionToken, Failure]:
        """
        Verify the admin password and open a session.

        Returns:
            SessionToken, or Failure with RATE_LIMIT_LOGIN / UNAUTHORIZED
        """
        admission = self.guard.check(ip, Action.LOGIN)
        if not admission.allowed:
            record_event("admin.login", ip, "rate_limited")
            return Failure(
                kind=ErrorKind.RATE_LIMIT_LOGIN,
                message=MESSAGES[ErrorKind.RATE_LIMIT_LOGIN],
                retry_after=admission.retry_after,
            )

        # The attempt already counts; only a failure keeps it
        if not self._verify_password(password):
            attempts = self.guard.record(ip, Action.LOGIN, Outcome.FAILURE)
            record_event("admin.login", ip, "failure", attempts=attempts)
            return fail(ErrorKind.UNAUTHORIZED, "Mot de passe incorrect.")
        self.guard.record(ip, Action.LOGIN, Outcome.SUCCESS)

        now = self._clock()
        self.store.purge(lambda r: self._expired(r, now) is not None)

        token = secrets.token_urlsafe(32)
        record = SessionRecord(
            issued_at=now,
            last_active_at=now,
            expires_at=now + self.settings.session_ttl_seconds,
            ip=ip,
        )
        self.store.put(token, record)
        record_event("admin.login", ip, "success")
        return SessionToken(
            token=token,
            expires_at=record.expires_at,
            max_age=self.settings.session_ttl_seconds,
        )

    def validate(self, token: Optional[str]) -> Union[SessionContext, Failure]:
        """
        Check a presented session token.

        Returns:
            SessionContext for an Active session; UNAUTHORIZED when no token
            was presented, FORBIDDEN when it is unknown, expired or idle
        """
        if not token:
            return fail(ErrorKind.UNAUTHORIZED)

        record = self.store.get(token)
        if record is None:
            return fail(ErrorKind.FORBIDDEN, reason="unknown")

        now = self._clock()
        reason = self._expired(record, now)
        if reason is not None:
            self.store.delete(token)
            return fail(ErrorKind.FORBIDDEN, reason=reason)

        record = self.store.touch(token, now)
        if record is None:
            # Logged out by a concurrent request
            return fail(ErrorKind.FORBIDDEN, reason="unknown")

        return SessionContext(
            issued_at=record.issued_at,
            last_active_at=record.last_active_at,
            expires_at=record.expires_at,
            idle_expires_at=min(record.expires_at, now + self.settings.session_idle_seconds),
            ip=record.ip,
        )

    def logout(self, token: Optional[str], ip: str = "") -> None:
        """Invalidate a session immediately. Safe to call repeatedly."""
        if token and self.store.delete(token):
            record_event("admin.logout", ip, "success")

    # =========================================================================
    # ADMIN MUTATIONS
    # =========================================================================

    def mark_paid(
        self,
        token: Optional[str],
        registration_id: int,
        ip: str
    ) -> Union[PaymentSummary, Failure]:
        """
        Mark a registration as PAID.

        Already PAID is a success (alreadyPaid=True) so client retries are safe.

        Returns:
            PaymentSummary, or Failure (UNAUTHORIZED, FORBIDDEN, NOT_FOUND, INTERNAL)
        """
        session = self.validate(token)
        if isinstance(session, Failure):
            record_event("admin.mark_paid", ip, "denied",
                         registrationId=registration_id, code=session.kind.value)
            return session

        try:
            result = self.db.mark_registration_paid(registration_id)
        except DatabaseError:
            logger.exception(f"mark_paid failed for registration {registration_id}")
            record_event("admin.mark_paid", ip, "error", registrationId=registration_id)
            return fail(ErrorKind.INTERNAL)

        if result is None:
            record_event("admin.mark_paid", ip, "not_found", registrationId=registration_id)
            return fail(ErrorKind.NOT_FOUND, "Inscription introuvable.", registrationId=registration_id)

        row, changed = result
        record_event("admin.mark_paid", ip, "success" if changed else "noop",
                     registrationId=registration_id)
        return PaymentSummary(
            id=row['id'],
            payment_status=row['paymentStatus'],
            total_participants=row['totalParticipants'],
            total_price=row['totalPrice'],
            paid_at=row['paidAt'],
            already_paid=not changed,
        )
