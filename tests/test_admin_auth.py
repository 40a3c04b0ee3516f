"""Tests for the Admin Session Authority."""

import pytest
import json
import logging
import threading
from dataclasses import replace
from unittest.mock import patch

from scoutrace.errors import ErrorKind, Failure
from scoutrace.models import PaymentSummary
from scoutrace.services.abuse_guard import AbuseGuard, InMemoryCounterStore
from scoutrace.services.admin_auth import AdminAuthority, SessionContext, SessionToken
from scoutrace.services.registration_service import RegistrationService
from scoutrace.storage.exceptions import QueryError


IP = "192.0.2.10"


@pytest.fixture
def authority(settings, seeded_db, clock):
    guard = AbuseGuard(settings, InMemoryCounterStore(clock=clock))
    return AdminAuthority(settings, guard, seeded_db, clock=clock)


@pytest.fixture
def registration_id(settings, seeded_db, valid_payload):
    return RegistrationService(seeded_db, settings).submit(valid_payload).id


class TestLogin:
    """Tests for login."""

    def test_correct_password(self, authority, admin_password, settings):
        result = authority.login(admin_password, IP)

        assert isinstance(result, SessionToken)
        assert len(result.token) >= 32
        assert result.max_age == settings.session_ttl_seconds
        assert len(authority.store) == 1

    def test_token_is_not_stored_raw(self, authority, admin_password):
        token = authority.login(admin_password, IP).token
        assert token not in authority.store._sessions

    def test_wrong_password(self, authority):
        result = authority.login("wrong", IP)

        assert isinstance(result, Failure)
        assert result.kind is ErrorKind.UNAUTHORIZED
        assert len(authority.store) == 0

    def test_fifth_attempt_rate_limited_even_if_correct(self, authority, admin_password):
        """After four failures the correct password is refused too."""
        for _ in range(4):
            assert authority.login("wrong", IP).kind is ErrorKind.UNAUTHORIZED

        result = authority.login(admin_password, IP)
        assert result.kind is ErrorKind.RATE_LIMIT_LOGIN
        assert result.status_code == 429
        assert result.retry_after == 300

    def test_successes_do_not_count(self, authority, admin_password):
        for _ in range(6):
            assert isinstance(authority.login(admin_password, IP), SessionToken)

    def test_concurrent_wrong_passwords_capped(self, authority):
        """A burst of simultaneous guesses gets no more password checks than the limit."""
        checked = []
        lock = threading.Lock()

        def verify(password):
            with lock:
                checked.append(password)
            return False

        barrier = threading.Barrier(20)

        def guess():
            barrier.wait()
            authority.login("wrong password", IP)

        with patch.object(authority, "_verify_password", side_effect=verify):
            threads = [threading.Thread(target=guess) for _ in range(20)]
            for t in threads:
                t.start()
            for t in threads:
                t.join()

        assert len(checked) == 4

    def test_no_password_configured(self, settings, seeded_db, clock):
        no_hash = replace(settings, admin_password_hash=None)
        authority = AdminAuthority(no_hash, AbuseGuard(no_hash), seeded_db, clock=clock)
        assert authority.login("anything", IP).kind is ErrorKind.UNAUTHORIZED

    def test_audit_never_logs_password(self, authority, caplog):
        with caplog.at_level(logging.INFO, logger="scoutrace.audit"):
            authority.login("hunter2-secret", IP)

        events = [json.loads(r.getMessage()) for r in caplog.records if r.name == "scoutrace.audit"]
        assert events[0]["event"] == "admin.login"
        assert events[0]["outcome"] == "failure"
        assert events[0]["ip"] == IP
        assert "hunter2-secret" not in caplog.text


class TestValidate:
    """Tests for session validation."""

    def test_active_session(self, authority, admin_password, settings, clock):
        token = authority.login(admin_password, IP).token
        result = authority.validate(token)

        assert isinstance(result, SessionContext)
        assert result.expires_at == clock.now + settings.session_ttl_seconds

    def test_missing_token(self, authority):
        assert authority.validate(None).kind is ErrorKind.UNAUTHORIZED
        assert authority.validate("").kind is ErrorKind.UNAUTHORIZED

    def test_unknown_token(self, authority):
        result = authority.validate("forged-token")
        assert result.kind is ErrorKind.FORBIDDEN
        assert result.details == {"reason": "unknown"}

    def test_absolute_ttl(self, authority, admin_password, clock, settings):
        """Activity does not extend the session past its TTL."""
        token = authority.login(admin_password, IP).token
        for _ in range(5):
            clock.advance(settings.session_ttl_seconds / 5 - 1)
            assert isinstance(authority.validate(token), SessionContext)

        clock.advance(10)
        result = authority.validate(token)
        assert result.kind is ErrorKind.FORBIDDEN
        assert result.details == {"reason": "expired"}
        assert len(authority.store) == 0

    def test_idle_timeout(self, authority, admin_password, clock, settings):
        token = authority.login(admin_password, IP).token
        clock.advance(settings.session_idle_seconds)

        result = authority.validate(token)
        assert result.kind is ErrorKind.FORBIDDEN
        assert result.details == {"reason": "idle"}

    def test_activity_resets_idle_timer(self, authority, admin_password, clock, settings):
        token = authority.login(admin_password, IP).token
        clock.advance(settings.session_idle_seconds - 1)
        assert isinstance(authority.validate(token), SessionContext)
        clock.advance(settings.session_idle_seconds - 1)
        assert isinstance(authority.validate(token), SessionContext)

    def test_expired_sessions_purged_on_login(self, authority, admin_password, clock, settings):
        authority.login(admin_password, IP)
        clock.advance(settings.session_ttl_seconds + 1)
        authority.login(admin_password, IP)
        assert len(authority.store) == 1


class TestLogout:
    """Tests for logout."""

    def test_logout_invalidates(self, authority, admin_password):
        token = authority.login(admin_password, IP).token
        authority.logout(token, IP)
        assert authority.validate(token).kind is ErrorKind.FORBIDDEN

    def test_logout_is_idempotent(self, authority, admin_password):
        token = authority.login(admin_password, IP).token
        authority.logout(token, IP)
        authority.logout(token, IP)
        authority.logout(None, IP)
        assert len(authority.store) == 0


class TestMarkPaid:
    """Tests for marking a registration as paid."""

    def test_mark_paid(self, authority, admin_password, registration_id):
        token = authority.login(admin_password, IP).token
        result = authority.mark_paid(token, registration_id, IP)

        assert isinstance(result, PaymentSummary)
        assert result.payment_status.value == "PAID"
        assert result.paid_at is not None
        assert result.already_paid is False

    def test_mark_paid_twice(self, authority, admin_password, registration_id):
        """Repeating the call succeeds and keeps the first payment date."""
        token = authority.login(admin_password, IP).token
        first = authority.mark_paid(token, registration_id, IP)
        second = authority.mark_paid(token, registration_id, IP)

        assert second.already_paid is True
        assert second.paid_at == first.paid_at
        assert second.to_response()["alreadyPaid"] is True

    def test_mark_paid_unknown_registration(self, authority, admin_password):
        token = authority.login(admin_password, IP).token
        result = authority.mark_paid(token, 9999, IP)
        assert result.kind is ErrorKind.NOT_FOUND
        assert result.status_code == 404

    def test_mark_paid_without_session(self, authority, registration_id, seeded_db):
        assert authority.mark_paid(None, registration_id, IP).kind is ErrorKind.UNAUTHORIZED
        assert authority.mark_paid("stale", registration_id, IP).kind is ErrorKind.FORBIDDEN
        details = seeded_db.get_registration_details(registration_id)
        assert details["registration"]["paymentStatus"] == "PENDING"

    def test_mark_paid_storage_error(self, authority, admin_password, registration_id, seeded_db):
        token = authority.login(admin_password, IP).token
        with patch.object(seeded_db, "mark_registration_paid", side_effect=QueryError("locked")):
            result = authority.mark_paid(token, registration_id, IP)
        assert result.kind is ErrorKind.INTERNAL
