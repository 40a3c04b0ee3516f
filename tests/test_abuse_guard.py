"""Tests for the Abuse Guard."""

import pytest
import threading

from scoutrace.config import Settings
from scoutrace.errors import ErrorKind
from scoutrace.services.abuse_guard import AbuseGuard, Action, InMemoryCounterStore, Outcome


IP = "203.0.113.7"


@pytest.fixture
def guard(clock):
    settings = Settings()
    return AbuseGuard(settings, InMemoryCounterStore(ttl_seconds=3600, clock=clock))


def attempt(guard, action, outcome, ip=IP):
    """Run one admitted request through the guard."""
    admission = guard.check(ip, action)
    if admission.allowed:
        guard.record(ip, action, outcome)
    return admission


def run_together(count, target):
    """Start `count` threads on `target` at the same moment and wait for them."""
    barrier = threading.Barrier(count)

    def worker():
        barrier.wait()
        target()

    threads = [threading.Thread(target=worker) for _ in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()


class TestCounterStore:
    """Tests for the in-memory counter store."""

    def test_increment_counts_inside_window(self, clock):
        store = InMemoryCounterStore(clock=clock)
        assert store.try_increment("k", 60, 10) == (True, 1)
        clock.advance(30)
        assert store.try_increment("k", 60, 10) == (True, 2)
        clock.advance(31)
        # First event has left the window
        assert store.count("k", 60) == 1

    def test_increment_refused_at_limit(self, clock):
        store = InMemoryCounterStore(clock=clock)
        store.try_increment("k", 60, 2)
        store.try_increment("k", 60, 2)

        assert store.try_increment("k", 60, 2) == (False, 2)
        assert store.count("k", 60) == 2

    def test_release(self, clock):
        store = InMemoryCounterStore(clock=clock)
        store.try_increment("k", 60, 5)
        store.try_increment("k", 60, 5)

        assert store.release("k", 60) == 1
        assert store.release("k", 60) == 0
        assert store.release("k", 60) == 0

    def test_block_expires(self, clock):
        store = InMemoryCounterStore(clock=clock)
        store.block("b", 900)
        assert store.blocked_for("b") == 900
        clock.advance(899.5)
        assert store.blocked_for("b") == 1
        clock.advance(1)
        assert store.blocked_for("b") == 0

    def test_increment_is_atomic(self):
        """Concurrent increments are never lost."""
        store = InMemoryCounterStore()

        def hammer():
            for _ in range(200):
                store.try_increment("shared", 3600, 10_000)

        run_together(8, hammer)

        assert store.count("shared", 3600) == 1600

    def test_limit_holds_under_contention(self):
        store = InMemoryCounterStore()
        admitted = []

        def grab():
            allowed, _ = store.try_increment("shared", 3600, 4)
            if allowed:
                admitted.append(True)

        run_together(20, grab)

        assert len(admitted) == 4
        assert store.count("shared", 3600) == 4


class TestRegistrationPolicy:
    """Tests for registration rate limiting."""

    def test_first_request_allowed(self, guard):
        assert guard.check(IP, Action.REGISTRATION).allowed is True

    def test_blocked_after_three_successes(self, guard):
        """The fourth registration within the window is refused."""
        for _ in range(3):
            assert attempt(guard, Action.REGISTRATION, Outcome.SUCCESS).allowed

        admission = guard.check(IP, Action.REGISTRATION)
        assert admission.allowed is False
        assert admission.error is ErrorKind.RATE_LIMIT
        assert admission.retry_after == 900

    def test_blocked_after_five_failures(self, guard):
        for _ in range(5):
            attempt(guard, Action.REGISTRATION, Outcome.FAILURE)

        assert guard.check(IP, Action.REGISTRATION).error is ErrorKind.RATE_LIMIT

    def test_four_failures_still_allowed(self, guard):
        for _ in range(4):
            attempt(guard, Action.REGISTRATION, Outcome.FAILURE)
        assert guard.check(IP, Action.REGISTRATION).allowed

    def test_uncounted_outcome_frees_both_slots(self, guard):
        """Requests settled without an outcome leave no trace."""
        for _ in range(10):
            assert attempt(guard, Action.REGISTRATION, None).allowed

        assert guard.snapshot(IP)["registrationSuccesses"] == 0
        assert guard.snapshot(IP)["registrationFailures"] == 0

    def test_record_returns_count(self, guard):
        attempt(guard, Action.REGISTRATION, Outcome.FAILURE)
        guard.check(IP, Action.REGISTRATION)
        assert guard.record(IP, Action.REGISTRATION, Outcome.FAILURE) == 2

    def test_in_flight_requests_hold_slots(self, guard):
        """Admitted requests that have not finished still count."""
        for _ in range(3):
            assert guard.check(IP, Action.REGISTRATION).allowed

        assert guard.check(IP, Action.REGISTRATION).allowed is False

    def test_concurrent_registrations_capped(self, guard):
        """Simultaneous requests from one IP cannot exceed the limit."""
        admitted = []

        def register():
            if guard.check(IP, Action.REGISTRATION).allowed:
                admitted.append(True)
                guard.record(IP, Action.REGISTRATION, Outcome.SUCCESS)

        run_together(20, register)

        assert len(admitted) == 3
        assert guard.snapshot(IP)["registrationSuccesses"] == 3
        assert guard.snapshot(IP)["registrationFailures"] == 0

    def test_cooldown_outlasts_window(self, guard, clock):
        """Once tripped, the block holds until the cooldown ends."""
        for _ in range(3):
            attempt(guard, Action.REGISTRATION, Outcome.SUCCESS)
        assert not guard.check(IP, Action.REGISTRATION).allowed

        # Window (300s) is over but the cooldown (900s) is not
        clock.advance(400)
        admission = guard.check(IP, Action.REGISTRATION)
        assert admission.allowed is False
        assert admission.retry_after == 500

        clock.advance(500)
        assert guard.check(IP, Action.REGISTRATION).allowed

    def test_ips_are_independent(self, guard):
        for _ in range(3):
            attempt(guard, Action.REGISTRATION, Outcome.SUCCESS)
        assert not guard.check(IP, Action.REGISTRATION).allowed
        assert guard.check("198.51.100.1", Action.REGISTRATION).allowed


class TestLoginPolicy:
    """Tests for login rate limiting."""

    def test_fifth_attempt_rejected(self, guard):
        """Four failed attempts block the fifth."""
        for _ in range(4):
            assert attempt(guard, Action.LOGIN, Outcome.FAILURE).allowed

        admission = guard.check(IP, Action.LOGIN)
        assert admission.allowed is False
        assert admission.error is ErrorKind.RATE_LIMIT_LOGIN
        assert admission.retry_after == 300

    def test_success_gives_slot_back(self, guard):
        for _ in range(10):
            assert attempt(guard, Action.LOGIN, Outcome.SUCCESS).allowed
        assert guard.snapshot(IP)["loginAttempts"] == 0

    def test_concurrent_attempts_capped(self, guard):
        admitted = []

        def login():
            if guard.check(IP, Action.LOGIN).allowed:
                admitted.append(True)

        run_together(20, login)

        assert len(admitted) == 4

    def test_window_slides(self, guard, clock):
        for _ in range(4):
            attempt(guard, Action.LOGIN, Outcome.FAILURE)
        clock.advance(301)
        assert guard.check(IP, Action.LOGIN).allowed

    def test_login_and_registration_counted_apart(self, guard):
        for _ in range(4):
            attempt(guard, Action.LOGIN, Outcome.FAILURE)
        assert guard.check(IP, Action.REGISTRATION).allowed


class TestSnapshotAndReset:
    """Tests for inspection helpers."""

    def test_snapshot(self, guard):
        attempt(guard, Action.REGISTRATION, Outcome.SUCCESS)
        attempt(guard, Action.REGISTRATION, Outcome.FAILURE)
        attempt(guard, Action.REGISTRATION, Outcome.FAILURE)
        attempt(guard, Action.LOGIN, Outcome.FAILURE)

        assert guard.snapshot(IP) == {
            "registrationSuccesses": 1,
            "registrationFailures": 2,
            "loginAttempts": 1,
            "blockedFor": 0,
        }

    def test_reset_clears_blocks(self, guard):
        for _ in range(3):
            attempt(guard, Action.REGISTRATION, Outcome.SUCCESS)
        guard.check(IP, Action.REGISTRATION)
        guard.reset()

        assert guard.check(IP, Action.REGISTRATION).allowed
        assert guard.snapshot(IP)["blockedFor"] == 0
