"""
Abuse Guard - per-IP sliding window counters for mutation endpoints.

A heuristic circuit breaker, not an audit trail: state lives in memory and
disappears on restart or when its TTL runs out. The policy logic only talks
to a `CounterStore`, so the in-process store can be swapped for a shared one.
"""

import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from cachetools import TTLCache

from ..config import Settings
from ..errors import ErrorKind


class Action(str, Enum):
    """Guarded action classes."""

    REGISTRATION = "registration"
    LOGIN = "login"


class Outcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True)
class Admission:
    """Result of an Abuse Guard check."""

    allowed: bool
    error: Optional[ErrorKind] = None
    retry_after: int = 0


ADMIT = Admission(allowed=True)


# =============================================================================
# COUNTER STORES
# =============================================================================

class CounterStore(ABC):
    """Atomic increment-with-expiry counters, keyed by string."""

    @abstractmethod
    def try_increment(self, key: str, window_seconds: int, limit: int) -> Tuple[bool, int]:
        """
        Record one event unless the window already holds `limit` events.

        The decision and the increment happen in one step, so concurrent
        callers can never push a key past its limit.

        Returns:
            Tuple of (allowed, count inside the window afterwards)
        """
        pass

    @abstractmethod
    def release(self, key: str, window_seconds: int) -> int:
        """Drop the most recent event of a key and return the remaining count."""
        pass

    @abstractmethod
    def count(self, key: str, window_seconds: int) -> int:
        """Count events inside the window without recording one."""
        pass

    @abstractmethod
    def block(self, key: str, seconds: int) -> None:
        """Block a key for a number of seconds."""
        pass

    @abstractmethod
    def blocked_for(self, key: str) -> int:
        """Seconds left on a block, 0 when not blocked."""
        pass

    @abstractmethod
    def reset(self) -> None:
        """Forget every counter and block (for testing)."""
        pass


class InMemoryCounterStore(CounterStore):
    """
    Process-local counter store.

    Each key keeps the timestamps of its events in a TTLCache; writing a key
    refreshes its TTL, so idle keys expire on their own. One lock guards all
    keys, which keeps increments atomic per key.
    """

    def __init__(
        self,
        ttl_seconds: int = 3600,
        maxsize: int = 100_000,
        clock: Callable[[], float] = time.monotonic
    ):
        self._clock = clock
        self._events: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl_seconds, timer=clock)
        self._blocks: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl_seconds, timer=clock)
        self._lock = threading.Lock()

    def _prune(self, key: str, window_seconds: int) -> List[float]:
        cutoff = self._clock() - window_seconds
        events = [t for t in self._events.get(key, []) if t > cutoff]
        if events:
            self._events[key] = events
        else:
            self._events.pop(key, None)
        return events

    def try_increment(self, key: str, window_seconds: int, limit: int) -> Tuple[bool, int]:
        with self._lock:
            events = self._prune(key, window_seconds)
            if len(events) >= limit:
                return False, len(events)
            events.append(self._clock())
            self._events[key] = events
            return True, len(events)

    def release(self, key: str, window_seconds: int) -> int:
        with self._lock:
            events = self._prune(key, window_seconds)
            if events:
                events.pop()
            if events:
                self._events[key] = events
            else:
                self._events.pop(key, None)
            return len(events)

    def count(self, key: str, window_seconds: int) -> int:
        with self._lock:
            return len(self._prune(key, window_seconds))

    def block(self, key: str, seconds: int) -> None:
        with self._lock:
            self._blocks[key] = self._clock() + seconds

    def blocked_for(self, key: str) -> int:
        with self._lock:
            until = self._blocks.get(key)
            if until is None:
                return 0
            remaining = until - self._clock()
            if remaining <= 0:
                self._blocks.pop(key, None)
                return 0
            return max(1, int(remaining + 0.999))

    def reset(self) -> None:
        with self._lock:
            self._events.clear()
            self._blocks.clear()


# =============================================================================
# POLICY
# =============================================================================

class AbuseGuard:
    """
    Rate limiting policy for registrations and admin logins.

    `check()` admits a request and reserves its slot in the same step;
    `record()` settles that reservation once the outcome is known.

    Registration: an admitted request holds a slot in both the success and
    the failure window until it finishes, then keeps only the one matching
    its outcome. Requests are rejected once either window is full, and a
    rejection starts a cooldown.
    Login: every admitted attempt counts straight away; a successful login
    gives its slot back, so only failures accumulate.
    """

    def __init__(self, settings: Settings, store: Optional[CounterStore] = None):
        self.settings = settings
        ttl = max(
            settings.registration_window_seconds,
            settings.registration_cooldown_seconds,
            settings.login_window_seconds,
        )
        self.store = store or InMemoryCounterStore(ttl_seconds=ttl)

    @staticmethod
    def _key(ip: str, action: Action, suffix: str = "") -> str:
        return f"{action.value}:{ip}:{suffix}" if suffix else f"{action.value}:{ip}"

    def check(self, ip: str, action: Action) -> Admission:
        """
        Decide whether a request from `ip` may proceed.

        An admitted request holds a reservation; the caller must settle it
        with `record()` whatever happens next.
        """
        if action is Action.LOGIN:
            return self._check_login(ip)
        return self._check_registration(ip)

    def _check_login(self, ip: str) -> Admission:
        s = self.settings
        allowed, _ = self.store.try_increment(
            self._key(ip, Action.LOGIN), s.login_window_seconds, s.login_max_attempts)
        if not allowed:
            return Admission(False, ErrorKind.RATE_LIMIT_LOGIN, s.login_window_seconds)
        return ADMIT

    def _check_registration(self, ip: str) -> Admission:
        s = self.settings
        block_key = self._key(ip, Action.REGISTRATION, "block")
        remaining = self.store.blocked_for(block_key)
        if remaining:
            return Admission(False, ErrorKind.RATE_LIMIT, remaining)

        window = s.registration_window_seconds
        success_key = self._key(ip, Action.REGISTRATION, Outcome.SUCCESS.value)
        failure_key = self._key(ip, Action.REGISTRATION, Outcome.FAILURE.value)

        allowed, _ = self.store.try_increment(success_key, window, s.registration_max_successes)
        if allowed:
            allowed, _ = self.store.try_increment(failure_key, window, s.registration_max_failures)
            if not allowed:
                self.store.release(success_key, window)
        if not allowed:
            self.store.block(block_key, s.registration_cooldown_seconds)
            return Admission(False, ErrorKind.RATE_LIMIT, s.registration_cooldown_seconds)
        return ADMIT

    def record(self, ip: str, action: Action, outcome: Optional[Outcome]) -> int:
        """
        Settle the reservation made by an admitted `check()`.

        Args:
            outcome: SUCCESS or FAILURE, or None when the request should not
                count at all (server-side faults)

        Returns:
            The updated count for the counter matching the outcome
            (failed login attempts for logins)
        """
        s = self.settings
        if action is Action.LOGIN:
            key = self._key(ip, Action.LOGIN)
            if outcome is Outcome.FAILURE:
                return self.store.count(key, s.login_window_seconds)
            return self.store.release(key, s.login_window_seconds)

        window = s.registration_window_seconds
        counts = {}
        for kept in Outcome:
            key = self._key(ip, Action.REGISTRATION, kept.value)
            if kept is outcome:
                counts[kept] = self.store.count(key, window)
            else:
                counts[kept] = self.store.release(key, window)
        return counts[outcome] if outcome is not None else 0

    def snapshot(self, ip: str) -> Dict[str, int]:
        """Current counters for one IP."""
        s = self.settings
        return {
            "registrationSuccesses": self.store.count(
                self._key(ip, Action.REGISTRATION, Outcome.SUCCESS.value), s.registration_window_seconds),
            "registrationFailures": self.store.count(
                self._key(ip, Action.REGISTRATION, Outcome.FAILURE.value), s.registration_window_seconds),
            "loginAttempts": self.store.count(self._key(ip, Action.LOGIN), s.login_window_seconds),
            "blockedFor": self.store.blocked_for(self._key(ip, Action.REGISTRATION, "block")),
        }

    def reset(self) -> None:
        """Reset all counters (for testing)."""
        self.store.reset()
