"""
Login Lockout Policy

Rate limiting of failed logins, contributed to the login state machine as
policy hooks:
- PreLogin: deny while the principal is locked out
- PostLoginFailure: count the failed attempt
- PostLoginSuccess: reset the counter
"""

import logging
import threading
import time
from collections import defaultdict
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from .hooks import HookKind, PolicyHookRegistry

logger = logging.getLogger(__name__)


MAX_LOGIN_ATTEMPTS = 5
LOCKOUT_DURATION_SECONDS = 300  # 5 minutes
ATTEMPT_WINDOW_SECONDS = 300    # 5 minute window for counting attempts
MAX_TRACKED_IDENTIFIERS = 10000

TOO_MANY_ATTEMPTS = "TooManyAttempts"


@dataclass
class LoginAttempt:
    """Track login attempts for rate limiting."""
    attempts: int = 0
    first_attempt_time: float = 0.0
    lockout_until: float = 0.0


class RateLimiter:
    """
    Rate limiter to prevent brute-force login attacks.

    Tracks failed login attempts per identifier and enforces lockout periods
    after too many failures.
    """

    def __init__(self, max_attempts: int = MAX_LOGIN_ATTEMPTS,
                 lockout_duration: int = LOCKOUT_DURATION_SECONDS,
                 window_seconds: int = ATTEMPT_WINDOW_SECONDS,
                 clock: Callable[[], float] = time.time):
        """
        Initialize rate limiter.

        Args:
            max_attempts: Maximum failed attempts before lockout
            lockout_duration: Lockout duration in seconds
            window_seconds: Time window for counting attempts
            clock: Time source
        """
        self._attempts: Dict[str, LoginAttempt] = defaultdict(LoginAttempt)
        self._max_attempts = max_attempts
        self._lockout_duration = lockout_duration
        self._window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()

    def is_locked_out(self, identifier: str) -> Tuple[bool, int]:
        """
        Check if an identifier is locked out.

        Returns:
            Tuple of (is_locked, seconds_remaining)
        """
        with self._lock:
            attempt = self._attempts.get(identifier)
            if not attempt:
                return False, 0

            now = self._clock()

            if attempt.lockout_until > now:
                return True, int(attempt.lockout_until - now)

            # Forget the identifier once its window has passed
            if now - attempt.first_attempt_time > self._window_seconds:
                del self._attempts[identifier]

            return False, 0

    def record_attempt(self, identifier: str, success: bool) -> bool:
        """
        Record a login attempt.

        Returns:
            True if this attempt triggered a lockout
        """
        with self._lock:
            now = self._clock()

            if success:
                self._attempts.pop(identifier, None)
                return False

            if identifier not in self._attempts and len(self._attempts) >= MAX_TRACKED_IDENTIFIERS:
                self._prune(now)

            attempt = self._attempts[identifier]

            if now - attempt.first_attempt_time > self._window_seconds:
                attempt = LoginAttempt()
                self._attempts[identifier] = attempt

            if attempt.attempts == 0:
                attempt.first_attempt_time = now

            attempt.attempts += 1

            if attempt.attempts >= self._max_attempts and attempt.lockout_until <= now:
                attempt.lockout_until = now + self._lockout_duration
                return True
            return False

    def get_remaining_attempts(self, identifier: str) -> int:
        """Get number of remaining login attempts."""
        with self._lock:
            attempt = self._attempts.get(identifier)
            if not attempt:
                return self._max_attempts

            if self._clock() - attempt.first_attempt_time > self._window_seconds:
                return self._max_attempts

            return max(0, self._max_attempts - attempt.attempts)

    def reset(self, identifier: str) -> None:
        """Reset attempts for an identifier."""
        with self._lock:
            self._attempts.pop(identifier, None)

    def _prune(self, now: float) -> int:
        stale = [identifier for identifier, attempt in self._attempts.items()
                 if attempt.lockout_until <= now
                 and now - attempt.first_attempt_time > self._window_seconds]
        for identifier in stale:
            del self._attempts[identifier]
        return len(stale)

    def cleanup_expired(self) -> int:
        """
        Drop identifiers whose window and lockout have both passed.

        Returns:
            Number of identifiers removed
        """
        with self._lock:
            return self._prune(self._clock())

    def __len__(self) -> int:
        return len(self._attempts)


class LockoutPolicy:
    """
    Per-principal lockout wired into the policy hook registry.

    Args:
        limiter: Rate limiter keyed by principal id
        on_lockout: Called with the principal id when a lockout starts
            (e.g. to lock the account and send an unlock token)
    """

    def __init__(self, limiter: Optional[RateLimiter] = None,
                 on_lockout: Optional[Callable[[str], None]] = None):
        self._limiter = limiter if limiter is not None else RateLimiter()
        self._on_lockout = on_lockout

    @property
    def limiter(self) -> RateLimiter:
        return self._limiter

    def install(self, registry: PolicyHookRegistry) -> None:
        registry.register(HookKind.PRE_LOGIN, self.pre_login)
        registry.register(HookKind.POST_LOGIN_FAILURE, self.post_login_failure)
        registry.register(HookKind.POST_LOGIN_SUCCESS, self.post_login_success)

    def pre_login(self, principal) -> Tuple[bool, Optional[str]]:
        locked, remaining = self._limiter.is_locked_out(principal.principal_id)
        if locked:
            logger.info("Principal %s locked out for %ds more",
                        principal.principal_id, remaining)
            return False, TOO_MANY_ATTEMPTS
        return True, None

    def post_login_failure(self, principal) -> None:
        if principal is None:
            return
        if self._limiter.record_attempt(principal.principal_id, success=False):
            logger.warning("Principal %s locked out after repeated failures",
                           principal.principal_id)
            if self._on_lockout is not None:
                self._on_lockout(principal.principal_id)

    def post_login_success(self, principal) -> None:
        self._limiter.record_attempt(principal.principal_id, success=True)

    def reset(self, principal_id: str) -> None:
        self._limiter.reset(principal_id)
