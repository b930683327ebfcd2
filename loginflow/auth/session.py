"""
Login Session Module

Implements the per-caller session state threaded through every
orchestrator call, and the transport-level session store it is kept in:
- Anonymous / partially authenticated / authenticated states
- One-shot stashed action token (the "flash")
- HMAC-SHA256 verified session cookies

Security considerations:
- Only the login orchestrator changes the authentication state
- Session tokens are cryptographically random
- Constant-time comparison (hmac.compare_digest) for token verification
- The partial-login TTL is checked lazily by the orchestrator
"""

import copy
import hashlib
import hmac
import secrets
import threading
import time
from dataclasses import dataclass
from typing import Dict, FrozenSet, Optional, Tuple, Union

from ..kinds import FactorKind


SESSION_TOKEN_BYTES = 32  # 256-bit tokens
SESSION_ID_BYTES = 16


@dataclass(frozen=True)
class AnonymousSession:
    """No principal bound."""


@dataclass(frozen=True)
class PartialSession:
    """Credentials verified, second factor outstanding."""
    principal_id: str
    pending_factors: FrozenSet[FactorKind]
    issued_at: float

    def is_expired(self, ttl: float, now: float) -> bool:
        """Check if the partial login is older than ``ttl`` seconds."""
        return now - self.issued_at >= ttl


@dataclass(frozen=True)
class AuthenticatedSession:
    """Terminal state for the current login."""
    principal_id: str


ANONYMOUS = AnonymousSession()

LoginSession = Union[AnonymousSession, PartialSession, AuthenticatedSession]


class SessionState:
    """
    Mutable session value owned by the caller's transport session.

    The caller loads it, passes it to orchestrator calls, and persists it
    afterwards. The login state is read-only from outside the login
    orchestrator.
    """

    def __init__(self, login: LoginSession = ANONYMOUS,
                 stashed_token: Optional[str] = None,
                 locale: str = "en"):
        self._login = login
        self._stashed_token = stashed_token
        self.locale = locale

    @property
    def login(self) -> LoginSession:
        return self._login

    @property
    def is_authenticated(self) -> bool:
        return isinstance(self._login, AuthenticatedSession)

    @property
    def principal_id(self) -> Optional[str]:
        """Authenticated principal, or None (partial logins do not count)."""
        if isinstance(self._login, AuthenticatedSession):
            return self._login.principal_id
        return None

    @property
    def pending_principal_id(self) -> Optional[str]:
        """Principal of a partial login awaiting a second factor."""
        if isinstance(self._login, PartialSession):
            return self._login.principal_id
        return None

    def _transition(self, login: LoginSession) -> None:
        # Reserved for LoginOrchestrator.
        self._login = login

    def stash_token(self, token: str) -> bool:
        """
        Store an action token for deferred redemption.

        Returns:
            True if an earlier stashed token was overwritten
        """
        replaced = self._stashed_token is not None
        self._stashed_token = token
        return replaced

    def peek_token(self) -> Optional[str]:
        return self._stashed_token

    def pop_token(self) -> Optional[str]:
        """Read and clear the stashed token (one-shot)."""
        token, self._stashed_token = self._stashed_token, None
        return token

    def copy(self) -> 'SessionState':
        return copy.copy(self)

    def __repr__(self) -> str:
        return f"SessionState(login={self._login!r}, stashed={self._stashed_token is not None})"


@dataclass
class _SessionRecord:
    session_id: str
    token_hash: str
    created_at: float
    expires_at: float
    state: SessionState

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


class SessionStore:
    """
    In-process transport session store keyed by session id.

    A caller presents ``(session_id, token)``; the store keeps only the HMAC
    of the token and hands out copies of the state so nothing is shared
    between concurrent requests.
    """

    def __init__(self, secret_key: bytes = None,
                 expiry_seconds: int = 3600,
                 clock=time.time):
        """
        Initialize session store.

        Args:
            secret_key: Server-side secret for HMAC (generated if not provided)
            expiry_seconds: Session lifetime in seconds
            clock: Time source
        """
        self._secret_key = secret_key or secrets.token_bytes(32)
        self._expiry_seconds = expiry_seconds
        self._clock = clock
        self._sessions: Dict[str, _SessionRecord] = {}
        self._lock = threading.Lock()

    def _hash(self, token: str) -> str:
        return hmac.new(self._secret_key, token.encode(), hashlib.sha256).hexdigest()

    def create(self, state: SessionState = None) -> Tuple[str, str]:
        """
        Create a new transport session.

        Returns:
            Tuple of (session_id, session_token)
        """
        token = secrets.token_hex(SESSION_TOKEN_BYTES)
        session_id = secrets.token_hex(SESSION_ID_BYTES)
        now = self._clock()

        record = _SessionRecord(
            session_id=session_id,
            token_hash=self._hash(token),
            created_at=now,
            expires_at=now + self._expiry_seconds,
            state=(state or SessionState()).copy(),
        )
        with self._lock:
            self._sessions[session_id] = record
        return session_id, token

    def _verified(self, session_id: str, token: str) -> Optional[_SessionRecord]:
        record = self._sessions.get(session_id)
        if record is None:
            return None
        if record.is_expired(self._clock()):
            del self._sessions[session_id]
            return None
        # CONSTANT-TIME comparison
        if not hmac.compare_digest(self._hash(token), record.token_hash):
            return None
        return record

    def load(self, session_id: str, token: str) -> Optional[SessionState]:
        """
        Load the session state if the token verifies.

        Returns:
            A private copy of the state, or None for unknown, expired or
            forged sessions
        """
        with self._lock:
            record = self._verified(session_id, token)
            return record.state.copy() if record else None

    def save(self, session_id: str, token: str, state: SessionState) -> bool:
        """Persist ``state``; returns False if the session is gone or forged."""
        with self._lock:
            record = self._verified(session_id, token)
            if record is None:
                return False
            record.state = state.copy()
            return True

    def invalidate(self, session_id: str) -> bool:
        """Drop a session. Returns False if it was not found."""
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def cleanup_expired(self) -> int:
        """
        Remove expired sessions.

        Returns:
            Number of sessions removed
        """
        now = self._clock()
        with self._lock:
            expired = [sid for sid, record in self._sessions.items()
                       if record.is_expired(now)]
            for sid in expired:
                del self._sessions[sid]
        return len(expired)

    def __len__(self) -> int:
        return len(self._sessions)
