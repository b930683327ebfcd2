"""
Event Logger Module

Security audit trail for the login flow. Every event is kept in memory,
mirrored to the ``logging`` module and passed to registered callbacks.

Features:
- Login success / failure events (via policy hooks)
- Logout events
- Second factor verification events
- Action token issue / redeem / reject events
- Privacy-preserving principal hashes (SHA-256)
"""

import hashlib
import json
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional

from ..auth.hooks import HookKind, PolicyHookRegistry

logger = logging.getLogger(__name__)


# ============================================================================
# Constants
# ============================================================================

EVENT_VERSION = "1.0"
UNKNOWN_PRINCIPAL = "unknown"
MAX_AUDIT_EVENTS = 10000


# ============================================================================
# Privacy Functions
# ============================================================================

def get_user_hash(principal_id: Optional[str]) -> str:
    """
    Compute privacy-preserving hash of a principal id.

    Events for the same principal can still be correlated, but the id
    itself never appears in the log.

    Args:
        principal_id: The plaintext principal id, or None if unknown

    Returns:
        Hex-encoded SHA-256 hash, or "unknown"
    """
    if principal_id is None:
        return UNKNOWN_PRINCIPAL
    return hashlib.sha256(principal_id.encode()).hexdigest()


def get_user_hash_short(principal_id: Optional[str]) -> str:
    """First 16 characters of the principal hash, for display."""
    return get_user_hash(principal_id)[:16]


# ============================================================================
# Event Types
# ============================================================================

class EventType(Enum):
    """Types of security events that can be logged."""

    # Authentication events
    LOGIN_SUCCESS = "login_success"
    LOGIN_FAILED = "login_failed"
    LOGOUT = "logout"
    SECOND_FACTOR_VERIFIED = "second_factor_verified"
    SECOND_FACTOR_FAILED = "second_factor_failed"

    # Action token events
    TOKEN_ISSUED = "token_issued"
    TOKEN_REDEEMED = "token_redeemed"
    TOKEN_REJECTED = "token_rejected"


_TOKEN_EVENTS = {
    'issued': EventType.TOKEN_ISSUED,
    'redeemed': EventType.TOKEN_REDEEMED,
    'rejected': EventType.TOKEN_REJECTED,
}


# ============================================================================
# Event Structure
# ============================================================================

@dataclass
class SecurityEvent:
    """
    Represents a security event to be logged.

    All principal-identifying information is hashed for privacy.
    """
    event_type: EventType
    user_hash: str  # SHA-256 hash of principal id
    timestamp: int  # Unix timestamp
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'version': EVENT_VERSION,
            'type': self.event_type.value,
            'user': self.user_hash[:16],  # Short hash for readability
            'time': self.timestamp,
            'iso_time': datetime.fromtimestamp(self.timestamp).isoformat(),
            'details': self.details,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SecurityEvent':
        return cls(
            event_type=EventType(data['type']),
            user_hash=data['user'],
            timestamp=data['time'],
            details=data.get('details', {}),
        )

    def __str__(self) -> str:
        dt = datetime.fromtimestamp(self.timestamp)
        return (
            f"[{dt.strftime('%Y-%m-%d %H:%M:%S')}] "
            f"{self.event_type.value} | "
            f"user:{self.user_hash[:8]}..."
        )


# ============================================================================
# Audit Log
# ============================================================================

class AuditLog:
    """
    In-memory security audit trail.

    Login outcomes reach the log through policy hooks (see ``install``);
    the orchestrators report logouts, second factor checks and token
    events directly.

    Only the newest ``max_events`` events are kept in memory; callbacks
    see every event and are the place to persist them.
    """

    def __init__(self, clock: Callable[[], float] = time.time,
                 max_events: int = MAX_AUDIT_EVENTS):
        self._clock = clock
        self._events: Deque[SecurityEvent] = deque(maxlen=max_events)
        self._callbacks: List[Callable[[SecurityEvent], None]] = []
        self._lock = threading.Lock()

    def install(self, registry: PolicyHookRegistry) -> None:
        """Register login success and failure hooks."""
        registry.register(HookKind.POST_LOGIN_SUCCESS, self._on_login_success)
        registry.register(HookKind.POST_LOGIN_FAILURE, self._on_login_failure)

    def _on_login_success(self, principal) -> None:
        self.log_login(principal.principal_id, True)

    def _on_login_failure(self, principal) -> None:
        self.log_login(principal.principal_id if principal is not None else None, False)

    def _add_event(self, event_type: EventType, principal_id: Optional[str],
                   details: Optional[Dict[str, Any]] = None) -> SecurityEvent:
        event = SecurityEvent(
            event_type=event_type,
            user_hash=get_user_hash(principal_id),
            timestamp=int(self._clock()),
            details=details or {},
        )
        with self._lock:
            self._events.append(event)
            callbacks = list(self._callbacks)

        logger.info("audit %s user=%s %s", event_type.value,
                    event.user_hash[:16], event.details)

        # Notify callbacks
        for callback in callbacks:
            try:
                callback(event)
            except Exception:
                logger.error("Audit callback %s failed",
                             getattr(callback, '__name__', callback), exc_info=True)
        return event

    def add_callback(self, callback: Callable[[SecurityEvent], None]) -> None:
        """Add a callback to be notified of new events."""
        with self._lock:
            self._callbacks.append(callback)

    def remove_callback(self, callback: Callable[[SecurityEvent], None]) -> None:
        """Remove a callback."""
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    # ========================================================================
    # Events
    # ========================================================================

    def log_login(self, principal_id: Optional[str], success: bool) -> SecurityEvent:
        """
        Log a login attempt.

        Args:
            principal_id: The principal (will be hashed), None if the email
                was not recognised
            success: Whether login was successful

        Returns:
            The logged event
        """
        return self._add_event(
            EventType.LOGIN_SUCCESS if success else EventType.LOGIN_FAILED,
            principal_id,
        )

    def log_logout(self, principal_id: str) -> SecurityEvent:
        """Log a logout event."""
        return self._add_event(EventType.LOGOUT, principal_id)

    def log_second_factor(self, principal_id: str, kind, success: bool) -> SecurityEvent:
        """Log a second factor verification attempt."""
        return self._add_event(
            EventType.SECOND_FACTOR_VERIFIED if success else EventType.SECOND_FACTOR_FAILED,
            principal_id,
            {'factor': kind.value},
        )

    def log_token(self, principal_id: Optional[str], kind, action: str,
                  failure: Optional[str] = None) -> SecurityEvent:
        """
        Log an action token lifecycle event.

        Args:
            principal_id: Principal the token belongs to, if known
            kind: ActionKind, if known
            action: One of 'issued', 'redeemed', 'rejected'
            failure: Redeem failure value for rejected tokens
        """
        details = {}
        if kind is not None:
            details['action'] = kind.value
        if failure is not None:
            details['failure'] = failure
        return self._add_event(_TOKEN_EVENTS[action], principal_id, details)

    # ========================================================================
    # Retrieval
    # ========================================================================

    def events(self, event_type: Optional[EventType] = None) -> List[SecurityEvent]:
        """All events, optionally filtered by type, oldest first."""
        with self._lock:
            events = list(self._events)
        if event_type is None:
            return events
        return [e for e in events if e.event_type == event_type]

    def get_user_events(self, principal_id: str) -> List[SecurityEvent]:
        """Get all events for a specific principal."""
        user_hash = get_user_hash(principal_id)
        return [e for e in self.events() if e.user_hash == user_hash]

    def get_recent_events(self, count: int = 10) -> List[SecurityEvent]:
        """Get the most recent events."""
        events = self.events()
        return events[-count:] if len(events) > count else events

    def to_json(self) -> str:
        """Export the entire audit log as JSON."""
        return json.dumps([e.to_dict() for e in self.events()], separators=(',', ':'))

    def __len__(self) -> int:
        return len(self._events)
