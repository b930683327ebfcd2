# Integration Module
"""
Security audit logging for the login flow.

All events are logged with privacy-preserving principal hashes.
"""

from .event_logger import (
    AuditLog,
    EventType,
    SecurityEvent,
    get_user_hash,
)

__all__ = [
    'AuditLog',
    'EventType',
    'SecurityEvent',
    'get_user_hash',
]
