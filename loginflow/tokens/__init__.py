# Action Token Module
"""
Single-use, time-bound action tokens:
- Data model and redemption outcomes - models.py
- Token stores with atomic consumption - store.py, sql_store.py
- Issue / stash / redeem lifecycle - orchestrator.py
"""

from .models import (
    ActionKind,
    ActionToken,
    RedeemFailure,
    RedeemOutcome,
)

from .store import (
    TokenStore,
    InMemoryTokenStore,
)

from .orchestrator import (
    ActionTokenOrchestrator,
    TOKEN_BYTES,
)

__all__ = [
    'ActionKind',
    'ActionToken',
    'RedeemFailure',
    'RedeemOutcome',
    'TokenStore',
    'InMemoryTokenStore',
    'ActionTokenOrchestrator',
    'TOKEN_BYTES',
]
