# Authentication Module
"""
Authentication implementations including:
- Password hashing (Argon2id) and the user store - credentials.py
- Login state machine - login.py
- Session states and HMAC-verified session store - session.py
- Policy hook registry - hooks.py
- Failed-login lockout - lockout.py

Security features:
- Argon2id for password hashing (PHC winner)
- Constant-time comparison for hash verification
- Cryptographically secure random tokens
- Rate limiting against brute-force attacks
"""

from .credentials import (
    PasswordHasher_,
    PrincipalSnapshot,
    UserStore,
    is_valid_email,
    validate_password_strength,
)

from .hooks import (
    HookKind,
    PolicyHookRegistry,
    account_state_hook,
)

from .lockout import (
    LockoutPolicy,
    RateLimiter,
)

from .session import (
    ANONYMOUS,
    AnonymousSession,
    AuthenticatedSession,
    PartialSession,
    SessionState,
    SessionStore,
)

from .login import LoginOrchestrator

__all__ = [
    # Credentials
    'PasswordHasher_',
    'PrincipalSnapshot',
    'UserStore',
    'is_valid_email',
    'validate_password_strength',
    # Hooks
    'HookKind',
    'PolicyHookRegistry',
    'account_state_hook',
    'LockoutPolicy',
    'RateLimiter',
    # Sessions
    'ANONYMOUS',
    'AnonymousSession',
    'AuthenticatedSession',
    'PartialSession',
    'SessionState',
    'SessionStore',
    # Login
    'LoginOrchestrator',
]
