"""
Service assembly.

Builds every component from one AuthConfig, registers hooks, providers and
action handlers in a fixed order, and freezes the registries by
constructing the login orchestrator. Nothing is looked up from global
state at request time.

Hook registration order:
1. account_state_hook (PreLogin)
2. LockoutPolicy (PreLogin, PostLoginFailure, PostLoginSuccess)
3. record_login (PostLoginSuccess)
4. AuditLog (PostLoginSuccess, PostLoginFailure)
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from .auth.credentials import PasswordHasher_, UserStore
from .auth.hooks import HookKind, PolicyHookRegistry, account_state_hook
from .auth.lockout import LockoutPolicy, RateLimiter, TOO_MANY_ATTEMPTS
from .auth.login import LoginOrchestrator
from .auth.session import SessionStore
from .config import AuthConfig
from .factors import (
    EnrollmentGate, RecoveryCodeProvider, SecondFactorRegistry, TotpProvider, U2fProvider,
)
from .integration.event_logger import AuditLog
from .tokens import ActionKind, ActionTokenOrchestrator, InMemoryTokenStore, TokenStore

logger = logging.getLogger(__name__)


@dataclass
class LoginFlowApp:
    """All components of one service instance."""
    config: AuthConfig
    users: UserStore
    tokens: ActionTokenOrchestrator
    factors: SecondFactorRegistry
    totp: TotpProvider
    u2f: U2fProvider
    recovery: RecoveryCodeProvider
    hooks: PolicyHookRegistry
    lockout: LockoutPolicy
    audit: AuditLog
    sessions: SessionStore
    login: LoginOrchestrator


def create_app(config: Optional[AuthConfig] = None,
               user_store: Optional[UserStore] = None,
               token_store: Optional[TokenStore] = None,
               clock: Callable[[], float] = time.time) -> LoginFlowApp:
    """
    Build a fully wired service instance.

    Args:
        config: Service configuration (fresh defaults if None)
        user_store: User store (in-memory store using ``config.argon2`` if None)
        token_store: Action token store (InMemoryTokenStore if None)
        clock: Time source shared by every component

    Returns:
        LoginFlowApp with frozen registries
    """
    config = (config or AuthConfig()).validate()
    users = user_store if user_store is not None else UserStore(
        PasswordHasher_(**config.argon2), config.min_password_length)
    audit = AuditLog(clock=clock)

    tokens = ActionTokenOrchestrator(
        token_store if token_store is not None else InMemoryTokenStore(),
        config.token_key,
        config.token_ttls,
        clock=clock,
        audit_log=audit,
    )

    def lock_account(principal_id: str) -> None:
        users.set_locked(principal_id, True, TOO_MANY_ATTEMPTS)

    lockout = LockoutPolicy(
        RateLimiter(max_attempts=config.max_login_attempts,
                    lockout_duration=config.lockout_duration,
                    window_seconds=config.attempt_window,
                    clock=clock),
        on_lockout=lock_account,
    )

    def apply_action(kind: ActionKind):
        def handler(principal_id, payload):
            users.apply_action(principal_id, kind, payload)
        handler.__name__ = f"apply_{kind.value}"
        return handler

    def unlock(principal_id, payload):
        users.apply_action(principal_id, ActionKind.UNLOCK, payload)
        lockout.reset(principal_id)

    for kind in (ActionKind.ACTIVATE, ActionKind.RESET_PASSWORD, ActionKind.ENROLL_FACTOR):
        tokens.register_handler(kind, apply_action(kind))
    tokens.register_handler(ActionKind.UNLOCK, unlock)

    def record_login(principal) -> None:
        users.record_login(principal.principal_id)

    hooks = PolicyHookRegistry()
    hooks.register(HookKind.PRE_LOGIN, account_state_hook)
    lockout.install(hooks)
    hooks.register(HookKind.POST_LOGIN_SUCCESS, record_login)
    audit.install(hooks)

    gate = EnrollmentGate(users)
    totp = TotpProvider(issuer=config.totp_issuer, clock=clock, enrollment_gate=gate)
    u2f = U2fProvider(config.u2f_app_id, clock=clock, enrollment_gate=gate)
    recovery = RecoveryCodeProvider(config.recovery_code_count, enrollment_gate=gate)

    factors = SecondFactorRegistry()
    for provider in (totp, u2f, recovery):
        factors.register(provider)

    login = LoginOrchestrator(
        credentials=users,
        users=users,
        tokens=tokens,
        factors=factors,
        hooks=hooks,
        partial_session_ttl=config.partial_session_ttl,
        deferred_token_kinds=config.deferred_token_kinds,
        clock=clock,
        audit_log=audit,
    )

    sessions = SessionStore(config.cookie_key, config.session_expiry, clock=clock)

    logger.info("loginflow ready: %d hooks, %d factor providers", len(hooks), len(factors))
    return LoginFlowApp(
        config=config,
        users=users,
        tokens=tokens,
        factors=factors,
        totp=totp,
        u2f=u2f,
        recovery=recovery,
        hooks=hooks,
        lockout=lockout,
        audit=audit,
        sessions=sessions,
        login=login,
    )
