"""
Login Orchestrator

The only component allowed to move a session out of the anonymous or
partially authenticated states.

Login algorithm:
1. Refuse if the session is already authenticated
2. Verify credentials (failure hooks run on any mismatch)
3. Redeem a stashed action token, then re-verify credentials
4. Run PreLogin policy hooks (first deny wins)
5. Require a second factor if the principal has any enrolled
6. Run PostLoginSuccess hooks and authenticate the session

Security considerations:
- Malformed input is rejected before any hook runs or state changes
- Store and hook failures are reported as INTERNAL_ERROR, never as bad
  credentials
- Partial logins expire; the TTL is checked lazily on the next call
"""

import logging
import time
from typing import Callable, FrozenSet, Optional

from ..errors import LoginFlowError
from ..kinds import FactorKind
from ..outcomes import (
    ActionCompleted,
    Authenticated,
    FactorRequired,
    LoggedOut,
    LoginOutcome,
    RejectReason,
    Rejected,
    TokenStashed,
)
from ..tokens.models import ActionKind
from ..tokens.orchestrator import ActionTokenOrchestrator
from ..config import DEFAULT_DEFERRED_KINDS, PARTIAL_SESSION_TTL_SECONDS
from ..factors.base import SecondFactorRegistry
from .credentials import is_valid_email
from .hooks import PolicyHookRegistry
from .session import (
    ANONYMOUS,
    AuthenticatedSession,
    PartialSession,
    SessionState,
)

logger = logging.getLogger(__name__)


class LoginOrchestrator:
    """
    Drives a session through login, second factor completion and logout.

    Both registries are frozen on construction. Second factor providers are
    bound to ``complete_second_factor`` so a verified proof can only ever
    reach the session through this class.

    Example:
        >>> outcome = orchestrator.login("alice@example.com", "SecurePass123!", state)
        >>> isinstance(outcome, FactorRequired)
        True
        >>> app.factors.get(FactorKind.TOTP).authenticate(state, "123456")
        Authenticated(principal_id='...')
    """

    def __init__(self, credentials, users,
                 tokens: ActionTokenOrchestrator,
                 factors: SecondFactorRegistry,
                 hooks: PolicyHookRegistry,
                 partial_session_ttl: int = PARTIAL_SESSION_TTL_SECONDS,
                 deferred_token_kinds: FrozenSet[ActionKind] = DEFAULT_DEFERRED_KINDS,
                 clock: Callable[[], float] = time.time,
                 audit_log=None):
        """
        Initialize the orchestrator.

        Args:
            credentials: Verifier with ``verify(email, password) -> (principal_id, ok, err)``
            users: Principal store with ``lookup(principal_id)``
            tokens: Action token orchestrator used for stashed tokens
            factors: Second factor registry
            hooks: Policy hook registry
            partial_session_ttl: Seconds allowed to complete a second factor
            deferred_token_kinds: Token kinds a login may redeem from the stash
            clock: Time source
            audit_log: Optional AuditLog receiving logout events
        """
        self._credentials = credentials
        self._users = users
        self._tokens = tokens
        self._factors = factors
        self._hooks = hooks
        self._partial_session_ttl = partial_session_ttl
        self._deferred_kinds = frozenset(deferred_token_kinds)
        self._clock = clock
        self._audit = audit_log

        hooks.freeze()
        factors.freeze()
        factors.bind(self.complete_second_factor, audit_log, self.check_second_factor)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _snapshot(self, principal_id: Optional[str]):
        if principal_id is None:
            return None
        return self._users.lookup(principal_id)

    def _fail(self, principal_id: Optional[str]) -> Rejected:
        """Report a credential failure to the failure hooks."""
        try:
            principal = self._snapshot(principal_id)
        except LoginFlowError:
            logger.warning("Lookup of principal %s failed during failure reporting",
                           principal_id, exc_info=True)
            principal = None
        # Errors from failure hooks never change the outcome.
        self._hooks.run_post_login_failure(principal)
        return Rejected(RejectReason.INVALID_CREDENTIALS)

    def _authenticate(self, state: SessionState, principal) -> LoginOutcome:
        error = self._hooks.run_post_login_success(principal)
        if error is not None:
            logger.error("PostLoginSuccess hook failed for principal %s: %s",
                         principal.principal_id, error)
            return Rejected(RejectReason.INTERNAL_ERROR)
        state._transition(AuthenticatedSession(principal.principal_id))
        logger.info("Principal %s authenticated", principal.principal_id)
        return Authenticated(principal.principal_id)

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def login(self, email: str, password: str, state: SessionState) -> LoginOutcome:
        """
        Authenticate a session with email and password.

        Args:
            email: Email address
            password: Plaintext password
            state: Caller's session state, mutated in place

        Returns:
            Rejected, FactorRequired or Authenticated
        """
        # Step 0: input validation
        if not is_valid_email((email or "").strip()) or not password:
            return Rejected(RejectReason.INVALID_INPUT)

        # Step 1: already authenticated
        if state.is_authenticated:
            return Rejected(RejectReason.ALREADY_AUTHENTICATED)

        # Step 2: credentials
        try:
            principal_id, ok, err = self._credentials.verify(email, password)
        except Exception:
            logger.error("Credential verifier failed", exc_info=True)
            return Rejected(RejectReason.INTERNAL_ERROR)

        if err is not None or not ok or principal_id is None:
            if err is not None:
                logger.warning("Credential verifier reported an error: %s", err)
            return self._fail(principal_id)

        # Step 3: deferred token redemption
        stashed = state.pop_token()
        if stashed is not None:
            rejected = self._redeem_stashed(stashed, principal_id, email, password)
            if rejected is not None:
                return rejected

        try:
            principal = self._users.lookup(principal_id)
        except Exception:
            logger.error("Principal lookup failed for %s", principal_id, exc_info=True)
            return Rejected(RejectReason.INTERNAL_ERROR)

        # Step 4: policy
        try:
            allow, reason = self._hooks.run_pre_login(principal)
        except Exception:
            logger.error("PreLogin hook raised for principal %s", principal_id, exc_info=True)
            return Rejected(RejectReason.INTERNAL_ERROR)
        if not allow:
            return Rejected(RejectReason.POLICY_DENIED, reason)

        # Step 5: second factor
        try:
            enrolled = self._factors.enrolled_kinds(principal_id)
        except Exception:
            logger.error("Second factor lookup failed for %s", principal_id, exc_info=True)
            return Rejected(RejectReason.INTERNAL_ERROR)

        if enrolled:
            state._transition(PartialSession(
                principal_id=principal_id,
                pending_factors=enrolled,
                issued_at=self._clock(),
            ))
            logger.info("Principal %s requires a second factor (%s)", principal_id,
                        ", ".join(sorted(kind.value for kind in enrolled)))
            return FactorRequired(principal_id, enrolled)

        # Step 6: success
        return self._authenticate(state, principal)

    def _redeem_stashed(self, token: str, principal_id: str,
                        email: str, password: str) -> Optional[Rejected]:
        try:
            outcome = self._tokens.redeem(token, expected_kind=self._deferred_kinds,
                                          principal_id=principal_id)
        except LoginFlowError:
            logger.error("Deferred action failed for principal %s", principal_id,
                         exc_info=True)
            return Rejected(RejectReason.INTERNAL_ERROR)

        if not outcome.success:
            return Rejected(RejectReason.INVALID_TOKEN, outcome.failure.value)

        # The action may have changed what the verifier accepts.
        try:
            current_id, ok, err = self._credentials.verify(email, password)
        except Exception:
            logger.error("Credential verifier failed on re-check", exc_info=True)
            return Rejected(RejectReason.INTERNAL_ERROR)
        if err is not None or not ok or current_id != principal_id:
            logger.error("Credentials for principal %s no longer verify after %s",
                         principal_id, outcome.kind.value)
            return Rejected(RejectReason.INTERNAL_INCONSISTENCY)
        return None

    # ------------------------------------------------------------------
    # Second factor
    # ------------------------------------------------------------------

    def check_second_factor(self, state: SessionState, principal_id: str,
                            factor_kind: FactorKind) -> Optional[Rejected]:
        """
        Check that ``state`` is a live partial login for ``principal_id``
        with ``factor_kind`` pending and an unchanged enrollment.

        Providers call this before verifying a proof. An expired or stale
        partial login is reset to anonymous.

        Returns:
            None if a verified proof would complete the login, otherwise the
            rejection ``complete_second_factor`` would return
        """
        login = state.login
        if not isinstance(login, PartialSession) or login.principal_id != principal_id:
            return Rejected(RejectReason.INVALID_SESSION)

        if login.is_expired(self._partial_session_ttl, self._clock()):
            logger.info("Partial login for principal %s expired", principal_id)
            state._transition(ANONYMOUS)
            return Rejected(RejectReason.INVALID_SESSION)

        if factor_kind not in login.pending_factors:
            return Rejected(RejectReason.INVALID_SESSION)

        try:
            enrolled = self._factors.enrolled_kinds(principal_id)
        except Exception:
            logger.error("Second factor lookup failed for %s", principal_id, exc_info=True)
            return Rejected(RejectReason.INTERNAL_ERROR)

        if enrolled != login.pending_factors:
            logger.warning("Enrollment for principal %s changed during login", principal_id)
            state._transition(ANONYMOUS)
            return Rejected(RejectReason.INVALID_SESSION)
        return None

    def complete_second_factor(self, state: SessionState, principal_id: str,
                               factor_kind: FactorKind, proof=None) -> LoginOutcome:
        """
        Finish a partial login after a provider verified its proof.

        Returns:
            Authenticated, or Rejected(INVALID_SESSION) when the session is
            not a live partial login for ``principal_id`` with
            ``factor_kind`` pending
        """
        rejected = self.check_second_factor(state, principal_id, factor_kind)
        if rejected is not None:
            return rejected

        try:
            principal = self._users.lookup(principal_id)
        except Exception:
            logger.error("Principal lookup failed for %s", principal_id, exc_info=True)
            return Rejected(RejectReason.INTERNAL_ERROR)

        return self._authenticate(state, principal)

    # ------------------------------------------------------------------
    # Session endpoints
    # ------------------------------------------------------------------

    def logout(self, state: SessionState):
        """End the current login; partial logins are dropped as well."""
        principal_id = state.principal_id or state.pending_principal_id
        if principal_id is None:
            return Rejected(RejectReason.UNAUTHORIZED)

        state._transition(ANONYMOUS)
        if self._audit is not None:
            self._audit.log_logout(principal_id)
        logger.info("Principal %s logged out", principal_id)
        return LoggedOut()

    def status(self, state: SessionState):
        """Authenticated(principal_id) if logged in, else Rejected(UNAUTHORIZED)."""
        if state.is_authenticated:
            return Authenticated(state.principal_id)
        return Rejected(RejectReason.UNAUTHORIZED)

    def submit_action_token(self, token: str, state: SessionState):
        """
        Accept an action token arriving from an out-of-band link.

        Anonymous callers have the token stashed for their next login;
        authenticated callers redeem it directly for their own principal.
        """
        if not token:
            return Rejected(RejectReason.INVALID_INPUT)

        if not state.is_authenticated:
            self._tokens.stash(token, state)
            return TokenStashed()

        principal_id = state.principal_id
        try:
            outcome = self._tokens.redeem(token, principal_id=principal_id)
        except LoginFlowError:
            logger.error("Action token redemption failed for principal %s",
                         principal_id, exc_info=True)
            return Rejected(RejectReason.INTERNAL_ERROR)

        if not outcome.success:
            return Rejected(RejectReason.INVALID_TOKEN, outcome.failure.value)
        return ActionCompleted(outcome.principal_id, outcome.kind)

    def reset_password(self, state: SessionState, new_password: str,
                       token: Optional[str] = None):
        """
        Set a new password using a RESET_PASSWORD token.

        The token is taken from ``token`` or, failing that, from the stash.
        The caller must not be logged in; the session stays anonymous and
        the user logs in with the new password afterwards.
        """
        if state.is_authenticated:
            return Rejected(RejectReason.ALREADY_AUTHENTICATED)
        if not new_password:
            return Rejected(RejectReason.INVALID_INPUT)
        if self._users.check_password(new_password):
            return Rejected(RejectReason.INVALID_INPUT, "PasswordComplexityTooLow")

        if token is None:
            token = state.pop_token()
        if token is None:
            return Rejected(RejectReason.INVALID_TOKEN, "missing")

        try:
            outcome = self._tokens.redeem(token, expected_kind=ActionKind.RESET_PASSWORD,
                                          payload={'password': new_password})
        except LoginFlowError:
            logger.error("Password reset failed", exc_info=True)
            return Rejected(RejectReason.INTERNAL_ERROR)

        if not outcome.success:
            return Rejected(RejectReason.INVALID_TOKEN, outcome.failure.value)
        return ActionCompleted(outcome.principal_id, outcome.kind)
