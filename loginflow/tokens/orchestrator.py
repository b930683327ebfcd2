"""
Action Token Orchestrator

Issues, stashes and redeems single-use action tokens and runs the action
bound to each token kind exactly once.

Security considerations:
- Tokens carry 256 bits of entropy (secrets.token_urlsafe)
- Only an HMAC-SHA256 of the token is persisted
- Consumption is delegated to the store's atomic conditional update
- Redemption failures are terminal; a fresh token must be issued instead
"""

import hashlib
import hmac
import logging
import secrets
import time
from typing import Any, Callable, Dict, FrozenSet, Iterable, Mapping, Optional, Union

from ..errors import ActionHandlerError, ConfigurationError
from .models import ActionKind, ActionToken, RedeemFailure, RedeemOutcome
from .store import TokenStore

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32  # 256-bit tokens

ActionHandler = Callable[[str, Optional[Mapping[str, Any]]], None]
KindFilter = Union[ActionKind, Iterable[ActionKind], None]


def _kind_set(expected_kind: KindFilter) -> Optional[FrozenSet[ActionKind]]:
    if expected_kind is None:
        return None
    if isinstance(expected_kind, ActionKind):
        return frozenset({expected_kind})
    return frozenset(expected_kind)


class ActionTokenOrchestrator:
    """
    Token lifecycle: issue -> (optional stash) -> redeem.

    Example:
        >>> tokens = ActionTokenOrchestrator(InMemoryTokenStore(), key, ttls)
        >>> tokens.register_handler(ActionKind.ACTIVATE, activate_user)
        >>> token = tokens.issue(user_id, ActionKind.ACTIVATE)
        >>> tokens.redeem(token, ActionKind.ACTIVATE).success
        True
    """

    def __init__(self, store: TokenStore, secret_key: bytes,
                 ttls: Mapping[ActionKind, int],
                 clock: Callable[[], float] = time.time,
                 audit_log=None):
        """
        Initialize the orchestrator.

        Args:
            store: Token store with atomic conditional consume
            secret_key: Key for the HMAC under which token ids are stored
            ttls: Default lifetime in seconds per action kind
            clock: Time source (seconds since the epoch)
            audit_log: Optional AuditLog receiving token events
        """
        self._store = store
        self._secret_key = secret_key
        self._ttls = dict(ttls)
        self._clock = clock
        self._audit = audit_log
        self._handlers: Dict[ActionKind, ActionHandler] = {}

    def register_handler(self, kind: ActionKind, handler: ActionHandler) -> None:
        """
        Bind the action executed when a token of ``kind`` is redeemed.

        The handler is called as ``handler(principal_id, payload)``.
        """
        self._handlers[kind] = handler

    def _token_id(self, token: str) -> str:
        return hmac.new(self._secret_key, token.encode(), hashlib.sha256).hexdigest()

    def issue(self, principal_id: str, kind: ActionKind,
              ttl: Optional[int] = None) -> str:
        """
        Create a token for an out-of-band action.

        Several unconsumed tokens for the same principal and kind may
        coexist.

        Args:
            principal_id: Principal the action applies to
            kind: Action to bind
            ttl: Lifetime in seconds (kind default if None)

        Returns:
            Opaque token string for the out-of-band channel (e.g. an email link)
        """
        if kind not in self._handlers:
            raise ConfigurationError(f"No action handler registered for {kind.value}")

        lifetime = ttl if ttl is not None else self._ttls[kind]
        if lifetime <= 0:
            raise ValueError("Token ttl must be positive")

        token = secrets.token_urlsafe(TOKEN_BYTES)
        now = self._clock()
        self._store.add(ActionToken(
            token_id=self._token_id(token),
            principal_id=principal_id,
            kind=kind,
            issued_at=now,
            expires_at=now + lifetime,
        ))

        logger.info("Issued %s token for principal %s", kind.value, principal_id)
        if self._audit is not None:
            self._audit.log_token(principal_id, kind, 'issued')
        return token

    def stash(self, token: str, state) -> None:
        """
        Keep a token in the caller's session for the next login.

        Only one token is held; stashing again replaces the previous one so
        only the most recent deferred action is honoured.
        """
        replaced = state.stash_token(token)
        if replaced:
            logger.info("Stashed action token replaced an earlier pending token")

    def redeem(self, token: str, expected_kind: KindFilter = None,
               principal_id: Optional[str] = None,
               payload: Optional[Mapping[str, Any]] = None) -> RedeemOutcome:
        """
        Consume a token and run its bound action.

        Checks run in a fixed order: existence, consumption, expiry, kind,
        principal. A token failing the kind or principal check is left
        unconsumed.

        Args:
            token: Opaque token string
            expected_kind: Required kind, or a collection of accepted kinds
            principal_id: Required principal
            payload: Passed through to the action handler

        Returns:
            RedeemOutcome; exactly one of any concurrent redemptions of the
            same token succeeds

        Raises:
            ActionHandlerError: The action failed after the token was consumed
        """
        outcome = self._redeem(token, _kind_set(expected_kind), principal_id, payload)
        if self._audit is not None:
            if outcome.success:
                self._audit.log_token(outcome.principal_id, outcome.kind, 'redeemed')
            else:
                self._audit.log_token(principal_id, None, 'rejected',
                                      failure=outcome.failure.value)
        return outcome

    def _redeem(self, token, kinds, principal_id, payload) -> RedeemOutcome:
        if not token:
            return RedeemOutcome.failed(RedeemFailure.NOT_FOUND)

        token_id = self._token_id(token)
        now = self._clock()

        record = self._store.get(token_id)
        failure = self._check(record, now, kinds, principal_id)
        if failure is not None:
            logger.info("Token redemption refused: %s", failure.value)
            return RedeemOutcome.failed(failure)

        if not self._store.consume(token_id, now):
            # Lost the race, or the token expired between read and update.
            current = self._store.get(token_id)
            if current is None:
                failure = RedeemFailure.NOT_FOUND
            elif current.consumed:
                failure = RedeemFailure.ALREADY_CONSUMED
            else:
                failure = RedeemFailure.EXPIRED
            logger.info("Token redemption lost consume: %s", failure.value)
            return RedeemOutcome.failed(failure)

        handler = self._handlers.get(record.kind)
        if handler is None:
            raise ActionHandlerError(record.kind, LookupError("no handler registered"))
        try:
            handler(record.principal_id, payload)
        except Exception as e:
            logger.error("Action %s failed for principal %s after token consumption",
                         record.kind.value, record.principal_id, exc_info=True)
            raise ActionHandlerError(record.kind, e) from e

        logger.info("Redeemed %s token for principal %s",
                    record.kind.value, record.principal_id)
        return RedeemOutcome.succeeded(record.principal_id, record.kind)

    @staticmethod
    def _check(record: Optional[ActionToken], now: float,
               kinds: Optional[FrozenSet[ActionKind]],
               principal_id: Optional[str]) -> Optional[RedeemFailure]:
        if record is None:
            return RedeemFailure.NOT_FOUND
        if record.consumed:
            return RedeemFailure.ALREADY_CONSUMED
        if record.is_expired(now):
            return RedeemFailure.EXPIRED
        if kinds is not None and record.kind not in kinds:
            return RedeemFailure.KIND_MISMATCH
        if principal_id is not None and record.principal_id != principal_id:
            return RedeemFailure.PRINCIPAL_MISMATCH
        return None

    def purge_expired(self) -> int:
        """Remove expired tokens from the store."""
        return self._store.purge_expired(self._clock())
