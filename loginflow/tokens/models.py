"""
Action token data model.

An action token authorises one out-of-band action (activation, password
reset, ...) for one principal, once, before it expires.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from .. import messages


class ActionKind(Enum):
    """Actions a token can be bound to."""
    ACTIVATE = "activate"
    RESET_PASSWORD = "reset_password"
    ENROLL_FACTOR = "enroll_factor"
    UNLOCK = "unlock"


@dataclass(frozen=True)
class ActionToken:
    """
    Stored form of an action token.

    ``token_id`` is the HMAC-SHA256 of the opaque token string handed to the
    user; the string itself is never stored. ``version`` increases on every
    update and backs the optimistic compare-and-swap used for consumption.
    """
    token_id: str
    principal_id: str
    kind: ActionKind
    issued_at: float
    expires_at: float
    consumed: bool = False
    version: int = 0

    def is_expired(self, now: float) -> bool:
        """Check if token has expired at ``now``."""
        return now >= self.expires_at

    def is_redeemable(self, now: float) -> bool:
        # An expired token counts as consumed.
        return not self.consumed and not self.is_expired(now)


class RedeemFailure(Enum):
    """Terminal reasons a redemption can fail. None of them is retried."""
    NOT_FOUND = "not_found"
    ALREADY_CONSUMED = "already_consumed"
    EXPIRED = "expired"
    KIND_MISMATCH = "kind_mismatch"
    PRINCIPAL_MISMATCH = "principal_mismatch"


@dataclass(frozen=True)
class RedeemOutcome:
    """Result of ``ActionTokenOrchestrator.redeem``."""
    success: bool
    failure: Optional[RedeemFailure] = None
    principal_id: Optional[str] = None
    kind: Optional[ActionKind] = None

    @classmethod
    def succeeded(cls, principal_id: str, kind: ActionKind) -> 'RedeemOutcome':
        return cls(success=True, principal_id=principal_id, kind=kind)

    @classmethod
    def failed(cls, failure: RedeemFailure) -> 'RedeemOutcome':
        return cls(success=False, failure=failure)

    @property
    def code(self) -> str:
        if self.success:
            return messages.OK
        return messages.REDEEM_CODES[self.failure.value]

    def to_dict(self) -> Dict[str, Any]:
        result = {'success': self.success, 'code': self.code}
        if self.kind is not None:
            result['action'] = self.kind.value
        return result
