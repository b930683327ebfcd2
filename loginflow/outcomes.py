"""
Outcome values returned by the login orchestrator.

Every public orchestrator call returns exactly one of these. They are plain
immutable values: the transport layer maps them to responses using the
message key in ``code`` (see ``loginflow.messages``).
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Union

from . import messages
from .kinds import FactorKind
from .tokens.models import ActionKind


class RejectReason(Enum):
    """Why a request was not granted."""
    INVALID_INPUT = "invalid_input"
    ALREADY_AUTHENTICATED = "already_authenticated"
    INVALID_CREDENTIALS = "invalid_credentials"
    INVALID_TOKEN = "invalid_token"
    INTERNAL_INCONSISTENCY = "internal_inconsistency"
    POLICY_DENIED = "policy_denied"
    INTERNAL_ERROR = "internal_error"
    INVALID_SESSION = "invalid_session"
    SECOND_FACTOR_FAILED = "second_factor_failed"
    UNAUTHORIZED = "unauthorized"


@dataclass(frozen=True)
class Rejected:
    """The request was refused; ``detail`` carries hook or token specifics."""
    reason: RejectReason
    detail: Optional[str] = None

    success = False

    @property
    def code(self) -> str:
        if self.reason is RejectReason.POLICY_DENIED and self.detail in messages.DENY_CODES:
            return messages.DENY_CODES[self.detail]
        return messages.REJECT_CODES[self.reason.value]

    def to_dict(self) -> Dict[str, Any]:
        result = {'success': False, 'code': self.code, 'reason': self.reason.value}
        if self.detail is not None:
            result['detail'] = self.detail
        return result


@dataclass(frozen=True)
class FactorRequired:
    """Credentials accepted; one of ``available_factors`` must be completed."""
    principal_id: str
    available_factors: FrozenSet[FactorKind]

    success = False
    code = messages.SECOND_FACTOR_REQUIRED

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': False,
            'code': self.code,
            'factors': sorted(kind.value for kind in self.available_factors),
        }


@dataclass(frozen=True)
class Authenticated:
    """The session is now authenticated as ``principal_id``."""
    principal_id: str

    success = True
    code = messages.LOGIN_SUCCESSFUL

    def to_dict(self) -> Dict[str, Any]:
        return {'success': True, 'code': self.code, 'principal_id': self.principal_id}


@dataclass(frozen=True)
class LoggedOut:
    success = True
    code = messages.LOGOUT_SUCCESSFUL

    def to_dict(self) -> Dict[str, Any]:
        return {'success': True, 'code': self.code}


@dataclass(frozen=True)
class TokenStashed:
    """An action token was kept in the session for the next login."""
    success = True
    code = messages.TOKEN_STASHED

    def to_dict(self) -> Dict[str, Any]:
        return {'success': True, 'code': self.code}


_ACTION_CODES = {
    ActionKind.ACTIVATE: messages.ACTIVATION_SUCCESSFUL,
    ActionKind.RESET_PASSWORD: messages.PASSWORD_UPDATED,
    ActionKind.UNLOCK: messages.UNLOCK_SUCCESSFUL,
    ActionKind.ENROLL_FACTOR: messages.OK,
}


@dataclass(frozen=True)
class ActionCompleted:
    """A token was redeemed directly and its bound action has run."""
    principal_id: str
    kind: ActionKind

    success = True

    @property
    def code(self) -> str:
        return _ACTION_CODES[self.kind]

    def to_dict(self) -> Dict[str, Any]:
        return {'success': True, 'code': self.code, 'action': self.kind.value}


LoginOutcome = Union[Rejected, FactorRequired, Authenticated]
