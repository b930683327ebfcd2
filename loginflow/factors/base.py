"""
Second-Factor Provider Registry

Providers own their factor records and the proof check. They never touch
the session: after a successful check they call back into the login
orchestrator, which alone decides whether the session becomes
authenticated.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, FrozenSet, Iterator, Optional

from ..errors import (
    ConfigurationError,
    DuplicateProviderError,
    EnrollmentNotGrantedError,
    RegistryFrozenError,
)
from ..kinds import FactorKind
from ..outcomes import RejectReason, Rejected

logger = logging.getLogger(__name__)


Completer = Callable[[Any, str, FactorKind, Any], Any]
Precheck = Callable[[Any, str, FactorKind], Optional[Rejected]]


class EnrollmentGate:
    """
    Requires a redeemed EnrollFactor token before a factor can be added.

    Args:
        users: Principal store with ``lookup`` and ``clear_enrollment_grant``
    """

    def __init__(self, users):
        self._users = users

    def check(self, principal_id: str) -> None:
        """Raise EnrollmentNotGrantedError unless a grant is held."""
        if not self._users.lookup(principal_id).enrollment_granted:
            raise EnrollmentNotGrantedError(f"No enrollment grant for {principal_id}")

    def consume(self, principal_id: str) -> None:
        """Use up the grant; one grant covers one enrollment."""
        if not self._users.clear_enrollment_grant(principal_id):
            raise EnrollmentNotGrantedError(f"No enrollment grant for {principal_id}")
        logger.info("Enrollment grant used by principal %s", principal_id)


class SecondFactorProvider(ABC):
    """
    Capability contract for one second factor kind.

    Subclasses set ``kind`` and implement ``is_enrolled`` and ``verify``.
    A factor endpoint calls ``authenticate`` with the caller's session state
    and the proof it received.

    Providers built with an ``enrollment_gate`` only add factors for
    principals holding an enrollment grant.
    """

    kind: FactorKind

    def __init__(self, enrollment_gate: Optional[EnrollmentGate] = None):
        self._completer: Optional[Completer] = None
        self._precheck: Optional[Precheck] = None
        self._audit = None
        self._gate = enrollment_gate

    def bind(self, completer: Completer, audit_log=None,
             precheck: Optional[Precheck] = None) -> None:
        self._completer = completer
        self._audit = audit_log
        self._precheck = precheck

    def _check_grant(self, principal_id: str) -> None:
        if self._gate is not None:
            self._gate.check(principal_id)

    def _consume_grant(self, principal_id: str) -> None:
        if self._gate is not None:
            self._gate.consume(principal_id)

    @abstractmethod
    def is_enrolled(self, principal_id: str) -> bool:
        """True if the principal has at least one usable factor of this kind."""

    @abstractmethod
    def verify(self, principal_id: str, proof: Any) -> bool:
        """Check a proof for the principal, updating provider records on success."""

    def authenticate(self, state, proof: Any):
        """
        Verify ``proof`` for the session's pending principal and, on success,
        ask the login orchestrator to complete the login.

        Returns:
            The orchestrator's outcome, or Rejected(SECOND_FACTOR_FAILED)
            when the proof is wrong
        """
        if self._completer is None:
            raise ConfigurationError(f"{self.kind.value} provider is not bound to an orchestrator")

        principal_id = state.pending_principal_id
        if principal_id is None:
            return Rejected(RejectReason.INVALID_SESSION)

        # Proofs are single use; never spend one on a dead partial login.
        if self._precheck is not None:
            rejected = self._precheck(state, principal_id, self.kind)
            if rejected is not None:
                return rejected

        verified = self.verify(principal_id, proof)
        if self._audit is not None:
            self._audit.log_second_factor(principal_id, self.kind, verified)
        if not verified:
            logger.info("%s proof rejected for principal %s", self.kind.value, principal_id)
            return Rejected(RejectReason.SECOND_FACTOR_FAILED)

        return self._completer(state, principal_id, self.kind, proof)


class SecondFactorRegistry:
    """Ordered collection of providers, at most one per factor kind."""

    def __init__(self):
        self._providers: Dict[FactorKind, SecondFactorProvider] = {}
        self._frozen = False

    def register(self, provider: SecondFactorProvider) -> None:
        """
        Add a provider.

        Raises:
            RegistryFrozenError: The registry is already serving traffic
            DuplicateProviderError: A provider for this kind exists
        """
        if self._frozen:
            raise RegistryFrozenError("Providers cannot be registered after startup")
        if provider.kind in self._providers:
            raise DuplicateProviderError(f"Provider for {provider.kind.value} already registered")
        self._providers[provider.kind] = provider

    def freeze(self) -> None:
        self._frozen = True

    def bind(self, completer: Completer, audit_log=None,
             precheck: Optional[Precheck] = None) -> None:
        for provider in self._providers.values():
            provider.bind(completer, audit_log, precheck)

    def get(self, kind: FactorKind) -> Optional[SecondFactorProvider]:
        return self._providers.get(kind)

    def enrolled_kinds(self, principal_id: str) -> FrozenSet[FactorKind]:
        """
        Union of the factor kinds the principal is enrolled in.

        Providers are asked one at a time in registration order.
        """
        return frozenset(kind for kind, provider in self._providers.items()
                         if provider.is_enrolled(principal_id))

    def __iter__(self) -> Iterator[SecondFactorProvider]:
        return iter(self._providers.values())

    def __len__(self) -> int:
        return len(self._providers)
