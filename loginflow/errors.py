"""
Exception hierarchy for loginflow.

Orchestrators report authentication decisions as outcome values; these
exceptions are reserved for misconfiguration and failures of the external
stores and callbacks the orchestrators depend on.
"""


class LoginFlowError(Exception):
    """Base class for all loginflow errors."""


class ConfigurationError(LoginFlowError):
    """Invalid configuration value."""


class RegistryFrozenError(LoginFlowError):
    """A hook or provider was registered after the registry was frozen."""


class DuplicateProviderError(LoginFlowError):
    """A second provider was registered for an already registered factor kind."""


class StoreError(LoginFlowError):
    """An external store (users, tokens, sessions) failed."""


class TokenStoreConflict(StoreError):
    """Optimistic token update lost the race twice in a row."""


class ActionHandlerError(LoginFlowError):
    """The action bound to a redeemed token failed."""

    def __init__(self, kind, cause: Exception):
        super().__init__(f"Action handler for {kind} failed: {cause}")
        self.kind = kind
        self.cause = cause


class UserExistsError(LoginFlowError):
    """Email or username already registered."""


class UserNotFoundError(LoginFlowError):
    """No principal with the given id."""


class PasswordPolicyError(LoginFlowError):
    """Password does not satisfy the strength requirements."""

    def __init__(self, errors):
        super().__init__(f"Password too weak: {', '.join(errors)}")
        self.errors = list(errors)


class EnrollmentNotGrantedError(LoginFlowError):
    """Factor enrollment attempted without a redeemed EnrollFactor token."""
