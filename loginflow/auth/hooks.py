"""
Policy Hook Registry

Ordered dispatch of the callbacks other modules contribute to the login
state machine (lockout counters, audit logging, account state checks).

Hooks are registered while the service is being assembled; the registry is
frozen before traffic begins and nothing can be added or removed after.
"""

import logging
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from ..errors import RegistryFrozenError

logger = logging.getLogger(__name__)


class HookKind(Enum):
    PRE_LOGIN = "pre_login"
    POST_LOGIN_SUCCESS = "post_login_success"
    POST_LOGIN_FAILURE = "post_login_failure"


# PreLogin hooks return (allow, reason); post-login hooks return nothing and
# signal failure by raising. Failure hooks may receive None when the email
# did not match any principal.
PreLoginHook = Callable[[object], Tuple[bool, Optional[str]]]
PostLoginHook = Callable[[Optional[object]], None]


class PolicyHookRegistry:
    """Registration-ordered hook lists, one per HookKind."""

    def __init__(self):
        self._hooks: Dict[HookKind, List[Callable]] = {kind: [] for kind in HookKind}
        self._frozen = False

    def register(self, kind: HookKind, callback: Callable) -> None:
        """
        Append a hook.

        Raises:
            RegistryFrozenError: The registry is already serving traffic
        """
        if self._frozen:
            raise RegistryFrozenError("Hooks cannot be registered after startup")
        if not callable(callback):
            raise TypeError("Hook callback must be callable")
        self._hooks[kind].append(callback)

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def hooks(self, kind: HookKind) -> Tuple[Callable, ...]:
        return tuple(self._hooks[kind])

    def run_pre_login(self, principal) -> Tuple[bool, Optional[str]]:
        """
        Run PreLogin hooks in order, stopping at the first that denies.

        Exceptions raised by a hook propagate to the caller.

        Returns:
            Tuple of (allow, reason); reason is the denying hook's own text
        """
        for hook in self._hooks[HookKind.PRE_LOGIN]:
            allow, reason = hook(principal)
            if not allow:
                logger.info("PreLogin hook %s denied login: %s",
                            getattr(hook, '__name__', hook), reason)
                return False, reason
        return True, None

    def run_post_login_success(self, principal) -> Optional[Exception]:
        """
        Run every PostLoginSuccess hook.

        Returns:
            The first error raised, or None. The caller aborts the login on
            an error, so the remaining hooks still run but nothing else does.
        """
        return self._run_all(HookKind.POST_LOGIN_SUCCESS, principal)

    def run_post_login_failure(self, principal) -> Optional[Exception]:
        """
        Run every PostLoginFailure hook.

        Errors are logged and the first is returned, but callers must not let
        it change the outcome of the failed login.
        """
        return self._run_all(HookKind.POST_LOGIN_FAILURE, principal)

    def _run_all(self, kind: HookKind, principal) -> Optional[Exception]:
        first_error = None
        for hook in self._hooks[kind]:
            try:
                hook(principal)
            except Exception as e:
                logger.warning("%s hook %s failed", kind.value,
                               getattr(hook, '__name__', hook), exc_info=True)
                if first_error is None:
                    first_error = e
        return first_error

    def __len__(self) -> int:
        return sum(len(hooks) for hooks in self._hooks.values())


def account_state_hook(principal) -> Tuple[bool, Optional[str]]:
    """PreLogin hook refusing locked and not yet activated accounts."""
    if principal.locked:
        return False, "AccountLocked"
    if not principal.activated:
        return False, "AccountNotActivated"
    return True, None
