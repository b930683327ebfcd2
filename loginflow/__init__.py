# loginflow
"""
Authentication orchestration core:
- Login state machine with optional second factor - auth/
- Single-use action tokens with deferred redemption - tokens/
- Pluggable second factors (TOTP, U2F, recovery codes) - factors/
- Security audit log - integration/

Build a wired service with ``create_app()``.
"""

import logging

from .app import LoginFlowApp, create_app
from .config import AuthConfig, default_config
from .kinds import FactorKind
from .outcomes import (
    ActionCompleted,
    Authenticated,
    FactorRequired,
    LoggedOut,
    RejectReason,
    Rejected,
    TokenStashed,
)
from .tokens import ActionKind, RedeemFailure

__version__ = "0.1.0"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level=logging.INFO) -> logging.Logger:
    """
    Attach a stream handler to the ``loginflow`` logger.

    Library code only ever logs through module loggers; applications call
    this once at startup if they want the output on stderr.
    """
    package_logger = logging.getLogger(__name__)
    if not any(getattr(h, '_loginflow', False) for h in package_logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._loginflow = True
        package_logger.addHandler(handler)
    package_logger.setLevel(level)
    return package_logger


__all__ = [
    'LoginFlowApp',
    'create_app',
    'AuthConfig',
    'default_config',
    'FactorKind',
    'ActionKind',
    'RedeemFailure',
    'ActionCompleted',
    'Authenticated',
    'FactorRequired',
    'LoggedOut',
    'RejectReason',
    'Rejected',
    'TokenStashed',
    'configure_logging',
]
