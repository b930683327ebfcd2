"""
Service configuration.

A single AuthConfig is built at process start and handed to create_app();
nothing in the package reads configuration from global state afterwards.
"""

import base64
import binascii
import secrets
from dataclasses import dataclass, field
from typing import Dict, FrozenSet

from .errors import ConfigurationError
from .tokens.models import ActionKind


SECRET_BYTES = 32

PARTIAL_SESSION_TTL_SECONDS = 300   # 5 minutes to complete a second factor
SESSION_EXPIRY_SECONDS = 3600       # 1 hour transport session lifetime

MIN_PASSWORD_LENGTH = 12

MAX_LOGIN_ATTEMPTS = 5
LOCKOUT_DURATION_SECONDS = 300
ATTEMPT_WINDOW_SECONDS = 300

DEFAULT_TOKEN_TTLS = {
    ActionKind.ACTIVATE: 24 * 3600,
    ActionKind.RESET_PASSWORD: 3600,
    ActionKind.ENROLL_FACTOR: 15 * 60,
    ActionKind.UNLOCK: 3600,
}

# Kinds a login may redeem from a stashed token. Password reset is left out
# because it changes the credential the login has just verified.
DEFAULT_DEFERRED_KINDS = frozenset({
    ActionKind.ACTIVATE,
    ActionKind.UNLOCK,
    ActionKind.ENROLL_FACTOR,
})

# Argon2id parameters; the test suite swaps in cheaper ones.
ARGON2_CONFIG = {
    'time_cost': 3,          # Number of iterations
    'memory_cost': 65536,    # 64 MiB memory
    'parallelism': 4,
    'hash_len': 32,
    'salt_len': 16,
}


def generate_secret(length: int = SECRET_BYTES) -> str:
    """
    Generate a base64 encoded random secret.

    Args:
        length: Number of random bytes

    Returns:
        Standard base64 encoding of the random bytes
    """
    return base64.b64encode(secrets.token_bytes(length)).decode('ascii')


def decode_secret(encoded: str) -> bytes:
    """Decode a base64 secret, raising ConfigurationError if it is malformed."""
    try:
        return base64.b64decode(encoded.encode('ascii'), validate=True)
    except (binascii.Error, UnicodeEncodeError, AttributeError) as e:
        raise ConfigurationError(f"Secret is not valid base64: {e}") from e


@dataclass
class AuthConfig:
    """Configuration for a loginflow service instance."""
    partial_session_ttl: int = PARTIAL_SESSION_TTL_SECONDS
    session_expiry: int = SESSION_EXPIRY_SECONDS
    token_ttls: Dict[ActionKind, int] = field(
        default_factory=lambda: dict(DEFAULT_TOKEN_TTLS))
    deferred_token_kinds: FrozenSet[ActionKind] = DEFAULT_DEFERRED_KINDS
    cookie_secret: str = field(default_factory=generate_secret)
    token_secret: str = field(default_factory=generate_secret)
    min_password_length: int = MIN_PASSWORD_LENGTH
    max_login_attempts: int = MAX_LOGIN_ATTEMPTS
    lockout_duration: int = LOCKOUT_DURATION_SECONDS
    attempt_window: int = ATTEMPT_WINDOW_SECONDS
    argon2: Dict[str, int] = field(default_factory=lambda: dict(ARGON2_CONFIG))
    totp_issuer: str = "loginflow"
    u2f_app_id: str = "https://localhost"
    recovery_code_count: int = 10

    def validate(self) -> 'AuthConfig':
        """
        Check the configuration for obviously broken values.

        Returns:
            self, so calls can be chained

        Raises:
            ConfigurationError: On the first invalid value found
        """
        for name in ('partial_session_ttl', 'session_expiry',
                     'max_login_attempts', 'lockout_duration',
                     'attempt_window', 'recovery_code_count'):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be positive")

        if self.min_password_length < 1:
            raise ConfigurationError("min_password_length must be at least 1")

        for kind in ActionKind:
            ttl = self.token_ttls.get(kind)
            if ttl is None or ttl <= 0:
                raise ConfigurationError(f"token ttl for {kind.value} must be positive")

        for name in ('cookie_secret', 'token_secret'):
            if len(decode_secret(getattr(self, name))) < 16:
                raise ConfigurationError(f"{name} must decode to at least 16 bytes")

        return self

    def token_ttl(self, kind: ActionKind) -> int:
        return self.token_ttls[kind]

    @property
    def cookie_key(self) -> bytes:
        return decode_secret(self.cookie_secret)

    @property
    def token_key(self) -> bytes:
        return decode_secret(self.token_secret)


def default_config(**overrides) -> AuthConfig:
    """Build and validate a configuration with fresh random secrets."""
    return AuthConfig(**overrides).validate()
