"""
Credential Verification Module

Implements the user store behind the login orchestrator, with Argon2id
password hashing.

Features:
- Argon2id password hashing (winner of Password Hashing Competition)
- Password strength validation
- Credential verification that does not reveal whether an email exists
- Account actions applied by redeemed action tokens

Security considerations:
- Never store plaintext passwords
- Never hand password hashes out in principal snapshots
- Salt is automatically handled by argon2-cffi
"""

import logging
import re
import secrets
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from argon2 import PasswordHasher, Type
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

from ..config import ARGON2_CONFIG, MIN_PASSWORD_LENGTH
from ..errors import PasswordPolicyError, UserExistsError, UserNotFoundError
from ..tokens.models import ActionKind

logger = logging.getLogger(__name__)


EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
USERNAME_PATTERN = re.compile(r'^[a-z0-9.]+$')

PASSWORD_MAX_LENGTH = 128
PASSWORD_REQUIREMENTS = {
    'require_uppercase': True,
    'require_lowercase': True,
    'require_digit': True,
    'require_special': True,
}


class PasswordHasher_:
    """
    Secure password hasher using Argon2id.

    Example:
        >>> hasher = PasswordHasher_()
        >>> hash = hasher.hash_password("SecurePass123!")
        >>> hasher.verify_password("SecurePass123!", hash)
        True
    """

    def __init__(self, **kwargs):
        """
        Initialize the password hasher with Argon2id.

        Args:
            **kwargs: Override default Argon2 parameters
        """
        config = ARGON2_CONFIG.copy()
        config.update(kwargs)

        self._hasher = PasswordHasher(
            time_cost=config['time_cost'],
            memory_cost=config['memory_cost'],
            parallelism=config['parallelism'],
            hash_len=config['hash_len'],
            salt_len=config['salt_len'],
            type=Type.ID
        )

    def hash_password(self, password: str) -> str:
        """Hash a password; the result embeds salt and parameters."""
        return self._hasher.hash(password)

    def verify_password(self, password: str, hash_str: str) -> bool:
        """
        Verify a password against an Argon2id hash.

        Args:
            password: Plaintext password to verify
            hash_str: Argon2id hash string to verify against

        Returns:
            True if password matches, False otherwise
        """
        try:
            return self._hasher.verify(hash_str, password)
        except (VerifyMismatchError, VerificationError, InvalidHashError):
            return False

    def needs_rehash(self, hash_str: str) -> bool:
        """Check if a hash was made with outdated parameters."""
        return self._hasher.check_needs_rehash(hash_str)


def validate_password_strength(password: str,
                               min_length: int = MIN_PASSWORD_LENGTH) -> List[str]:
    """
    Validate password against strength requirements.

    Args:
        password: Password to validate
        min_length: Minimum accepted length

    Returns:
        List of unmet requirements (empty when the password is acceptable)
    """
    errors = []

    if len(password) < min_length:
        errors.append(f"Must be at least {min_length} characters")
    if len(password) > PASSWORD_MAX_LENGTH:
        errors.append(f"Must be at most {PASSWORD_MAX_LENGTH} characters")

    if PASSWORD_REQUIREMENTS['require_uppercase'] and not re.search(r'[A-Z]', password):
        errors.append("Must contain at least one uppercase letter")

    if PASSWORD_REQUIREMENTS['require_lowercase'] and not re.search(r'[a-z]', password):
        errors.append("Must contain at least one lowercase letter")

    if PASSWORD_REQUIREMENTS['require_digit'] and not re.search(r'\d', password):
        errors.append("Must contain at least one digit")

    if PASSWORD_REQUIREMENTS['require_special'] and not re.search(r'[!@#$%^&*(),.?":{}|<>]', password):
        errors.append("Must contain at least one special character")

    return errors


def is_valid_email(email: str) -> bool:
    return bool(email) and EMAIL_PATTERN.match(email) is not None


@dataclass(frozen=True)
class PrincipalSnapshot:
    """Read-only view of a principal handed to hooks and callers."""
    principal_id: str
    email: str
    username: str
    activated: bool
    locked: bool
    lock_reason: Optional[str] = None
    enrollment_granted: bool = False


@dataclass
class _UserRecord:
    principal_id: str
    email: str
    username: str
    password_hash: str
    created_at: float
    activated: bool = False
    locked: bool = False
    lock_reason: Optional[str] = None
    enrollment_granted: bool = False
    last_login: Optional[float] = None

    def snapshot(self) -> PrincipalSnapshot:
        return PrincipalSnapshot(
            principal_id=self.principal_id,
            email=self.email,
            username=self.username,
            activated=self.activated,
            locked=self.locked,
            lock_reason=self.lock_reason,
            enrollment_granted=self.enrollment_granted,
        )


class UserStore:
    """
    Thread-safe in-memory user store.

    Acts as both the credential verifier (``verify``) and the principal
    store (``lookup`` / ``apply_action``) the orchestrators talk to.

    Example:
        >>> users = UserStore()
        >>> alice = users.create_user("alice@example.com", "alice", "SecurePass123!")
        >>> users.verify("alice@example.com", "SecurePass123!")[1]
        True
    """

    def __init__(self, hasher: Optional[PasswordHasher_] = None,
                 min_password_length: int = MIN_PASSWORD_LENGTH):
        self._hasher = hasher or PasswordHasher_()
        self._min_password_length = min_password_length
        self._users: Dict[str, _UserRecord] = {}
        self._by_email: Dict[str, str] = {}
        self._by_username: Dict[str, str] = {}
        self._lock = threading.RLock()
        self._dummy_hash: Optional[str] = None

    def check_password(self, password: str) -> List[str]:
        """Return unmet password requirements under this store's policy."""
        return validate_password_strength(password or "", self._min_password_length)

    def create_user(self, email: str, username: str, password: str) -> PrincipalSnapshot:
        """
        Register a new, not yet activated, principal.

        Raises:
            ValueError: Malformed email or username
            PasswordPolicyError: Password too weak
            UserExistsError: Email or username already registered
        """
        email = (email or "").strip().lower()
        if not is_valid_email(email):
            raise ValueError("Invalid email address")

        username = (username or "").strip().lower()
        if not USERNAME_PATTERN.match(username):
            raise ValueError("Invalid username")

        errors = self.check_password(password)
        if errors:
            raise PasswordPolicyError(errors)

        password_hash = self._hasher.hash_password(password)

        with self._lock:
            if email in self._by_email or username in self._by_username:
                raise UserExistsError("Account already exists")

            record = _UserRecord(
                principal_id=secrets.token_hex(16),
                email=email,
                username=username,
                password_hash=password_hash,
                created_at=time.time(),
            )
            self._users[record.principal_id] = record
            self._by_email[email] = record.principal_id
            self._by_username[username] = record.principal_id

        logger.info("Created principal %s", record.principal_id)
        return record.snapshot()

    def verify(self, email: str, password: str) -> Tuple[Optional[str], bool, Optional[Exception]]:
        """
        Check an email/password pair.

        Returns:
            Tuple of (principal_id, ok, error). ``principal_id`` is set
            whenever the email is known, even if the password is wrong.
        """
        email = (email or "").strip().lower()
        with self._lock:
            principal_id = self._by_email.get(email)
            record = self._users.get(principal_id) if principal_id else None
            password_hash = record.password_hash if record else None

        if password_hash is None:
            # Burn comparable time for unknown emails.
            self._hasher.verify_password(password, self._get_dummy_hash())
            return None, False, None

        if not self._hasher.verify_password(password, password_hash):
            return principal_id, False, None

        if self._hasher.needs_rehash(password_hash):
            with self._lock:
                record.password_hash = self._hasher.hash_password(password)

        return principal_id, True, None

    def _get_dummy_hash(self) -> str:
        if self._dummy_hash is None:
            self._dummy_hash = self._hasher.hash_password(secrets.token_hex(16))
        return self._dummy_hash

    def _get(self, principal_id: str) -> _UserRecord:
        record = self._users.get(principal_id)
        if record is None:
            raise UserNotFoundError(f"Unknown principal {principal_id}")
        return record

    def lookup(self, principal_id: str) -> PrincipalSnapshot:
        """Return a snapshot of the principal, raising UserNotFoundError."""
        with self._lock:
            return self._get(principal_id).snapshot()

    def find_by_email(self, email: str) -> Optional[PrincipalSnapshot]:
        with self._lock:
            principal_id = self._by_email.get((email or "").strip().lower())
            return self._users[principal_id].snapshot() if principal_id else None

    def apply_action(self, principal_id: str, kind: ActionKind,
                     payload: Optional[Mapping[str, Any]] = None) -> None:
        """
        Apply the account change bound to an action token.

        Args:
            principal_id: Principal to modify
            kind: Action to perform
            payload: ``{'password': ...}`` for RESET_PASSWORD

        Raises:
            UserNotFoundError: Unknown principal
            PasswordPolicyError: New password too weak
            ValueError: Required payload missing
        """
        if kind is ActionKind.RESET_PASSWORD:
            new_password = (payload or {}).get('password')
            if not new_password:
                raise ValueError("Password reset requires a new password")
            errors = self.check_password(new_password)
            if errors:
                raise PasswordPolicyError(errors)
            password_hash = self._hasher.hash_password(new_password)

        with self._lock:
            record = self._get(principal_id)
            if kind is ActionKind.ACTIVATE:
                record.activated = True
            elif kind is ActionKind.UNLOCK:
                record.locked = False
                record.lock_reason = None
            elif kind is ActionKind.ENROLL_FACTOR:
                record.enrollment_granted = True
            elif kind is ActionKind.RESET_PASSWORD:
                record.password_hash = password_hash
            else:
                raise ValueError(f"Unsupported action {kind}")

        logger.info("Applied %s to principal %s", kind.value, principal_id)

    def update_password(self, principal_id: str, old_password: str,
                        new_password: str) -> bool:
        """
        Change a password after verifying the current one.

        Returns:
            False if the old password is wrong

        Raises:
            PasswordPolicyError: New password too weak
        """
        errors = self.check_password(new_password)
        if errors:
            raise PasswordPolicyError(errors)

        with self._lock:
            record = self._get(principal_id)
            current_hash = record.password_hash

        if not self._hasher.verify_password(old_password, current_hash):
            return False

        new_hash = self._hasher.hash_password(new_password)
        with self._lock:
            record.password_hash = new_hash
        return True

    def set_locked(self, principal_id: str, locked: bool,
                   reason: Optional[str] = None) -> None:
        with self._lock:
            record = self._get(principal_id)
            record.locked = locked
            record.lock_reason = reason if locked else None
        logger.info("Principal %s %s", principal_id, "locked" if locked else "unlocked")

    def clear_enrollment_grant(self, principal_id: str) -> bool:
        """Consume a factor-enrollment grant; returns whether one was held."""
        with self._lock:
            record = self._get(principal_id)
            granted, record.enrollment_granted = record.enrollment_granted, False
            return granted

    def record_login(self, principal_id: str) -> None:
        with self._lock:
            self._get(principal_id).last_login = time.time()

    def __len__(self) -> int:
        return len(self._users)
