"""
TOTP (Time-based One-Time Password) Second Factor

RFC 6238 codes are computed by pyotp; this module owns enrollment, the
per-principal token records and replay protection.

Features:
- Enrollment with confirmation code
- Provisioning URI and QR code for authenticator apps
- Time drift tolerance
- A code is accepted at most once per time step

Used with:
- Google Authenticator
- Authy
- Any RFC 6238 compliant authenticator
"""

import hmac
import io
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

import pyotp
import qrcode
from qrcode.constants import ERROR_CORRECT_L

from ..kinds import FactorKind
from .base import EnrollmentGate, SecondFactorProvider

logger = logging.getLogger(__name__)


# TOTP configuration (RFC 6238 defaults)
TOTP_DIGITS = 6           # Number of digits in OTP
TOTP_TIME_STEP = 30       # Time step in seconds
TOTP_DRIFT_TOLERANCE = 1  # Accept codes from +/- this many time steps


@dataclass
class TotpToken:
    """An enrolled authenticator."""
    name: str
    secret: str            # base32
    last_counter: int = -1
    last_used: Optional[float] = None


def normalize_code(code) -> str:
    """Strip spaces from a user-entered code."""
    return str(code).replace(' ', '').strip()


def provisioning_qr(uri: str, filename: str = None) -> Optional[str]:
    """
    Generate QR code for authenticator app setup.

    Args:
        uri: otpauth:// provisioning URI
        filename: Optional filename to save QR code image

    Returns:
        ASCII QR code string if no filename, else None
    """
    qr = qrcode.QRCode(
        version=1,
        error_correction=ERROR_CORRECT_L,
        box_size=10,
        border=4,
    )
    qr.add_data(uri)
    qr.make(fit=True)

    if filename:
        img = qr.make_image(fill_color="black", back_color="white")
        img.save(filename)
        return None

    f = io.StringIO()
    qr.print_ascii(out=f)
    return f.getvalue()


class TotpProvider(SecondFactorProvider):
    """
    TOTP second factor provider.

    Example:
        >>> provider = TotpProvider(issuer="loginflow")
        >>> secret, uri = provider.begin_enrollment(user_id, "alice@example.com")
        >>> provider.confirm_enrollment(user_id, "phone", code_from_app)
        True
    """

    kind = FactorKind.TOTP

    def __init__(self, issuer: str = "loginflow",
                 digits: int = TOTP_DIGITS,
                 time_step: int = TOTP_TIME_STEP,
                 drift_tolerance: int = TOTP_DRIFT_TOLERANCE,
                 clock: Callable[[], float] = time.time,
                 enrollment_gate: Optional[EnrollmentGate] = None):
        super().__init__(enrollment_gate)
        self._issuer = issuer
        self._digits = digits
        self._time_step = time_step
        self._drift_tolerance = drift_tolerance
        self._clock = clock
        self._pending: Dict[str, str] = {}         # principal_id -> base32 secret
        self._tokens: Dict[str, List[TotpToken]] = {}
        self._lock = threading.Lock()

    def _totp(self, secret: str) -> pyotp.TOTP:
        return pyotp.TOTP(secret, digits=self._digits, interval=self._time_step)

    def _match(self, secret: str, code: str, after_counter: int) -> Optional[int]:
        """
        Find the time step ``code`` belongs to.

        Only steps within the drift tolerance and strictly after
        ``after_counter`` are considered.

        Returns:
            The matching counter, or None
        """
        code = normalize_code(code)
        if len(code) != self._digits or not code.isdigit():
            return None

        totp = self._totp(secret)
        current = int(self._clock()) // self._time_step
        for offset in range(-self._drift_tolerance, self._drift_tolerance + 1):
            counter = current + offset
            if counter <= after_counter:
                continue
            # Use constant-time comparison
            if hmac.compare_digest(code, totp.generate_otp(counter)):
                return counter
        return None

    def begin_enrollment(self, principal_id: str, account_name: str) -> Tuple[str, str]:
        """
        Create a new TOTP secret awaiting confirmation.

        Returns:
            Tuple of (base32_secret, provisioning_uri)

        Raises:
            EnrollmentNotGrantedError: Gated provider and no grant held
        """
        self._check_grant(principal_id)
        secret = pyotp.random_base32()
        with self._lock:
            self._pending[principal_id] = secret
        uri = self._totp(secret).provisioning_uri(name=account_name,
                                                  issuer_name=self._issuer)
        return secret, uri

    def confirm_enrollment(self, principal_id: str, name: str, code: str) -> bool:
        """
        Store the pending secret once the user proves their app produces
        valid codes.

        Raises:
            ValueError: Empty token name
            EnrollmentNotGrantedError: The grant was used up meanwhile
        """
        if not name:
            raise ValueError("Token name required")

        with self._lock:
            secret = self._pending.get(principal_id)
            if secret is None:
                return False

            counter = self._match(secret, code, after_counter=-1)
            if counter is None:
                return False

            self._consume_grant(principal_id)
            del self._pending[principal_id]
            self._tokens.setdefault(principal_id, []).append(
                TotpToken(name=name, secret=secret, last_counter=counter,
                          last_used=self._clock()))

        logger.info("Enrolled TOTP token '%s' for principal %s", name, principal_id)
        return True

    def cancel_enrollment(self, principal_id: str) -> bool:
        """Cancel pending enrollment."""
        with self._lock:
            return self._pending.pop(principal_id, None) is not None

    def is_enrolled(self, principal_id: str) -> bool:
        with self._lock:
            return bool(self._tokens.get(principal_id))

    def tokens(self, principal_id: str) -> List[str]:
        """Names of the principal's enrolled authenticators."""
        with self._lock:
            return [token.name for token in self._tokens.get(principal_id, [])]

    def remove_token(self, principal_id: str, name: str) -> bool:
        with self._lock:
            tokens = self._tokens.get(principal_id, [])
            kept = [token for token in tokens if token.name != name]
            self._tokens[principal_id] = kept
            return len(kept) != len(tokens)

    def verify(self, principal_id: str, proof) -> bool:
        """
        Verify a TOTP code against each of the principal's tokens.

        A code for a time step at or before the token's last accepted step
        is rejected, which stops replays within the drift window.
        """
        with self._lock:
            for token in self._tokens.get(principal_id, []):
                counter = self._match(token.secret, proof, token.last_counter)
                if counter is not None:
                    token.last_counter = counter
                    token.last_used = self._clock()
                    return True
        return False
