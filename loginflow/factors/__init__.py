# Second Factor Module
"""
Pluggable second factors:
- Provider contract and registry - base.py
- TOTP (RFC 6238, via pyotp) - totp.py
- U2F security keys (P-256 ECDSA) - u2f.py
- Single-use recovery codes - recovery.py
"""

from ..kinds import FactorKind

from .base import (
    EnrollmentGate,
    SecondFactorProvider,
    SecondFactorRegistry,
)

from .totp import (
    TotpProvider,
    TotpToken,
    provisioning_qr,
)

from .u2f import (
    U2fProvider,
    U2fAssertion,
    U2fKey,
    websafe_encode,
)

from .recovery import RecoveryCodeProvider

__all__ = [
    'FactorKind',
    'EnrollmentGate',
    'SecondFactorProvider',
    'SecondFactorRegistry',
    'TotpProvider',
    'TotpToken',
    'provisioning_qr',
    'U2fProvider',
    'U2fAssertion',
    'U2fKey',
    'websafe_encode',
    'RecoveryCodeProvider',
]
