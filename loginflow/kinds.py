"""Second factor kinds shared by the session, outcome and provider modules."""

from enum import Enum


class FactorKind(Enum):
    """Closed set of second factor kinds a provider can implement."""
    TOTP = "totp"
    U2F = "u2f"
    RECOVERY = "recovery"
