"""
Recovery code second factor: single-use backup codes.

Only SHA-256 digests of the codes are kept.
"""

import hashlib
import hmac
import logging
import secrets
import threading
from typing import Dict, List, Optional

from ..kinds import FactorKind
from .base import EnrollmentGate, SecondFactorProvider

logger = logging.getLogger(__name__)

RECOVERY_CODE_COUNT = 10
RECOVERY_CODE_BYTES = 5


def _digest(code: str) -> str:
    normalized = str(code).replace('-', '').replace(' ', '').strip().lower()
    return hashlib.sha256(normalized.encode()).hexdigest()


class RecoveryCodeProvider(SecondFactorProvider):
    kind = FactorKind.RECOVERY

    def __init__(self, count: int = RECOVERY_CODE_COUNT,
                 enrollment_gate: Optional[EnrollmentGate] = None):
        super().__init__(enrollment_gate)
        self._count = count
        self._codes: Dict[str, List[str]] = {}
        self._lock = threading.Lock()

    def generate(self, principal_id: str, overwrite: bool = False) -> List[str]:
        """
        Create a fresh set of codes, returned once in plaintext.

        Raises:
            ValueError: Codes already exist and ``overwrite`` is False
            EnrollmentNotGrantedError: Gated provider and no grant held
        """
        codes = []
        for _ in range(self._count):
            raw = secrets.token_hex(RECOVERY_CODE_BYTES)
            codes.append(f"{raw[:5]}-{raw[5:]}")

        with self._lock:
            if self._codes.get(principal_id) and not overwrite:
                raise ValueError("Recovery codes already exist; overwrite required")
            self._consume_grant(principal_id)
            self._codes[principal_id] = [_digest(code) for code in codes]

        logger.info("Generated %d recovery codes for principal %s", len(codes), principal_id)
        return codes

    def remaining(self, principal_id: str) -> int:
        with self._lock:
            return len(self._codes.get(principal_id, []))

    def clear(self, principal_id: str) -> bool:
        with self._lock:
            return self._codes.pop(principal_id, None) is not None

    def is_enrolled(self, principal_id: str) -> bool:
        return self.remaining(principal_id) > 0

    def verify(self, principal_id: str, proof) -> bool:
        """Accept and burn a matching code."""
        if not proof:
            return False
        digest = _digest(proof)
        with self._lock:
            stored = self._codes.get(principal_id, [])
            for i, candidate in enumerate(stored):
                if hmac.compare_digest(candidate, digest):
                    del stored[i]
                    logger.info("Recovery code used by principal %s, %d left",
                                principal_id, len(stored))
                    return True
        return False
