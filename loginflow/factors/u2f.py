"""
U2F Second Factor

Checks FIDO U2F authentication assertions against registered keys.

Assertion format (FIDO U2F raw message):
    signature_data = [flags (1 byte) | counter (4 bytes, big endian) | ECDSA signature (DER)]
    signed bytes   = SHA-256(app_id) | flags | counter | SHA-256(client_data)

Security features:
- P-256 ECDSA verification (cryptography)
- Single-use, expiring challenges
- User presence flag required
- Signature counter must strictly increase (cloned key detection)
"""

import base64
import hashlib
import hmac
import json
import logging
import secrets
import struct
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec

from ..kinds import FactorKind
from .base import EnrollmentGate, SecondFactorProvider

logger = logging.getLogger(__name__)


CURVE = ec.SECP256R1()  # P-256 curve
CHALLENGE_BYTES = 32
CHALLENGE_TTL_SECONDS = 300
USER_PRESENCE_FLAG = 0x01
ASSERTION_TYPE = "navigator.id.getAssertion"


def websafe_encode(data: bytes) -> str:
    """URL-safe base64 without padding, as used by U2F."""
    return base64.urlsafe_b64encode(data).decode('ascii').rstrip('=')


def websafe_decode(data: str) -> bytes:
    padding = -len(data) % 4
    return base64.urlsafe_b64decode(data + '=' * padding)


@dataclass
class U2fKey:
    """A registered security key."""
    key_handle: bytes
    public_key: bytes          # X9.62 uncompressed point
    counter: int = 0
    name: str = ""
    last_used: Optional[float] = None


@dataclass(frozen=True)
class U2fAssertion:
    """Authentication response posted by the client."""
    key_handle: bytes
    client_data: bytes
    signature_data: bytes


@dataclass
class _Challenge:
    value: bytes
    issued_at: float


class U2fProvider(SecondFactorProvider):
    """
    U2F second factor provider.

    Args:
        app_id: Application identity (origin) keys are registered for
        clock: Time source
        challenge_ttl: Seconds a challenge stays valid
        enrollment_gate: Requires an enrollment grant for register_key
    """

    kind = FactorKind.U2F

    def __init__(self, app_id: str,
                 clock: Callable[[], float] = time.time,
                 challenge_ttl: int = CHALLENGE_TTL_SECONDS,
                 enrollment_gate: Optional[EnrollmentGate] = None):
        super().__init__(enrollment_gate)
        self._app_id = app_id
        self._app_param = hashlib.sha256(app_id.encode()).digest()
        self._clock = clock
        self._challenge_ttl = challenge_ttl
        self._keys: Dict[str, List[U2fKey]] = {}
        self._challenges: Dict[str, _Challenge] = {}
        self._lock = threading.Lock()

    @property
    def app_id(self) -> str:
        return self._app_id

    def register_key(self, principal_id: str, key_handle: bytes,
                     public_key: bytes, counter: int = 0, name: str = "") -> U2fKey:
        """
        Store a key produced by a completed U2F registration.

        Raises:
            ValueError: ``public_key`` is not a valid P-256 point
            EnrollmentNotGrantedError: Gated provider and no grant held
        """
        ec.EllipticCurvePublicKey.from_encoded_point(CURVE, public_key)
        self._consume_grant(principal_id)
        key = U2fKey(key_handle=key_handle, public_key=public_key,
                     counter=counter, name=name)
        with self._lock:
            self._keys.setdefault(principal_id, []).append(key)
        logger.info("Registered U2F key for principal %s", principal_id)
        return key

    def keys(self, principal_id: str) -> List[U2fKey]:
        with self._lock:
            return list(self._keys.get(principal_id, []))

    def remove_key(self, principal_id: str, key_handle: bytes) -> bool:
        with self._lock:
            keys = self._keys.get(principal_id, [])
            kept = [k for k in keys if not hmac.compare_digest(k.key_handle, key_handle)]
            self._keys[principal_id] = kept
            return len(kept) != len(keys)

    def is_enrolled(self, principal_id: str) -> bool:
        with self._lock:
            return bool(self._keys.get(principal_id))

    def begin_authentication(self, principal_id: str) -> Dict[str, Any]:
        """
        Issue a sign request for the principal's keys.

        Returns:
            Dict with app_id, challenge and the registered key handles
        """
        challenge = secrets.token_bytes(CHALLENGE_BYTES)
        with self._lock:
            self._challenges[principal_id] = _Challenge(challenge, self._clock())
            handles = [websafe_encode(k.key_handle) for k in self._keys.get(principal_id, [])]
        return {
            'app_id': self._app_id,
            'challenge': websafe_encode(challenge),
            'key_handles': handles,
        }

    def _check_client_data(self, client_data: bytes, challenge: bytes) -> bool:
        try:
            data = json.loads(client_data.decode('utf-8'))
        except (UnicodeDecodeError, ValueError):
            return False
        if not isinstance(data, dict) or data.get('typ') != ASSERTION_TYPE:
            return False
        if data.get('origin') != self._app_id:
            return False
        return hmac.compare_digest(str(data.get('challenge', '')), websafe_encode(challenge))

    @staticmethod
    def _parse_signature_data(signature_data: bytes) -> Tuple[int, int, bytes]:
        if len(signature_data) < 6:
            raise ValueError("Signature data too short")
        flags = signature_data[0]
        counter = struct.unpack('>I', signature_data[1:5])[0]
        return flags, counter, signature_data[5:]

    def verify(self, principal_id: str, proof) -> bool:
        """Verify a U2fAssertion against the pending challenge."""
        if not isinstance(proof, U2fAssertion):
            return False

        with self._lock:
            # Challenges are single use whatever the result.
            challenge = self._challenges.pop(principal_id, None)
            if challenge is None:
                return False
            if self._clock() - challenge.issued_at > self._challenge_ttl:
                return False

            if not self._check_client_data(proof.client_data, challenge.value):
                return False

            key = next((k for k in self._keys.get(principal_id, [])
                        if hmac.compare_digest(k.key_handle, proof.key_handle)), None)
            if key is None:
                logger.info("No matching U2F key for principal %s", principal_id)
                return False

            try:
                flags, counter, signature = self._parse_signature_data(proof.signature_data)
            except ValueError:
                return False
            if not flags & USER_PRESENCE_FLAG:
                return False
            if counter <= key.counter:
                logger.warning("U2F counter did not increase for principal %s", principal_id)
                return False

            signed = (self._app_param + proof.signature_data[:5]
                      + hashlib.sha256(proof.client_data).digest())
            public_key = ec.EllipticCurvePublicKey.from_encoded_point(CURVE, key.public_key)
            try:
                public_key.verify(signature, signed, ec.ECDSA(hashes.SHA256()))
            except InvalidSignature:
                return False

            key.counter = counter
            key.last_used = self._clock()
            return True
