"""
Action token stores.

A store must offer an atomic conditional consume: of any number of callers
racing to consume the same token, exactly one sees True. Service instances
may share one store, so the guarantee has to come from the store and not
from locks held by the orchestrator.
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Dict, Optional

from ..errors import StoreError, TokenStoreConflict
from .models import ActionToken

logger = logging.getLogger(__name__)


class TokenStore(ABC):
    """Persistence contract the action token orchestrator depends on."""

    @abstractmethod
    def add(self, token: ActionToken) -> None:
        """Persist a new token. Raises StoreError if the id already exists."""

    @abstractmethod
    def get(self, token_id: str) -> Optional[ActionToken]:
        """Return the stored token, or None."""

    @abstractmethod
    def consume(self, token_id: str, now: float) -> bool:
        """
        Atomically mark a token consumed.

        Succeeds only if the token exists, is unconsumed and has not expired
        at ``now``.

        Returns:
            True for exactly one of any set of concurrent callers
        """

    @abstractmethod
    def purge_expired(self, now: float) -> int:
        """Delete tokens expired at ``now``; return how many were removed."""


class InMemoryTokenStore(TokenStore):
    """
    Process-local token store.

    Records are immutable and replaced wholesale. Consumption is an
    optimistic compare-and-swap on ``version``: read, then swap only if the
    version is unchanged. A lost swap is retried once after re-reading; a
    second loss raises TokenStoreConflict rather than looping.
    """

    def __init__(self):
        self._tokens: Dict[str, ActionToken] = {}
        self._lock = threading.Lock()

    def add(self, token: ActionToken) -> None:
        with self._lock:
            if token.token_id in self._tokens:
                raise StoreError("Token id already exists")
            self._tokens[token.token_id] = token

    def get(self, token_id: str) -> Optional[ActionToken]:
        with self._lock:
            return self._tokens.get(token_id)

    def _compare_and_swap(self, token_id: str, expected_version: int,
                          new: ActionToken) -> bool:
        """Replace the record only if it still carries ``expected_version``."""
        with self._lock:
            current = self._tokens.get(token_id)
            if current is None or current.version != expected_version:
                return False
            self._tokens[token_id] = new
            return True

    def consume(self, token_id: str, now: float) -> bool:
        for attempt in range(2):
            current = self.get(token_id)
            if current is None or not current.is_redeemable(now):
                return False

            consumed = replace(current, consumed=True, version=current.version + 1)
            if self._compare_and_swap(token_id, current.version, consumed):
                return True

            logger.debug("Token consume lost compare-and-swap (attempt %d)", attempt + 1)

        raise TokenStoreConflict("Token was modified concurrently twice")

    def purge_expired(self, now: float) -> int:
        with self._lock:
            expired = [tid for tid, token in self._tokens.items()
                       if token.is_expired(now)]
            for tid in expired:
                del self._tokens[tid]
        return len(expired)

    def __len__(self) -> int:
        return len(self._tokens)
