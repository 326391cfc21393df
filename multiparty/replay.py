"""
Session-scoped IV history.

One ReplayGuard serves both directions: nonces we generate and nonces we
accept from peers share the same set, so an IV we produced can never be
accepted back and an IV we accepted is never reused for our own output.
"""

from __future__ import annotations

import logging
import threading
from typing import MutableSet, Optional, Union

from . import primitives as prim


logger = logging.getLogger(__name__)


class ReplayGuard:
    """
    Append-only set of base64-encoded 12-byte nonces until reset().

    The set container may be injected (for example to share it with a host's
    own bookkeeping); all access goes through an internal lock.
    """
    def __init__(self, used: Optional[MutableSet[str]] = None):
        self._used: MutableSet[str] = used if used is not None else set()
        self._lock = threading.Lock()

    @staticmethod
    def _key(nonce: Union[bytes, str]) -> str:
        if isinstance(nonce, (bytes, bytearray)):
            return prim.b64_encode(bytes(nonce))
        return str(nonce)

    def reserve_nonce(self) -> bytes:
        """Draw random 12-byte nonces until an unused one turns up, record it, return it."""
        with self._lock:
            while True:
                nonce = prim.random_bytes(prim.NONCE_SIZE)
                key = self._key(nonce)
                if key not in self._used:
                    self._used.add(key)
                    return nonce

    def reject_if_reused(self, nonce: Union[bytes, str]) -> bool:
        """
        True if the nonce was unseen (it is now recorded).
        False if it was already used; callers treat that as an attack.
        """
        key = self._key(nonce)
        with self._lock:
            if key in self._used:
                return False
            self._used.add(key)
            return True

    def reset(self) -> None:
        with self._lock:
            self._used.clear()
        logger.debug("replay guard reset")

    def __contains__(self, nonce: object) -> bool:
        if not isinstance(nonce, (bytes, bytearray, str)):
            return False
        with self._lock:
            return self._key(nonce) in self._used

    def __len__(self) -> int:
        with self._lock:
            return len(self._used)
