"""
Per-peer key state and the roster interface.

A PeerRecord moves one way only: NO_KEY -> KEY_KNOWN. Once a public key is
pinned it is never replaced for the rest of the session (trust on first use).
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Protocol, runtime_checkable

from .keys import SharedKey


class PeerState(str, Enum):
    NO_KEY = "no_key"
    KEY_KNOWN = "key_known"


@dataclass
class PeerRecord:
    name: str
    public_key: Optional[bytes] = None
    shared_key: Optional[SharedKey] = None
    fingerprint: Optional[str] = None

    @property
    def state(self) -> PeerState:
        return PeerState.KEY_KNOWN if self.public_key is not None else PeerState.NO_KEY

    @property
    def has_secret(self) -> bool:
        return self.shared_key is not None

    def pin(self, public_key: bytes, shared_key: SharedKey, fingerprint: str) -> None:
        if self.state is PeerState.KEY_KNOWN:
            raise ValueError(f"public key for {self.name!r} is already pinned")
        self.public_key = bytes(public_key)
        self.shared_key = shared_key
        self.fingerprint = fingerprint


# =============================================================================
# Roster interface
# =============================================================================

@runtime_checkable
class Roster(Protocol):
    # Current room participants, excluding the local participant
    def names(self) -> Iterable[str]: ...
    def get(self, name: str) -> Optional[PeerRecord]: ...
    def set(self, name: str, record: PeerRecord) -> None: ...


class DictRoster:
    """
    In-memory roster backed by a dict, insertion ordered.
    Presence changes (join/leave) are the host's business; add() and remove()
    are provided for hosts and tests that do not have their own store.
    """
    def __init__(self, names: Iterable[str] = ()):
        self._d: Dict[str, PeerRecord] = {}
        self._lock = threading.Lock()
        for n in names:
            self.add(n)

    def names(self) -> List[str]:
        with self._lock:
            return list(self._d)

    def get(self, name: str) -> Optional[PeerRecord]:
        with self._lock:
            return self._d.get(name)

    def set(self, name: str, record: PeerRecord) -> None:
        with self._lock:
            self._d[name] = record

    def add(self, name: str) -> PeerRecord:
        with self._lock:
            rec = self._d.get(name)
            if rec is None:
                rec = self._d[name] = PeerRecord(name=name)
            return rec

    def remove(self, name: str) -> None:
        with self._lock:
            self._d.pop(name, None)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._d
