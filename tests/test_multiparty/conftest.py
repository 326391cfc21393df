import copy
import base64
from typing import Dict, List, Optional

import pytest

import sys, os
target_path = os.path.abspath(os.path.join(os.path.dirname(os.path.abspath(__file__)), "../.."))
if target_path not in sys.path:
    sys.path.insert(0, target_path)

from multiparty import (
    DictRoster,
    MultiPartySession,
    ProtocolNotice,
    derive_shared_key,
    encode_envelope,
    generate_key_pair,
)


# -----------------------------------------------------------------------------
# Helpers: untrusted relay and byte flipping
# -----------------------------------------------------------------------------

def relay_forward(msg: dict) -> dict:
    """Simulate an untrusted relay that forwards messages as-is (deep copy)."""
    return copy.deepcopy(msg)


def flip_b64(value: str, index: int = 0) -> str:
    raw = bytearray(base64.b64decode(value))
    raw[index % len(raw)] ^= 0x01
    return base64.b64encode(bytes(raw)).decode("utf-8")


class Room:
    """
    A chat room where every participant runs a MultiPartySession and the relay
    delivers JSON strings synchronously. Handshake replies travel through the
    same relay, so send_public_key() runs the whole mutual bootstrap.
    """
    def __init__(self):
        self.sessions: Dict[str, MultiPartySession] = {}
        self.notices: Dict[str, List[ProtocolNotice]] = {}
        self.wire: List[tuple] = []

    def join(self, name: str, **kwargs) -> MultiPartySession:
        roster = DictRoster(self.sessions)
        self.notices[name] = []
        session = MultiPartySession(
            name,
            roster=roster,
            notify=self.notices[name].append,
            responder=lambda peer, env, _from=name: self.deliver(_from, peer, env),
            **kwargs,
        )
        for other in self.sessions.values():
            other.roster.add(name)
        self.sessions[name] = session
        return session

    def deliver(self, sender: str, peer: str, envelope: dict) -> Optional[str]:
        raw = encode_envelope(relay_forward(envelope))
        self.wire.append((sender, peer, raw))
        return self.sessions[peer].receive_message(sender, raw)

    def broadcast(self, sender: str, envelope: dict) -> Dict[str, Optional[str]]:
        return {
            name: self.deliver(sender, name, envelope)
            for name in self.sessions
            if name != sender
        }

    def exchange_keys(self, a: str, b: str) -> None:
        self.sessions[a].send_public_key(b)


# -----------------------------------------------------------------------------
# Fixtures
# -----------------------------------------------------------------------------

@pytest.fixture
def room():
    return Room()


@pytest.fixture
def alice():
    return {"id": "Alice", "keys": generate_key_pair()}


@pytest.fixture
def bob():
    return {"id": "Bob", "keys": generate_key_pair()}


@pytest.fixture
def carol():
    return {"id": "Carol", "keys": generate_key_pair()}


def shared(a: dict, b: dict):
    """Shared key between a and b as computed by a."""
    return derive_shared_key(a["keys"].private, b["keys"].public)
