"""
Public key exchange.

Flow (mutual bootstrap over the relay)
- A -> B  publicKeyRequest     B answers with its public key
- A -> B  publicKey            B pins A's key (first key wins), derives the
                               shared secret and answers with its own key
- B -> A  publicKey            A pins B's key and answers; B already has
                               A's key, so the exchange stops there

The handler never transmits anything itself: outgoing envelopes go through
the responder callable supplied by the host.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from .envelope import public_key_envelope, public_key_request_envelope
from .keys import KeyPair, decode_public_key, derive_shared_key, encode_public_key, fingerprint
from .peers import PeerRecord, PeerState, Roster


logger = logging.getLogger(__name__)

# responder(peer_name, envelope) hands an outgoing envelope to the transport
Responder = Callable[[str, dict], None]


class HandshakeHandler:
    def __init__(self, keys: KeyPair, roster: Roster, responder: Optional[Responder] = None):
        self.keys = keys
        self.roster = roster
        self.responder = responder
        # Held across check -> derive -> pin so concurrent first keys derive once
        self._lock = threading.RLock()

    def _emit(self, peer: str, envelope: dict) -> dict:
        if self.responder is not None:
            self.responder(peer, envelope)
        return envelope

    def send_public_key(self, peer: str) -> dict:
        return self._emit(peer, public_key_envelope(peer, encode_public_key(self.keys.public)))

    def request_public_key(self, peer: str) -> dict:
        return self._emit(peer, public_key_request_envelope(peer))

    def on_public_key_request(self, sender: str) -> None:
        self.send_public_key(sender)

    def on_public_key(self, sender: str, encoded_key: str) -> bool:
        """
        Pin `sender`'s key if none is known yet and answer with ours.

        Returns True when a key was pinned, False when one was already known
        (the new key is ignored). Raises InvalidPublicKey for a key that cannot
        be used; nothing is pinned in that case.
        """
        with self._lock:
            rec = self.roster.get(sender)
            if rec is None:
                rec = PeerRecord(name=sender)
            if rec.state is PeerState.KEY_KNOWN:
                logger.info("ignoring new public key from %s: key already pinned", sender)
                return False

            public = decode_public_key(encoded_key)
            shared = derive_shared_key(self.keys.private, public)
            fp = fingerprint(public)
            rec.pin(public, shared, fp)
            self.roster.set(sender, rec)

        logger.info("pinned public key for %s (fingerprint %s)", sender, fp)
        self.send_public_key(sender)
        return True
