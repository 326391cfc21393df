"""
One participant's view of a group conversation.

MultiPartySession owns the identity key pair and the ReplayGuard, borrows the
roster from the host, and exposes the three things a chat client needs:
send_message(), receive_message() and the handshake helpers. It is the error
boundary of the package: receive_message() never raises for hostile or broken
input; it logs, notifies, and returns None.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Union

from .codec import MessageCodec, missing_recipients
from .envelope import (
    EncryptedMessage,
    Envelope,
    PublicKeyAnnouncement,
    PublicKeyRequest,
    parse_envelope,
)
from .errors import (
    AuthenticationFailure,
    InvalidPublicKey,
    MalformedPlaintext,
    ParseError,
    ProtocolError,
    ReplayDetected,
    TagFailure,
    UnknownType,
)
from .handshake import HandshakeHandler, Responder
from .keys import KeyPair, SharedKey, encode_public_key, fingerprint, generate_key_pair
from .notices import NoticeKind, NotifySink, ProtocolNotice, log_notice
from .peers import DictRoster, Roster
from .replay import ReplayGuard
from .settings import ProtocolSettings


logger = logging.getLogger(__name__)

_NOTICE_FOR = {
    AuthenticationFailure: NoticeKind.MESSAGE_INTEGRITY,
    ReplayDetected: NoticeKind.REPLAY,
    TagFailure: NoticeKind.TAG_FAILURE,
    MalformedPlaintext: NoticeKind.MALFORMED_PLAINTEXT,
}

RawEnvelope = Union[str, bytes, Mapping[str, Any]]


class MultiPartySession:
    def __init__(
        self,
        name: str,
        *,
        keys: Optional[KeyPair] = None,
        roster: Optional[Roster] = None,
        notify: Optional[NotifySink] = None,
        responder: Optional[Responder] = None,
        replay_guard: Optional[ReplayGuard] = None,
        settings: Optional[ProtocolSettings] = None,
    ):
        self.name = name
        self.settings = settings or ProtocolSettings()
        self.keys = keys or generate_key_pair()
        self.roster: Roster = roster if roster is not None else DictRoster()
        self.notify: NotifySink = notify or log_notice
        self.replay_guard = replay_guard or ReplayGuard()
        self.codec = MessageCodec(self.replay_guard)
        self.handshake = HandshakeHandler(self.keys, self.roster, responder)

    # -------------------------------------------------------------------------
    # Keys
    # -------------------------------------------------------------------------

    @property
    def public_key_b64(self) -> str:
        return encode_public_key(self.keys.public)

    def fingerprint(self, name: Optional[str] = None) -> Optional[str]:
        """Own fingerprint when `name` is None, else the pinned peer's (None if unknown)."""
        if name is None:
            return fingerprint(self.keys.public)
        rec = self.roster.get(name)
        return rec.fingerprint if rec is not None else None

    def shared_secrets(self) -> Dict[str, SharedKey]:
        out: Dict[str, SharedKey] = {}
        for peer in self.roster.names():
            if peer == self.settings.broadcast_peer:
                continue
            rec = self.roster.get(peer)
            if rec is not None and rec.shared_key is not None:
                out[peer] = rec.shared_key
        return out

    def send_public_key(self, peer: str) -> dict:
        return self.handshake.send_public_key(peer)

    def request_public_key(self, peer: str) -> dict:
        return self.handshake.request_public_key(peer)

    # -------------------------------------------------------------------------
    # Messages
    # -------------------------------------------------------------------------

    def send_message(self, plaintext: str) -> dict:
        """Envelope for every peer we share a secret with, ready for encode_envelope()."""
        return self.codec.encrypt(plaintext, self.shared_secrets())

    def receive_message(self, sender: str, raw: RawEnvelope) -> Optional[str]:
        """
        Handle one envelope from `sender`.

        Returns the plaintext of a verified message, otherwise None (handshake
        traffic, not addressed to us, or rejected).
        """
        try:
            env = parse_envelope(raw)
        except ParseError as exc:
            logger.info("failed to parse message object from %s: %s", sender, exc)
            return None

        if not env.addressed_to(self.name):
            return None

        try:
            return self._dispatch(sender, env)
        except UnknownType as exc:
            logger.warning("unknown message type from %s: %r", sender, exc.msg_type)
            self.notify(ProtocolNotice(NoticeKind.UNKNOWN_TYPE, sender))
            return None

    def _dispatch(self, sender: str, env: Envelope) -> Optional[str]:
        if isinstance(env, PublicKeyRequest):
            self.handshake.on_public_key_request(sender)
            return None

        if isinstance(env, PublicKeyAnnouncement):
            encoded = env.block(self.name).message
            if encoded is None:
                logger.info("publicKey from %s without message field", sender)
                return None
            try:
                self.handshake.on_public_key(sender, encoded)
            except InvalidPublicKey as exc:
                logger.warning("rejected public key from %s: %s", sender, exc)
            return None

        if isinstance(env, EncryptedMessage):
            return self._receive_encrypted(sender, env)

        raise UnknownType(env.type)

    def _receive_encrypted(self, sender: str, env: EncryptedMessage) -> Optional[str]:
        missing = missing_recipients(
            env,
            self.roster.names(),
            sender=sender,
            local_name=self.name,
            broadcast_peer=self.settings.broadcast_peer,
        )
        if missing:
            self.notify(ProtocolNotice(NoticeKind.MISSING_RECIPIENTS, sender, tuple(missing)))

        rec = self.roster.get(sender)
        if rec is None or rec.shared_key is None:
            logger.debug("no shared secret with %s; cannot decrypt", sender)
            return None

        try:
            return self.codec.decrypt(env, self.name, rec.shared_key)
        except ProtocolError as exc:
            kind = next((k for cls, k in _NOTICE_FOR.items() if isinstance(exc, cls)), None)
            if kind is None:
                logger.info("dropped message from %s: %s", sender, exc)
            else:
                self.notify(ProtocolNotice(kind, sender))
            return None

    def reset(self) -> None:
        """Forget IV history. Identity keys and pinned peers are kept."""
        self.replay_guard.reset()
