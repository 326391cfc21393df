# =============================================================================
# Message codec: per-recipient AES-CTR + HMAC chain + 8-round message tag
# =============================================================================
"""
Send path (encrypt)
1) utf-8 plaintext + 64 random bytes of padding
2) recipients = peers holding a shared secret, in canonical order
3) per recipient: fresh 12-byte IV from the ReplayGuard, AES-256-CTR under enc_key
4) transcript = concat(ciphertext || iv) over recipients in canonical order
5) per recipient: hmac = HMAC-SHA512(mac_key, transcript)
6) tag = SHA-512^8(padded plaintext || concat(hmac) in canonical order)

Receive path (decrypt) mirrors it, using the peer set found in the received
envelope, and releases plaintext only after both the local HMAC and the tag
verify.

Canonical order is sorted by UTF-16 code units, which is plain lexicographic
order for every name outside the astral planes. Every ordered concatenation in
this module goes through canonical_transcript() so the send and receive paths
cannot drift apart.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Mapping, Sequence, Tuple

from . import primitives as prim
from .envelope import MSG_MESSAGE, EncryptedMessage
from .errors import (
    AuthenticationFailure,
    MalformedPlaintext,
    NotApplicable,
    ReplayDetected,
    TagFailure,
)
from .keys import SharedKey
from .replay import ReplayGuard


logger = logging.getLogger(__name__)

PADDING_SIZE = 64
TAG_ROUNDS = 8


# =============================================================================
# Canonical ordering
# =============================================================================

def _sort_key(name: str) -> bytes:
    return name.encode("utf-16-be", "surrogatepass")


def canonical_order(names: Iterable[str]) -> List[str]:
    return sorted(names, key=_sort_key)


def canonical_transcript(fields: Mapping[str, Sequence[bytes]], *, prefix: bytes = b"") -> bytes:
    """
    prefix || fields[n1][0] || fields[n1][1] ... || fields[n2][0] ...
    with n1, n2, ... in canonical order.
    """
    parts = [prefix]
    for name in canonical_order(fields):
        parts.extend(fields[name])
    return b"".join(parts)


def message_tag(padded_plaintext: bytes, hmacs: Mapping[str, bytes], rounds: int = TAG_ROUNDS) -> bytes:
    digest = canonical_transcript({n: (h,) for n, h in hmacs.items()}, prefix=padded_plaintext)
    for _ in range(rounds):
        digest = prim.sha512(digest)
    return digest


# =============================================================================
# Recipient completeness
# =============================================================================

def missing_recipients(
    envelope: EncryptedMessage,
    roster: Iterable[str],
    *,
    sender: str,
    local_name: str,
    broadcast_peer: str,
) -> List[str]:
    """
    Room members (other than the broadcast pseudo-peer, the sender and us)
    whose block is absent or lacks a string message / iv / hmac.
    Advisory only: the message is still processed.
    """
    skip = {broadcast_peer, sender, local_name}
    out: List[str] = []
    for name in roster:
        if name in skip:
            continue
        blk = envelope.block(name)
        if blk is None or not blk.complete:
            out.append(name)
    return out


# =============================================================================
# Codec
# =============================================================================

def _decode_or(exc_type: type, value: object, what: str) -> bytes:
    if not isinstance(value, str):
        raise exc_type(f"missing {what}")
    try:
        return prim.b64_decode(value)
    except ValueError as exc:
        raise exc_type(f"undecodable {what}") from exc


def _wire_bytes(value: str) -> bytes:
    # JSON can carry lone surrogates; they must compare unequal, not raise
    return value.encode("utf-8", "surrogatepass")


class MessageCodec:
    def __init__(self, replay_guard: ReplayGuard):
        self.replay_guard = replay_guard

    def encrypt(self, plaintext: str, secrets: Mapping[str, SharedKey]) -> dict:
        """
        Encrypt once per recipient. `secrets` maps peer name -> SharedKey for
        every peer with an established secret; peers without one are simply
        absent from the mapping.
        """
        padded = plaintext.encode("utf-8") + prim.random_bytes(PADDING_SIZE)
        recipients = canonical_order(secrets)

        sealed: Dict[str, Tuple[bytes, bytes]] = {}
        for name in recipients:
            nonce = self.replay_guard.reserve_nonce()
            ciphertext = prim.aes_ctr_encrypt(secrets[name].enc_key, nonce, padded)
            sealed[name] = (ciphertext, nonce)

        transcript = canonical_transcript(sealed)
        hmacs = {name: prim.hmac_sha512(secrets[name].mac_key, transcript) for name in recipients}

        text = {
            name: {
                "message": prim.b64_encode(sealed[name][0]),
                "iv": prim.b64_encode(sealed[name][1]),
                "hmac": prim.b64_encode(hmacs[name]),
            }
            for name in recipients
        }
        return {
            "type": MSG_MESSAGE,
            "text": text,
            "tag": prim.b64_encode(message_tag(padded, hmacs)),
        }

    def decrypt(self, envelope: EncryptedMessage, local_name: str, sender_key: SharedKey) -> str:
        """
        Verify and decrypt the block addressed to `local_name`.

        Raises
        - NotApplicable: no block for us
        - AuthenticationFailure: transcript cannot be rebuilt or HMAC mismatch
        - ReplayDetected: IV already seen this session
        - TagFailure: message tag missing or mismatched
        - MalformedPlaintext: shorter than the padding, or not UTF-8
        """
        local = envelope.block(local_name)
        if local is None:
            raise NotApplicable(f"message not addressed to {local_name!r}")

        # Rebuild the transcript from the peers present in the envelope
        sealed: Dict[str, Tuple[bytes, bytes]] = {}
        for name, blk in envelope.text.items():
            if blk is None:
                raise AuthenticationFailure(f"recipient block for {name!r} is not an object")
            sealed[name] = (
                _decode_or(AuthenticationFailure, blk.message, f"ciphertext for {name!r}"),
                _decode_or(AuthenticationFailure, blk.iv, f"iv for {name!r}"),
            )
        transcript = canonical_transcript(sealed)

        expected = prim.b64_encode(prim.hmac_sha512(sender_key.mac_key, transcript))
        if local.hmac is None or not prim.constant_time_equal(
            _wire_bytes(expected), _wire_bytes(local.hmac)
        ):
            logger.warning("HMAC failure")
            raise AuthenticationFailure("HMAC mismatch")

        ciphertext, nonce = sealed[local_name]
        if len(nonce) != prim.NONCE_SIZE:
            raise AuthenticationFailure("iv must be 12 bytes")

        if not self.replay_guard.reject_if_reused(local.iv):
            logger.warning("IV reuse detected, possible replay attack")
            raise ReplayDetected("IV already used in this session")

        plaintext = prim.aes_ctr_decrypt(sender_key.enc_key, nonce, ciphertext)

        hmacs = {
            name: _decode_or(TagFailure, blk.hmac, f"hmac for {name!r}")
            for name, blk in envelope.text.items()
            if blk is not None
        }
        tag = prim.b64_encode(message_tag(plaintext, hmacs))
        if envelope.tag is None or not prim.constant_time_equal(
            _wire_bytes(tag), _wire_bytes(envelope.tag)
        ):
            logger.warning("message tag failure")
            raise TagFailure("message tag mismatch")

        if len(plaintext) < PADDING_SIZE:
            logger.warning("invalid plaintext size")
            raise MalformedPlaintext("plaintext shorter than padding")

        try:
            return plaintext[:-PADDING_SIZE].decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedPlaintext("plaintext is not valid UTF-8") from exc
