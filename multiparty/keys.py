"""
Identity keys, per-peer shared secrets and fingerprints.

- generate_key_pair(): fresh static Curve25519 identity for one session
- derive_shared_key(): SHA-512 over the DH point, split into enc/mac halves
- fingerprint(): first 40 uppercase hex chars of SHA-512(public key)
"""

from __future__ import annotations

from dataclasses import dataclass, field

from cryptography.hazmat.primitives.asymmetric import x25519

from . import primitives as prim
from .errors import InvalidPublicKey


FINGERPRINT_LENGTH = 40


@dataclass(frozen=True)
class KeyPair:
    """
    Local participant's static key pair.

    The private half never leaves this object: there is no serializer for it
    and repr() hides it.
    """
    private: x25519.X25519PrivateKey = field(repr=False)
    public: bytes

    def __repr__(self) -> str:
        return f"KeyPair(public={prim.b64_encode(self.public)!r}, private=<redacted>)"


@dataclass(frozen=True)
class SharedKey:
    enc_key: bytes
    mac_key: bytes

    def __repr__(self) -> str:
        return "SharedKey(<redacted>)"


def generate_key_pair() -> KeyPair:
    priv = prim.new_private_key()
    return KeyPair(private=priv, public=prim.public_point(priv))


def derive_shared_key(my_private: x25519.X25519PrivateKey, peer_public: bytes) -> SharedKey:
    """
    Both sides obtain the same result: DH(a, B) == DH(b, A).

    The DH point is hashed once with SHA-512; the first 32 bytes key AES, the
    last 32 bytes key HMAC.
    """
    digest = prim.sha512(prim.scalar_mult(my_private, peer_public))
    return SharedKey(enc_key=digest[:32], mac_key=digest[32:])


def fingerprint(public_key: bytes) -> str:
    if len(public_key) != prim.POINT_SIZE:
        raise InvalidPublicKey("public key must be 32 bytes")
    return prim.sha512(bytes(public_key)).hex().upper()[:FINGERPRINT_LENGTH]


def encode_public_key(public_key: bytes) -> str:
    return prim.b64_encode(public_key)


def decode_public_key(encoded: str) -> bytes:
    try:
        raw = prim.b64_decode(encoded)
    except ValueError as exc:
        raise InvalidPublicKey(str(exc)) from exc
    if len(raw) != prim.POINT_SIZE:
        raise InvalidPublicKey("invalid public key length")
    return raw
