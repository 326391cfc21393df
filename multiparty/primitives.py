# =============================================================================
# Primitive adapter: curve, cipher, hashes, randomness
# =============================================================================
"""
Thin layer over `cryptography` so the protocol code never touches hazmat
objects directly.

Conventions
- Curve points and DH outputs are handled as 32-byte big-endian u-coordinates
  (the byte-reverse of RFC 7748's little-endian raw form). This is the form
  hashed for key derivation and fingerprints and the form carried on the wire.
- AES-256-CTR takes a 12-byte nonce. It is expanded to a 16-byte initial
  counter block by appending four zero bytes, so the 32-bit block counter
  starts at 0.
- Base64 is standard alphabet with padding; decoding is strict.
"""

from __future__ import annotations

import base64
import binascii
import os

from cryptography.hazmat.primitives import constant_time, hashes, hmac, serialization
from cryptography.hazmat.primitives.asymmetric import x25519
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .errors import InvalidPublicKey


POINT_SIZE = 32
KEY_SIZE = 32
NONCE_SIZE = 12
_COUNTER_SUFFIX = b"\x00\x00\x00\x00"


# =============================================================================
# Encoding
# =============================================================================

def b64_encode(data: bytes) -> str:
    return base64.b64encode(data).decode("utf-8")


def b64_decode(data: str) -> bytes:
    if not isinstance(data, str):
        raise ValueError("base64 value must be a string")
    try:
        return base64.b64decode(data.encode("utf-8"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as exc:
        raise ValueError(f"invalid base64: {exc}") from exc


# =============================================================================
# Randomness
# =============================================================================

def random_bytes(n: int) -> bytes:
    return os.urandom(n)


# =============================================================================
# Curve25519
# =============================================================================

def _raw(point_be: bytes) -> bytes:
    return bytes(reversed(point_be))


def new_private_key() -> x25519.X25519PrivateKey:
    return x25519.X25519PrivateKey.generate()


def public_point(priv: x25519.X25519PrivateKey) -> bytes:
    """Fixed-base scalar multiplication, returned big-endian."""
    raw = priv.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )
    return _raw(raw)


def load_point(point_be: bytes) -> x25519.X25519PublicKey:
    if not isinstance(point_be, (bytes, bytearray)) or len(point_be) != POINT_SIZE:
        raise InvalidPublicKey("public key must be 32 bytes")
    return x25519.X25519PublicKey.from_public_bytes(_raw(bytes(point_be)))


def scalar_mult(priv: x25519.X25519PrivateKey, peer_point_be: bytes) -> bytes:
    """DH agreement. Returns the shared u-coordinate big-endian."""
    peer = load_point(peer_point_be)
    try:
        shared = priv.exchange(peer)
    except ValueError as exc:
        # cryptography refuses an all-zero result (low-order peer point)
        raise InvalidPublicKey(str(exc)) from exc
    return _raw(shared)


# =============================================================================
# AES-256-CTR
# =============================================================================

def expand_nonce(nonce: bytes) -> bytes:
    if len(nonce) != NONCE_SIZE:
        raise ValueError("nonce must be 12 bytes")
    return bytes(nonce) + _COUNTER_SUFFIX


def _aes_ctr(key: bytes, nonce: bytes, data: bytes) -> bytes:
    if len(key) != KEY_SIZE:
        raise ValueError("AES-256 key must be 32 bytes")
    ctx = Cipher(algorithms.AES(bytes(key)), modes.CTR(expand_nonce(nonce))).encryptor()
    return ctx.update(data) + ctx.finalize()


def aes_ctr_encrypt(key: bytes, nonce: bytes, plaintext: bytes) -> bytes:
    return _aes_ctr(key, nonce, plaintext)


def aes_ctr_decrypt(key: bytes, nonce: bytes, ciphertext: bytes) -> bytes:
    # CTR is its own inverse
    return _aes_ctr(key, nonce, ciphertext)


# =============================================================================
# Hashing and MAC
# =============================================================================

def sha512(data: bytes) -> bytes:
    h = hashes.Hash(hashes.SHA512())
    h.update(data)
    return h.finalize()


def hmac_sha512(key: bytes, data: bytes) -> bytes:
    h = hmac.HMAC(bytes(key), hashes.SHA512())
    h.update(data)
    return h.finalize()


def constant_time_equal(a: bytes, b: bytes) -> bool:
    return constant_time.bytes_eq(bytes(a), bytes(b))
