"""
Wire envelopes.

Incoming JSON is validated once, here, into one of four variants keyed by
`type`. Everything past this module works with typed models and never inspects
raw dicts.

Shapes
  publicKeyRequest  {"type": "publicKeyRequest", "text": {peer: {}}}
  publicKey         {"type": "publicKey", "text": {peer: {"message": b64(pub)}}}
  message           {"type": "message", "text": {peer: {"message", "iv", "hmac"}}, "tag": b64}

A per-peer block that is not an object, or a field that is not a string, is
kept as an absent / incomplete block instead of failing the whole envelope:
a single broken block must not hide the rest of the message from its other
recipients.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from .errors import ParseError


MSG_PUBLIC_KEY = "publicKey"
MSG_PUBLIC_KEY_REQUEST = "publicKeyRequest"
MSG_MESSAGE = "message"


class RecipientBlock(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    message: Optional[str] = None
    iv: Optional[str] = None
    hmac: Optional[str] = None

    @field_validator("message", "iv", "hmac", mode="before")
    @classmethod
    def _strings_only(cls, v: Any) -> Optional[str]:
        return v if isinstance(v, str) else None

    @property
    def complete(self) -> bool:
        return self.message is not None and self.iv is not None and self.hmac is not None


class _EnvelopeBase(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    text: Dict[str, Optional[RecipientBlock]]

    @field_validator("text", mode="before")
    @classmethod
    def _blocks(cls, v: Any) -> Dict[str, Any]:
        if not isinstance(v, dict):
            raise ValueError("text must be an object")
        return {str(k): (b if isinstance(b, dict) else None) for k, b in v.items()}

    def block(self, name: str) -> Optional[RecipientBlock]:
        return self.text.get(name)

    def addressed_to(self, name: str) -> bool:
        return self.text.get(name) is not None


class PublicKeyRequest(_EnvelopeBase):
    type: Literal["publicKeyRequest"]


class PublicKeyAnnouncement(_EnvelopeBase):
    type: Literal["publicKey"]


class EncryptedMessage(_EnvelopeBase):
    type: Literal["message"]
    tag: Optional[str] = None

    @field_validator("tag", mode="before")
    @classmethod
    def _tag_string(cls, v: Any) -> Optional[str]:
        return v if isinstance(v, str) else None


class UnknownEnvelope(_EnvelopeBase):
    type: Any = None


Envelope = Union[PublicKeyRequest, PublicKeyAnnouncement, EncryptedMessage, UnknownEnvelope]

_VARIANTS = {
    MSG_PUBLIC_KEY_REQUEST: PublicKeyRequest,
    MSG_PUBLIC_KEY: PublicKeyAnnouncement,
    MSG_MESSAGE: EncryptedMessage,
}


# =============================================================================
# Parsing and encoding
# =============================================================================

def parse_envelope(raw: Union[str, bytes, bytearray, Mapping[str, Any]]) -> Envelope:
    """
    Decode a relay payload into a typed envelope.

    Raises ParseError on invalid or too deeply nested JSON, a non-object top
    level, or a missing / non-object `text`. An unrecognized `type` is not a
    parse error; it comes back as UnknownEnvelope so the caller can decide
    whether it concerns us.
    """
    data: Any = raw
    if isinstance(data, (bytes, bytearray)):
        try:
            data = bytes(data).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ParseError("envelope is not valid UTF-8") from exc
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except (ValueError, RecursionError) as exc:
            # RecursionError: nesting deeper than the decoder's stack allows
            raise ParseError(f"invalid JSON envelope: {exc.__class__.__name__}") from exc
    if not isinstance(data, Mapping):
        raise ParseError("envelope must be a JSON object")

    msg_type = data.get("type")
    model = _VARIANTS.get(msg_type) if isinstance(msg_type, str) else None
    try:
        return (model or UnknownEnvelope).model_validate(dict(data))
    except ValidationError as exc:
        raise ParseError(f"malformed envelope: {exc.error_count()} error(s)") from exc


def encode_envelope(envelope: Union[Mapping[str, Any], BaseModel]) -> str:
    """Compact JSON, as carried by the relay."""
    if isinstance(envelope, BaseModel):
        envelope = envelope.model_dump(exclude_none=True)
    return json.dumps(envelope, separators=(",", ":"), ensure_ascii=False)


def public_key_envelope(peer: str, public_key_b64: str) -> dict:
    return {
        "type": MSG_PUBLIC_KEY,
        "text": {peer: {"message": public_key_b64}},
    }


def public_key_request_envelope(peer: str) -> dict:
    return {
        "type": MSG_PUBLIC_KEY_REQUEST,
        "text": {peer: {}},
    }
