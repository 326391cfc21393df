"""
Failure taxonomy for the group protocol.

Every class derives from ProtocolError, which is a ValueError, so callers that
already treat malformed input as ValueError keep working. The session layer is
the only place that swallows these: it turns them into notices and returns
nothing.
"""

from __future__ import annotations


class ProtocolError(ValueError):
    """Base class for every protocol-level failure."""


class ParseError(ProtocolError):
    """The envelope could not be decoded or does not have the expected shape."""


class NotApplicable(ProtocolError):
    """Nothing to do: not addressed to us, or no shared secret with the sender."""


class AuthenticationFailure(ProtocolError):
    """The per-recipient HMAC did not verify."""


class ReplayDetected(ProtocolError):
    """The IV was already seen in this session."""


class TagFailure(ProtocolError):
    """The global message tag did not verify (recipient-set inconsistency)."""


class MalformedPlaintext(ProtocolError):
    """Decrypted bytes are shorter than the padding or are not valid UTF-8."""


class UnknownType(ProtocolError):
    def __init__(self, msg_type: object):
        super().__init__(f"unknown message type: {msg_type!r}")
        self.msg_type = msg_type


class InvalidPublicKey(ProtocolError):
    """A received public key has the wrong size or is a low-order point."""
