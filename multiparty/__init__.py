from .codec import (
    MessageCodec,
    canonical_order,
    canonical_transcript,
    message_tag,
    missing_recipients,
    PADDING_SIZE,
    TAG_ROUNDS,
    )
from .envelope import (
    RecipientBlock,
    PublicKeyRequest,
    PublicKeyAnnouncement,
    EncryptedMessage,
    UnknownEnvelope,
    parse_envelope,
    encode_envelope,
    public_key_envelope,
    public_key_request_envelope,
    )
from .errors import (
    ProtocolError,
    ParseError,
    NotApplicable,
    AuthenticationFailure,
    ReplayDetected,
    TagFailure,
    MalformedPlaintext,
    UnknownType,
    InvalidPublicKey,
    )
from .handshake import HandshakeHandler
from .keys import (
    KeyPair,
    SharedKey,
    generate_key_pair,
    derive_shared_key,
    fingerprint,
    encode_public_key,
    decode_public_key,
    )
from .notices import NoticeKind, ProtocolNotice
from .peers import PeerRecord, PeerState, Roster, DictRoster
from .replay import ReplayGuard
from .session import MultiPartySession
from .settings import ProtocolSettings, configure_logging
