import base64

import pytest

from multiparty import (
    AuthenticationFailure,
    MalformedPlaintext,
    MessageCodec,
    NotApplicable,
    ReplayDetected,
    ReplayGuard,
    TagFailure,
    canonical_order,
    canonical_transcript,
    generate_key_pair,
    message_tag,
    missing_recipients,
    parse_envelope,
)
from multiparty import primitives as prim

from conftest import flip_b64, relay_forward, shared


def _codec() -> MessageCodec:
    return MessageCodec(ReplayGuard())


def _decrypt(codec, env, me, sender_key):
    return codec.decrypt(parse_envelope(relay_forward(env)), me, sender_key)


# -----------------------------------------------------------------------------
# Canonical transcript and tag
# -----------------------------------------------------------------------------

def test_canonical_order_is_lexicographic():
    assert canonical_order(["carol", "Bob", "alice", "bob"]) == ["Bob", "alice", "bob", "carol"]


def test_canonical_transcript_concatenates_in_sorted_order():
    fields = {"b": (b"B1", b"B2"), "a": (b"A1", b"A2")}
    assert canonical_transcript(fields) == b"A1A2B1B2"
    assert canonical_transcript(fields, prefix=b"P") == b"PA1A2B1B2"


def test_message_tag_is_eight_sha512_rounds():
    digest = b"msg" + b"h1" + b"h2"
    for _ in range(8):
        digest = prim.sha512(digest)
    assert message_tag(b"msg", {"y": b"h2", "x": b"h1"}) == digest


# -----------------------------------------------------------------------------
# Round trip
# -----------------------------------------------------------------------------

@pytest.mark.parametrize("plaintext", ["hello", "", "ünïcødé 🐱", "x" * 5000])
def test_round_trip_every_recipient(alice, bob, carol, plaintext):
    sender = _codec()
    env = sender.encrypt(plaintext, {"Carol": shared(alice, carol), "Bob": shared(alice, bob)})

    assert env["type"] == "message"
    assert list(env["text"]) == ["Bob", "Carol"]
    for block in env["text"].values():
        assert len(base64.b64decode(block["iv"])) == 12
        assert len(base64.b64decode(block["message"])) == len(plaintext.encode("utf-8")) + 64

    assert _decrypt(_codec(), env, "Bob", shared(bob, alice)) == plaintext
    assert _decrypt(_codec(), env, "Carol", shared(carol, alice)) == plaintext


def test_each_recipient_gets_a_distinct_iv_and_ciphertext(alice, bob, carol):
    env = _codec().encrypt("same", {"Bob": shared(alice, bob), "Carol": shared(alice, carol)})
    assert env["text"]["Bob"]["iv"] != env["text"]["Carol"]["iv"]
    assert env["text"]["Bob"]["message"] != env["text"]["Carol"]["message"]


def test_not_addressed_is_not_applicable(alice, bob, carol):
    env = _codec().encrypt("hi", {"Bob": shared(alice, bob)})
    with pytest.raises(NotApplicable):
        _decrypt(_codec(), env, "Carol", shared(carol, alice))


def test_own_iv_is_never_accepted_back(alice, bob):
    codec = _codec()
    env = codec.encrypt("loop", {"Bob": shared(alice, bob)})
    with pytest.raises(ReplayDetected):
        _decrypt(codec, env, "Bob", shared(bob, alice))


# -----------------------------------------------------------------------------
# Tampering
# -----------------------------------------------------------------------------

@pytest.mark.parametrize("field", ["message", "iv", "hmac"])
@pytest.mark.parametrize("index", [0, 5, -1])
def test_single_byte_flip_fails_authentication(alice, bob, carol, field, index):
    env = _codec().encrypt("attack at dawn", {"Bob": shared(alice, bob), "Carol": shared(alice, carol)})
    tampered = relay_forward(env)
    tampered["text"]["Bob"][field] = flip_b64(tampered["text"]["Bob"][field], index)

    with pytest.raises(AuthenticationFailure):
        _decrypt(_codec(), tampered, "Bob", shared(bob, alice))


@pytest.mark.parametrize("field", ["message", "iv"])
def test_flip_in_other_recipient_block_fails_authentication(alice, bob, carol, field):
    env = _codec().encrypt("hi", {"Bob": shared(alice, bob), "Carol": shared(alice, carol)})
    tampered = relay_forward(env)
    tampered["text"]["Carol"][field] = flip_b64(tampered["text"]["Carol"][field])

    with pytest.raises(AuthenticationFailure):
        _decrypt(_codec(), tampered, "Bob", shared(bob, alice))


def test_flip_in_other_recipient_hmac_fails_tag(alice, bob, carol):
    env = _codec().encrypt("hi", {"Bob": shared(alice, bob), "Carol": shared(alice, carol)})
    tampered = relay_forward(env)
    tampered["text"]["Carol"]["hmac"] = flip_b64(tampered["text"]["Carol"]["hmac"])

    with pytest.raises(TagFailure):
        _decrypt(_codec(), tampered, "Bob", shared(bob, alice))


@pytest.mark.parametrize("tag", [None, "", "AAAA", "\ud800"])
def test_bad_or_missing_tag_fails(alice, bob, tag):
    env = _codec().encrypt("hi", {"Bob": shared(alice, bob)})
    tampered = relay_forward(env)
    if tag is None:
        del tampered["tag"]
    else:
        tampered["tag"] = tag

    with pytest.raises(TagFailure):
        _decrypt(_codec(), tampered, "Bob", shared(bob, alice))


def test_lone_surrogate_hmac_fails_authentication(alice, bob):
    env = _codec().encrypt("hi", {"Bob": shared(alice, bob)})
    tampered = relay_forward(env)
    tampered["text"]["Bob"]["hmac"] = "\ud800"

    with pytest.raises(AuthenticationFailure):
        _decrypt(_codec(), tampered, "Bob", shared(bob, alice))


def test_undecodable_field_fails_authentication(alice, bob):
    env = _codec().encrypt("hi", {"Bob": shared(alice, bob)})
    tampered = relay_forward(env)
    tampered["text"]["Bob"]["iv"] = "%%%"

    with pytest.raises(AuthenticationFailure):
        _decrypt(_codec(), tampered, "Bob", shared(bob, alice))


def test_replay_is_detected(alice, bob):
    env = _codec().encrypt("once", {"Bob": shared(alice, bob)})
    receiver = _codec()

    assert _decrypt(receiver, env, "Bob", shared(bob, alice)) == "once"
    with pytest.raises(ReplayDetected):
        _decrypt(receiver, env, "Bob", shared(bob, alice))


def test_arrival_order_transcript_does_not_verify(alice, bob, carol):
    # Insertion order deliberately differs from the canonical order
    secrets = {"Carol": shared(alice, carol), "Bob": shared(alice, bob)}
    env = _codec().encrypt("order", secrets)
    blocks = env["text"]

    def pair(name):
        return base64.b64decode(blocks[name]["message"]) + base64.b64decode(blocks[name]["iv"])

    sorted_buf = pair("Bob") + pair("Carol")
    arrival_buf = pair("Carol") + pair("Bob")
    mac_key = shared(bob, alice).mac_key

    assert base64.b64encode(prim.hmac_sha512(mac_key, sorted_buf)).decode() == blocks["Bob"]["hmac"]
    assert base64.b64encode(prim.hmac_sha512(mac_key, arrival_buf)).decode() != blocks["Bob"]["hmac"]


def test_outsider_cannot_forge_hmac(alice, bob):
    eve = {"id": "Eve", "keys": generate_key_pair()}
    env = _codec().encrypt("hello", {"Bob": shared(alice, bob)})

    # Eve knows the ciphertext and swaps in her own authenticator
    forged = relay_forward(env)
    forged["text"]["Bob"]["hmac"] = base64.b64encode(
        prim.hmac_sha512(shared(eve, bob).mac_key, b"anything")
    ).decode()
    with pytest.raises(AuthenticationFailure):
        _decrypt(_codec(), forged, "Bob", shared(bob, alice))

    # Or encrypts her own message, claiming to be Alice
    own = _codec().encrypt("trust me", {"Bob": shared(eve, bob)})
    with pytest.raises(AuthenticationFailure):
        _decrypt(_codec(), own, "Bob", shared(bob, alice))


def _hand_built(sender_key, padded: bytes) -> dict:
    nonce = prim.random_bytes(12)
    ct = prim.aes_ctr_encrypt(sender_key.enc_key, nonce, padded)
    mac = prim.hmac_sha512(sender_key.mac_key, canonical_transcript({"Bob": (ct, nonce)}))
    return {
        "type": "message",
        "text": {"Bob": {"message": prim.b64_encode(ct), "iv": prim.b64_encode(nonce), "hmac": prim.b64_encode(mac)}},
        "tag": prim.b64_encode(message_tag(padded, {"Bob": mac})),
    }


def test_plaintext_shorter_than_padding_is_malformed(alice, bob):
    env = _hand_built(shared(alice, bob), b"short")
    with pytest.raises(MalformedPlaintext):
        _decrypt(_codec(), env, "Bob", shared(bob, alice))


def test_invalid_utf8_is_malformed(alice, bob):
    env = _hand_built(shared(alice, bob), b"\xff\xfe" + b"\x00" * 64)
    with pytest.raises(MalformedPlaintext):
        _decrypt(_codec(), env, "Bob", shared(bob, alice))


def test_exact_padding_length_yields_empty_string(alice, bob):
    env = _hand_built(shared(alice, bob), b"\x00" * 64)
    assert _decrypt(_codec(), env, "Bob", shared(bob, alice)) == ""


# -----------------------------------------------------------------------------
# Recipient completeness
# -----------------------------------------------------------------------------

def test_missing_recipients_lists_absent_and_incomplete_blocks():
    env = parse_envelope(
        {
            "type": "message",
            "text": {
                "Bob": {"message": "a", "iv": "b", "hmac": "c"},
                "Dave": {"message": "a", "iv": "b"},
            },
            "tag": "t",
        }
    )
    roster = ["main-Conversation", "Alice", "Bob", "Carol", "Dave"]

    missing = missing_recipients(
        env, roster, sender="Alice", local_name="Bob", broadcast_peer="main-Conversation"
    )
    assert missing == ["Carol", "Dave"]
