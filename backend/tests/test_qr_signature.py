import jwt
import pytest

from ticketgate.core.errors import MalformedPayloadError
from ticketgate.services.qr_signature import QRSignatureCodec

SECRET = "unit-test-qr-secret-0123456789abcdef"

codec = QRSignatureCodec(SECRET)


def test_minted_payload_verifies():
    payload = codec.mint("t-1", "Ana Brown", "gold", nonce="abc123")
    assert codec.verify(payload)
    assert payload.signed_fields() == {"id": "t-1", "name": "Ana Brown", "tier": "gold", "nonce": "abc123"}


def test_signature_is_deterministic_for_same_fields():
    a = codec.mint("t-1", "Ana", "gold", nonce="n1")
    b = codec.mint("t-1", "Ana", "gold", nonce="n1")
    assert a.signature == b.signature


def test_mint_generates_fresh_nonce():
    a = codec.mint("t-1", "Ana", "gold")
    b = codec.mint("t-1", "Ana", "gold")
    assert a.nonce != b.nonce
    assert a.signature != b.signature


@pytest.mark.parametrize("field, value", [("id", "t-2"), ("name", "Eve"), ("tier", "diamond"), ("nonce", "other")])
def test_any_field_change_breaks_signature(field, value):
    payload = codec.mint("t-1", "Ana", "gold", nonce="n1")
    tampered = payload.model_copy(update={field: value})
    assert not codec.verify(tampered)


def test_printed_string_round_trips():
    payload = codec.mint("t-1", "Ana", "silver")
    printed = codec.sign(payload)
    parsed = codec.parse(printed)
    assert parsed == payload
    assert codec.verify(parsed)


def test_object_form_is_accepted():
    payload = codec.mint("t-1", "Ana", "silver")
    loaded = codec.load(payload.model_dump())
    assert codec.verify(loaded)


def test_other_secret_does_not_verify():
    other = QRSignatureCodec("a-completely-different-secret-98765")
    forged = codec.parse(other.sign(other.mint("t-1", "Ana", "gold")))
    assert not codec.verify(forged)


def test_resigned_claims_with_wrong_key_are_rejected():
    claims = {"id": "t-1", "name": "Ana", "tier": "diamond", "nonce": "n1"}
    printed = jwt.encode(claims, "guessed-key-guessed-key-guessed-key", algorithm="HS256")
    assert not codec.verify(codec.parse(printed))


@pytest.mark.parametrize("bad", ["", "not-a-token", "a.b", "a.b.c", "{\"id\": 1}"])
def test_malformed_strings_raise(bad):
    with pytest.raises(MalformedPayloadError):
        codec.parse(bad)


def test_missing_or_extra_fields_raise():
    with pytest.raises(MalformedPayloadError):
        codec.from_mapping({"id": "t-1", "name": "Ana", "tier": "gold", "signature": "x"})
    with pytest.raises(MalformedPayloadError):
        codec.from_mapping({"id": "t-1", "name": "Ana", "tier": "gold", "nonce": "n", "signature": "x", "extra": 1})
    with pytest.raises(MalformedPayloadError):
        codec.load(42)


def test_empty_secret_rejected():
    with pytest.raises(ValueError):
        QRSignatureCodec("")
