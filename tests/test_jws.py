import json

import pytest
from cryptography.hazmat.primitives.asymmetric import ec, ed25519

from shc.errors import MalformedToken, SignatureInvalid, SigningKeyError, UnsupportedAlgorithm
from shc.token.jws import (
    SignedEnvelope,
    b64url_decode,
    b64url_encode,
    get_algorithm,
    parse_compact,
    read_header,
    sign,
    verify,
)

# Fixed scalar: a known test key, not a secret
TEST_SK = ec.derive_private_key(0xC0FFEE1234567890ABCDEF, ec.SECP256R1())


def test_sign_verify_roundtrip_fixed_width():
    env = sign({"zip": "DEF", "kid": "k1"}, b"payload-bytes", TEST_SK)
    token = env.compact()
    assert token.count(".") == 2 and "=" not in token
    assert len(b64url_decode(env.signature_b64)) == 64  # r || s, never DER
    assert read_header(env) == {"alg": "ES256", "zip": "DEF", "kid": "k1"}
    assert list(read_header(env))[0] == "alg"
    assert verify(parse_compact(token), TEST_SK.public_key()) == b"payload-bytes"


def test_none_header_fields_are_dropped():
    env = sign({"zip": "DEF", "kid": None}, b"x", TEST_SK)
    assert read_header(env) == {"alg": "ES256", "zip": "DEF"}


def test_signing_input_is_the_encoded_segments():
    env = sign({}, b"abc", TEST_SK)
    assert env.signing_input() == f"{env.header_b64}.{env.payload_b64}".encode()


def test_wrong_key_is_signature_invalid():
    other = ec.generate_private_key(ec.SECP256R1())
    env = sign({"zip": "DEF"}, b"abc", TEST_SK)
    with pytest.raises(SignatureInvalid):
        verify(env, other.public_key())


def test_modified_payload_segment_fails():
    env = sign({"zip": "DEF"}, b"abc", TEST_SK)
    forged = SignedEnvelope(env.header_b64, b64url_encode(b"abd"), env.signature_b64)
    with pytest.raises(SignatureInvalid):
        verify(forged, TEST_SK.public_key())


def test_der_or_short_signature_rejected():
    env = sign({}, b"abc", TEST_SK)
    short = SignedEnvelope(env.header_b64, env.payload_b64, b64url_encode(b"\x01" * 70))
    with pytest.raises(SignatureInvalid) as ei:
        verify(short, TEST_SK.public_key())
    assert ei.value.detail["length"] == 70


def test_non_p256_private_key_is_signing_key_error():
    with pytest.raises(SigningKeyError):
        sign({}, b"abc", ec.generate_private_key(ec.SECP384R1()))
    with pytest.raises(SigningKeyError):
        sign({}, b"abc", ed25519.Ed25519PrivateKey.generate())
    with pytest.raises(SigningKeyError):
        sign({}, b"abc", b"not a key")


def test_header_alg_mismatch_is_unsupported():
    env = sign({}, b"abc", TEST_SK)
    header = b64url_encode(json.dumps({"alg": "HS256"}).encode())
    with pytest.raises(UnsupportedAlgorithm):
        verify(SignedEnvelope(header, env.payload_b64, env.signature_b64), TEST_SK.public_key())


def test_non_ec_public_key_is_unsupported():
    env = sign({}, b"abc", TEST_SK)
    with pytest.raises(UnsupportedAlgorithm):
        verify(env, ed25519.Ed25519PrivateKey.generate().public_key())
    with pytest.raises(UnsupportedAlgorithm):
        verify(env, ec.generate_private_key(ec.SECP384R1()).public_key())


def test_unknown_configured_algorithm():
    assert get_algorithm().name == "ES256"
    with pytest.raises(UnsupportedAlgorithm):
        get_algorithm("RS256")


@pytest.mark.parametrize("token", ["a.b", "a.b.c.d", "a..c", "a.b.c=", "a.b+.c"])
def test_parse_compact_rejects_bad_layout(token):
    with pytest.raises(MalformedToken):
        parse_compact(token)


def test_b64url_decode_is_canonical():
    assert b64url_decode("AQ") == b"\x01"
    # 'AR' sets unused trailing bits and would also decode to b"\x01"
    with pytest.raises(MalformedToken):
        b64url_decode("AR")
    with pytest.raises(MalformedToken):
        b64url_decode("A")


def test_header_not_json_is_malformed():
    env = SignedEnvelope(b64url_encode(b"not json"), "AA", "AA")
    with pytest.raises(MalformedToken):
        read_header(env)
