"""Compact JWS signing and verification with fixed-width ECDSA signatures.

The signature segment is ``r || s``, each integer left-padded to the curve's
byte width (RFC 7518 section 3.4). ``cryptography`` produces and consumes
DER-encoded signatures, so the conversion happens here with explicit length checks.
"""
from __future__ import annotations

import base64
import binascii
import json
import re
from dataclasses import dataclass
from typing import Any

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import decode_dss_signature, encode_dss_signature

from ..errors import MalformedToken, SignatureInvalid, SigningKeyError, UnsupportedAlgorithm
from ..settings import settings

_B64URL_RE = re.compile(r"[A-Za-z0-9_-]+")


@dataclass(frozen=True)
class JwsAlgorithm:
    name: str
    curve: type[ec.EllipticCurve]
    hash_alg: type[hashes.HashAlgorithm]
    component_bytes: int  # width of each of r and s

    @property
    def signature_bytes(self) -> int:
        return 2 * self.component_bytes


ALGORITHMS: dict[str, JwsAlgorithm] = {
    "ES256": JwsAlgorithm("ES256", ec.SECP256R1, hashes.SHA256, 32),
}


def get_algorithm(name: str | None = None) -> JwsAlgorithm:
    name = name or settings.jws_alg
    try:
        return ALGORITHMS[name]
    except KeyError:
        raise UnsupportedAlgorithm(f"unsupported JWS algorithm: {name!r}", alg=name) from None


@dataclass(frozen=True)
class SignedEnvelope:
    header_b64: str
    payload_b64: str
    signature_b64: str

    def signing_input(self) -> bytes:
        return f"{self.header_b64}.{self.payload_b64}".encode("ascii")

    def compact(self) -> str:
        return f"{self.header_b64}.{self.payload_b64}.{self.signature_b64}"


def b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64url_decode(segment: str) -> bytes:
    """Strict, canonical base64url decoding of an unpadded segment.

    Rejects characters outside the alphabet and encodings whose unused trailing
    bits are set, so exactly one string maps to each byte sequence.
    """
    if not _B64URL_RE.fullmatch(segment) or len(segment) % 4 == 1:
        raise MalformedToken("segment is not unpadded base64url")
    try:
        raw = base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4))
    except (binascii.Error, ValueError) as e:
        raise MalformedToken(f"segment is not unpadded base64url: {e}") from e
    if b64url_encode(raw) != segment:
        raise MalformedToken("non-canonical base64url segment")
    return raw


def parse_compact(token: str) -> SignedEnvelope:
    parts = token.split(".")
    if len(parts) != 3:
        raise MalformedToken(f"compact JWS must have 3 segments, got {len(parts)}", segments=len(parts))
    for p in parts:
        if not p or not _B64URL_RE.fullmatch(p):
            raise MalformedToken("compact JWS segment is empty or outside the base64url alphabet")
    return SignedEnvelope(*parts)


def read_header(envelope: SignedEnvelope) -> dict[str, Any]:
    raw = b64url_decode(envelope.header_b64)
    try:
        header = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise MalformedToken(f"JWS header is not JSON: {e}") from e
    if not isinstance(header, dict):
        raise MalformedToken("JWS header must be a JSON object")
    return header


def _raw_signature(der: bytes, alg: JwsAlgorithm) -> bytes:
    r, s = decode_dss_signature(der)
    width = alg.component_bytes
    if r.bit_length() > width * 8 or s.bit_length() > width * 8:
        raise SigningKeyError(f"signature component exceeds {width} bytes for {alg.name}")
    sig = r.to_bytes(width, "big") + s.to_bytes(width, "big")
    if len(sig) != alg.signature_bytes:  # pragma: no cover - guarded above
        raise SigningKeyError("fixed-width signature has the wrong length")
    return sig


def _der_signature(raw: bytes, alg: JwsAlgorithm) -> bytes:
    if len(raw) != alg.signature_bytes:
        raise SignatureInvalid(
            f"{alg.name} signature must be {alg.signature_bytes} bytes, got {len(raw)}",
            length=len(raw),
        )
    width = alg.component_bytes
    r = int.from_bytes(raw[:width], "big")
    s = int.from_bytes(raw[width:], "big")
    return encode_dss_signature(r, s)


def sign(header_fields: dict[str, Any], payload: bytes, private_key: Any, alg: str | None = None) -> SignedEnvelope:
    """Sign ``payload`` and return the three base64url segments.

    ``alg`` in the header is always set from the selected algorithm and comes
    first; ``None`` valued header fields are dropped.
    """
    algorithm = get_algorithm(alg)
    if not isinstance(private_key, ec.EllipticCurvePrivateKey) or not isinstance(private_key.curve, algorithm.curve):
        raise SigningKeyError(f"{algorithm.name} requires an EC private key on {algorithm.curve.name}")
    header = {"alg": algorithm.name}
    header.update({k: v for k, v in header_fields.items() if k != "alg" and v is not None})
    header_b64 = b64url_encode(json.dumps(header, separators=(",", ":")).encode("utf-8"))
    payload_b64 = b64url_encode(payload)
    signing_input = f"{header_b64}.{payload_b64}".encode("ascii")
    der = private_key.sign(signing_input, ec.ECDSA(algorithm.hash_alg()))
    return SignedEnvelope(header_b64, payload_b64, b64url_encode(_raw_signature(der, algorithm)))


def verify(envelope: SignedEnvelope, public_key: Any, alg: str | None = None) -> bytes:
    """Verify the envelope signature and return the decoded payload bytes."""
    algorithm = get_algorithm(alg)
    header = read_header(envelope)
    if header.get("alg") != algorithm.name:
        raise UnsupportedAlgorithm(
            f"header alg {header.get('alg')!r} is not {algorithm.name}", alg=header.get("alg")
        )
    if not isinstance(public_key, ec.EllipticCurvePublicKey) or not isinstance(public_key.curve, algorithm.curve):
        raise UnsupportedAlgorithm(f"resolved key is not usable for {algorithm.name}", alg=algorithm.name)
    der = _der_signature(b64url_decode(envelope.signature_b64), algorithm)
    try:
        public_key.verify(der, envelope.signing_input(), ec.ECDSA(algorithm.hash_alg()))
    except InvalidSignature:
        raise SignatureInvalid("JWS signature verification failed", kid=header.get("kid")) from None
    return b64url_decode(envelope.payload_b64)


__all__ = [
    "ALGORITHMS",
    "JwsAlgorithm",
    "SignedEnvelope",
    "b64url_decode",
    "b64url_encode",
    "get_algorithm",
    "parse_compact",
    "read_header",
    "sign",
    "verify",
]
