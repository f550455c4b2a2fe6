"""Encode a credential into QR payload strings and decode them back.

Encode: credential JSON -> raw DEFLATE -> compact JWS (ES256) -> numeric QR chunks.
Decode runs the same stages in reverse; signature verification happens before
the payload is inflated, and any failure aborts the whole call.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Iterable

from cryptography.hazmat.primitives.asymmetric import ec

from .errors import KeyNotFound, MalformedToken
from .keys import jwk_thumbprint
from .models import Credential
from .qr.chunks import parse_chunk, reassemble, split
from .settings import settings
from .token import jws
from .token.compress import compress, decompress
from .token.credential import build_payload_json, parse_payload_json

KeyResolver = Callable[[str], Any]


def encode_token(credential: Credential, private_key: Any, issuer_key_id: str | None = None) -> str:
    payload = compress(build_payload_json(credential))
    kid = issuer_key_id
    if (
        kid is None
        and isinstance(private_key, ec.EllipticCurvePrivateKey)
        and isinstance(private_key.curve, ec.SECP256R1)
    ):
        kid = jwk_thumbprint(private_key.public_key())
    header = {"alg": settings.jws_alg, "zip": settings.jws_zip, "kid": kid}
    token = jws.sign(header, payload, private_key, alg=settings.jws_alg).compact()
    logging.debug("Encoded credential for %s as %d char token (kid=%s)", credential.issuer, len(token), kid)
    return token


def encode(
    credential: Credential,
    private_key: Any,
    issuer_key_id: str | None = None,
    max_chars_per_chunk: int | None = None,
) -> list[str]:
    token = encode_token(credential, private_key, issuer_key_id)
    chunks = split(token, max_chars_per_chunk)
    return [c.to_qr_string() for c in chunks]


def decode_token(token: str, resolve_public_key: KeyResolver) -> Credential:
    envelope = jws.parse_compact(token)
    header = jws.read_header(envelope)
    if header.get("zip") != settings.jws_zip:
        raise MalformedToken(f"unsupported payload compression {header.get('zip')!r}", zip=header.get("zip"))
    kid = header.get("kid")
    if not isinstance(kid, str) or not kid:
        raise KeyNotFound("JWS header has no key id")
    public_key = resolve_public_key(kid)
    if public_key is None:
        raise KeyNotFound(f"no public key for kid {kid!r}", kid=kid)
    payload = jws.verify(envelope, public_key, alg=settings.jws_alg)
    credential = parse_payload_json(decompress(payload))
    logging.debug("Decoded credential from %s (kid=%s)", credential.issuer, kid)
    return credential


def decode(chunk_strings: Iterable[str], resolve_public_key: KeyResolver) -> Credential:
    chunks = [parse_chunk(s) for s in chunk_strings]
    return decode_token(reassemble(chunks), resolve_public_key)


__all__ = ["KeyResolver", "decode", "decode_token", "encode", "encode_token"]
