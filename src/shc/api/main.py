from __future__ import annotations

import json
import logging
from datetime import datetime, timezone

from fastapi import FastAPI, HTTPException
from pydantic import ValidationError

from ..errors import IssuerMismatch, ShcError
from ..keys import JwksKeyResolver, KeySet, jwk_thumbprint, load_private_key_pem
from ..models import Credential, DecodedCredential, DecodeRequest, EncodeRequest, EncodeResponse
from ..pipeline import decode, encode
from ..settings import settings

app = FastAPI(title="SMART Health Card QR codec")

_resolver_cache: dict[tuple[str, ...], JwksKeyResolver] = {}


def _load_issuer_key():
    """Return the configured issuer private key, or None when not configured."""
    path = settings.issuer_private_key_pem
    if path is None:
        return None
    if not path.exists():
        logging.error("Issuer private key %s not found", path)
        return None
    return load_private_key_pem(path.read_bytes())


def _local_key_set() -> KeySet:
    ks = KeySet()
    sk = _load_issuer_key()
    if sk is not None:
        ks.add(sk.public_key(), settings.issuer_key_id)
    return ks


def _resolver() -> JwksKeyResolver:
    issuers = tuple(settings.trusted_issuers)
    r = _resolver_cache.get(issuers)
    if r is None:
        r = JwksKeyResolver(issuers)
        _resolver_cache[issuers] = r
    # Local key may change with settings; remote key sets stay cached
    r.local = _local_key_set()
    r.local_issuer = settings.issuer_url.rstrip("/") if settings.issuer_url else None
    return r


@app.get("/healthz")
def healthz():
    return {"ok": True, "alg": settings.jws_alg, "max_chars_per_chunk": settings.qr_max_chars_per_chunk}


@app.get("/.well-known/jwks.json")
def jwks():
    ks = _local_key_set()
    if not len(ks):
        raise HTTPException(404, "no issuer key configured")
    return ks.to_jwks()


@app.post("/encode", response_model=EncodeResponse)
def encode_credential(req: EncodeRequest):
    sk = _load_issuer_key()
    if sk is None:
        raise HTTPException(503, "no issuer key configured")
    issuer = req.issuer or settings.issuer_url
    if not issuer:
        raise HTTPException(422, "issuer not given and not configured")
    try:
        cred = Credential(
            issuer=issuer,
            issued_at=req.issued_at or datetime.now(timezone.utc),
            types=req.types,
            fhir_version=req.fhir_version or settings.fhir_version,
            fhir_bundle_json=json.dumps(req.fhir_bundle, separators=(",", ":"), ensure_ascii=False),
        )
    except ValidationError as e:
        raise HTTPException(422, [err["msg"] for err in e.errors()]) from None
    kid = settings.issuer_key_id or jwk_thumbprint(sk.public_key())
    try:
        chunks = encode(cred, sk, issuer_key_id=kid, max_chars_per_chunk=req.max_chars_per_chunk)
    except ValueError as e:
        raise HTTPException(422, str(e)) from None
    return EncodeResponse(kid=kid, total=len(chunks), chunks=chunks)


@app.post("/decode", response_model=DecodedCredential)
def decode_credential(req: DecodeRequest):
    resolver = _resolver()
    matched: dict[str, str | None] = {}

    def resolve(kid: str):
        found = resolver.resolve_with_issuer(kid)
        if found is None:
            return None
        matched["issuer"], key = found
        return key

    try:
        cred = decode(req.chunks, resolve)
        issuer = matched.get("issuer")
        if issuer is not None and cred.issuer.rstrip("/") != issuer:
            raise IssuerMismatch(
                f"card issuer {cred.issuer} is not the key owner {issuer}", iss=cred.issuer, key_issuer=issuer
            )
    except ShcError as e:
        logging.debug("Decode rejected: %s", e.to_dict())
        raise HTTPException(422, e.to_dict()) from None
    return DecodedCredential(
        iss=cred.issuer,
        nbf=cred.nbf,
        types=cred.types,
        fhir_version=cred.fhir_version,
        fhir_bundle=cred.fhir_bundle(),
    )
