from __future__ import annotations

import hashlib
import json
import logging
import time
from typing import Any, Iterable

import httpx
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from .errors import KeyNotFound, ShcError, SigningKeyError, UnsupportedAlgorithm
from .settings import settings
from .token.jws import b64url_decode, b64url_encode

_P256_BYTES = 32
WELL_KNOWN_JWKS = "/.well-known/jwks.json"


def gen_es256_keypair() -> tuple[ec.EllipticCurvePrivateKey, ec.EllipticCurvePublicKey]:
    sk = ec.generate_private_key(ec.SECP256R1())
    return sk, sk.public_key()


def load_private_key_pem(data: bytes, password: bytes | None = None) -> ec.EllipticCurvePrivateKey:
    try:
        key = serialization.load_pem_private_key(data, password=password)
    except (ValueError, TypeError) as e:
        raise SigningKeyError(f"cannot load PEM private key: {e}") from e
    if not isinstance(key, ec.EllipticCurvePrivateKey) or not isinstance(key.curve, ec.SECP256R1):
        raise SigningKeyError("private key is not an EC P-256 key")
    return key


def load_public_key_pem(data: bytes) -> ec.EllipticCurvePublicKey:
    try:
        key = serialization.load_pem_public_key(data)
    except ValueError as e:
        raise SigningKeyError(f"cannot load PEM public key: {e}") from e
    if not isinstance(key, ec.EllipticCurvePublicKey) or not isinstance(key.curve, ec.SECP256R1):
        raise SigningKeyError("public key is not an EC P-256 key")
    return key


def _coordinates(public_key: ec.EllipticCurvePublicKey) -> tuple[str, str]:
    nums = public_key.public_numbers()
    return (
        b64url_encode(nums.x.to_bytes(_P256_BYTES, "big")),
        b64url_encode(nums.y.to_bytes(_P256_BYTES, "big")),
    )


def jwk_thumbprint(public_key: ec.EllipticCurvePublicKey) -> str:
    """RFC 7638 SHA-256 thumbprint, the SMART Health Cards ``kid`` convention.

    Only the required members take part, in lexicographic order, with no whitespace.
    """
    x, y = _coordinates(public_key)
    members = {"crv": "P-256", "kty": "EC", "x": x, "y": y}
    canonical = json.dumps(members, sort_keys=True, separators=(",", ":"))
    return b64url_encode(hashlib.sha256(canonical.encode("utf-8")).digest())


def public_jwk(public_key: ec.EllipticCurvePublicKey, kid: str | None = None) -> dict[str, str]:
    x, y = _coordinates(public_key)
    return {
        "kty": "EC",
        "kid": kid or jwk_thumbprint(public_key),
        "use": "sig",
        "alg": "ES256",
        "crv": "P-256",
        "x": x,
        "y": y,
    }


def public_key_from_jwk(jwk: dict[str, Any]) -> ec.EllipticCurvePublicKey:
    if jwk.get("kty") != "EC" or jwk.get("crv") != "P-256":
        raise UnsupportedAlgorithm(
            f"key {jwk.get('kid')!r} is {jwk.get('kty')}/{jwk.get('crv')}, expected EC/P-256",
            kid=jwk.get("kid"),
        )
    if jwk.get("alg") not in (None, "ES256"):
        raise UnsupportedAlgorithm(f"key {jwk.get('kid')!r} is for {jwk['alg']}", kid=jwk.get("kid"))
    x = int.from_bytes(b64url_decode(jwk["x"]), "big")
    y = int.from_bytes(b64url_decode(jwk["y"]), "big")
    return ec.EllipticCurvePublicNumbers(x, y, ec.SECP256R1()).public_key()


class KeySet:
    """Issuer public keys indexed by ``kid``; usable directly as a decode resolver."""

    def __init__(self, keys: dict[str, ec.EllipticCurvePublicKey] | None = None):
        self._keys: dict[str, ec.EllipticCurvePublicKey] = dict(keys or {})

    @classmethod
    def from_jwks(cls, doc: dict[str, Any]) -> "KeySet":
        keys: dict[str, ec.EllipticCurvePublicKey] = {}
        entries = doc.get("keys")
        if not isinstance(entries, list):
            logging.debug("Key set has no 'keys' list")
            entries = []
        for jwk in entries:
            if not isinstance(jwk, dict):
                logging.debug("Skipping non-object JWK entry %r", jwk)
                continue
            try:
                key = public_key_from_jwk(jwk)
            except (ShcError, KeyError, TypeError, ValueError) as e:
                logging.debug("Skipping unusable JWK %s: %s", jwk.get("kid"), e)
                continue
            keys[jwk.get("kid") or jwk_thumbprint(key)] = key
        return cls(keys)

    @classmethod
    def of(cls, *public_keys: ec.EllipticCurvePublicKey) -> "KeySet":
        return cls({jwk_thumbprint(k): k for k in public_keys})

    def add(self, public_key: ec.EllipticCurvePublicKey, kid: str | None = None) -> str:
        kid = kid or jwk_thumbprint(public_key)
        self._keys[kid] = public_key
        return kid

    def resolve(self, kid: str) -> ec.EllipticCurvePublicKey | None:
        return self._keys.get(kid)

    __call__ = resolve

    def kids(self) -> list[str]:
        return sorted(self._keys)

    def to_jwks(self) -> dict[str, Any]:
        return {"keys": [public_jwk(k, kid) for kid, k in sorted(self._keys.items())]}

    def __len__(self) -> int:
        return len(self._keys)


class JwksKeyResolver:
    """Resolve a ``kid`` against the published key sets of trusted issuers.

    Each issuer's ``/.well-known/jwks.json`` is fetched on first use and cached
    for ``settings.jwks_cache_ttl_seconds``.
    """

    def __init__(
        self,
        issuers: Iterable[str],
        *,
        local: KeySet | None = None,
        local_issuer: str | None = None,
        _get_func=None,
    ):
        self.issuers = [i.rstrip("/") for i in issuers]
        self.local = local
        self.local_issuer = local_issuer.rstrip("/") if local_issuer else None
        self._get = _get_func or httpx.get
        self._cache: dict[str, tuple[float, KeySet]] = {}

    def key_set(self, issuer: str) -> KeySet:
        now = time.time()
        cached = self._cache.get(issuer)
        if cached and now - cached[0] < settings.jwks_cache_ttl_seconds:
            return cached[1]
        url = f"{issuer}{WELL_KNOWN_JWKS}"
        try:
            r = self._get(url, timeout=settings.jwks_fetch_timeout_seconds)
            r.raise_for_status()
            doc = r.json()
        except (httpx.HTTPError, ValueError) as e:
            raise KeyNotFound(f"cannot fetch key set from {url}: {e}", issuer=issuer) from e
        if not isinstance(doc, dict):
            raise KeyNotFound(f"key set at {url} is not a JSON object", issuer=issuer)
        ks = KeySet.from_jwks(doc)
        self._cache[issuer] = (now, ks)
        logging.debug("Fetched %d key(s) from %s", len(ks), url)
        return ks

    def resolve_with_issuer(self, kid: str) -> tuple[str | None, ec.EllipticCurvePublicKey] | None:
        """Return ``(issuer, key)`` for ``kid``; the issuer is ``local_issuer`` for local keys.

        Unreachable issuers are skipped. ``KeyNotFound`` is raised only when the
        kid is not found and at least one key set could not be fetched.
        """
        if self.local is not None:
            key = self.local.resolve(kid)
            if key is not None:
                return self.local_issuer, key
        unreachable: list[str] = []
        last_error: KeyNotFound | None = None
        for issuer in self.issuers:
            try:
                ks = self.key_set(issuer)
            except KeyNotFound as e:
                logging.debug("Skipping issuer %s: %s", issuer, e)
                unreachable.append(issuer)
                last_error = e
                continue
            key = ks.resolve(kid)
            if key is not None:
                return issuer, key
        if last_error is not None:
            raise KeyNotFound(
                f"kid {kid!r} not found; key sets unreachable for {', '.join(unreachable)}",
                kid=kid,
                unreachable=unreachable,
            ) from last_error
        return None

    def resolve(self, kid: str) -> ec.EllipticCurvePublicKey | None:
        found = self.resolve_with_issuer(kid)
        return found[1] if found else None

    __call__ = resolve


__all__ = [
    "JwksKeyResolver",
    "KeySet",
    "WELL_KNOWN_JWKS",
    "gen_es256_keypair",
    "jwk_thumbprint",
    "load_private_key_pem",
    "load_public_key_pem",
    "public_jwk",
    "public_key_from_jwk",
]
