from __future__ import annotations

import argparse
import json
import sys
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from .errors import KeyNotFound, ShcError
from .keys import KeySet, load_private_key_pem, load_public_key_pem, public_jwk
from .models import Credential, CredentialType
from .pipeline import decode, encode
from .settings import settings


def _credential_json(cred: Credential) -> dict:
    return {
        "iss": cred.issuer,
        "nbf": cred.nbf,
        "issued_at": cred.issued_at.isoformat(),
        "types": cred.types,
        "fhir_version": cred.fhir_version,
        "fhir_bundle": cred.fhir_bundle(),
    }


def _fail(message: str) -> int:
    print(message, file=sys.stderr)
    return 2


def cmd_encode(ns: argparse.Namespace) -> int:
    try:
        key = load_private_key_pem(Path(ns.key).read_bytes())
    except ShcError as e:
        return _fail(f"Unusable issuer key {ns.key}: {e}")
    issued_at = datetime.fromtimestamp(ns.nbf, tz=timezone.utc) if ns.nbf is not None else datetime.now(timezone.utc)
    types = ns.type or [CredentialType.HEALTH_CARD.value]
    try:
        cred = Credential(
            issuer=ns.issuer,
            issued_at=issued_at,
            types=types,
            fhir_version=ns.fhir_version,
            fhir_bundle_json=Path(ns.bundle).read_text(encoding="utf-8"),
        )
    except ValidationError as e:
        return _fail(f"Invalid credential: {e}")
    try:
        chunks = encode(cred, key, issuer_key_id=ns.kid, max_chars_per_chunk=ns.max_chars)
    except (ShcError, ValueError) as e:
        return _fail(f"Cannot encode: {e}")
    text = "\n".join(chunks) + "\n"
    if ns.output:
        Path(ns.output).write_text(text)
        print(f"Wrote {len(chunks)} QR payload(s) to {ns.output}")
    else:
        sys.stdout.write(text)
    return 0


def _load_resolver(ns: argparse.Namespace) -> KeySet:
    if ns.jwks:
        try:
            doc = json.loads(Path(ns.jwks).read_text())
        except ValueError as e:
            raise KeyNotFound(f"key set {ns.jwks} is not JSON: {e}", path=ns.jwks) from e
        if not isinstance(doc, dict):
            raise KeyNotFound(f"key set {ns.jwks} is not a JSON object", path=ns.jwks)
        return KeySet.from_jwks(doc)
    return KeySet.of(load_public_key_pem(Path(ns.public_key).read_bytes()))


def cmd_decode(ns: argparse.Namespace) -> int:
    try:
        resolver = _load_resolver(ns)
    except ShcError as e:
        return _fail(json.dumps(e.to_dict()))
    lines = [ln.strip() for ln in Path(ns.input).read_text().splitlines() if ln.strip()]
    try:
        cred = decode(lines, resolver)
    except ShcError as e:
        print(json.dumps(e.to_dict()), file=sys.stderr)
        return 2 if e.recoverable else 3
    print(json.dumps(_credential_json(cred), indent=2))
    return 0


def cmd_jwks(ns: argparse.Namespace) -> int:
    try:
        key = load_private_key_pem(Path(ns.key).read_bytes())
    except ShcError as e:
        return _fail(f"Unusable issuer key {ns.key}: {e}")
    print(json.dumps({"keys": [public_jwk(key.public_key(), ns.kid)]}, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="shc", description="SMART Health Card QR payload encoder/decoder")
    sub = p.add_subparsers(dest="cmd", required=True)

    enc = sub.add_parser("encode", help="Sign a FHIR bundle and emit shc:/ QR payload strings")
    enc.add_argument("--key", required=True, help="PEM EC P-256 private key")
    enc.add_argument("--issuer", required=True, help="Issuer URI (key set published under /.well-known/jwks.json)")
    enc.add_argument("--bundle", required=True, help="FHIR Bundle JSON file")
    enc.add_argument("--type", action="append", help="Credential type URI (repeatable; default health-card)")
    enc.add_argument("--fhir-version", default=settings.fhir_version)
    enc.add_argument("--nbf", type=int, help="Issuance time in epoch seconds (default now)")
    enc.add_argument("--kid", help="Key id (default JWK thumbprint)")
    enc.add_argument("--max-chars", type=int, default=None, help="Numeric characters per QR payload, prefix included")
    enc.add_argument("--output", help="Write payloads here instead of stdout")
    enc.set_defaults(func=cmd_encode)

    dec = sub.add_parser("decode", help="Verify and decode scanned shc:/ payloads (one per line, any order)")
    dec.add_argument("--input", required=True)
    g = dec.add_mutually_exclusive_group(required=True)
    g.add_argument("--jwks", help="Issuer JWKS JSON file")
    g.add_argument("--public-key", help="PEM EC P-256 public key")
    dec.set_defaults(func=cmd_decode)

    jwks_p = sub.add_parser("jwks", help="Print the issuer key set for a private key")
    jwks_p.add_argument("--key", required=True)
    jwks_p.add_argument("--kid")
    jwks_p.set_defaults(func=cmd_jwks)
    return p


def main(argv: list[str] | None = None) -> int:
    ns = build_parser().parse_args(argv)
    return ns.func(ns)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
