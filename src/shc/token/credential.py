"""Credential <-> JWS payload JSON.

Key names and nesting follow the SMART Health Cards payload contract::

    {"iss": ..., "nbf": ..., "vc": {"type": [...],
        "credentialSubject": {"fhirVersion": ..., "fhirBundle": {...}}}}
"""
from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError

from ..errors import MalformedPayload
from ..models import Credential


def _compact(obj: Any) -> str:
    return json.dumps(obj, separators=(",", ":"), ensure_ascii=False)


def build_payload_json(credential: Credential) -> str:
    payload = {
        "iss": credential.issuer,
        "nbf": credential.nbf,
        "vc": {
            "type": list(credential.types),
            "credentialSubject": {
                "fhirVersion": credential.fhir_version,
                # embedded as a JSON value, not an escaped string
                "fhirBundle": credential.fhir_bundle(),
            },
        },
    }
    return _compact(payload)


def _require(obj: dict[str, Any], key: str, typ: type | tuple[type, ...], where: str) -> Any:
    if key not in obj:
        raise MalformedPayload(f"missing '{key}' in {where}", field=f"{where}.{key}")
    value = obj[key]
    # bool is a subclass of int; never accept it for a number
    if isinstance(value, bool) or not isinstance(value, typ):
        raise MalformedPayload(f"'{key}' in {where} has the wrong JSON type", field=f"{where}.{key}")
    return value


def parse_payload_json(text: str) -> Credential:
    try:
        obj = json.loads(text)
    except ValueError as e:
        raise MalformedPayload(f"payload is not JSON: {e}") from e
    if not isinstance(obj, dict):
        raise MalformedPayload("payload must be a JSON object")

    iss = _require(obj, "iss", str, "payload")
    nbf = _require(obj, "nbf", (int, float), "payload")
    vc = _require(obj, "vc", dict, "payload")
    types = _require(vc, "type", list, "vc")
    if not all(isinstance(t, str) for t in types):
        raise MalformedPayload("'type' in vc must list strings", field="vc.type")
    subject = _require(vc, "credentialSubject", dict, "vc")
    fhir_version = _require(subject, "fhirVersion", str, "credentialSubject")
    bundle = _require(subject, "fhirBundle", dict, "credentialSubject")

    try:
        issued_at = datetime.fromtimestamp(int(nbf), tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as e:
        raise MalformedPayload(f"'nbf' out of range: {nbf!r}", field="payload.nbf") from e
    try:
        return Credential(
            issuer=iss,
            issued_at=issued_at,
            types=types,
            fhir_version=fhir_version,
            fhir_bundle_json=_compact(bundle),
        )
    except ValidationError as e:
        raise MalformedPayload(f"payload violates credential constraints: {e.error_count()} error(s)",
                               errors=[err["msg"] for err in e.errors()]) from e


__all__ = ["build_payload_json", "parse_payload_json"]
