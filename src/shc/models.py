from __future__ import annotations

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator

SHC_VOCABULARY = "https://smarthealth.cards#"


class CredentialType(str, Enum):
    HEALTH_CARD = SHC_VOCABULARY + "health-card"
    IMMUNIZATION = SHC_VOCABULARY + "immunization"
    COVID19 = SHC_VOCABULARY + "covid19"
    LABORATORY = SHC_VOCABULARY + "laboratory"


class Credential(BaseModel):
    """A health card credential as carried in the signed payload.

    ``fhir_bundle_json`` is kept as JSON text; it is parsed only to check that it
    is a JSON object, never validated against a FHIR profile.
    """

    issuer: str
    issued_at: datetime
    types: list[str] = Field(default_factory=lambda: [CredentialType.HEALTH_CARD.value])
    fhir_version: str
    fhir_bundle_json: str

    @field_validator("issuer")
    @classmethod
    def _issuer_is_uri(cls, v: str) -> str:
        parsed = urlparse(v)
        if parsed.scheme not in ("https", "http") or not parsed.netloc:
            raise ValueError(f"issuer must be an absolute http(s) URI: {v!r}")
        return v

    @field_validator("issued_at")
    @classmethod
    def _aware_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @field_validator("types", mode="before")
    @classmethod
    def _type_values(cls, v: Any) -> Any:
        if isinstance(v, (list, tuple)):
            return [t.value if isinstance(t, CredentialType) else t for t in v]
        return v

    @field_validator("types")
    @classmethod
    def _types_include_health_card(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("types must not be empty")
        if len(set(v)) != len(v):
            raise ValueError("types must not repeat")
        if CredentialType.HEALTH_CARD.value not in v:
            raise ValueError(f"types must include {CredentialType.HEALTH_CARD.value}")
        return v

    @field_validator("fhir_bundle_json")
    @classmethod
    def _bundle_is_json_object(cls, v: str) -> str:
        try:
            obj = json.loads(v)
        except ValueError as e:
            raise ValueError(f"fhir_bundle_json is not valid JSON: {e}") from e
        if not isinstance(obj, dict):
            raise ValueError("fhir_bundle_json must encode a JSON object")
        return v

    @property
    def nbf(self) -> int:
        # Truncated toward zero, never rounded
        return int(self.issued_at.timestamp())

    def fhir_bundle(self) -> dict[str, Any]:
        return json.loads(self.fhir_bundle_json)


class QRChunk(BaseModel):
    index: int
    total: int
    numeric_body: str

    def to_qr_string(self) -> str:
        if self.total == 1:
            return f"shc:/{self.numeric_body}"
        return f"shc:/{self.index}/{self.total}/{self.numeric_body}"


# --- HTTP service payloads ---

class EncodeRequest(BaseModel):
    issuer: str | None = None  # defaults to the configured issuer
    issued_at: datetime | None = None  # defaults to now
    types: list[str] = Field(default_factory=lambda: [CredentialType.HEALTH_CARD.value])
    fhir_version: str | None = None
    fhir_bundle: dict[str, Any]
    max_chars_per_chunk: int | None = None


class EncodeResponse(BaseModel):
    kid: str
    total: int
    chunks: list[str]


class DecodeRequest(BaseModel):
    chunks: list[str]


class DecodedCredential(BaseModel):
    iss: str
    nbf: int
    types: list[str]
    fhir_version: str
    fhir_bundle: dict[str, Any]
