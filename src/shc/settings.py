from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode


class Settings(BaseSettings):
    # Compact JWS
    jws_alg: str = "ES256"  # key into shc.token.jws.ALGORITHMS
    jws_zip: str = "DEF"  # raw DEFLATE payload compression flag
    # QR numeric mode chunking (digits per QR payload)
    qr_max_chars_per_chunk: int = 1195
    # Upper bound on inflated payload size
    payload_max_inflated_bytes: int = 1024 * 1024

    # Issuer key set (.well-known/jwks.json) resolution
    jwks_fetch_timeout_seconds: float = 5.0
    jwks_cache_ttl_seconds: int = 3600
    trusted_issuers: Annotated[list[str], NoDecode] = []  # comma separated via env TRUSTED_ISSUERS

    # Issuer service (shc.api.main)
    issuer_url: str | None = None
    issuer_private_key_pem: Path | None = None
    issuer_key_id: str | None = None  # defaults to the JWK thumbprint
    fhir_version: str = "4.0.1"

    @field_validator("trusted_issuers", mode="before")
    @classmethod
    def _split_issuers(cls, v: Any) -> Any:
        if isinstance(v, str):
            return [i.strip().rstrip("/") for i in v.split(",") if i.strip()]
        return v

settings = Settings()
