"""Typed failures raised by the encode/decode pipeline.

Every error carries a stable ``kind`` string and a ``recoverable`` flag so that
callers can tell "scan more QR symbols" apart from "this card is not valid".
Extra keyword arguments become structured ``detail`` (e.g. missing chunk indices).
"""
from __future__ import annotations

from typing import Any


class ShcError(Exception):
    kind = "ShcError"
    recoverable = False

    def __init__(self, message: str, **detail: Any):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.kind,
            "message": self.message,
            "recoverable": self.recoverable,
            **self.detail,
        }


class SigningKeyError(ShcError):
    kind = "SigningKeyError"


class SignatureInvalid(ShcError):
    kind = "SignatureInvalid"


class UnsupportedAlgorithm(ShcError):
    kind = "UnsupportedAlgorithm"


class KeyNotFound(ShcError):
    kind = "KeyNotFound"


class IssuerMismatch(ShcError):
    kind = "IssuerMismatch"


class MalformedPayload(ShcError):
    kind = "MalformedPayload"


class MalformedToken(ShcError):
    kind = "MalformedToken"


class MalformedChunk(ShcError):
    kind = "MalformedChunk"


class ChunkCountMismatch(ShcError):
    kind = "ChunkCountMismatch"

    def __init__(self, message: str, missing: list[int] | None = None, **detail: Any):
        if missing:
            detail["missing"] = missing
        super().__init__(message, **detail)
        self.missing = missing or []

    @property
    def recoverable(self) -> bool:  # type: ignore[override]
        # Only an incomplete (but otherwise consistent) set can be fixed by scanning more symbols
        return bool(self.missing)


__all__ = [
    "ShcError",
    "SigningKeyError",
    "SignatureInvalid",
    "UnsupportedAlgorithm",
    "KeyNotFound",
    "IssuerMismatch",
    "MalformedPayload",
    "MalformedToken",
    "MalformedChunk",
    "ChunkCountMismatch",
]
