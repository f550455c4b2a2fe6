"""shc: SMART Health Card QR codec.

Encode a health card credential into ``shc:/`` numeric QR payloads signed with
ES256, and decode scanned payloads (in any order) back into a verified credential.
"""
from .errors import (  # noqa: F401
    ChunkCountMismatch,
    IssuerMismatch,
    KeyNotFound,
    MalformedChunk,
    MalformedPayload,
    MalformedToken,
    ShcError,
    SignatureInvalid,
    SigningKeyError,
    UnsupportedAlgorithm,
)
from .models import Credential, CredentialType  # noqa: F401
from .pipeline import decode, decode_token, encode, encode_token  # noqa: F401
