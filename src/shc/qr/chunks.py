"""QR numeric mode payloads for compact JWS tokens.

Each token character ``c`` becomes the two digits ``ord(c) - 45``, which keeps
the base64url alphabet and ``.`` inside ``00``..``77``. Long tokens are split
into several symbols tagged ``shc:/{index}/{total}/`` that may be scanned in
any order.
"""
from __future__ import annotations

import math
import re
from typing import Iterable

from ..errors import ChunkCountMismatch, MalformedChunk, MalformedToken
from ..models import QRChunk
from ..settings import settings

PREFIX = "shc:/"
_OFFSET = 45
_MAX_CODE = 99  # two decimal digits

_CHUNK_RE = re.compile(r"^shc:/(?:(?P<index>[0-9]+)/(?P<total>[0-9]+)/)?(?P<body>.*)$", re.DOTALL)


def to_numeric(token: str) -> str:
    out = []
    for pos, ch in enumerate(token):
        code = ord(ch) - _OFFSET
        if not 0 <= code <= _MAX_CODE:
            raise MalformedToken(
                f"character {ch!r} at {pos} cannot be carried in numeric mode", position=pos
            )
        out.append(f"{code:02d}")
    return "".join(out)


def from_numeric(digits: str) -> str:
    if len(digits) % 2:
        raise MalformedChunk("numeric body has odd length", length=len(digits))
    if digits and not (digits.isascii() and digits.isdigit()):
        raise MalformedChunk("numeric body contains non-digit characters")
    return "".join(chr(int(digits[i:i + 2]) + _OFFSET) for i in range(0, len(digits), 2))


def _prefix_len(total: int) -> int:
    return len(f"{PREFIX}{total}/{total}/")


def _chunk_count(length: int, max_chars: int) -> int:
    n = 2
    while True:
        room = max_chars - _prefix_len(n)
        if room < 2:
            raise ValueError(f"max_chars_per_chunk={max_chars} leaves no room for chunk data")
        if 2 * math.ceil(length / n) <= room:
            return n
        n += 1


def split(token: str, max_chars_per_chunk: int | None = None) -> list[QRChunk]:
    """Split ``token`` into balanced QR chunks.

    ``max_chars_per_chunk`` counts numeric digits. A token whose numeric body
    fits is a single bare ``shc:/`` chunk; otherwise every chunk's body plus its
    full ``shc:/{index}/{total}/`` prefix stays within the limit.
    """
    limit = max_chars_per_chunk if max_chars_per_chunk is not None else settings.qr_max_chars_per_chunk
    if limit < 1:
        raise ValueError(f"max_chars_per_chunk must be positive, got {limit}")
    if 2 * len(token) <= limit:
        return [QRChunk(index=1, total=1, numeric_body=to_numeric(token))]
    total = _chunk_count(len(token), limit)
    size = math.ceil(len(token) / total)
    return [
        QRChunk(index=i + 1, total=total, numeric_body=to_numeric(token[i * size:(i + 1) * size]))
        for i in range(total)
    ]


def parse_chunk(text: str) -> QRChunk:
    m = _CHUNK_RE.match(text.strip())
    if not m:
        raise MalformedChunk(f"QR payload does not start with {PREFIX!r}")
    body = m.group("body")
    if not body or not body.isascii() or not body.isdigit():
        raise MalformedChunk("QR payload body must be a non-empty digit string")
    if len(body) % 2:
        raise MalformedChunk("numeric body has odd length", length=len(body))
    if m.group("index") is None:
        return QRChunk(index=1, total=1, numeric_body=body)
    return QRChunk(index=int(m.group("index")), total=int(m.group("total")), numeric_body=body)


def reassemble(chunks: Iterable[QRChunk]) -> str:
    """Rebuild the compact token from chunks given in any order."""
    chunks = list(chunks)
    if not chunks:
        raise ChunkCountMismatch("no QR chunks supplied", missing=[1], total=None)
    totals = sorted({c.total for c in chunks})
    if len(totals) != 1:
        raise ChunkCountMismatch(f"chunks disagree on total: {totals}", totals=totals)
    total = totals[0]
    by_index: dict[int, str] = {}
    for c in chunks:
        if not 1 <= c.index <= total:
            raise ChunkCountMismatch(f"chunk index {c.index} outside 1..{total}", index=c.index, total=total)
        seen = by_index.get(c.index)
        if seen is not None and seen != c.numeric_body:
            raise ChunkCountMismatch(f"conflicting chunks for index {c.index}", index=c.index, total=total)
        by_index[c.index] = c.numeric_body
    missing = [i for i in range(1, total + 1) if i not in by_index]
    if missing:
        raise ChunkCountMismatch(
            f"have {len(by_index)} of {total} chunks", missing=missing, total=total
        )
    return from_numeric("".join(by_index[i] for i in range(1, total + 1)))


__all__ = ["PREFIX", "from_numeric", "parse_chunk", "reassemble", "split", "to_numeric"]
