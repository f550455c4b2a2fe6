from __future__ import annotations

import zlib

from ..errors import MalformedPayload
from ..settings import settings

# Negative wbits selects raw DEFLATE: no zlib header, no adler32 trailer
_RAW_DEFLATE_WBITS = -zlib.MAX_WBITS


def compress(text: str) -> bytes:
    co = zlib.compressobj(level=9, method=zlib.DEFLATED, wbits=_RAW_DEFLATE_WBITS)
    return co.compress(text.encode("utf-8")) + co.flush()


def decompress(data: bytes, max_size: int | None = None) -> str:
    """Inflate a raw DEFLATE stream and decode it as UTF-8.

    Raises ``MalformedPayload`` for corrupt, truncated or oversized streams,
    trailing bytes after the final block, and invalid UTF-8.
    """
    limit = max_size if max_size is not None else settings.payload_max_inflated_bytes
    do = zlib.decompressobj(wbits=_RAW_DEFLATE_WBITS)
    try:
        # One byte of headroom: output stops short of the cap only when input runs out
        raw = do.decompress(data, limit + 1)
        if len(raw) > limit:
            raise MalformedPayload(f"payload inflates beyond {limit} bytes", limit=limit)
        raw += do.flush()
    except zlib.error as e:
        raise MalformedPayload(f"cannot inflate payload: {e}") from e
    if not do.eof:
        raise MalformedPayload("truncated DEFLATE stream")
    if do.unused_data:
        raise MalformedPayload("trailing bytes after DEFLATE stream")
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise MalformedPayload(f"payload is not valid UTF-8: {e}") from e


__all__ = ["compress", "decompress"]
