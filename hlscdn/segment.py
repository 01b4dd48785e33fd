from __future__ import annotations

import functools
import re
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

import numpy as np

from hlscdn.errors import BadRequest, RangeNotSatisfiable


SEGMENT_SIZE = 1024 * 1024   # 1 MiB
SEGMENT_CONTENT_TYPE = "video/mp2t"
SEGMENT_CACHE_CONTROL = "public, max-age=31536000, immutable"
SEGMENT_CACHE_SLOTS = 16

_RANGE_RE = re.compile(r"^\s*bytes\s*=\s*(\d*)\s*-\s*(\d*)\s*$", re.IGNORECASE)


@dataclass
class SegmentResponse:
    status: int
    body: bytes
    headers: Dict[str, str] = field(default_factory=dict)
    byte_range: Optional[Tuple[int, int]] = None


@functools.lru_cache(maxsize=SEGMENT_CACHE_SLOTS)
def segment_bytes(content_id: str, quality_id: int, segment_index: int, size: int = SEGMENT_SIZE) -> bytes:
    """Filler payload: byte[i] = (i + segment_index) mod 256. Not media data."""
    pattern = (np.arange(size, dtype=np.int64) + int(segment_index)) % 256
    return pattern.astype(np.uint8).tobytes()


def parse_segment_index(segment_id: str) -> int:
    raw = str(segment_id)
    if raw.endswith(".ts"):
        raw = raw[:-3]
    try:
        idx = int(raw)
    except ValueError:
        raise BadRequest(f"Invalid segment id '{segment_id}'")
    if idx < 0:
        raise BadRequest(f"Invalid segment id '{segment_id}'")
    return idx


def parse_range(header: Optional[str], total: int) -> Optional[Tuple[int, int]]:
    """
    Single byte range -> inclusive (start, end), or None when no header was sent.
      bytes=500-999   explicit
      bytes=500-      open end, runs to total-1
      bytes=-500      suffix, last 500 bytes
    end is clamped to total-1.
    """
    if header is None or not header.strip():
        return None

    m = _RANGE_RE.match(header)
    if not m:
        raise BadRequest(f"Malformed Range header '{header}'")
    a, b = m.group(1), m.group(2)

    if a == "" and b == "":
        raise BadRequest(f"Malformed Range header '{header}'")

    if a == "":
        n = int(b)
        if n == 0:
            raise RangeNotSatisfiable(f"Empty suffix range '{header}'", total)
        return max(0, total - n), total - 1

    start = int(a)
    end = int(b) if b != "" else total - 1
    end = min(end, total - 1)

    if start >= total or start > end:
        raise RangeNotSatisfiable(f"Range '{header}' not satisfiable for {total} bytes", total)
    return start, end


def serve_segment(
    content_id: str,
    quality_id: int,
    segment_id: str,
    range_header: Optional[str] = None,
) -> SegmentResponse:
    idx = parse_segment_index(segment_id)
    data = segment_bytes(content_id, int(quality_id), idx)
    total = len(data)

    headers = {
        "Content-Type": SEGMENT_CONTENT_TYPE,
        "Cache-Control": SEGMENT_CACHE_CONTROL,
        "X-CDN-Cache": "HIT",
    }

    rng = parse_range(range_header, total)
    if rng is None:
        headers["Content-Length"] = str(total)
        return SegmentResponse(200, data, headers)

    start, end = rng
    headers["Content-Range"] = f"bytes {start}-{end}/{total}"
    headers["Accept-Ranges"] = "bytes"
    headers["Content-Length"] = str(end - start + 1)
    return SegmentResponse(206, data[start:end + 1], headers, byte_range=rng)
