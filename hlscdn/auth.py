"""Mock token validation. Any token longer than MIN_TOKEN_LENGTH is accepted."""

from __future__ import annotations

import base64
import json
import secrets
from typing import Dict, Optional

from hlscdn.errors import BadRequest, Forbidden
from hlscdn.store import now_ms


MIN_TOKEN_LENGTH = 20
TOKEN_TTL_MS = 3600 * 1000
ALLOWED_QUALITIES = [0, 1, 2, 3, 4, 5]


def generate_cdn_token(content_id: str, device_id: str, ts_ms: Optional[int] = None) -> str:
    payload = {
        "contentId": content_id,
        "deviceId": device_id,
        "exp": (now_ms() if ts_ms is None else int(ts_ms)) + TOKEN_TTL_MS,
    }
    return base64.b64encode(json.dumps(payload).encode("utf-8")).decode("ascii")


def decode_cdn_token(token: str) -> Dict:
    try:
        return json.loads(base64.b64decode(token.encode("ascii"), validate=True).decode("utf-8"))
    except (ValueError, UnicodeError) as e:
        raise BadRequest(f"Invalid CDN token: {e}")


def validate_token(token, content_id, device_id, ts_ms: Optional[int] = None) -> Dict:
    if not token or not content_id or not device_id:
        raise BadRequest("Missing required fields")
    if not isinstance(token, str) or len(token) <= MIN_TOKEN_LENGTH:
        raise Forbidden("Invalid token")

    t = now_ms() if ts_ms is None else int(ts_ms)
    return {
        "valid": True,
        "sessionToken": secrets.token_hex(32),
        "expiresAt": t + TOKEN_TTL_MS,
        "allowedQualities": list(ALLOWED_QUALITIES),
        "cdnToken": generate_cdn_token(str(content_id), str(device_id), t),
    }
