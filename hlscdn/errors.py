"""HTTP-facing errors raised by the domain functions and mapped to JSON replies by the server."""

from __future__ import annotations

from typing import Dict, Optional


class HttpError(Exception):
    status = 500

    def __init__(self, message: str, headers: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.message = message
        self.headers = dict(headers or {})

    def to_json(self) -> Dict:
        return {"error": self.message}


class BadRequest(HttpError):
    status = 400


class Forbidden(HttpError):
    status = 403

    def to_json(self) -> Dict:
        return {"valid": False, "error": self.message}


class NotFound(HttpError):
    status = 404


class MethodNotAllowed(HttpError):
    status = 405

    def __init__(self, allowed: str = "GET, POST, OPTIONS"):
        super().__init__("Method not allowed", headers={"Allow": allowed})


class RangeNotSatisfiable(HttpError):
    status = 416

    def __init__(self, message: str, total: int):
        super().__init__(message, headers={"Content-Range": f"bytes */{total}"})
