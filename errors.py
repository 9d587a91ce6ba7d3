# errors.py
from typing import Any, Dict, Optional


class ApiError(Exception):
    """Client-facing failure rendered as ``{"error": message, **extra}``."""

    def __init__(self, status_code: int, message: str, **extra: Any) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.extra = extra

    def body(self) -> Dict[str, Any]:
        return {"error": self.message, **self.extra}


class UpstreamError(Exception):
    """Completion API answered with a non-2xx status or could not be reached."""

    def __init__(self, status_code: Optional[int], body: str) -> None:
        super().__init__(f"upstream status {status_code}")
        self.status_code = status_code
        self.body = body


class TokenError(Exception):
    pass
