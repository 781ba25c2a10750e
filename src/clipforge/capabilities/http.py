"""Small urllib JSON helper shared by the HTTP-backed capabilities."""

from __future__ import annotations

import json
import logging
import socket
import urllib.error
import urllib.parse
import urllib.request
from typing import Any

from clipforge.errors import ClipforgeError, TransientExternalFailure

logger = logging.getLogger(__name__)

_RETRYABLE_STATUSES = frozenset({408, 425, 429, 500, 502, 503, 504})


class HTTPRequestError(ClipforgeError):
    """Non-retryable HTTP error response (4xx other than rate limits)."""

    def __init__(self, status: int, message: str) -> None:
        super().__init__(f"HTTP {status}: {message}")
        self.status = status


def request_json(
    method: str,
    url: str,
    *,
    params: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
    data: bytes | None = None,
    timeout: int = 60,
) -> dict[str, Any]:
    """Send a request and decode the JSON response body.

    Raises TransientExternalFailure for network errors, timeouts, rate
    limits and 5xx; HTTPRequestError for any other error status.
    """
    if params:
        query = urllib.parse.urlencode({k: v for k, v in params.items() if v is not None})
        url = f"{url}?{query}"
    req = urllib.request.Request(url, data=data, method=method, headers=headers or {})
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            body = resp.read().decode("utf-8")
    except urllib.error.HTTPError as exc:
        detail = exc.read().decode("utf-8", errors="replace")[:300]
        if exc.code in _RETRYABLE_STATUSES:
            raise TransientExternalFailure(f"HTTP {exc.code} from {req.host}: {detail}") from exc
        raise HTTPRequestError(exc.code, detail) from exc
    except (urllib.error.URLError, socket.timeout, TimeoutError, ConnectionError) as exc:
        raise TransientExternalFailure(f"Request to {req.host} failed: {exc}") from exc

    try:
        return json.loads(body) if body else {}
    except json.JSONDecodeError as exc:
        raise TransientExternalFailure(f"Invalid JSON from {req.host}: {body[:200]}") from exc
