"""Error classification for calls to remote APIs.

Every boundary that talks to a remote service (the GitHub source, the LLM
clients) converts transport failures into one of the classes below. The
retry engine only ever looks at these classes, never at status codes or
headers.

    SourceError
    ├── TerminalError            not retried
    │   ├── NotFoundError
    │   ├── UnauthorizedError
    │   └── PermissionDeniedError
    ├── RateLimitedError         waited out, not counted as an attempt
    └── TransientError           retried with exponential backoff
"""

import time
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Optional

RATE_LIMIT_MARGIN_SECONDS = 1.0


class SourceError(Exception):
    """Base class for classified remote API failures."""

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message)


class TerminalError(SourceError):
    """The request itself is invalid; retrying cannot help."""


class NotFoundError(TerminalError):
    """The requested resource does not exist (or is hidden from us)."""


class UnauthorizedError(TerminalError):
    """Credentials are missing or invalid."""


class PermissionDeniedError(TerminalError):
    """Credentials are valid but lack access to the resource."""


class TransientError(SourceError):
    """A temporary failure: network error, timeout or 5xx response."""


class RateLimitedError(SourceError):
    """The provider asked us to pause before issuing more requests."""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        reset_at: Optional[datetime] = None,
        retry_after: Optional[float] = None,
        remaining: Optional[int] = None,
    ):
        self.reset_at = reset_at
        self.retry_after = retry_after
        self.remaining = remaining
        super().__init__(message, status=status)

    def wait_seconds(
        self,
        now: Optional[float] = None,
        margin: float = RATE_LIMIT_MARGIN_SECONDS,
    ) -> Optional[float]:
        """Seconds to wait before the request may be re-issued.

        Args:
            now: Current epoch time; defaults to time.time().
            margin: Safety margin added on top of the reset timestamp.

        Returns:
            Wait in seconds, or None when the provider gave no hint.
        """
        if self.reset_at is not None:
            now = time.time() if now is None else now
            return max(self.reset_at.timestamp() - now, 0.0) + margin
        if self.retry_after is not None:
            return max(self.retry_after, 0.0)
        return None


def _header(headers: Optional[Mapping], name: str) -> Optional[str]:
    """Case-insensitive header lookup that tolerates missing headers."""
    if not headers:
        return None
    wanted = name.lower()
    for key, value in headers.items():
        if str(key).lower() == wanted:
            return None if value is None else str(value)
    return None


def _parse_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None


def rate_limit_from_headers(
    message: str,
    status: Optional[int],
    headers: Optional[Mapping],
) -> RateLimitedError:
    """Build a RateLimitedError from X-RateLimit-* and Retry-After headers."""
    reset = _parse_int(_header(headers, "X-RateLimit-Reset"))
    retry_after = _parse_int(_header(headers, "Retry-After"))
    remaining = _parse_int(_header(headers, "X-RateLimit-Remaining"))
    return RateLimitedError(
        message,
        status=status,
        reset_at=datetime.fromtimestamp(reset, tz=timezone.utc) if reset is not None else None,
        retry_after=float(retry_after) if retry_after is not None else None,
        remaining=remaining,
    )


def is_rate_limit_response(
    status: int,
    headers: Optional[Mapping],
    message: str = "",
    strict: bool = True,
) -> bool:
    """Decide whether a 403/429 response is throttling rather than a denial.

    GitHub answers both "you are rate limited" and "you may not do this"
    with 403. A 429, a Retry-After header, an exhausted quota
    (X-RateLimit-Remaining == 0) or a "rate limit" message always mean
    throttling. In non-strict mode a 403 carrying any X-RateLimit-Reset
    header is treated as throttling too; GitHub sends that header on
    every response, so non-strict mode may wait on genuine denials.

    Args:
        status: HTTP status code.
        headers: Response headers.
        message: Error message from the response body.
        strict: Require a quota/cooldown signal before treating 403 as throttling.

    Returns:
        True if the response should be handled as rate limiting.
    """
    if status == 429:
        return True
    if status != 403:
        return False
    if _header(headers, "Retry-After") is not None:
        return True
    if _parse_int(_header(headers, "X-RateLimit-Remaining")) == 0:
        return True
    if "rate limit" in (message or "").lower():
        return True
    if not strict and _parse_int(_header(headers, "X-RateLimit-Reset")) is not None:
        return True
    return False


def classify_http_error(
    status: int,
    headers: Optional[Mapping] = None,
    message: str = "",
    strict: bool = True,
) -> SourceError:
    """Map an HTTP error response onto the error classification.

    Args:
        status: HTTP status code.
        headers: Response headers.
        message: Human-readable error text.
        strict: See is_rate_limit_response.

    Returns:
        The classified exception (not raised).
    """
    text = f"HTTP {status}: {message}" if message else f"HTTP {status}"

    if is_rate_limit_response(status, headers, message, strict=strict):
        return rate_limit_from_headers(text, status, headers)
    if status == 401:
        return UnauthorizedError(text, status=status)
    if status == 403:
        return PermissionDeniedError(text, status=status)
    if status == 404:
        return NotFoundError(text, status=status)
    # 408 Request Timeout is worth another try
    if 400 <= status < 500 and status != 408:
        return TerminalError(text, status=status)
    return TransientError(text, status=status)
