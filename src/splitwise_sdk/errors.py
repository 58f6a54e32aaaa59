"""Typed error hierarchy and HTTP status classification.

SplitwiseError
├── ConfigurationError
├── ApiError               (status, endpoint, correlation_id, details)
│   ├── AuthenticationError  401
│   ├── AuthorizationError   403
│   ├── NotFoundError        404
│   ├── ValidationError      400 / 422
│   ├── ConflictError        409
│   └── RateLimitError       429 (+ retry_after)
└── NetworkError           no HTTP response was obtained
"""

import email.utils
import math
import time
from typing import Any, Union

RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({408, 429, 500, 502, 503, 504})


class SplitwiseError(Exception):
    """Base class for every error raised by splitwise_sdk."""

    retryable = False


class ConfigurationError(SplitwiseError):
    pass


class ApiError(SplitwiseError):
    """The API answered with a non-2xx status."""

    def __init__(
        self,
        message: str,
        status: int,
        endpoint: str,
        correlation_id: str,
        details: Any = None,
        retry_count: int = 0,
    ):
        super().__init__(message)
        self.message = message
        self.status = status
        self.endpoint = endpoint
        self.correlation_id = correlation_id
        self.details = details
        self.retry_count = retry_count

    @property
    def retryable(self) -> bool:
        return self.status in RETRYABLE_STATUS_CODES

    def __repr__(self):
        return (
            f"{type(self).__name__}(status={self.status}, endpoint={self.endpoint!r}, "
            f"correlation_id={self.correlation_id!r})"
        )


class AuthenticationError(ApiError):
    def __init__(self, endpoint: str, correlation_id: str, details: Any = None, **kw):
        super().__init__(
            "Authentication failed: invalid or missing access token",
            401,
            endpoint,
            correlation_id,
            details,
            **kw,
        )


class AuthorizationError(ApiError):
    def __init__(self, endpoint: str, correlation_id: str, details: Any = None, **kw):
        super().__init__(
            "Authorization failed: insufficient permissions",
            403,
            endpoint,
            correlation_id,
            details,
            **kw,
        )


class NotFoundError(ApiError):
    def __init__(self, endpoint: str, correlation_id: str, details: Any = None, **kw):
        super().__init__(
            f"Resource not found: {endpoint}", 404, endpoint, correlation_id, details, **kw
        )


class ValidationError(ApiError):
    def __init__(
        self, status: int, endpoint: str, correlation_id: str, details: Any = None, **kw
    ):
        super().__init__("Validation failed", status, endpoint, correlation_id, details, **kw)


class ConflictError(ApiError):
    def __init__(self, endpoint: str, correlation_id: str, details: Any = None, **kw):
        super().__init__("Conflict", 409, endpoint, correlation_id, details, **kw)


class RateLimitError(ApiError):
    def __init__(
        self,
        endpoint: str,
        correlation_id: str,
        retry_after: Union[float, None] = None,
        details: Any = None,
        **kw,
    ):
        msg = "Rate limit exceeded"
        if retry_after is not None:
            msg += f", retry after {retry_after:g}s"
        super().__init__(msg, 429, endpoint, correlation_id, details, **kw)
        self.retry_after = retry_after

    @property
    def retryable(self) -> bool:
        return True


class NetworkError(SplitwiseError):
    """The exchange never produced an HTTP response (DNS, connect, timeout, ...)."""

    retryable = True

    def __init__(
        self,
        message: str,
        endpoint: Union[str, None] = None,
        correlation_id: Union[str, None] = None,
        retry_count: int = 0,
    ):
        super().__init__(message)
        self.message = message
        self.endpoint = endpoint
        self.correlation_id = correlation_id
        self.retry_count = retry_count
        self.status = None


def parse_retry_after(value: Union[str, None], now: Union[float, None] = None) -> Union[float, None]:
    """Parse a Retry-After header into seconds.

    Accepts delta-seconds or an HTTP-date (RFC 9110). Dates in the past give 0;
    unparseable values give None so callers fall back to their own backoff.
    """
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        pass
    else:
        if seconds >= 0 and math.isfinite(seconds):
            return seconds
        return None
    try:
        ts = email.utils.parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if ts is None:
        return None
    if now is None:
        now = time.time()
    # Round up so short waits are not truncated to zero
    return max(0.0, float(math.ceil(ts.timestamp() - now)))


def classify_http_error(
    status: int,
    endpoint: str,
    correlation_id: str,
    body: Any = None,
    retry_after: Union[str, None] = None,
    *,
    retry_count: int = 0,
) -> ApiError:
    """Map a non-2xx status onto the matching ApiError subclass."""
    kw = {"retry_count": retry_count}
    if status == 401:  # noqa: PLR2004, http status code can be constant
        return AuthenticationError(endpoint, correlation_id, body, **kw)
    if status == 403:  # noqa: PLR2004, http status code can be constant
        return AuthorizationError(endpoint, correlation_id, body, **kw)
    if status == 404:  # noqa: PLR2004, http status code can be constant
        return NotFoundError(endpoint, correlation_id, body, **kw)
    if status in (400, 422):
        return ValidationError(status, endpoint, correlation_id, body, **kw)
    if status == 409:  # noqa: PLR2004, http status code can be constant
        return ConflictError(endpoint, correlation_id, body, **kw)
    if status == 429:  # noqa: PLR2004, http status code can be constant
        return RateLimitError(
            endpoint, correlation_id, parse_retry_after(retry_after), body, **kw
        )
    return ApiError(
        f"API request failed with status {status}",
        status,
        endpoint,
        correlation_id,
        body,
        **kw,
    )


def classify_transport_error(
    exc: BaseException,
    endpoint: str,
    correlation_id: str,
    *,
    retry_count: int = 0,
) -> NetworkError:
    message = str(exc) or type(exc).__name__
    err = NetworkError(
        f"Network request failed: {message}",
        endpoint=endpoint,
        correlation_id=correlation_id,
        retry_count=retry_count,
    )
    err.__cause__ = exc
    return err
