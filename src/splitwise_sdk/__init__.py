from .auth import CallableToken, StaticToken, TokenSource, coerce_token_source, resolve_token
from .cache import CacheKey, ResponseCache, token_fingerprint
from .client import SplitwiseClient
from .env import load_client_settings_from_env
from .errors import (
    ApiError,
    AuthenticationError,
    AuthorizationError,
    ConfigurationError,
    ConflictError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    SplitwiseError,
    ValidationError,
    classify_http_error,
    parse_retry_after,
)
from .logs import CallbackHandler, JsonLineFormatter
from .pipeline import DEFAULT_BASE_URL, RequestPipeline
from .retry import compute_delay, should_retry
from .transports import (
    AiohttpTransport,
    HttpxTransport,
    RequestsTransport,
    Transport,
    TransportError,
    TransportResponse,
)
from .types import AuthConfig, CacheConfig, RetryConfig

__all__ = [
    "SplitwiseClient",
    "RequestPipeline",
    "DEFAULT_BASE_URL",
    "RetryConfig",
    "CacheConfig",
    "AuthConfig",
    "TokenSource",
    "StaticToken",
    "CallableToken",
    "coerce_token_source",
    "resolve_token",
    "ResponseCache",
    "CacheKey",
    "token_fingerprint",
    "should_retry",
    "compute_delay",
    "SplitwiseError",
    "ConfigurationError",
    "ApiError",
    "AuthenticationError",
    "AuthorizationError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "RateLimitError",
    "NetworkError",
    "classify_http_error",
    "parse_retry_after",
    "Transport",
    "TransportResponse",
    "TransportError",
    "HttpxTransport",
    "AiohttpTransport",
    "RequestsTransport",
    "CallbackHandler",
    "JsonLineFormatter",
    "load_client_settings_from_env",
]
