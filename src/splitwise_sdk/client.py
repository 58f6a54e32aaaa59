import contextlib
import logging
from collections.abc import Iterable, Mapping
from typing import Any, Union

from .auth import TokenProvider, TokenSource
from .cache import ResponseCache
from .env import DEFAULT_PREFIX, load_client_settings_from_env
from .logs import coerce_level, get_logger
from .pipeline import DEFAULT_BASE_URL, RequestPipeline
from .resources import (
    Categories,
    Comments,
    Currencies,
    Expenses,
    Friends,
    Groups,
    Notifications,
    Users,
)
from .transports import HttpxTransport, Transport
from .types import AuthConfig, CacheConfig, RetryConfig, coerce_config


class SplitwiseClient:
    """Async Splitwise API client.

    Every call goes through one RequestPipeline: bearer token injection, typed
    errors, retry with backoff, and a per-client TTL cache for GET results.

    Usage:
        async with SplitwiseClient("token") as sw:
            me = await sw.users.get_current_user()

    Args:
        access_token: str, zero-argument callable (sync or async) returning a str,
            or a TokenSource. Resolved again on every attempt.
        base_url: API root, defaults to the public v3.0 endpoint.
        logger: logging.Logger to emit request events on (default "splitwise_sdk").
        retry: RetryConfig or a partial mapping of its fields.
        cache: CacheConfig or a partial mapping of its fields.
        transport: Transport to send requests with (default HttpxTransport).
        log_level: optional level (int or "debug"/"info"/"warn"/"error") set on the logger.
        timeout: per-request timeout in seconds for the default transport.
    """

    def __init__(
        self,
        access_token: Union[str, TokenProvider, TokenSource, None],
        *,
        base_url: str = DEFAULT_BASE_URL,
        logger: Union[logging.Logger, None] = None,
        retry: Union[RetryConfig, Mapping[str, Any], None] = None,
        cache: Union[CacheConfig, Mapping[str, Any], None] = None,
        transport: Union[Transport, None] = None,
        log_level: Union[int, str, None] = None,
        timeout: float = 30.0,
        auth_config: Union[AuthConfig, None] = None,
    ):
        retry_config = coerce_config(RetryConfig, retry)
        cache_config = coerce_config(CacheConfig, cache)
        self._logger = logger or get_logger()
        level = coerce_level(log_level)
        if level is not None:
            with contextlib.suppress(Exception):
                self._logger.setLevel(level)
        self._own_transport = transport is None
        self._transport = transport or HttpxTransport(timeout=timeout)
        self._cache = ResponseCache(cache_config, logger=self._logger)
        self._pipeline = RequestPipeline(
            access_token,
            self._transport,
            base_url=base_url,
            retry=retry_config,
            cache=self._cache,
            logger=self._logger,
            auth_config=auth_config,
        )
        self._closed = False

        self.users = Users(self._pipeline)
        self.groups = Groups(self._pipeline)
        self.expenses = Expenses(self._pipeline)
        self.friends = Friends(self._pipeline)
        self.comments = Comments(self._pipeline)
        self.notifications = Notifications(self._pipeline)
        self.currencies = Currencies(self._pipeline)
        self.categories = Categories(self._pipeline)

    @classmethod
    def from_env(
        cls,
        env_path: Union[str, None] = None,
        prefix: str = DEFAULT_PREFIX,
        **overrides,
    ) -> "SplitwiseClient":
        """Build a client from SPLITWISE_* variables (and optionally a .env file).

        Explicit keyword arguments take precedence over the environment.
        """
        settings = load_client_settings_from_env(prefix=prefix, env_path=env_path)
        settings.update(overrides)
        access_token = settings.pop("access_token", None)
        return cls(access_token, **settings)

    @property
    def pipeline(self) -> RequestPipeline:
        return self._pipeline

    @property
    def cache(self) -> ResponseCache:
        return self._cache

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------ raw access ------------------------
    async def get(self, endpoint: str, params: Union[Mapping[str, Any], None] = None) -> Any:
        return await self._pipeline.get(endpoint, params)

    async def post(
        self,
        endpoint: str,
        body: Any = None,
        invalidate: Union[str, Iterable[str], None] = None,
    ) -> Any:
        return await self._pipeline.post(endpoint, body, invalidate)

    # ------------------------ lifecycle ------------------------
    def clear_cache(self) -> None:
        """Drop every cached response; calls already in flight are unaffected."""
        self._pipeline.clear_cache()

    def dispose(self) -> None:
        """Stop background cache maintenance and drop cached state. Safe to call repeatedly."""
        self._pipeline.dispose()

    async def aclose(self) -> None:
        self.dispose()
        if self._closed:
            return
        self._closed = True
        if self._own_transport:
            await self._transport.aclose()

    async def __aenter__(self) -> "SplitwiseClient":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()
        return False
