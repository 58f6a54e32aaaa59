"""Request execution pipeline.

One logical call: resolve token -> (GET: cache check, dedup) -> attempt loop of
send / classify / log / retry-or-finish -> cache write (GET) or invalidation
(mutating methods).
"""

import asyncio
import contextlib
import json
import logging
import time
import uuid
from collections.abc import Iterable, Mapping
from typing import Any, Union

from .auth import TokenSource, bearer_header, coerce_token_source, resolve_token
from .cache import ResponseCache, token_fingerprint
from .errors import SplitwiseError, classify_http_error, classify_transport_error
from .logs import LogEntry, get_logger, log_event
from .retry import compute_delay, should_retry
from .transports import Transport, TransportError, TransportResponse
from .types import AuthConfig, CacheConfig, RetryConfig

DEFAULT_BASE_URL = "https://secure.splitwise.com/api/v3.0"

_MISS = object()


def _decode_json(content: bytes) -> Any:
    return json.loads(content.decode("utf-8"))


def parse_success_body(resp: TransportResponse) -> Any:
    """204 / empty -> None; JSON content-type -> decoded; else try JSON, fall back to text."""
    if resp.status == 204 or resp.header("content-length") == "0" or not resp.content:  # noqa: PLR2004
        return None
    content_type = resp.header("content-type", "") or ""
    if "json" in content_type.lower():
        with contextlib.suppress(ValueError):
            return _decode_json(resp.content)
    text = resp.content.decode("utf-8", errors="replace")
    if not text.strip():
        return None
    try:
        return json.loads(text)
    except ValueError:
        return text


def parse_error_body(resp: TransportResponse) -> Any:
    if not resp.content:
        return None
    try:
        return _decode_json(resp.content)
    except ValueError:
        return resp.content.decode("utf-8", errors="replace")


def _query_params(params: Union[Mapping[str, Any], None]) -> dict[str, Any]:
    return {k: v for k, v in (params or {}).items() if v is not None}


class RequestPipeline:
    def __init__(
        self,
        token_source: Union[TokenSource, str, Any, None],
        transport: Transport,
        *,
        base_url: str = DEFAULT_BASE_URL,
        retry: Union[RetryConfig, None] = None,
        cache: Union[ResponseCache, CacheConfig, None] = None,
        logger: Union[logging.Logger, None] = None,
        auth_config: Union[AuthConfig, None] = None,
    ):
        self.token_source = coerce_token_source(token_source)
        self.transport = transport
        self.base_url = base_url.rstrip("/")
        self.retry = retry or RetryConfig()
        self.cache = cache if isinstance(cache, ResponseCache) else ResponseCache(cache)
        self.logger = logger or get_logger()
        self.auth_config = auth_config or AuthConfig()
        # swapped in tests; must stay cancellable so callers can time out a pending retry
        self._sleep = asyncio.sleep

    def _log(self, level: int, message: str, **fields) -> None:
        log_event(self.logger, LogEntry(level, message, **fields))

    def build_url(self, endpoint: str) -> str:
        if endpoint.startswith(("http://", "https://")):
            return endpoint
        if not endpoint.startswith("/"):
            endpoint = "/" + endpoint
        return f"{self.base_url}{endpoint}"

    # ------------------------ attempt loop ------------------------
    async def execute(
        self,
        method: str,
        endpoint: str,
        *,
        params: Union[Mapping[str, Any], None] = None,
        body: Any = None,
        token: Union[str, None] = None,
        first_token: Union[str, None] = None,
        correlation_id: Union[str, None] = None,
    ) -> Any:
        """Run the retry loop for one logical call and return the decoded body.

        ``token`` pins a resolved credential for every attempt; otherwise the
        token source is consulted again before each attempt. ``first_token`` is
        used for attempt 0 only, so retries still pick up a rotated credential.
        """
        method = method.upper()
        correlation_id = correlation_id or uuid.uuid4().hex
        url = self.build_url(endpoint)
        query = _query_params(params)
        content = json.dumps(body).encode("utf-8") if body is not None else None
        attempt = 0

        while True:
            started = time.perf_counter()
            try:
                resolved = token or (first_token if attempt == 0 else None)
                if not resolved:
                    resolved = await resolve_token(self.token_source, endpoint, correlation_id)
                headers = {
                    self.auth_config.header: bearer_header(resolved, self.auth_config.scheme),
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                }
                self._log(
                    logging.DEBUG,
                    "request started",
                    correlation_id=correlation_id,
                    method=method,
                    endpoint=endpoint,
                    retry_count=attempt,
                )
                resp = await self.transport.send(
                    method, url, headers=headers, params=query, content=content
                )
            except (TransportError, OSError, asyncio.TimeoutError) as e:
                cause = e.__cause__ if isinstance(e, TransportError) and e.__cause__ else e
                error: SplitwiseError = classify_transport_error(
                    cause, endpoint, correlation_id, retry_count=attempt
                )
                status = None
            else:
                duration_ms = round((time.perf_counter() - started) * 1000)
                if resp.ok:
                    self._log(
                        logging.INFO,
                        "request succeeded",
                        correlation_id=correlation_id,
                        method=method,
                        endpoint=endpoint,
                        status=resp.status,
                        duration_ms=duration_ms,
                        retry_count=attempt,
                    )
                    return parse_success_body(resp)
                error = classify_http_error(
                    resp.status,
                    endpoint,
                    correlation_id,
                    parse_error_body(resp),
                    resp.header("retry-after"),
                    retry_count=attempt,
                )
                status = resp.status

            duration_ms = round((time.perf_counter() - started) * 1000)
            retrying = should_retry(error, attempt, self.retry)
            self._log(
                logging.WARNING if retrying else logging.ERROR,
                "request failed",
                correlation_id=correlation_id,
                method=method,
                endpoint=endpoint,
                status=status,
                duration_ms=duration_ms,
                retry_count=attempt,
                error_kind=type(error).__name__,
            )
            if not retrying:
                raise error
            delay = compute_delay(error, attempt, self.retry)
            if delay > 0:
                await self._sleep(delay)
            attempt += 1

    # ------------------------ façade entry points ------------------------
    async def get(self, endpoint: str, params: Union[Mapping[str, Any], None] = None) -> Any:
        """Cache-aware, deduplicated GET."""
        correlation_id = uuid.uuid4().hex
        token = await resolve_token(self.token_source, endpoint, correlation_id)
        key = self.cache.build_key(endpoint, params, token_fingerprint(token))
        cached = self.cache.get(key, _MISS)
        if cached is not _MISS:
            self._log(
                logging.DEBUG,
                "cache hit",
                correlation_id=correlation_id,
                method="GET",
                endpoint=endpoint,
            )
            return cached

        async def _fetch():
            # attempt 0 must send the token the key was built from
            value = await self.execute(
                "GET",
                endpoint,
                params=params,
                first_token=token,
                correlation_id=correlation_id,
            )
            self.cache.set(key, value, endpoint)
            return value

        return await self.cache.dedup(key, _fetch)

    async def post(
        self,
        endpoint: str,
        body: Any = None,
        invalidate: Union[str, Iterable[str], None] = None,
    ) -> Any:
        """Mutating POST; on success drops cached GETs under each ``invalidate`` prefix."""
        return await self.request("POST", endpoint, body=body, invalidate=invalidate)

    async def request(
        self,
        method: str,
        endpoint: str,
        *,
        params: Union[Mapping[str, Any], None] = None,
        body: Any = None,
        invalidate: Union[str, Iterable[str], None] = None,
    ) -> Any:
        if method.upper() == "GET":
            return await self.get(endpoint, params)
        result = await self.execute(method, endpoint, params=params, body=body)
        if invalidate:
            prefixes = [invalidate] if isinstance(invalidate, str) else list(invalidate)
            for prefix in prefixes:
                removed = self.cache.invalidate(prefix)
                self._log(
                    logging.DEBUG,
                    "cache invalidated",
                    method=method.upper(),
                    endpoint=endpoint,
                    prefix=prefix,
                    removed=removed,
                )
        return result

    def clear_cache(self) -> None:
        self.cache.clear()

    def dispose(self) -> None:
        self.cache.dispose()
