"""In-memory TTL cache for GET results, scoped per token, with in-flight deduplication.

Keys are structured (fingerprint, endpoint, params) so invalidation never has to
re-parse a delimited string. Entries expire lazily on read and proactively via a
background sweep thread owned by the cache instance.
"""

import asyncio
import contextlib
import hashlib
import json
import logging
import threading
import time
import weakref
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any, TypeVar, Union

from .types import CacheConfig

T = TypeVar("T")

FINGERPRINT_LENGTH = 16


@dataclass(frozen=True)
class CacheKey:
    fingerprint: str
    endpoint: str
    params: str = ""


@dataclass
class _Entry:
    value: Any
    expires_at: float


def token_fingerprint(token: str) -> str:
    """Fixed-length one-way hash of a token; the raw token never enters a key."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()[:FINGERPRINT_LENGTH]


def canonical_params(params: Union[Mapping[str, Any], None]) -> str:
    if not params:
        return ""
    cleaned = {str(k): v for k, v in params.items() if v is not None}
    if not cleaned:
        return ""
    return json.dumps(cleaned, sort_keys=True, separators=(",", ":"), default=str)


def matches_prefix(endpoint: str, prefix: str) -> bool:
    """Structural prefix match: '/get_group' covers '/get_group/1' but not '/get_groups'."""
    if endpoint == prefix:
        return True
    return endpoint.startswith(prefix.rstrip("/") + "/")


def _consume_future_exception(fut: asyncio.Future) -> None:
    # Avoid "Future exception was never retrieved" when nobody joined the slot
    if fut.cancelled():
        return
    fut.exception()


def _sweep_loop(ref: "weakref.ref[ResponseCache]", stop: threading.Event, interval: float):
    while not stop.wait(interval):
        cache = ref()
        if cache is None:
            return
        try:
            cache.sweep()
        except Exception:
            cache._logger.exception("cache sweep failed")
        del cache


class ResponseCache:
    def __init__(self, config: Union[CacheConfig, None] = None, logger: Union[logging.Logger, None] = None):
        self.config = config or CacheConfig()
        self._entries: dict[CacheKey, _Entry] = {}
        self._inflight: dict[CacheKey, asyncio.Future] = {}
        # Guards both maps; the sweep runs on its own thread. Never held across an await.
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._sweeper: Union[threading.Thread, None] = None
        self._disposed = False
        self._logger = logger or logging.getLogger("splitwise_sdk.cache")
        interval = self.config.sweep_interval
        if self.config.enabled and interval is not None and interval > 0:
            self._sweeper = threading.Thread(
                target=_sweep_loop,
                args=(weakref.ref(self), self._stop, interval),
                name="splitwise-cache-sweep",
                daemon=True,
            )
            self._sweeper.start()

    def _now(self) -> float:
        return time.monotonic()

    def __len__(self):
        with self._lock:
            return len(self._entries)

    @property
    def disposed(self) -> bool:
        return self._disposed

    @staticmethod
    def build_key(
        endpoint: str, params: Union[Mapping[str, Any], None], fingerprint: str
    ) -> CacheKey:
        return CacheKey(fingerprint, endpoint, canonical_params(params))

    def ttl_for(self, endpoint: str) -> float:
        best: Union[str, None] = None
        for prefix in self.config.ttl_overrides:
            if matches_prefix(endpoint, prefix) and (best is None or len(prefix) > len(best)):
                best = prefix
        if best is None:
            return self.config.default_ttl
        return self.config.ttl_overrides[best]

    def get(self, key: CacheKey, default: Any = None) -> Any:
        if not self.config.enabled:
            return default
        now = self._now()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            if now >= entry.expires_at:
                del self._entries[key]
                return default
            return entry.value

    def set(self, key: CacheKey, value: Any, endpoint: Union[str, None] = None) -> None:
        if not self.config.enabled:
            return
        ttl = self.ttl_for(endpoint if endpoint is not None else key.endpoint)
        expires_at = self._now() + ttl
        with self._lock:
            self._entries[key] = _Entry(value, expires_at)

    async def dedup(self, key: CacheKey, factory: Callable[[], Awaitable[T]]) -> T:
        """Run ``factory`` once per key while a call for that key is pending.

        Joiners await the creator's outcome: the same value or the same exception.
        The slot is released as soon as the creator settles, so the next call after
        that performs a fresh invocation. If the creator is cancelled, joiners get
        CancelledError.
        """
        with self._lock:
            fut = self._inflight.get(key)
            creator = fut is None
            if creator:
                fut = asyncio.get_running_loop().create_future()
                fut.add_done_callback(_consume_future_exception)
                self._inflight[key] = fut

        if not creator:
            # shield: a cancelled joiner must not cancel the shared call
            return await asyncio.shield(fut)

        try:
            value = await factory()
        except Exception as exc:
            fut.set_exception(exc)
            raise
        except BaseException:
            # cancellation or interpreter exit: joiners see CancelledError
            fut.cancel()
            raise
        else:
            fut.set_result(value)
            return value
        finally:
            with self._lock:
                if self._inflight.get(key) is fut:
                    del self._inflight[key]

    def inflight_count(self) -> int:
        with self._lock:
            return len(self._inflight)

    def invalidate(self, prefix: str) -> int:
        """Drop every entry whose endpoint is ``prefix`` or lies under ``prefix/``."""
        with self._lock:
            doomed = [k for k in self._entries if matches_prefix(k.endpoint, prefix)]
            for k in doomed:
                del self._entries[k]
        return len(doomed)

    def sweep(self) -> int:
        now = self._now()
        with self._lock:
            doomed = [k for k, e in self._entries.items() if now >= e.expires_at]
            for k in doomed:
                del self._entries[k]
        if doomed:
            with contextlib.suppress(Exception):
                self._logger.debug(f"cache sweep evicted={len(doomed)}")
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._inflight.clear()

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        self._stop.set()
        self.clear()
