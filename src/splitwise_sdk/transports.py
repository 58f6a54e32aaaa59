import asyncio
import contextlib
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Union


@dataclass
class TransportResponse:
    status: int
    # header names lowercased
    headers: dict[str, str] = field(default_factory=dict)
    content: bytes = b""

    def header(self, name: str, default: Union[str, None] = None) -> Union[str, None]:
        return self.headers.get(name.lower(), default)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300  # noqa: PLR2004


class TransportError(Exception):
    """The exchange never completed; the library exception is chained as __cause__."""


def _lower_headers(headers: Union[Mapping[str, str], None]) -> dict[str, str]:
    return {str(k).lower(): str(v) for k, v in (headers or {}).items()}


class Transport:
    """Sends one HTTP exchange. Subclasses translate their library's failures into TransportError."""

    async def send(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str],
        params: Union[dict[str, Any], None] = None,
        content: Union[bytes, None] = None,
    ) -> TransportResponse:
        raise NotImplementedError

    async def aclose(self) -> None:
        return None


# ---------- httpx (async, default) ----------
class HttpxTransport(Transport):
    def __init__(self, client=None, timeout: float = 30.0):
        self.client = client
        self.timeout = timeout
        self._internal_client = None

    def _get_client(self):
        import httpx  # noqa: PLC0415

        client = self.client or self._internal_client
        if client is None:
            self._internal_client = client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout), follow_redirects=True
            )
        return client

    async def send(self, method, url, *, headers, params=None, content=None):
        import httpx  # noqa: PLC0415

        client = self._get_client()
        try:
            resp = await client.request(
                method, url, headers=headers, params=params or None, content=content
            )
        except (httpx.TransportError, httpx.TimeoutException) as e:
            raise TransportError(str(e) or type(e).__name__) from e
        return TransportResponse(resp.status_code, _lower_headers(resp.headers), resp.content)

    async def aclose(self):
        if self._internal_client is not None:
            with contextlib.suppress(Exception):
                await self._internal_client.aclose()
            self._internal_client = None


# ---------- aiohttp (async) ----------
class AiohttpTransport(Transport):
    def __init__(self, session=None, timeout: float = 30.0):
        self.session = session
        self.timeout = timeout
        self._own_session = None

    def _get_session(self):
        import aiohttp  # noqa: PLC0415

        session = self.session or self._own_session
        if session is None:
            self._own_session = session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return session

    async def send(self, method, url, *, headers, params=None, content=None):
        import aiohttp  # noqa: PLC0415

        session = self._get_session()
        # aiohttp rejects None query values and non-str scalars
        query = {k: str(v) for k, v in (params or {}).items()} or None
        try:
            async with session.request(
                method, url, headers=headers, params=query, data=content
            ) as resp:
                body = await resp.read()
                return TransportResponse(resp.status, _lower_headers(resp.headers), body)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(str(e) or type(e).__name__) from e

    async def aclose(self):
        if self._own_session is not None:
            with contextlib.suppress(Exception):
                await self._own_session.close()
            self._own_session = None


# ---------- requests (blocking, run in a worker thread) ----------
class RequestsTransport(Transport):
    def __init__(self, session=None, timeout: float = 30.0):
        self.session = session
        self.timeout = timeout
        self._own_session = None

    def _get_session(self):
        import requests  # noqa: PLC0415

        session = self.session or self._own_session
        if session is None:
            self._own_session = session = requests.Session()
        return session

    def _send_blocking(self, method, url, headers, params, content):
        resp = self._get_session().request(
            method, url, headers=headers, params=params, data=content, timeout=self.timeout
        )
        return TransportResponse(resp.status_code, _lower_headers(resp.headers), resp.content)

    async def send(self, method, url, *, headers, params=None, content=None):
        import requests  # noqa: PLC0415

        try:
            return await asyncio.to_thread(
                self._send_blocking, method, url, headers, params or None, content
            )
        except requests.RequestException as e:
            raise TransportError(str(e) or type(e).__name__) from e

    async def aclose(self):
        if self._own_session is not None:
            with contextlib.suppress(Exception):
                self._own_session.close()
            self._own_session = None
