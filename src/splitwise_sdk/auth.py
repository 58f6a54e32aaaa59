import inspect
from typing import Awaitable, Callable, Union

from .errors import AuthenticationError

TokenProvider = Callable[[], Union[str, Awaitable[str], None]]


class TokenSource:
    """Produces the bearer token for one request attempt."""

    async def resolve(self) -> Union[str, None]:
        raise NotImplementedError


class StaticToken(TokenSource):
    def __init__(self, token: Union[str, None]):
        self.token = token

    async def resolve(self):
        return self.token

    def __repr__(self):
        return f"StaticToken({'[REDACTED]' if self.token else None})"


class CallableToken(TokenSource):
    """Wrap a zero-argument provider; sync or async, called on every attempt.

    Rotating credentials are therefore picked up on the next retry without any
    cooperation from the client.
    """

    def __init__(self, provider: TokenProvider):
        self.provider = provider

    async def resolve(self):
        token = self.provider()
        if inspect.isawaitable(token):
            token = await token
        return token

    def __repr__(self):
        return f"CallableToken({self.provider!r})"


def coerce_token_source(source: Union[TokenSource, str, TokenProvider, None]) -> TokenSource:
    """Turn None | str | callable | TokenSource into a TokenSource.

    None is accepted so an unconfigured client fails per call with
    AuthenticationError rather than at construction.
    """
    if isinstance(source, TokenSource):
        return source
    if source is None or isinstance(source, str):
        return StaticToken(source)
    if callable(source):
        return CallableToken(source)
    raise TypeError("access_token must be a str, a zero-argument callable, or a TokenSource")


async def resolve_token(
    source: Union[TokenSource, str, TokenProvider, None],
    endpoint: str = "/",
    correlation_id: str = "N/A",
) -> str:
    token = await coerce_token_source(source).resolve()
    if not token:
        raise AuthenticationError(endpoint, correlation_id, "Access token is empty or undefined")
    return token


def bearer_header(token: str, scheme: str = "Bearer") -> str:
    return f"{scheme} {token}".strip()
