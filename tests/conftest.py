import json

import pytest

from splitwise_sdk import SplitwiseClient, TransportResponse


def make_response(status=200, body=None, headers=None, content_type="application/json"):
    hdrs = {k.lower(): v for k, v in (headers or {}).items()}
    if body is None:
        content = b""
    elif isinstance(body, (bytes, str)):
        content = body.encode() if isinstance(body, str) else body
    else:
        content = json.dumps(body).encode()
        if content_type:
            hdrs.setdefault("content-type", content_type)
    return TransportResponse(status, hdrs, content)


class FakeTransport:
    """Replays a script of responses / exceptions and records every send."""

    def __init__(self, *script):
        self.script = list(script)
        self.calls = []
        self.closed = False

    async def send(self, method, url, *, headers, params=None, content=None):
        self.calls.append(
            {"method": method, "url": url, "headers": headers, "params": params, "content": content}
        )
        step = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if callable(step):
            step = await step()
        if isinstance(step, BaseException):
            raise step
        return step

    async def aclose(self):
        self.closed = True


async def no_sleep(_delay):
    return None


@pytest.fixture
def make_client():
    clients = []

    def _make(*script, **kwargs):
        transport = kwargs.pop("transport", None) or FakeTransport(*script)
        kwargs.setdefault("cache", {"sweep_interval": None})
        client = SplitwiseClient(kwargs.pop("access_token", "test-token"), transport=transport, **kwargs)
        client.pipeline._sleep = no_sleep
        clients.append(client)
        return client, transport

    yield _make
    for c in clients:
        c.dispose()
