import json

import httpx
import pytest

from splitwise_sdk import HttpxTransport, SplitwiseClient, TransportError


def _mock_client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_httpx_send_maps_response():
    seen = {}

    def handler(request: httpx.Request):
        seen["method"] = request.method
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = request.content
        return httpx.Response(201, json={"ok": True}, headers={"X-Request-Id": "r1"})

    client = _mock_client(handler)
    transport = HttpxTransport(client=client)
    resp = await transport.send(
        "POST",
        "https://example.com/create_group",
        headers={"Authorization": "Bearer T"},
        params={"a": 1},
        content=b'{"name": "g"}',
    )
    assert resp.status == 201  # noqa: PLR2004
    assert resp.ok
    assert resp.header("x-request-id") == "r1"
    assert json.loads(resp.content) == {"ok": True}
    assert seen["method"] == "POST"
    assert seen["url"] == "https://example.com/create_group?a=1"
    assert seen["auth"] == "Bearer T"
    assert seen["body"] == b'{"name": "g"}'
    await transport.aclose()
    # caller-provided clients are left open
    assert not client.is_closed
    await client.aclose()


@pytest.mark.asyncio
async def test_httpx_connect_error_becomes_transport_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    transport = HttpxTransport(client=_mock_client(handler))
    with pytest.raises(TransportError) as ei:
        await transport.send("GET", "https://example.com/x", headers={})
    assert isinstance(ei.value.__cause__, httpx.ConnectError)


@pytest.mark.asyncio
async def test_httpx_internal_client_closed_once():
    transport = HttpxTransport(timeout=5.0)
    client = transport._get_client()
    assert transport._get_client() is client
    await transport.aclose()
    assert client.is_closed
    assert transport._internal_client is None
    await transport.aclose()


@pytest.mark.asyncio
async def test_client_over_httpx_mock_end_to_end():
    calls = {"n": 0}

    def handler(request):
        calls["n"] += 1
        if calls["n"] == 1:
            return httpx.Response(503, json={"error": "busy"})
        return httpx.Response(200, json={"user": {"id": 7}})

    http = _mock_client(handler)
    sw = SplitwiseClient(
        "T",
        transport=HttpxTransport(client=http),
        retry={"max_retries": 1, "base_delay": 0},
        cache={"sweep_interval": None},
    )
    async with sw:
        assert await sw.users.get_current_user() == {"user": {"id": 7}}
        assert await sw.users.get_current_user() == {"user": {"id": 7}}
    assert calls["n"] == 2  # noqa: PLR2004
    await http.aclose()
