import asyncio
import json
import logging

import pytest
from conftest import FakeTransport, make_response

from splitwise_sdk import (
    ApiError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    TransportError,
    ValidationError,
)

BASE = "https://secure.splitwise.com/api/v3.0"


@pytest.mark.asyncio
async def test_retries_transient_then_succeeds(make_client):
    client, transport = make_client(
        make_response(500, {"error": "x"}),
        make_response(500, {"error": "x"}),
        make_response(200, {"user": {"id": 1}}),
        retry={"max_retries": 2},
    )
    result = await client.get("/get_current_user")
    assert result == {"user": {"id": 1}}
    assert len(transport.calls) == 3  # noqa: PLR2004


@pytest.mark.asyncio
async def test_client_error_is_not_retried(make_client):
    client, transport = make_client(make_response(400, {"errors": {"base": ["bad"]}}))
    with pytest.raises(ValidationError) as ei:
        await client.post("/create_expense", {"cost": "x"})
    assert ei.value.status == 400  # noqa: PLR2004
    assert ei.value.details == {"errors": {"base": ["bad"]}}
    assert ei.value.retry_count == 0
    assert len(transport.calls) == 1


@pytest.mark.asyncio
async def test_exhausted_retries_surface_last_error(make_client):
    client, transport = make_client(make_response(500), retry={"max_retries": 1})
    with pytest.raises(ApiError) as ei:
        await client.get("/get_groups")
    assert ei.value.status == 500  # noqa: PLR2004
    assert ei.value.retry_count == 1
    assert ei.value.correlation_id
    assert len(transport.calls) == 2  # noqa: PLR2004


@pytest.mark.asyncio
async def test_post_invalidates_only_named_prefix(make_client):
    client, transport = make_client(
        make_response(200, {"expense": {"id": 5}}),
        make_response(200, {"currencies": []}),
        make_response(200, {"expenses": [{"id": 5}]}),
        make_response(200, {"expenses": [{"id": 5}, {"id": 6}]}),
    )
    await client.get("/get_expense/5")
    await client.get("/get_currencies")
    await client.get("/get_expenses")
    assert len(transport.calls) == 3  # noqa: PLR2004

    await client.post("/create_expense", {"cost": "10"}, invalidate=["/get_expense", "/get_expenses"])
    assert len(transport.calls) == 4  # noqa: PLR2004

    await client.get("/get_currencies")
    assert len(transport.calls) == 4  # noqa: PLR2004
    await client.get("/get_expenses")
    assert len(transport.calls) == 5  # noqa: PLR2004


@pytest.mark.asyncio
async def test_invalidation_not_applied_on_failure(make_client):
    client, transport = make_client(
        make_response(200, {"groups": []}),
        make_response(404, {"error": "nope"}),
    )
    await client.get("/get_groups")
    with pytest.raises(NotFoundError):
        await client.post("/delete_group/9", invalidate="/get_groups")
    await client.get("/get_groups")
    assert len(transport.calls) == 2  # noqa: PLR2004


@pytest.mark.asyncio
async def test_request_shape(make_client):
    client, transport = make_client(make_response(200, {"ok": True}))
    await client.get("/get_expenses", {"group_id": 3, "friend_id": None})
    await client.post("/create_comment", {"expense_id": 3, "content": "hi"})

    get_call, post_call = transport.calls
    assert get_call["method"] == "GET"
    assert get_call["url"] == f"{BASE}/get_expenses"
    assert get_call["params"] == {"group_id": 3}
    assert get_call["headers"]["Authorization"] == "Bearer test-token"
    assert get_call["headers"]["Accept"] == "application/json"
    assert get_call["content"] is None

    assert post_call["method"] == "POST"
    assert json.loads(post_call["content"]) == {"expense_id": 3, "content": "hi"}
    assert post_call["headers"]["Content-Type"] == "application/json"


@pytest.mark.asyncio
async def test_custom_base_url_and_absolute_endpoint(make_client):
    client, transport = make_client(make_response(200, {}), base_url="http://localhost:9000/api/")
    await client.get("get_user/1")
    await client.get("https://other.example/x")
    assert transport.calls[0]["url"] == "http://localhost:9000/api/get_user/1"
    assert transport.calls[1]["url"] == "https://other.example/x"


@pytest.mark.asyncio
async def test_empty_and_text_bodies(make_client):
    client, _ = make_client(
        make_response(204),
        make_response(200, "plain text", content_type=None),
        make_response(200, b'{"a": 1}', headers={"Content-Type": "text/plain"}),
    )
    assert await client.post("/delete_comment/1") is None
    assert await client.post("/x") == "plain text"
    assert await client.post("/y") == {"a": 1}


@pytest.mark.asyncio
async def test_network_error_retried_with_cause(make_client):
    root = ConnectionResetError("reset by peer")
    wrapped = TransportError("reset by peer")
    wrapped.__cause__ = root
    client, transport = make_client(wrapped, retry={"max_retries": 2})
    with pytest.raises(NetworkError) as ei:
        await client.get("/get_friends")
    assert ei.value.__cause__ is root
    assert ei.value.retryable
    assert ei.value.status is None
    assert ei.value.endpoint == "/get_friends"
    assert len(transport.calls) == 3  # noqa: PLR2004


@pytest.mark.asyncio
async def test_network_error_then_success(make_client):
    client, transport = make_client(
        OSError("unreachable"),
        make_response(200, {"friends": []}),
    )
    assert await client.get("/get_friends") == {"friends": []}
    assert len(transport.calls) == 2  # noqa: PLR2004


@pytest.mark.asyncio
async def test_rate_limit_hint_drives_sleep(make_client):
    client, transport = make_client(
        make_response(429, {"error": "slow down"}, headers={"Retry-After": "7"}),
        make_response(200, {"ok": 1}),
        retry={"max_retries": 2, "max_delay": 5.0},
    )
    delays = []

    async def record(delay):
        delays.append(delay)

    client.pipeline._sleep = record
    assert await client.get("/get_groups") == {"ok": 1}
    assert delays == [5.0]


@pytest.mark.asyncio
async def test_rate_limit_terminal_keeps_hint(make_client):
    client, _ = make_client(
        make_response(429, headers={"Retry-After": "2"}), retry={"max_retries": 0}
    )
    with pytest.raises(RateLimitError) as ei:
        await client.get("/get_groups")
    assert ei.value.retry_after == 2  # noqa: PLR2004


@pytest.mark.asyncio
async def test_cache_hit_skips_network(make_client):
    client, transport = make_client(make_response(200, {"currencies": ["USD"]}))
    first = await client.currencies.get_currencies()
    second = await client.currencies.get_currencies()
    assert first == second == {"currencies": ["USD"]}
    assert len(transport.calls) == 1


@pytest.mark.asyncio
async def test_cache_disabled_refetches(make_client):
    client, transport = make_client(make_response(200, {"v": 1}), cache={"enabled": False})
    await client.get("/get_currencies")
    await client.get("/get_currencies")
    assert len(transport.calls) == 2  # noqa: PLR2004


@pytest.mark.asyncio
async def test_cache_scoped_by_token(make_client):
    tokens = iter(["tok-a", "tok-b"])
    client, transport = make_client(make_response(200, {"v": 1}), access_token=lambda: next(tokens))
    await client.get("/get_current_user")
    await client.get("/get_current_user")
    assert len(transport.calls) == 2  # noqa: PLR2004
    assert transport.calls[1]["headers"]["Authorization"] == "Bearer tok-b"


@pytest.mark.asyncio
async def test_concurrent_gets_share_one_call(make_client):
    gate = asyncio.Event()

    async def slow():
        await gate.wait()
        return make_response(200, {"user": {"id": 1}})

    client, transport = make_client(slow)
    tasks = [asyncio.create_task(client.users.get_current_user()) for _ in range(5)]
    await asyncio.sleep(0.01)
    gate.set()
    results = await asyncio.gather(*tasks)
    assert len(transport.calls) == 1
    assert all(r == {"user": {"id": 1}} for r in results)


@pytest.mark.asyncio
async def test_concurrent_gets_dedup_without_cache(make_client):
    gate = asyncio.Event()

    async def slow():
        await gate.wait()
        return make_response(200, {"v": 1})

    client, transport = make_client(slow, cache={"enabled": False})
    tasks = [asyncio.create_task(client.get("/get_groups")) for _ in range(3)]
    await asyncio.sleep(0.01)
    gate.set()
    await asyncio.gather(*tasks)
    assert len(transport.calls) == 1


@pytest.mark.asyncio
async def test_token_resolved_per_attempt(make_client):
    counter = {"n": 0}

    async def provider():
        counter["n"] += 1
        return f"tok{counter['n']}"

    client, transport = make_client(
        make_response(503),
        make_response(200, {}),
        access_token=provider,
        cache={"enabled": False},
    )
    await client.post("/create_group", {"name": "g"})
    assert [c["headers"]["Authorization"] for c in transport.calls] == [
        "Bearer tok1",
        "Bearer tok2",
    ]


@pytest.mark.asyncio
async def test_missing_token_fails_before_network(make_client):
    client, transport = make_client(make_response(200, {}), access_token=lambda: "")
    with pytest.raises(ApiError) as ei:
        await client.get("/get_current_user")
    assert ei.value.status == 401  # noqa: PLR2004
    assert transport.calls == []


@pytest.mark.asyncio
async def test_clear_cache_forces_refetch(make_client):
    client, transport = make_client(make_response(200, {"v": 1}))
    await client.get("/get_categories")
    client.clear_cache()
    await client.get("/get_categories")
    assert len(transport.calls) == 2  # noqa: PLR2004


@pytest.mark.asyncio
async def test_structured_log_fields(make_client, caplog):
    caplog.set_level(logging.DEBUG, logger="splitwise_sdk")
    client, _ = make_client(
        make_response(502),
        make_response(200, {"ok": True}),
        retry={"max_retries": 1},
    )
    await client.get("/get_groups")

    events = [(r.levelno, r.event) for r in caplog.records if hasattr(r, "event")]
    assert (logging.WARNING, "request failed") in events
    assert (logging.INFO, "request succeeded") in events

    failed = next(r for r in caplog.records if getattr(r, "event", None) == "request failed")
    assert failed.status == 502  # noqa: PLR2004
    assert failed.method == "GET"
    assert failed.endpoint == "/get_groups"
    assert failed.error_kind == "ApiError"
    assert failed.retry_count == 0

    ok = next(r for r in caplog.records if getattr(r, "event", None) == "request succeeded")
    assert ok.retry_count == 1
    assert ok.correlation_id == failed.correlation_id
    assert ok.duration_ms >= 0
    assert "test-token" not in caplog.text


@pytest.mark.asyncio
async def test_terminal_failure_logged_at_error(make_client, caplog):
    caplog.set_level(logging.DEBUG, logger="splitwise_sdk")
    client, _ = make_client(make_response(404))
    with pytest.raises(NotFoundError):
        await client.get("/get_user/404")
    failed = [r for r in caplog.records if getattr(r, "event", None) == "request failed"]
    assert [r.levelno for r in failed] == [logging.ERROR]
    assert failed[0].error_kind == "NotFoundError"


@pytest.mark.asyncio
async def test_broken_logger_does_not_break_requests(make_client):
    class Boom(logging.Handler):
        def emit(self, record):
            raise RuntimeError("handler exploded")

        def handleError(self, record):
            raise RuntimeError("still exploding")

    logger = logging.getLogger("splitwise_sdk.test_broken")
    logger.addHandler(Boom())
    logger.setLevel(logging.DEBUG)
    try:
        client, _ = make_client(make_response(200, {"ok": 1}), logger=logger)
        assert await client.get("/get_groups") == {"ok": 1}
    finally:
        logger.handlers.clear()


@pytest.mark.asyncio
async def test_pipeline_request_routes_get_through_cache():
    from splitwise_sdk import CacheConfig, RequestPipeline

    transport = FakeTransport(make_response(200, {"v": 1}))
    pipeline = RequestPipeline("tok", transport, cache=CacheConfig(sweep_interval=None))
    try:
        assert await pipeline.request("GET", "/get_groups") == {"v": 1}
        assert await pipeline.request("get", "/get_groups") == {"v": 1}
        assert len(transport.calls) == 1
    finally:
        pipeline.dispose()


@pytest.mark.asyncio
async def test_cached_get_sent_with_key_token(make_client):
    tokens = iter(["tokA", "tokB", "tokA"])
    client, transport = make_client(
        make_response(200, {"owner": "A"}),
        make_response(200, {"owner": "B"}),
        access_token=lambda: next(tokens),
    )
    assert await client.get("/get_current_user") == {"owner": "A"}
    assert await client.get("/get_current_user") == {"owner": "B"}
    assert await client.get("/get_current_user") == {"owner": "A"}
    assert [c["headers"]["Authorization"] for c in transport.calls] == [
        "Bearer tokA",
        "Bearer tokB",
    ]


@pytest.mark.asyncio
async def test_get_retry_resolves_fresh_token(make_client):
    tokens = iter(["tok1", "tok2"])
    client, transport = make_client(
        make_response(503),
        make_response(200, {"ok": True}),
        access_token=lambda: next(tokens),
    )
    assert await client.get("/get_groups") == {"ok": True}
    assert [c["headers"]["Authorization"] for c in transport.calls] == [
        "Bearer tok1",
        "Bearer tok2",
    ]


@pytest.mark.asyncio
async def test_cache_events_carry_structured_fields(make_client, caplog):
    caplog.set_level(logging.DEBUG, logger="splitwise_sdk")
    client, _ = make_client(make_response(200, {"groups": []}))
    await client.get("/get_groups")
    await client.get("/get_groups")
    await client.post("/create_group", {"name": "g"}, invalidate="/get_groups")

    hit = next(r for r in caplog.records if getattr(r, "event", None) == "cache hit")
    assert hit.correlation_id
    assert hit.endpoint == "/get_groups"

    inv = next(r for r in caplog.records if getattr(r, "event", None) == "cache invalidated")
    assert inv.prefix == "/get_groups"
    assert inv.removed == 1
    assert inv.endpoint == "/create_group"


@pytest.mark.asyncio
async def test_get_attempts_share_correlation_id(make_client, caplog):
    caplog.set_level(logging.DEBUG, logger="splitwise_sdk")
    client, _ = make_client(make_response(500), make_response(200, {}))
    await client.get("/get_friends")
    ids = {r.correlation_id for r in caplog.records if hasattr(r, "correlation_id")}
    assert len(ids) == 1
