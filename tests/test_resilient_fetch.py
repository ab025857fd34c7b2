from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from villages.application.use_cases.resilient_fetch import (
    FetchStatus,
    ResilientFetcher,
    SnapshotCache,
    default_cache_key,
    graceful_api,
)
from villages.domain.errors import (
    ApiError,
    AuthorizationError,
    StoreUnavailableError,
    ValidationError,
)


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class CountingFetcher:
    def __init__(self, *outcomes) -> None:
        self.outcomes = list(outcomes)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        outcome = self.outcomes[min(self.calls, len(self.outcomes)) - 1]
        await asyncio.sleep(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


def test_snapshot_cache_freshness_boundary():
    clock = FakeClock(1000.0)
    cache = SnapshotCache(freshness_seconds=600, clock=clock)
    cache.put("families", [{"id": 1}])

    clock.now = 1000.0 + 599.999
    assert cache.get("families") == [{"id": 1}]
    clock.now = 1000.0 + 600.0
    assert cache.get("families") == [{"id": 1}]
    clock.now = 1000.0 + 600.001
    assert cache.get("families") is None
    # Expired entries are removed on read.
    clock.now = 1000.0
    assert cache.get("families") is None


def test_snapshot_cache_returns_copies():
    cache = SnapshotCache()
    cache.put("key", {"items": [1]})
    cache.get("key")["items"].append(2)
    assert cache.get("key") == {"items": [1]}


@pytest.mark.anyio
async def test_success_caches_result_and_resets_retries():
    cache = SnapshotCache()
    fetcher = ResilientFetcher(
        CountingFetcher(["a", "b"]), cache_key="families", cache=cache
    )
    fetcher.state.retry_count = 2

    assert await fetcher.refetch() == ["a", "b"]
    assert fetcher.state.status is FetchStatus.SUCCESS
    assert fetcher.retry_count == 0
    assert fetcher.state.last_updated is not None
    assert cache.get("families") == ["a", "b"]


@pytest.mark.anyio
async def test_connection_refused_uses_supplied_fallback():
    fallbacks = []
    fetcher = ResilientFetcher(
        CountingFetcher(ConnectionRefusedError("connect ECONNREFUSED 127.0.0.1:27017")),
        fallback_data=["offline"],
        cache=SnapshotCache(),
        retry_delay=60,
        on_fallback=fallbacks.append,
    )

    assert await fetcher.refetch() == ["offline"]
    assert fetcher.is_using_fallback
    assert fetcher.is_database_error
    assert fetcher.data == ["offline"]
    assert fallbacks == [["offline"]]
    assert fetcher.retry_pending
    fetcher.close()


@pytest.mark.anyio
async def test_cached_snapshot_is_preferred_over_fallback():
    cache = SnapshotCache()
    cache.put("families", ["cached"])
    fetcher = ResilientFetcher(
        CountingFetcher(StoreUnavailableError("Server selection timeout")),
        cache_key="families",
        fallback_data=["fallback"],
        cache=cache,
        retry_delay=60,
    )

    assert await fetcher.refetch() == ["cached"]
    fetcher.close()


@pytest.mark.anyio
async def test_outage_without_fallback_raises_and_counts_retry():
    error = StoreUnavailableError("Can't reach database server")
    fetcher = ResilientFetcher(CountingFetcher(error), cache=SnapshotCache(), retry_delay=60)

    with pytest.raises(StoreUnavailableError):
        await fetcher.refetch()

    assert fetcher.state.status is FetchStatus.ERROR
    assert fetcher.is_database_error
    assert fetcher.retry_count == 1
    assert fetcher.retry_pending
    fetcher.close()
    assert not fetcher.retry_pending


@pytest.mark.anyio
@pytest.mark.parametrize(
    "error",
    [ValidationError("title is required"), AuthorizationError("forbidden"), KeyError("x")],
)
async def test_other_errors_propagate_and_never_retry(error):
    source = CountingFetcher(error)
    fetcher = ResilientFetcher(source, fallback_data=["fallback"], cache=SnapshotCache())

    with pytest.raises(type(error)):
        await fetcher.refetch()

    assert not fetcher.is_database_error
    assert not fetcher.is_using_fallback
    assert fetcher.retry_count == 0
    assert not fetcher.retry_pending
    assert source.calls == 1


@pytest.mark.anyio
async def test_auto_retry_recovers_after_outage():
    source = CountingFetcher(StoreUnavailableError("Connection refused"), ["fresh"])
    fetcher = ResilientFetcher(
        source, fallback_data=["stale"], cache=SnapshotCache(), retry_delay=0.01
    )

    assert await fetcher.refetch() == ["stale"]
    for _ in range(50):
        if fetcher.data == ["fresh"]:
            break
        await asyncio.sleep(0.01)

    assert fetcher.data == ["fresh"]
    assert not fetcher.is_using_fallback
    assert fetcher.retry_count == 0
    assert source.calls == 2


@pytest.mark.anyio
async def test_retries_stop_at_max_retries():
    source = CountingFetcher(StoreUnavailableError("Connection refused"))
    fetcher = ResilientFetcher(
        source, fallback_data=["stale"], cache=SnapshotCache(), max_retries=2, retry_delay=0.01
    )

    await fetcher.refetch()
    await asyncio.sleep(0.2)

    assert source.calls == 3
    assert fetcher.retry_count == 2
    assert not fetcher.retry_pending

    fetcher.retry()
    await asyncio.sleep(0.05)
    assert source.calls == 3


@pytest.mark.anyio
async def test_close_cancels_pending_retry():
    source = CountingFetcher(StoreUnavailableError("Connection refused"), ["fresh"])
    fetcher = ResilientFetcher(
        source, fallback_data=["stale"], cache=SnapshotCache(), retry_delay=0.05
    )

    await fetcher.refetch()
    fetcher.close()
    await asyncio.sleep(0.1)

    assert source.calls == 1
    assert fetcher.data == ["stale"]


@pytest.mark.anyio
async def test_concurrent_refetches_issue_separate_requests_by_default():
    source = CountingFetcher(["own"])
    cache = SnapshotCache()
    first = ResilientFetcher(source, cache_key="families", cache=cache)
    second = ResilientFetcher(source, cache_key="families", cache=cache)

    results = await asyncio.gather(first.refetch(), second.refetch())

    assert results == [["own"], ["own"]]
    assert source.calls == 2


@pytest.mark.anyio
async def test_coalescing_shares_one_request_per_cache():
    source = CountingFetcher(["shared"])
    cache = SnapshotCache()
    first = ResilientFetcher(source, cache_key="families", cache=cache, coalesce=True)
    second = ResilientFetcher(source, cache_key="families", cache=cache, coalesce=True)
    elsewhere = ResilientFetcher(
        source, cache_key="families", cache=SnapshotCache(), coalesce=True
    )

    results = await asyncio.gather(first.refetch(), second.refetch(), elsewhere.refetch())

    assert results == [["shared"], ["shared"], ["shared"]]
    assert source.calls == 2
    assert cache.in_flight == {}


@pytest.mark.anyio
async def test_cancelled_owner_does_not_cancel_waiters():
    started = asyncio.Event()
    release = asyncio.Event()
    calls = 0

    async def slow():
        nonlocal calls
        calls += 1
        started.set()
        await release.wait()
        return ["fresh"]

    cache = SnapshotCache()
    owner = ResilientFetcher(slow, cache_key="families", cache=cache, coalesce=True)
    waiter = ResilientFetcher(slow, cache_key="families", cache=cache, coalesce=True)

    owner_task = asyncio.create_task(owner.refetch())
    await started.wait()
    waiter_task = asyncio.create_task(waiter.refetch())
    await asyncio.sleep(0)
    owner_task.cancel()
    await asyncio.sleep(0)
    release.set()

    assert await waiter_task == ["fresh"]
    assert owner_task.cancelled()
    assert calls == 2


@pytest.mark.anyio
async def test_cached_none_is_served_during_an_outage():
    cache = SnapshotCache()
    cache.put("profile", None)
    fetcher = ResilientFetcher(
        CountingFetcher(StoreUnavailableError("Connection refused")),
        cache_key="profile",
        cache=cache,
        retry_delay=60,
    )

    assert await fetcher.refetch() is None
    assert fetcher.is_using_fallback
    assert fetcher.state.status is FetchStatus.SUCCESS
    assert cache.get("missing", default="miss") == "miss"
    fetcher.close()


def test_default_cache_key_replaces_non_alphanumerics():
    assert default_cache_key("/api/families?page=1") == "api__api_families_page_1"


def _client(status_code: int, body=None, text: str = "") -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        if body is not None:
            return httpx.Response(status_code, json=body)
        return httpx.Response(status_code, text=text)

    return httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url="http://villages.test"
    )


@pytest.mark.anyio
async def test_graceful_api_returns_json_body():
    async with _client(200, body={"items": [1, 2]}) as client:
        fetcher = graceful_api(client, "/api/families", cache=SnapshotCache())
        assert await fetcher.refetch() == {"items": [1, 2]}
        assert fetcher.cache_key == "api__api_families"


@pytest.mark.anyio
@pytest.mark.parametrize(
    ("status_code", "expected"),
    [
        (401, AuthorizationError),
        (403, AuthorizationError),
        (400, ValidationError),
        (404, ValidationError),
        (422, ValidationError),
        (500, ApiError),
    ],
)
async def test_graceful_api_maps_client_errors(status_code, expected):
    async with _client(status_code, text="nope") as client:
        fetcher = graceful_api(client, "/api/families", cache=SnapshotCache())
        with pytest.raises(expected):
            await fetcher.refetch()
        assert not fetcher.is_database_error


@pytest.mark.anyio
async def test_graceful_api_falls_back_on_service_unavailable():
    async with _client(503, text="maintenance") as client:
        fetcher = graceful_api(
            client,
            "/api/families",
            cache=SnapshotCache(),
            fallback_data={"items": []},
            retry_delay=60,
        )
        assert await fetcher.refetch() == {"items": []}
        assert fetcher.is_database_error
        fetcher.close()


@pytest.mark.anyio
async def test_graceful_api_sends_method_body_and_headers():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["body"] = json.loads(request.content)
        seen["token"] = request.headers.get("x-villages-token")
        return httpx.Response(201, json={"id": 7})

    async with httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url="http://villages.test"
    ) as client:
        fetcher = graceful_api(
            client,
            "/api/families",
            method="POST",
            json={"name": "Rivera"},
            headers={"X-Villages-Token": "abc"},
            cache=SnapshotCache(),
        )
        assert await fetcher.refetch() == {"id": 7}

    assert seen == {"method": "POST", "body": {"name": "Rivera"}, "token": "abc"}
