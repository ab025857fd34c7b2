"""Fetch wrapper that degrades gracefully while the backing store is down.

A :class:`ResilientFetcher` runs an async fetch function. When the error is
classified as a store outage it serves the most recent snapshot from a
:class:`SnapshotCache` (or the caller's fallback) and schedules a bounded
number of automatic retries. Any other error is surfaced unchanged.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, MutableMapping, TypeVar

import httpx

from villages.config import get_settings
from villages.domain.errors import (
    ApiError,
    AuthorizationError,
    StoreUnavailableError,
    ValidationError,
)
from villages.infrastructure.store_health import is_store_unavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_FRESHNESS_SECONDS = 600.0

_UNAVAILABLE_STATUSES = {502, 503, 504}
_FORBIDDEN_STATUSES = {401, 403}
_INVALID_STATUSES = {400, 404, 422}

_MISSING = object()


class FetchStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class FetchState(Generic[T]):
    data: T | None = None
    status: FetchStatus = FetchStatus.IDLE
    error: BaseException | None = None
    is_database_error: bool = False
    retry_count: int = 0
    is_using_fallback: bool = False
    last_updated: datetime | None = None

    @property
    def loading(self) -> bool:
        return self.status is FetchStatus.LOADING


@dataclass
class CacheEntry:
    key: str
    payload: Any
    timestamp: float


class SnapshotCache:
    """Last-known-good results keyed by cache key.

    Entries older than ``freshness_seconds`` are dropped when read; an entry
    aged exactly ``freshness_seconds`` is still served. The cache also holds
    the in-flight requests of fetchers that opt into coalescing.
    """

    def __init__(
        self,
        freshness_seconds: float = DEFAULT_FRESHNESS_SECONDS,
        store: MutableMapping[str, CacheEntry] | None = None,
        clock: Callable[[], float] = time.time,
        prefix: str = "villages_cache_",
    ) -> None:
        self.freshness_seconds = freshness_seconds
        self._store: MutableMapping[str, CacheEntry] = {} if store is None else store
        self._clock = clock
        self._prefix = prefix
        self.in_flight: dict[str, asyncio.Future] = {}

    def _key(self, cache_key: str) -> str:
        return f"{self._prefix}{cache_key}"

    def get(self, cache_key: str, default: Any = None) -> Any:
        """Return a copy of the fresh entry, or ``default`` when there is none.

        A cached ``None`` is returned as ``None``; pass a sentinel ``default``
        to tell it apart from a miss.
        """

        key = self._key(cache_key)
        entry = self._store.get(key)
        if entry is None:
            return default
        if self._clock() - entry.timestamp > self.freshness_seconds:
            self._store.pop(key, None)
            return default
        return copy.deepcopy(entry.payload)

    def put(self, cache_key: str, data: Any) -> None:
        key = self._key(cache_key)
        self._store[key] = CacheEntry(
            key=key, payload=copy.deepcopy(data), timestamp=self._clock()
        )

    def delete(self, cache_key: str) -> None:
        self._store.pop(self._key(cache_key), None)

    def clear(self) -> None:
        for key in [key for key in self._store if key.startswith(self._prefix)]:
            del self._store[key]


_default_cache: SnapshotCache | None = None


def get_default_cache() -> SnapshotCache:
    """Return the process-wide snapshot cache sized from the settings."""

    global _default_cache
    if _default_cache is None:
        _default_cache = SnapshotCache(
            freshness_seconds=get_settings().cache_freshness_seconds
        )
    return _default_cache


class ResilientFetcher(Generic[T]):
    """Run ``fetcher`` with outage fallback, snapshot caching and bounded retries."""

    def __init__(
        self,
        fetcher: Callable[[], Awaitable[T]],
        *,
        cache_key: str | None = None,
        fallback_data: T | None = None,
        max_retries: int | None = None,
        retry_delay: float | None = None,
        cache: SnapshotCache | None = None,
        on_error: Callable[[BaseException], None] | None = None,
        on_fallback: Callable[[T], None] | None = None,
        coalesce: bool = False,
    ) -> None:
        self._fetcher = fetcher
        self.cache_key = cache_key
        self.fallback_data = fallback_data
        settings = get_settings()
        self.max_retries = settings.fetch_max_retries if max_retries is None else max_retries
        self.retry_delay = (
            settings.fetch_retry_delay_seconds if retry_delay is None else retry_delay
        )
        self._cache = cache if cache is not None else get_default_cache()
        self._on_error = on_error
        self._on_fallback = on_fallback
        self._coalesce = coalesce
        self._retry_handle: asyncio.TimerHandle | None = None
        self._retry_tasks: set[asyncio.Task] = set()
        self.state: FetchState[T] = FetchState()

    @property
    def data(self) -> T | None:
        return self.state.data

    @property
    def loading(self) -> bool:
        return self.state.loading

    @property
    def error(self) -> BaseException | None:
        return self.state.error

    @property
    def is_database_error(self) -> bool:
        return self.state.is_database_error

    @property
    def retry_count(self) -> int:
        return self.state.retry_count

    @property
    def is_using_fallback(self) -> bool:
        return self.state.is_using_fallback

    @property
    def retry_pending(self) -> bool:
        return self._retry_handle is not None

    async def refetch(self) -> T | None:
        """Fetch once, falling back to cached or supplied data on store outages."""

        self.state.status = FetchStatus.LOADING
        self.state.error = None
        try:
            result = await self._fetch()
        except Exception as exc:
            return self._handle_failure(exc)

        self.state.data = result
        self.state.status = FetchStatus.SUCCESS
        self.state.is_database_error = False
        self.state.is_using_fallback = False
        self.state.retry_count = 0
        self.state.last_updated = datetime.now(timezone.utc)
        if self.cache_key:
            try:
                self._cache.put(self.cache_key, result)
            except Exception as exc:
                logger.warning("Failed to cache data for %s: %s", self.cache_key, exc)
        return result

    def retry(self) -> None:
        """Schedule a manual retry unless the retry budget is exhausted."""

        if self.state.retry_count >= self.max_retries:
            return
        self.state.retry_count += 1
        self._spawn_refetch()

    def close(self) -> None:
        """Cancel the pending automatic retry; in-flight fetches keep running."""

        if self._retry_handle is not None:
            self._retry_handle.cancel()
            self._retry_handle = None

    async def _fetch(self) -> T:
        if not self._coalesce or not self.cache_key:
            return await self._fetcher()

        in_flight = self._cache.in_flight
        loop = asyncio.get_running_loop()
        pending = in_flight.get(self.cache_key)
        if pending is not None and pending.get_loop() is loop:
            try:
                return await asyncio.shield(pending)
            except asyncio.CancelledError:
                if not pending.cancelled():
                    raise
            # The owning caller was cancelled; issue our own request.
            return await self._fetcher()

        future: asyncio.Future = loop.create_future()
        in_flight[self.cache_key] = future
        try:
            result = await self._fetcher()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as exc:
            future.set_exception(exc)
            # Mark retrieved when nobody else is waiting.
            future.exception()
            raise
        else:
            future.set_result(result)
            return result
        finally:
            if in_flight.get(self.cache_key) is future:
                del in_flight[self.cache_key]

    def _handle_failure(self, exc: Exception) -> T | None:
        if self._on_error is not None:
            self._on_error(exc)

        if not is_store_unavailable(exc):
            self.state.status = FetchStatus.ERROR
            self.state.error = exc
            self.state.is_database_error = False
            raise exc

        logger.warning(
            "Store unavailable for %s: %s", self.cache_key or "uncached fetch", exc
        )
        fallback = self._cache.get(self.cache_key, _MISSING) if self.cache_key else _MISSING
        if fallback is _MISSING and self.fallback_data is not None:
            fallback = self.fallback_data

        if fallback is not _MISSING:
            self.state.data = fallback
            self.state.status = FetchStatus.SUCCESS
            self.state.error = exc
            self.state.is_database_error = True
            self.state.is_using_fallback = True
            if self._on_fallback is not None:
                self._on_fallback(fallback)
            self._schedule_retry()
            return fallback

        self.state.status = FetchStatus.ERROR
        self.state.error = exc
        self.state.is_database_error = True
        self.state.is_using_fallback = False
        self.state.retry_count += 1
        self._schedule_retry()
        raise exc

    def _schedule_retry(self) -> None:
        if self.state.retry_count >= self.max_retries:
            return
        self.close()
        loop = asyncio.get_running_loop()
        self._retry_handle = loop.call_later(self.retry_delay, self._fire_retry)

    def _fire_retry(self) -> None:
        self._retry_handle = None
        self.retry()

    def _spawn_refetch(self) -> None:
        task = asyncio.get_running_loop().create_task(self._refetch_quietly())
        self._retry_tasks.add(task)
        task.add_done_callback(self._retry_tasks.discard)

    async def _refetch_quietly(self) -> None:
        try:
            await self.refetch()
        except Exception as exc:
            logger.debug("Retry for %s failed: %s", self.cache_key, exc)


def default_cache_key(endpoint: str) -> str:
    return "api_" + re.sub(r"[^a-zA-Z0-9]", "_", endpoint)


def raise_for_api_status(response: httpx.Response) -> None:
    """Translate an unsuccessful response into the typed error hierarchy."""

    if response.is_success:
        return
    status_code = response.status_code
    text = response.text
    if status_code in _UNAVAILABLE_STATUSES:
        raise StoreUnavailableError(f"Database connection error: {text}")
    if status_code in _FORBIDDEN_STATUSES:
        raise AuthorizationError(f"Unauthorized: {text}")
    if status_code in _INVALID_STATUSES:
        raise ValidationError(f"Request error: {text}")
    raise ApiError(f"HTTP {status_code}: {text}", status_code=status_code)


def graceful_api(
    client: httpx.AsyncClient,
    endpoint: str,
    *,
    method: str = "GET",
    params: dict[str, Any] | None = None,
    json: Any = None,
    headers: dict[str, str] | None = None,
    cache_key: str | None = None,
    **options: Any,
) -> ResilientFetcher[Any]:
    """Build a fetcher that calls ``endpoint`` and decodes the JSON body."""

    async def fetch() -> Any:
        response = await client.request(
            method, endpoint, params=params, json=json, headers=headers
        )
        raise_for_api_status(response)
        return response.json()

    return ResilientFetcher(
        fetch, cache_key=cache_key or default_cache_key(endpoint), **options
    )


__all__ = [
    "CacheEntry",
    "FetchState",
    "FetchStatus",
    "ResilientFetcher",
    "SnapshotCache",
    "default_cache_key",
    "get_default_cache",
    "graceful_api",
    "raise_for_api_status",
]
