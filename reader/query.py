from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from functools import partial
from typing import Any, Protocol

from reader.client import CollectorClient, extract_rows
from shared.serialization import build_filter_key

logger = logging.getLogger("oml_reader.query")


class LogsFetcher(Protocol):
    async def get_logs(self, filters: Mapping[str, Any] | None = None) -> Any: ...


class QueryCache:
    """Memoized point queries with in-flight de-duplication.

    Results are kept until invalidated. Concurrent callers asking for the
    same key share one request; a failed request is not cached.
    """

    def __init__(self, client: LogsFetcher) -> None:
        self.client = client
        self._results: dict[str, Any] = {}
        self._inflight: dict[str, asyncio.Task[Any]] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._results

    def in_flight(self, filters: Mapping[str, Any] | None = None) -> bool:
        return build_filter_key(filters) in self._inflight

    async def fetch(self, filters: Mapping[str, Any] | None = None) -> Any:
        key = build_filter_key(filters)
        if key in self._results:
            return self._results[key]
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.get_running_loop().create_task(self.client.get_logs(filters))
            self._inflight[key] = task
            task.add_done_callback(partial(self._settle, key))
            logger.debug("query started key=%r", key)
        # shielded so one caller's cancellation leaves the shared request alone
        return await asyncio.shield(task)

    def _settle(self, key: str, task: asyncio.Task[Any]) -> None:
        if self._inflight.get(key) is not task:
            # dropped by clear(); the result is stale
            return
        del self._inflight[key]
        if task.cancelled() or task.exception() is not None:
            return
        self._results[key] = task.result()

    def invalidate(self, filters: Mapping[str, Any] | None = None) -> None:
        self._results.pop(build_filter_key(filters), None)

    async def refetch(self, filters: Mapping[str, Any] | None = None) -> Any:
        self.invalidate(filters)
        return await self.fetch(filters)

    def clear(self) -> None:
        self._results.clear()
        self._inflight.clear()


_shared_caches: dict[tuple[str, str, str | None, str | None], QueryCache] = {}


def default_query_cache(client: CollectorClient) -> QueryCache:
    """Return the process-wide cache for ``client``'s collector and identity.

    Clients that differ in api key, app name or environment get separate
    caches.
    """
    config = client.config
    identity = (config.base_url, config.api_key, config.app_name, config.environment)
    cache = _shared_caches.get(identity)
    if cache is None:
        cache = QueryCache(client)
        _shared_caches[identity] = cache
    return cache


class LogQuery:
    """Point-query accessor exposing ``data``, ``is_loading`` and ``error``."""

    def __init__(self, cache: QueryCache, filters: Mapping[str, Any] | None = None) -> None:
        self.cache = cache
        self.filters: dict[str, Any] = dict(filters or {})
        self.data: list[Any] | None = None
        self.is_loading = True
        self.error: Exception | None = None

    @property
    def key(self) -> str:
        return build_filter_key(self.filters)

    async def load(self) -> list[Any] | None:
        self.is_loading = True
        self.error = None
        try:
            payload = await self.cache.fetch(self.filters)
        except asyncio.CancelledError:
            # aborted: no update
            self.is_loading = False
            raise
        except Exception as exc:
            logger.warning("log query failed key=%r: %s", self.key, exc)
            self.error = exc
            self.data = None
        else:
            self.data = extract_rows(payload)
        self.is_loading = False
        return self.data

    async def refetch(self) -> list[Any] | None:
        self.cache.invalidate(self.filters)
        return await self.load()

    async def set_filters(self, filters: Mapping[str, Any] | None) -> list[Any] | None:
        if build_filter_key(filters) == self.key and not self.is_loading:
            return self.data
        self.filters = dict(filters or {})
        return await self.load()
