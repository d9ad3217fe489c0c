"""Read path: serve cached values, refetch stale ones, discard cancelled reads.

# ─── HOW A READ RESOLVES ──────────────────────────────────────────────
#
#   read(K) ─┬─ fresh value cached? ──→ return it (no network)
#            ├─ fetch for K already in flight? ──→ join it
#            └─ start one fetch ──→ await ──┬─ generation unchanged → cache.set(K)
#                                           └─ cancelled meanwhile  → discard,
#                                                                    return cache.get(K)
#
# Cancellation is advisory.  cancel(K) bumps K's generation; the HTTP
# request keeps running and its response is simply not written to the
# cache.  The mutation coordinator cancels reads on K before patching K
# so a response computed before the mutation cannot overwrite the patch.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import structlog

from expense_sync.cache.entity_cache import EntityCache
from expense_sync.models.cache import CacheKey
from expense_sync.utils.logging import get_logger

Loader = Callable[[], Awaitable[Any]]


@dataclass
class _InFlightRead:
    """One outstanding fetch and the generation it was started under."""

    task: asyncio.Task[Any]
    generation: int


class QueryReader:
    """Fetch-on-stale reads through an :class:`EntityCache`.

    Concurrent reads of the same key share a single fetch, so an
    invalidated key costs exactly one request no matter how many
    readers ask for it.
    """

    def __init__(self, cache: EntityCache) -> None:
        self._cache = cache
        self._in_flight: dict[CacheKey, _InFlightRead] = {}
        self._generations: dict[CacheKey, int] = {}
        self._logger: structlog.BoundLogger = get_logger(__name__)

    @property
    def cache(self) -> EntityCache:
        return self._cache

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def read(self, key: CacheKey, loader: Loader) -> Any:
        """Return the value for *key*, fetching with *loader* when stale.

        Parameters
        ----------
        key:
            The cache key to read.
        loader:
            Zero-argument coroutine function that fetches the
            authoritative value from the server.

        Raises
        ------
        RequestFailed
            Propagated from *loader*; the cache is left untouched.
        """
        if not self._cache.is_stale(key):
            return self._cache.get(key)
        return await self._fetch(key, loader)

    async def refetch(self, key: CacheKey, loader: Loader) -> Any:
        """Fetch *key* from the server even if the cached value is fresh."""
        return await self._fetch(key, loader)

    def cancel(self, key: CacheKey) -> bool:
        """Discard the result of any in-flight read of *key*.

        Returns
        -------
        bool
            ``True`` if a read was in flight.
        """
        self._generations[key] = self._generations.get(key, 0) + 1
        in_flight = self._in_flight.pop(key, None)
        if in_flight is None:
            return False
        self._logger.debug("read_cancelled", key=key, generation=in_flight.generation)
        return True

    def is_fetching(self, key: CacheKey) -> bool:
        return key in self._in_flight

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _fetch(self, key: CacheKey, loader: Loader) -> Any:
        in_flight = self._in_flight.get(key)
        if in_flight is None:
            generation = self._generations.get(key, 0)
            task = asyncio.ensure_future(loader())
            in_flight = _InFlightRead(task=task, generation=generation)
            self._in_flight[key] = in_flight
            task.add_done_callback(lambda t, k=key, r=in_flight: self._settle(k, r, t))
            self._logger.debug("read_started", key=key, generation=generation)
        else:
            self._logger.debug("read_joined", key=key, generation=in_flight.generation)

        # shield: one reader being cancelled must not kill the shared fetch.
        await asyncio.shield(in_flight.task)

        if in_flight.generation != self._generations.get(key, 0):
            return self._cache.get(key)
        return in_flight.task.result()

    def _settle(self, key: CacheKey, in_flight: _InFlightRead, task: asyncio.Task[Any]) -> None:
        """Write a finished fetch into the cache unless it was cancelled."""
        if self._in_flight.get(key) is in_flight:
            del self._in_flight[key]

        if task.cancelled():
            return
        if task.exception() is not None:
            self._logger.warning("read_failed", key=key, error=str(task.exception()))
            return
        if in_flight.generation != self._generations.get(key, 0):
            self._logger.debug("read_result_discarded", key=key, generation=in_flight.generation)
            return
        self._cache.set(key, task.result())
