"""Orchestration of a single optimistic remote write.

# ─── THE FIVE STEPS OF run() ──────────────────────────────────────────
#
#   1. reader.cancel(K)               drop in-flight reads of K
#   2. token = cache.begin_optimistic  patch K locally (no suspension)
#   3. await remote_call()             the only suspension point
#   4a. success → commit(token), invalidate(K, extra keys), return
#   4b. failure → rollback(K, token), invalidate(K, extra keys), re-raise
#
# Steps 1 and 2 run without awaiting, so a second mutation on K that
# starts while the first is in flight always snapshots the first one's
# patched value.  Overlapping mutations are not serialized: the later one
# supersedes the earlier one's snapshot slot, and the earlier one's
# rollback then becomes a no-op.  Invalidating on failure as well means
# whatever a no-op rollback left behind is replaced on the next read.
#
# Invalidation cancels in-flight reads of every invalidated key, so a
# response computed before the write landed cannot mark the key fresh.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any

import structlog

from expense_sync.cache.entity_cache import EntityCache
from expense_sync.models.cache import CacheKey, SnapshotToken
from expense_sync.sync.query_reader import QueryReader
from expense_sync.utils.errors import ConflictError
from expense_sync.utils.logging import get_logger

OptimisticPatch = Callable[[Any | None], Any]
RemoteCall = Callable[[], Awaitable[Any]]


@dataclass(frozen=True)
class MutationResult:
    """A confirmed mutation.

    ``response`` is whatever the remote call returned; the cache still
    holds the optimistic guess until the invalidated keys are read again.
    """

    key: CacheKey
    response: Any
    invalidated: tuple[CacheKey, ...]
    duration_ms: float


class MutationCoordinator:
    """Runs remote writes with an optimistic local patch and safe rollback.

    Parameters
    ----------
    cache:
        The session's entity cache.
    reader:
        The read path sharing that cache; used to cancel stale reads.
    """

    def __init__(self, cache: EntityCache, reader: QueryReader) -> None:
        self._cache = cache
        self._reader = reader
        self._logger: structlog.BoundLogger = get_logger(__name__)

    async def run(
        self,
        key: CacheKey,
        optimistic_patch: OptimisticPatch,
        remote_call: RemoteCall,
        *,
        invalidate: Iterable[CacheKey] = (),
    ) -> MutationResult:
        """Patch *key* optimistically, call the server, then confirm or roll back.

        Parameters
        ----------
        key:
            The cache key the mutation changes.
        optimistic_patch:
            Maps the current cached value (``None`` when absent) to the
            value to show while the remote call is in flight.
        remote_call:
            Zero-argument coroutine function performing the write.
        invalidate:
            Additional keys to mark stale once the call settles, e.g. the list key
            when an item's detail changes.

        Returns
        -------
        MutationResult
            On success.

        Raises
        ------
        Exception
            Whatever *remote_call* raised (normally
            :class:`~expense_sync.utils.errors.RequestFailed`), after the
            optimistic patch has been rolled back and the keys invalidated.
        """
        start = time.perf_counter()

        if self._reader.cancel(key):
            self._logger.debug("mutation_cancelled_read", key=key)

        token = self._begin(key, optimistic_patch)

        try:
            response = await remote_call()
        except (Exception, asyncio.CancelledError) as exc:
            restored = self._cache.rollback(key, token)
            invalidated = self._invalidate(key, invalidate)
            self._logger.warning(
                "mutation_rolled_back" if restored else "mutation_failed_superseded",
                key=key,
                token=token.serial,
                error_type=type(exc).__name__,
                error=str(exc),
                invalidated=len(invalidated),
            )
            raise

        self._cache.commit(key, token)
        invalidated = self._invalidate(key, invalidate)
        duration_ms = round((time.perf_counter() - start) * 1000, 2)
        self._logger.info(
            "mutation_confirmed",
            key=key,
            token=token.serial,
            invalidated=len(invalidated),
            duration_ms=duration_ms,
        )
        return MutationResult(
            key=key,
            response=response,
            invalidated=invalidated,
            duration_ms=duration_ms,
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _begin(self, key: CacheKey, optimistic_patch: OptimisticPatch) -> SnapshotToken:
        try:
            return self._cache.begin_optimistic(key, optimistic_patch)
        except ConflictError:
            # Another mutation on key is still in flight; take over its slot.
            self._logger.debug("mutation_superseding_pending", key=key)
            return self._cache.begin_optimistic(key, optimistic_patch, supersede=True)

    def _invalidate(self, key: CacheKey, extra: Iterable[CacheKey]) -> tuple[CacheKey, ...]:
        keys: list[CacheKey] = [key]
        for other in extra:
            if other not in keys:
                keys.append(other)
        for k in keys:
            self._reader.cancel(k)
            self._cache.invalidate(k)
        return tuple(keys)
