"""In-memory keyed store for server-fetched expense data.

EntityCache is the single source of truth for what the user sees.  It holds
one :class:`CacheEntry` per key and supports four kinds of change:

    set()              - a confirmed value from the server (read or write)
    begin_optimistic() - a speculative local patch, remembering the old value
    rollback()         - restore the remembered value, guarded by a token
    invalidate()       - mark the value stale so the next read refetches

# ─── ROLLBACK TOKENS ──────────────────────────────────────────────────
#
#   t0  mutation A patches K        snapshot=S0   token=a
#   t1  mutation B patches K        snapshot=A(S0) token=b  (supersedes a)
#   t2  B succeeds → commit(b), invalidate, refetch → set(K, server)
#   t3  A fails    → rollback(K, a) → token mismatch → no-op
#
# Step t3 must not put S0 back over B's confirmed result:
# a rollback whose token no longer owns the slot is ignored.
# ──────────────────────────────────────────────────────────────────────

Every method is synchronous.  Under asyncio that makes each call atomic
with respect to other coroutines: nothing can run between capturing a
snapshot and installing its patch.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Iterable
from typing import Any

import structlog
from cachetools import TTLCache

from expense_sync.models.cache import (
    MISSING,
    CacheEntry,
    CacheEvent,
    CacheKey,
    SnapshotToken,
    key_matches,
)
from expense_sync.utils.errors import ConflictError
from expense_sync.utils.logging import get_logger

CacheListener = Callable[[CacheKey, CacheEvent, Any], Any]


class EntityCache:
    """Keyed client cache with optimistic patches and token-guarded rollback.

    Parameters
    ----------
    stale_seconds:
        How long a value set from the server counts as fresh.  Reads of a
        value older than this refetch.  ``0`` makes every read refetch.
    max_fresh_entries:
        Upper bound on tracked fresh keys.  When exceeded, the oldest key
        is treated as stale; its value stays cached.
    timer:
        Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        stale_seconds: float = 5.0,
        max_fresh_entries: int = 512,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._entries: dict[CacheKey, CacheEntry] = {}
        # Presence in this TTLCache means "fresh"; the stored int is the
        # version that was fresh, so a later set() refreshes it.
        self._fresh: TTLCache[CacheKey, int] = TTLCache(
            maxsize=max_fresh_entries, ttl=stale_seconds, timer=timer
        )
        self._listeners: dict[CacheKey, list[CacheListener]] = {}
        self._background: set[asyncio.Task[Any]] = set()
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, key: CacheKey) -> Any | None:
        """Return the current value for *key*, or ``None`` when absent."""
        entry = self._entries.get(key)
        if entry is None or not entry.has_value:
            return None
        return entry.value

    def has(self, key: CacheKey) -> bool:
        """Return ``True`` if *key* holds a value, fresh or stale."""
        entry = self._entries.get(key)
        return entry is not None and entry.has_value

    def version(self, key: CacheKey) -> int:
        """Return how many confirmed values *key* has received."""
        entry = self._entries.get(key)
        return entry.version if entry is not None else 0

    def is_stale(self, key: CacheKey) -> bool:
        """Return ``True`` when the next read of *key* must go to the server."""
        return not self.has(key) or key not in self._fresh

    def is_pending(self, key: CacheKey) -> bool:
        """Return ``True`` while an optimistic patch on *key* is unconfirmed."""
        entry = self._entries.get(key)
        return entry is not None and entry.is_pending

    def keys(self) -> list[CacheKey]:
        return [k for k, e in self._entries.items() if e.has_value]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def set(self, key: CacheKey, value: Any) -> None:
        """Install a server-confirmed *value*.

        Bumps the version, marks the key fresh and drops any pending
        snapshot: confirmed data supersedes every speculative patch, so a
        later rollback of that patch becomes a no-op.
        """
        entry = self._entries.setdefault(key, CacheEntry())
        superseded = entry.pending_token
        entry.value = value
        entry.version += 1
        entry.pending_snapshot = MISSING
        entry.pending_token = None
        self._fresh[key] = entry.version

        self._logger.debug(
            "cache_set",
            key=key,
            version=entry.version,
            superseded_token=superseded.serial if superseded else None,
        )
        self._notify(key, CacheEvent.SET, value)

    def begin_optimistic(
        self,
        key: CacheKey,
        patch_fn: Callable[[Any | None], Any],
        *,
        supersede: bool = False,
    ) -> SnapshotToken:
        """Apply *patch_fn* to the current value and remember the old one.

        ``patch_fn`` receives the current value (``None`` when absent) and
        returns the new value.  Returning ``None`` for an absent key leaves
        the key absent.

        Parameters
        ----------
        key:
            The cache key to patch.
        patch_fn:
            Pure function from old value to new value.
        supersede:
            When another patch on *key* is still pending, take over its
            snapshot slot instead of raising.  The snapshot captured is the
            current, already patched, value.

        Returns
        -------
        SnapshotToken
            Pass to :meth:`rollback` or :meth:`commit`.

        Raises
        ------
        ConflictError
            A patch on *key* is pending and *supersede* is false.
        """
        entry = self._entries.setdefault(key, CacheEntry())
        if entry.is_pending and not supersede:
            raise ConflictError(key=key)

        previous_token = entry.pending_token
        current = entry.value
        patched = patch_fn(None if current is MISSING else current)

        token = SnapshotToken(key=key)
        entry.pending_snapshot = current
        entry.pending_token = token
        if patched is None and current is MISSING:
            entry.value = MISSING
        else:
            entry.value = patched

        self._logger.debug(
            "cache_patched",
            key=key,
            token=token.serial,
            superseded_token=previous_token.serial if previous_token else None,
        )
        self._notify(key, CacheEvent.PATCHED, self.get(key))
        return token

    def rollback(self, key: CacheKey, token: SnapshotToken) -> bool:
        """Restore the snapshot taken for *token*.

        A no-op when the snapshot slot now belongs to a newer update, or
        when a confirmed value has already replaced the patch.

        Returns
        -------
        bool
            ``True`` if the snapshot was restored.
        """
        entry = self._entries.get(key)
        if entry is None or entry.pending_token != token:
            self._logger.debug("cache_rollback_skipped", key=key, token=token.serial)
            return False

        entry.value = entry.pending_snapshot
        entry.pending_snapshot = MISSING
        entry.pending_token = None

        self._logger.debug("cache_rolled_back", key=key, token=token.serial)
        self._notify(key, CacheEvent.ROLLED_BACK, self.get(key))
        return True

    def commit(self, key: CacheKey, token: SnapshotToken) -> bool:
        """Release the snapshot for *token* once its remote call succeeded.

        The patched value stays in place until the next refetch replaces it.

        Returns
        -------
        bool
            ``True`` if *token* still owned the snapshot slot.
        """
        entry = self._entries.get(key)
        if entry is None or entry.pending_token != token:
            return False
        entry.pending_snapshot = MISSING
        entry.pending_token = None
        self._logger.debug("cache_committed", key=key, token=token.serial)
        return True

    def invalidate(self, key: CacheKey) -> None:
        """Mark *key* stale without touching its value."""
        self._fresh.pop(key, None)
        self._logger.debug("cache_invalidated", key=key)
        self._notify(key, CacheEvent.INVALIDATED, self.get(key))

    def invalidate_matching(self, prefix: CacheKey) -> list[CacheKey]:
        """Invalidate *prefix* and every cached key that starts with it.

        Returns
        -------
        list[CacheKey]
            The keys that were invalidated.
        """
        matched = [k for k in self._entries if key_matches(k, prefix)]
        if prefix not in matched:
            matched.insert(0, prefix)
        for key in matched:
            self.invalidate(key)
        return matched

    def clear(self) -> None:
        """Drop every entry; used when the client session ends."""
        keys = list(self._entries)
        self._entries.clear()
        self._fresh.clear()
        for key in keys:
            self._notify(key, CacheEvent.CLEARED, None)
        self._listeners.clear()
        self._logger.debug("cache_cleared", entries=len(keys))

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def subscribe(self, key: CacheKey, callback: CacheListener) -> None:
        """Register *callback* for changes to *key*.

        Callbacks receive ``(key, event, value)``.  A callback returning a
        coroutine has it scheduled on the running loop.
        """
        listeners = self._listeners.setdefault(key, [])
        if callback not in listeners:
            listeners.append(callback)

    def unsubscribe(self, key: CacheKey, callback: CacheListener) -> None:
        listeners = self._listeners.get(key, [])
        if callback in listeners:
            listeners.remove(callback)

    def subscribed_keys(self) -> Iterable[CacheKey]:
        return [k for k, listeners in self._listeners.items() if listeners]

    def _notify(self, key: CacheKey, event: CacheEvent, value: Any) -> None:
        for callback in list(self._listeners.get(key, [])):
            try:
                result = callback(key, event, value)
                if asyncio.iscoroutine(result):
                    task = asyncio.get_running_loop().create_task(result)
                    self._background.add(task)
                    task.add_done_callback(self._background.discard)
            except Exception as exc:
                self._logger.warning(
                    "cache_listener_error",
                    key=key,
                    cache_event=event.value,
                    error=str(exc),
                    callback=getattr(callback, "__name__", repr(callback)),
                )
