"""Cache key, entry and snapshot-token types for the client cache.

A cache key is a plain tuple: a collection name followed by zero or more
scoping components.  ``("expenses",)`` is the expense list and
``("expenses", 7)`` the detail view of expense 7.  Tuples compare
structurally, so two keys built independently address the same entry.

CacheEntry is mutable and private to EntityCache; nothing outside the
cache package ever holds one.  SnapshotToken is the only handle callers
get back from an optimistic update.
"""

from __future__ import annotations

import itertools
from collections.abc import Hashable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Final

CacheKey = tuple[Hashable, ...]

EXPENSES: Final = "expenses"


class _Missing:
    """Marker for "no value", distinct from a cached ``None``."""

    _instance: _Missing | None = None

    def __new__(cls) -> _Missing:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "<missing>"

    def __bool__(self) -> bool:
        return False


MISSING: Final = _Missing()


def expenses_key() -> CacheKey:
    """Key of the expense list."""
    return (EXPENSES,)


def expense_key(expense_id: int) -> CacheKey:
    """Key of one expense's detail view."""
    return (EXPENSES, expense_id)


def key_matches(key: CacheKey, prefix: CacheKey) -> bool:
    """Return ``True`` when *key* starts with every component of *prefix*."""
    return key[: len(prefix)] == prefix


class CacheEvent(str, Enum):  # noqa: UP042
    """Change notifications delivered to cache listeners."""

    SET = "set"
    PATCHED = "patched"
    ROLLED_BACK = "rolled_back"
    INVALIDATED = "invalidated"
    CLEARED = "cleared"


_token_serials = itertools.count(1)


@dataclass(frozen=True)
class SnapshotToken:
    """Opaque handle tying a pending snapshot to the update that made it.

    Equality includes the serial, so a token from an earlier update never
    matches the snapshot installed by a later one.
    """

    key: CacheKey
    serial: int = field(default_factory=lambda: next(_token_serials))


@dataclass
class CacheEntry:
    """Internal state of one cached key."""

    value: Any = MISSING
    version: int = 0
    pending_snapshot: Any = MISSING
    pending_token: SnapshotToken | None = None

    @property
    def has_value(self) -> bool:
        return self.value is not MISSING

    @property
    def is_pending(self) -> bool:
        return self.pending_token is not None
