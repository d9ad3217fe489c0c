"""expense-sync domain models: re-exports all public model classes.

The models are organized by concern:
    - cache.py    - cache keys, entries, snapshot tokens, change events
    - expense.py  - Expense, ExpenseDraft and response-envelope parsers
    - upload.py   - LocalFile, UploadSession state machine, UploadResult
"""

from __future__ import annotations

from expense_sync.models.cache import (
    MISSING,
    CacheEntry,
    CacheEvent,
    CacheKey,
    SnapshotToken,
    expense_key,
    expenses_key,
    key_matches,
)
from expense_sync.models.expense import (
    Expense,
    ExpenseDraft,
    next_provisional_id,
    parse_expense,
    parse_expense_list,
)
from expense_sync.models.upload import (
    LocalFile,
    SignedDestination,
    UploadPhase,
    UploadResult,
    UploadSession,
)

__all__ = [
    "MISSING",
    "CacheEntry",
    "CacheEvent",
    "CacheKey",
    "Expense",
    "ExpenseDraft",
    "LocalFile",
    "SignedDestination",
    "SnapshotToken",
    "UploadPhase",
    "UploadResult",
    "UploadSession",
    "expense_key",
    "expenses_key",
    "key_matches",
    "next_provisional_id",
    "parse_expense",
    "parse_expense_list",
]
