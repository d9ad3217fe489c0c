"""In-memory state for the reference backend.

Holds expenses, stored receipt objects and outstanding upload grants.  An
upload grant is what makes a signed URL single-use and time-bounded: it is
looked up by token on PUT, checked for expiry and content type, and removed
the moment it is used.
"""

from __future__ import annotations

import secrets
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field

from expense_sync.models.expense import Expense


@dataclass(frozen=True)
class UploadGrant:
    key: str
    content_type: str
    expires_at: float


@dataclass(frozen=True)
class StoredObject:
    content_type: str
    data: bytes


@dataclass
class ExpenseStore:
    """Process-local backing store; one per application instance."""

    grant_ttl_seconds: float = 300.0
    clock: Callable[[], float] = time.monotonic
    expenses: dict[int, Expense] = field(default_factory=dict)
    objects: dict[str, StoredObject] = field(default_factory=dict)
    grants: dict[str, UploadGrant] = field(default_factory=dict)
    _next_id: int = 1

    # -- Expenses ----------------------------------------------------------

    def list_expenses(self) -> list[Expense]:
        return [self.expenses[i] for i in sorted(self.expenses)]

    def get_expense(self, expense_id: int) -> Expense | None:
        return self.expenses.get(expense_id)

    def create_expense(self, title: str, amount: float) -> Expense:
        expense = Expense(id=self._next_id, title=title, amount=amount)
        self.expenses[expense.id] = expense
        self._next_id += 1
        return expense

    def delete_expense(self, expense_id: int) -> Expense | None:
        return self.expenses.pop(expense_id, None)

    def attach_receipt(self, expense_id: int, key: str, file_url: str) -> Expense | None:
        expense = self.expenses.get(expense_id)
        if expense is None:
            return None
        updated = expense.model_copy(update={"file_reference": key, "file_url": file_url})
        self.expenses[expense_id] = updated
        return updated

    # -- Uploads -----------------------------------------------------------

    def issue_grant(self, filename: str, content_type: str) -> tuple[UploadGrant, str]:
        """Reserve an object key and return its grant with a fresh token."""
        key = f"receipts/{uuid.uuid4().hex}/{filename}"
        token = secrets.token_urlsafe(24)
        grant = UploadGrant(
            key=key,
            content_type=content_type,
            expires_at=self.clock() + self.grant_ttl_seconds,
        )
        self.grants[token] = grant
        return grant, token

    def redeem_grant(self, token: str, key: str, content_type: str) -> bool:
        """Consume *token* if it is valid for *key* and *content_type*."""
        grant = self.grants.pop(token, None)
        if grant is None:
            return False
        if grant.key != key or self.clock() >= grant.expires_at:
            return False
        return grant.content_type == content_type

    def put_object(self, key: str, content_type: str, data: bytes) -> None:
        self.objects[key] = StoredObject(content_type=content_type, data=data)

    def get_object(self, key: str) -> StoredObject | None:
        return self.objects.get(key)
