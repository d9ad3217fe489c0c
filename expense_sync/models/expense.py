"""Expense domain models.

Defines Pydantic v2 models for expenses as the server returns them and for
the user's pre-flight input.  Both are frozen: an Expense only changes by
being replaced, either with a confirmed server response or with an
optimistic copy made via ``model_copy(update={...})``.

The wire format uses camelCase (``fileReference``, ``fileUrl``); Python code
uses snake_case.  ``populate_by_name`` lets either spelling in.
"""

from __future__ import annotations

import itertools
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from expense_sync.utils.errors import RequestFailed, ValidationError

_provisional_ids = itertools.count(-1, -1)


def next_provisional_id() -> int:
    """Return a fresh negative id for a not-yet-confirmed expense.

    Server ids are positive, so provisional ids can never collide with a
    row the server already knows about.
    """
    return next(_provisional_ids)


class Expense(BaseModel):
    """A single expense as rendered to the user."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: int
    title: str = Field(min_length=1)
    amount: float = Field(gt=0)
    # Object-store key of the attached receipt, if any.
    file_reference: str | None = Field(default=None, alias="fileReference")
    # Download link the server derives from file_reference.
    file_url: str | None = Field(default=None, alias="fileUrl")

    @property
    def is_provisional(self) -> bool:
        """``True`` for optimistic rows that carry a temporary id."""
        return self.id < 0

    @property
    def has_receipt(self) -> bool:
        return self.file_reference is not None or self.file_url is not None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class ExpenseDraft(BaseModel):
    """User input for a new expense, validated before any network call."""

    model_config = ConfigDict(frozen=True)

    title: str
    amount: float

    @classmethod
    def parse(cls, title: str, amount: Any) -> ExpenseDraft:
        """Validate raw form input and return a draft.

        Raises
        ------
        ValidationError
            When the stripped title is empty or the amount is not a
            positive number.
        """
        title = (title or "").strip()
        if not title:
            raise ValidationError("Title is required", field="title")
        try:
            value = float(amount)
        except (TypeError, ValueError):
            raise ValidationError("Amount must be greater than 0", field="amount") from None
        # NaN fails every comparison, so it is rejected here too.
        if not value > 0:
            raise ValidationError("Amount must be greater than 0", field="amount")
        return cls(title=title, amount=value)

    def to_wire(self) -> dict[str, Any]:
        return {"title": self.title, "amount": self.amount}

    def provisional(self) -> Expense:
        """Build the optimistic row shown until the server confirms it."""
        return Expense(id=next_provisional_id(), title=self.title, amount=self.amount)


# ---------------------------------------------------------------------------
# Response envelopes
# ---------------------------------------------------------------------------

def parse_expense_list(payload: Any, provider_name: str = "api") -> list[Expense]:
    """Decode ``{"expenses": [...]}`` into Expense models."""
    try:
        items = payload["expenses"]
        return [Expense.model_validate(item) for item in items]
    except (KeyError, TypeError, PydanticValidationError) as exc:
        raise RequestFailed(
            message=f"Malformed expense list response: {exc}",
            body=repr(payload)[:500],
            provider_name=provider_name,
        ) from exc


def parse_expense(payload: Any, provider_name: str = "api") -> Expense | None:
    """Decode ``{"expense": {...} | null}``; ``None`` when the server has no such expense."""
    try:
        item = payload["expense"]
        if item is None:
            return None
        return Expense.model_validate(item)
    except (KeyError, TypeError, PydanticValidationError) as exc:
        raise RequestFailed(
            message=f"Malformed expense response: {exc}",
            body=repr(payload)[:500],
            provider_name=provider_name,
        ) from exc
