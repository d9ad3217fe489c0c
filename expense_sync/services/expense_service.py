"""Expense operations expressed through the synchronization engine.

This is the layer a UI or the CLI calls.  Reads go through the
:class:`QueryReader`; list mutations and receipt uploads go through the
:class:`MutationCoordinator` and :class:`UploadProtocol`.

    list_expenses()        GET    /expenses         key ("expenses",)
    get_expense(id)        GET    /expenses/{id}    key ("expenses", id)
    create_expense(t, a)   POST   /expenses         patches ("expenses",)
    delete_expense(id)     DELETE /expenses/{id}    patches ("expenses",)
    upload_receipt(id, f)  sign → PUT → PATCH       patches ("expenses", id)

Optimistic list patches only apply when the list is already cached; with
nothing on screen there is nothing to update speculatively.
"""

from __future__ import annotations

from typing import Any

import structlog

from expense_sync.interfaces.fetcher import IFetcher
from expense_sync.models.cache import expense_key, expenses_key
from expense_sync.models.expense import (
    Expense,
    ExpenseDraft,
    parse_expense,
    parse_expense_list,
)
from expense_sync.models.upload import LocalFile, UploadResult
from expense_sync.sync.mutation_coordinator import MutationCoordinator
from expense_sync.sync.query_reader import QueryReader
from expense_sync.sync.upload_protocol import UploadProtocol
from expense_sync.utils.errors import RequestFailed
from expense_sync.utils.logging import get_logger


def _appending(row: Expense):  # noqa: ANN202
    def patch(current: list[Expense] | None) -> list[Expense] | None:
        if current is None:
            return None
        return [*current, row]

    return patch


def _removing(expense_id: int):  # noqa: ANN202
    def patch(current: list[Expense] | None) -> list[Expense] | None:
        if current is None:
            return None
        return [item for item in current if item.id != expense_id]

    return patch


class ExpenseService:
    """List, inspect, create, delete and attach receipts to expenses."""

    def __init__(
        self,
        fetcher: IFetcher,
        reader: QueryReader,
        coordinator: MutationCoordinator,
        upload_protocol: UploadProtocol,
        expenses_path: str = "/expenses",
    ) -> None:
        self._fetcher = fetcher
        self._reader = reader
        self._coordinator = coordinator
        self._uploads = upload_protocol
        self._path = expenses_path.rstrip("/")
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_expenses(self, *, refresh: bool = False) -> list[Expense]:
        """Return the expense list, from cache when fresh.

        ``refresh=True`` bypasses freshness (the Refresh / Retry action).
        """
        key = expenses_key()
        if refresh:
            return await self._reader.refetch(key, self._load_list)
        return await self._reader.read(key, self._load_list)

    async def get_expense(self, expense_id: int, *, refresh: bool = False) -> Expense | None:
        """Return one expense, or ``None`` when the server does not know it."""
        key = expense_key(expense_id)

        async def load() -> Expense | None:
            payload = await self._fetcher.get(f"{self._path}/{expense_id}")
            return parse_expense(payload, provider_name=self._fetcher.get_provider_name())

        if refresh:
            return await self._reader.refetch(key, load)
        return await self._reader.read(key, load)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create_expense(self, title: str, amount: Any) -> Expense:
        """Validate, show a provisional row, then create on the server.

        Raises
        ------
        ValidationError
            Bad title or amount; nothing is sent and the cache is untouched.
        RequestFailed
            The server refused; the provisional row has been removed.
        """
        draft = ExpenseDraft.parse(title, amount)
        provisional = draft.provisional()

        async def remote_call() -> Expense:
            payload = await self._fetcher.post(self._path, draft.to_wire())
            created = parse_expense(payload, provider_name=self._fetcher.get_provider_name())
            if created is None:
                raise RequestFailed(
                    message="Create response did not contain an expense",
                    body=repr(payload)[:500],
                    provider_name=self._fetcher.get_provider_name(),
                )
            return created

        result = await self._coordinator.run(expenses_key(), _appending(provisional), remote_call)
        created: Expense = result.response
        self._logger.info(
            "expense_created",
            expense_id=created.id,
            provisional_id=provisional.id,
        )
        return created

    async def delete_expense(self, expense_id: int) -> None:
        """Remove an expense, hiding it from the cached list immediately."""

        async def remote_call() -> Any:
            return await self._fetcher.delete(f"{self._path}/{expense_id}")

        await self._coordinator.run(
            expenses_key(),
            _removing(expense_id),
            remote_call,
            invalidate=[expense_key(expense_id)],
        )
        self._logger.info("expense_deleted", expense_id=expense_id)

    async def upload_receipt(self, expense_id: int, local_file: LocalFile) -> UploadResult:
        """Upload *local_file* and attach it to *expense_id*.

        See :meth:`UploadProtocol.run` for the failure modes.
        """
        return await self._uploads.upload(expense_id, local_file)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _load_list(self) -> list[Expense]:
        payload = await self._fetcher.get(self._path)
        return parse_expense_list(payload, provider_name=self._fetcher.get_provider_name())
