"""Application services built on the synchronization engine."""

from expense_sync.services.expense_service import ExpenseService

__all__ = ["ExpenseService"]
