"""Utility modules for expense-sync.

- **errors** -- Exception hierarchy rooted at ExpenseSyncError; the cache,
  the coordinator, the upload protocol and the HTTP providers each raise
  their own subclass so callers can react precisely.
- **logging** -- structlog setup with a dual renderer: coloured console
  output in development, structured JSON in production.
"""

from expense_sync.utils.errors import (
    ConfigurationError,
    ConflictError,
    ExpenseSyncError,
    OrphanResourceWarning,
    RequestFailed,
    UploadError,
    UploadStateError,
    ValidationError,
)
from expense_sync.utils.logging import configure_logging, get_logger

__all__ = [
    "ConfigurationError",
    "ConflictError",
    "ExpenseSyncError",
    "OrphanResourceWarning",
    "RequestFailed",
    "UploadError",
    "UploadStateError",
    "ValidationError",
    "configure_logging",
    "get_logger",
]
