"""Custom exception hierarchy for expense-sync.

All application exceptions inherit from :class:`ExpenseSyncError`, which
carries an optional ``provider_name`` so error handlers can identify which
collaborator (e.g. "api", "object_store") caused the failure.

The hierarchy is organized by where the failure is detected:

    ExpenseSyncError  (base -- catch-all for any expense-sync error)
    +-- ValidationError         (local pre-flight input check)
    +-- RequestFailed           (any remote failure: status, transport, body)
    +-- ConflictError           (two optimistic patches on one key)
    +-- UploadError             (phase-tagged upload failure)
    |   +-- OrphanResourceWarning  (stored object not attached to its expense)
    +-- UploadStateError        (upload session misuse)
    +-- ConfigurationError      (startup / missing config)

Callers render ValidationError and RequestFailed directly, treat
OrphanResourceWarning as "upload succeeded, association did not", and never
see ConflictError: the mutation coordinator resolves it internally.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from expense_sync.models.upload import UploadPhase, UploadSession


class ExpenseSyncError(Exception):
    """Base exception for all expense-sync errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which collaborator triggered the error.
    ``__str__`` prefixes the provider name in brackets, e.g.
    ``[api] HTTP 500 on POST /expenses``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Local errors
# ---------------------------------------------------------------------------

class ValidationError(ExpenseSyncError):
    """Raised before any network call when user input is unusable.

    ``field`` names the offending input (``"title"``, ``"amount"``) when
    the failure can be pinned to one.
    """

    def __init__(
        self,
        message: str = "Invalid input",
        field: str | None = None,
    ) -> None:
        super().__init__(message=message)
        self._field = field

    @property
    def field(self) -> str | None:
        return self._field


class ConflictError(ExpenseSyncError):
    """Raised by the cache when a key already holds a pending snapshot."""

    def __init__(
        self,
        message: str = "An optimistic update is already pending for this key",
        key: tuple[Any, ...] | None = None,
    ) -> None:
        super().__init__(message=message)
        self._key = key

    @property
    def key(self) -> tuple[Any, ...] | None:
        return self._key


class ConfigurationError(ExpenseSyncError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Remote errors
# ---------------------------------------------------------------------------

class RequestFailed(ExpenseSyncError):
    """Raised for any failed remote call.

    Non-success HTTP statuses, transport errors and malformed response
    bodies all end up here so callers handle one type.  ``status`` is
    ``None`` when no response was received at all.
    """

    def __init__(
        self,
        message: str = "Remote request failed",
        status: int | None = None,
        body: str = "",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._status = status
        self._body = body

    @property
    def status(self) -> int | None:
        return self._status

    @property
    def body(self) -> str:
        return self._body


# ---------------------------------------------------------------------------
# Upload protocol errors
# ---------------------------------------------------------------------------

class UploadError(ExpenseSyncError):
    """Raised when an upload session ends in the Failed state.

    ``phase`` is the phase that failed and ``session`` the failed session,
    whose ``destination`` and ``object_key`` show how far the upload got.
    The underlying :class:`RequestFailed` is chained as ``__cause__``.
    """

    def __init__(
        self,
        message: str,
        phase: UploadPhase,
        session: UploadSession,
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._phase = phase
        self._session = session

    @property
    def phase(self) -> UploadPhase:
        return self._phase

    @property
    def session(self) -> UploadSession:
        return self._session

    @property
    def object_key(self) -> str | None:
        return self._session.object_key

    @property
    def destination(self) -> str | None:
        return self._session.destination


class OrphanResourceWarning(UploadError):
    """The file reached the object store but could not be attached.

    The stored object exists without any expense pointing at it.  Callers
    should tell the user the upload itself worked and may offer to retry
    the attach step alone using :attr:`object_key`.
    """


class UploadStateError(ExpenseSyncError):
    """Raised when an upload session is driven through an illegal transition."""

    def __init__(
        self,
        message: str = "Illegal upload session transition",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
