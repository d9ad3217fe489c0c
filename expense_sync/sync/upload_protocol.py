"""Three-phase receipt upload: sign, transfer, attach.

# ─── PHASES AND WHAT A FAILURE LEAVES BEHIND ──────────────────────────
#
#   Phase         Remote call                      Left behind on failure
#   ─────────────────────────────────────────────────────────────────────
#   SIGNING       POST {sign_path}                 nothing
#   TRANSFERRING  PUT  <signed uploadUrl>          maybe a partial object
#   ATTACHING     PATCH {expenses_path}/{id}       a complete, unlinked object
#
# Each failure raises UploadError tagged with its phase; an attach failure
# raises the OrphanResourceWarning subclass so the caller can say "the
# file was uploaded but not linked".  Nothing is retried or cleaned up.
#
# Attaching is an ordinary optimistic mutation on the expense detail key,
# run through the MutationCoordinator.  The protocol itself never touches
# the cache.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from typing import Any

import structlog
from pydantic import ValidationError as PydanticValidationError

from expense_sync.interfaces.fetcher import IFetcher
from expense_sync.interfaces.object_store import IObjectStore
from expense_sync.models.cache import expense_key, expenses_key
from expense_sync.models.expense import Expense, parse_expense
from expense_sync.models.upload import (
    LocalFile,
    SignedDestination,
    UploadPhase,
    UploadResult,
    UploadSession,
)
from expense_sync.sync.mutation_coordinator import MutationCoordinator
from expense_sync.utils.errors import (
    OrphanResourceWarning,
    RequestFailed,
    UploadError,
    UploadStateError,
)
from expense_sync.utils.logging import get_logger


def _with_reference(object_key: str):  # noqa: ANN202
    """Optimistic patch that points a cached expense at its new receipt."""

    def patch(current: Any | None) -> Any | None:
        if isinstance(current, Expense):
            return current.model_copy(update={"file_reference": object_key})
        return current

    return patch


class UploadProtocol:
    """Drives :class:`UploadSession` objects from SIGNING to DONE.

    Parameters
    ----------
    fetcher:
        JSON client for the signing and patch endpoints.
    object_store:
        Writes bytes to the signed destination.
    coordinator:
        Runs the attach step as an optimistic mutation.
    sign_path:
        Resource of the signing endpoint.
    expenses_path:
        Collection resource; the attach step patches ``{expenses_path}/{id}``.
    """

    def __init__(
        self,
        fetcher: IFetcher,
        object_store: IObjectStore,
        coordinator: MutationCoordinator,
        sign_path: str = "/upload/sign",
        expenses_path: str = "/expenses",
    ) -> None:
        self._fetcher = fetcher
        self._object_store = object_store
        self._coordinator = coordinator
        self._sign_path = sign_path
        self._expenses_path = expenses_path.rstrip("/")
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def upload(self, expense_id: int, local_file: LocalFile) -> UploadResult:
        """Create a session for *local_file* and run it to completion."""
        return await self.run(UploadSession(expense_id=expense_id, local_file=local_file))

    async def run(self, session: UploadSession) -> UploadResult:
        """Run all three phases of *session* in order.

        Returns
        -------
        UploadResult
            When the session reaches DONE.

        Raises
        ------
        UploadStateError
            *session* is not at the start of SIGNING.  Sessions cannot be
            resumed; start a new one.
        UploadError
            Signing or transferring failed.
        OrphanResourceWarning
            The object was stored but attaching it to the expense failed.
        """
        if session.phase is not UploadPhase.SIGNING or session.destination is not None:
            raise UploadStateError(
                f"Upload session for expense {session.expense_id} is in phase "
                f"{session.phase.value}; start a new session"
            )

        log = self._logger.bind(
            expense_id=session.expense_id,
            filename=session.local_file.filename,
        )

        try:
            await self._sign(session)
        except RequestFailed as exc:
            raise self._failed(session, exc, log) from exc
        self._advance(session, UploadPhase.TRANSFERRING, log)

        try:
            await self._object_store.put(
                session.destination,  # type: ignore[arg-type]
                session.local_file,
                session.local_file.content_type,
            )
        except RequestFailed as exc:
            raise self._failed(session, exc, log) from exc
        self._advance(session, UploadPhase.ATTACHING, log)

        try:
            expense = await self._attach(session)
        except RequestFailed as exc:
            raise self._failed(session, exc, log) from exc
        self._advance(session, UploadPhase.DONE, log)

        return UploadResult(
            expense_id=session.expense_id,
            object_key=session.object_key,  # type: ignore[arg-type]
            destination=session.destination,  # type: ignore[arg-type]
            expense=expense,
        )

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    async def _sign(self, session: UploadSession) -> None:
        payload = await self._fetcher.post(
            self._sign_path,
            {
                "filename": session.local_file.filename,
                "contentType": session.local_file.content_type,
            },
        )
        try:
            signed = SignedDestination.model_validate(payload)
        except PydanticValidationError as exc:
            raise RequestFailed(
                message="Invalid signing response",
                body=repr(payload)[:500],
                provider_name=self._fetcher.get_provider_name(),
            ) from exc
        session.destination = signed.upload_url
        session.object_key = signed.key

    async def _attach(self, session: UploadSession) -> Expense | None:
        object_key = session.object_key
        resource = f"{self._expenses_path}/{session.expense_id}"

        # Decoding happens inside the remote call so a malformed body rolls
        # the optimistic patch back like any other failure.
        async def remote_call() -> Expense | None:
            payload = await self._fetcher.patch(resource, {"fileReference": object_key})
            if payload is None:
                return None
            return parse_expense(payload, provider_name=self._fetcher.get_provider_name())

        result = await self._coordinator.run(
            expense_key(session.expense_id),
            _with_reference(object_key),  # type: ignore[arg-type]
            remote_call,
            invalidate=[expenses_key()],
        )
        return result.response

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _advance(
        self,
        session: UploadSession,
        phase: UploadPhase,
        log: structlog.BoundLogger,
    ) -> None:
        previous = session.phase
        session.advance(phase)
        log.info("upload_phase_changed", from_phase=previous.value, to_phase=phase.value)

    def _failed(
        self,
        session: UploadSession,
        exc: RequestFailed,
        log: structlog.BoundLogger,
    ) -> UploadError:
        phase = session.fail(exc)
        log.warning(
            "upload_failed",
            phase=phase.value,
            status=exc.status,
            object_key=session.object_key,
            error=str(exc),
        )
        if phase is UploadPhase.ATTACHING:
            return OrphanResourceWarning(
                message=(
                    f"{session.local_file.filename} was uploaded but could not be "
                    f"attached to expense {session.expense_id}: {exc.message}"
                ),
                phase=phase,
                session=session,
                provider_name=exc.provider_name,
            )
        return UploadError(
            message=f"Upload failed during {phase.value}: {exc.message}",
            phase=phase,
            session=session,
            provider_name=exc.provider_name,
        )
