"""Unit tests for UploadProtocol: phase order, failure isolation and orphan reporting."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import httpx
import pytest

from expense_sync.cache.entity_cache import EntityCache
from expense_sync.models.cache import expense_key, expenses_key
from expense_sync.models.expense import Expense
from expense_sync.models.upload import LocalFile, UploadPhase, UploadSession
from expense_sync.providers.storage.signed_url_store import SignedUrlObjectStore
from expense_sync.sync.mutation_coordinator import MutationCoordinator
from expense_sync.sync.upload_protocol import UploadProtocol
from expense_sync.utils.errors import (
    OrphanResourceWarning,
    RequestFailed,
    UploadError,
    UploadStateError,
)
from tests.conftest import make_settings

_SIGNED = {"uploadUrl": "https://bucket.example/receipts/abc/r.pdf?sig=1", "key": "receipts/abc/r.pdf"}


@pytest.fixture
def receipt() -> LocalFile:
    return LocalFile(filename="r.pdf", content_type="application/pdf", data=b"%PDF-1.4")


@pytest.fixture
def protocol(
    mock_fetcher: MagicMock,
    mock_object_store: MagicMock,
    coordinator: MutationCoordinator,
) -> UploadProtocol:
    mock_fetcher.post.return_value = _SIGNED
    mock_fetcher.patch.return_value = {
        "expense": {"id": 7, "title": "Hotel", "amount": 120.0, "fileReference": _SIGNED["key"]}
    }
    return UploadProtocol(mock_fetcher, mock_object_store, coordinator)


class TestHappyPath:
    @pytest.mark.asyncio
    async def test_runs_three_phases_in_order(
        self,
        protocol: UploadProtocol,
        mock_fetcher: MagicMock,
        mock_object_store: MagicMock,
        receipt: LocalFile,
    ) -> None:
        result = await protocol.upload(7, receipt)

        mock_fetcher.post.assert_awaited_once_with(
            "/upload/sign", {"filename": "r.pdf", "contentType": "application/pdf"}
        )
        mock_object_store.put.assert_awaited_once_with(_SIGNED["uploadUrl"], receipt, "application/pdf")
        mock_fetcher.patch.assert_awaited_once_with("/expenses/7", {"fileReference": _SIGNED["key"]})

        assert result.expense_id == 7
        assert result.object_key == _SIGNED["key"]
        assert result.destination == _SIGNED["uploadUrl"]
        assert result.expense is not None
        assert result.expense.file_reference == _SIGNED["key"]

    @pytest.mark.asyncio
    async def test_session_ends_done(self, protocol: UploadProtocol, receipt: LocalFile) -> None:
        session = UploadSession(expense_id=7, local_file=receipt)
        await protocol.run(session)
        assert session.phase is UploadPhase.DONE
        assert session.failed_phase is None

    @pytest.mark.asyncio
    async def test_attach_patches_cached_detail_and_invalidates_list(
        self, protocol: UploadProtocol, cache: EntityCache, receipt: LocalFile
    ) -> None:
        cache.set(expense_key(7), Expense(id=7, title="Hotel", amount=120.0))
        cache.set(expenses_key(), [])

        await protocol.upload(7, receipt)

        assert cache.get(expense_key(7)).file_reference == _SIGNED["key"]
        assert cache.is_stale(expense_key(7)) is True
        assert cache.is_stale(expenses_key()) is True


class TestPhaseIsolation:
    @pytest.mark.asyncio
    async def test_sign_failure_skips_transfer(
        self,
        protocol: UploadProtocol,
        mock_fetcher: MagicMock,
        mock_object_store: MagicMock,
        receipt: LocalFile,
    ) -> None:
        mock_fetcher.post.side_effect = RequestFailed("HTTP 403", status=403, provider_name="api")

        with pytest.raises(UploadError) as exc_info:
            await protocol.upload(7, receipt)

        err = exc_info.value
        assert not isinstance(err, OrphanResourceWarning)
        assert err.phase is UploadPhase.SIGNING
        assert err.object_key is None
        assert err.destination is None
        assert isinstance(err.__cause__, RequestFailed)
        mock_object_store.put.assert_not_awaited()
        mock_fetcher.patch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_malformed_sign_response_is_sign_failure(
        self,
        protocol: UploadProtocol,
        mock_fetcher: MagicMock,
        mock_object_store: MagicMock,
        receipt: LocalFile,
    ) -> None:
        mock_fetcher.post.return_value = {"url": "missing-fields"}

        with pytest.raises(UploadError) as exc_info:
            await protocol.upload(7, receipt)

        assert exc_info.value.phase is UploadPhase.SIGNING
        mock_object_store.put.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_transfer_failure_skips_attach(
        self,
        protocol: UploadProtocol,
        mock_fetcher: MagicMock,
        mock_object_store: MagicMock,
        receipt: LocalFile,
    ) -> None:
        mock_object_store.put.side_effect = RequestFailed("connection reset", provider_name="object_store")

        with pytest.raises(UploadError) as exc_info:
            await protocol.upload(7, receipt)

        err = exc_info.value
        assert not isinstance(err, OrphanResourceWarning)
        assert err.phase is UploadPhase.TRANSFERRING
        assert err.destination == _SIGNED["uploadUrl"]
        mock_fetcher.patch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_local_read_error_fails_in_transfer(
        self,
        mock_fetcher: MagicMock,
        coordinator: MutationCoordinator,
        tmp_path: Path,
    ) -> None:
        mock_fetcher.post.return_value = _SIGNED
        path = tmp_path / "r.pdf"
        path.write_bytes(b"%PDF-1.4")
        receipt = LocalFile.from_path(path)
        path.unlink()

        store = SignedUrlObjectStore(
            make_settings(),
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200))),
        )
        protocol = UploadProtocol(mock_fetcher, store, coordinator)
        session = UploadSession(expense_id=7, local_file=receipt)

        with pytest.raises(UploadError) as exc_info:
            await protocol.run(session)

        assert not isinstance(exc_info.value, OrphanResourceWarning)
        assert exc_info.value.phase is UploadPhase.TRANSFERRING
        assert session.phase is UploadPhase.FAILED
        assert session.failed_phase is UploadPhase.TRANSFERRING
        mock_fetcher.patch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_attach_failure_reports_orphan(
        self,
        protocol: UploadProtocol,
        mock_fetcher: MagicMock,
        cache: EntityCache,
        receipt: LocalFile,
    ) -> None:
        original = Expense(id=7, title="Hotel", amount=120.0)
        cache.set(expense_key(7), original)
        mock_fetcher.patch.side_effect = RequestFailed("HTTP 500", status=500, provider_name="api")

        with pytest.raises(OrphanResourceWarning) as exc_info:
            await protocol.upload(7, receipt)

        err = exc_info.value
        assert err.phase is UploadPhase.ATTACHING
        assert err.object_key == _SIGNED["key"]
        assert err.destination == _SIGNED["uploadUrl"]
        assert err.session.phase is UploadPhase.FAILED
        assert err.session.failed_phase is UploadPhase.ATTACHING
        # The optimistic reference was rolled back.
        assert cache.get(expense_key(7)) == original

    @pytest.mark.asyncio
    async def test_malformed_attach_response_rolls_back(
        self,
        protocol: UploadProtocol,
        mock_fetcher: MagicMock,
        cache: EntityCache,
        receipt: LocalFile,
    ) -> None:
        original = Expense(id=7, title="Hotel", amount=120.0)
        cache.set(expense_key(7), original)
        mock_fetcher.patch.return_value = {"expense": {"id": "not-an-id"}}

        with pytest.raises(OrphanResourceWarning):
            await protocol.upload(7, receipt)
        assert cache.get(expense_key(7)) == original


class TestSessionState:
    @pytest.mark.asyncio
    async def test_finished_session_cannot_be_rerun(self, protocol: UploadProtocol, receipt: LocalFile) -> None:
        session = UploadSession(expense_id=7, local_file=receipt)
        await protocol.run(session)
        with pytest.raises(UploadStateError):
            await protocol.run(session)

    @pytest.mark.asyncio
    async def test_failed_session_cannot_be_resumed(
        self, protocol: UploadProtocol, mock_object_store: MagicMock, receipt: LocalFile
    ) -> None:
        mock_object_store.put.side_effect = RequestFailed("boom")
        session = UploadSession(expense_id=7, local_file=receipt)
        with pytest.raises(UploadError):
            await protocol.run(session)
        with pytest.raises(UploadStateError):
            await protocol.run(session)

    def test_illegal_transition_rejected(self, receipt: LocalFile) -> None:
        session = UploadSession(expense_id=7, local_file=receipt)
        with pytest.raises(UploadStateError):
            session.advance(UploadPhase.ATTACHING)

    def test_terminal_phases(self) -> None:
        assert UploadPhase.DONE.is_terminal is True
        assert UploadPhase.FAILED.is_terminal is True
        assert UploadPhase.TRANSFERRING.is_terminal is False
