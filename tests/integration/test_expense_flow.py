"""End-to-end tests: the client engine against the reference backend in-process.

The engine's httpx clients are wired to the FastAPI app through
``httpx.ASGITransport``, so every request (including the signed-URL PUT)
is served by the real routes without opening a socket.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI

from expense_sync.api.store import ExpenseStore
from expense_sync.main import client_session, create_app
from expense_sync.models.cache import expense_key, expenses_key
from expense_sync.models.upload import LocalFile, UploadPhase
from expense_sync.utils.errors import OrphanResourceWarning, RequestFailed, UploadError, ValidationError
from tests.conftest import make_settings


@pytest.fixture
def app() -> FastAPI:
    return create_app(make_settings())


@pytest_asyncio.fixture
async def components(app: FastAPI) -> AsyncIterator[dict[str, Any]]:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport) as api, httpx.AsyncClient(transport=transport) as storage:
        async with client_session(make_settings(), http_client=api, storage_client=storage) as built:
            yield built


def _receipt() -> LocalFile:
    return LocalFile(filename="receipt.png", content_type="image/png", data=b"\x89PNG\r\n\x1a\nfake")


class TestExpenseLifecycle:
    @pytest.mark.asyncio
    async def test_create_list_delete(self, components: dict[str, Any]) -> None:
        service = components["expense_service"]
        cache = components["cache"]

        assert await service.list_expenses() == []

        created = await service.create_expense("  Coffee ", "4")
        assert created.id == 1
        assert created.title == "Coffee"
        # The optimistic list was invalidated; the next read refetches it.
        assert cache.is_stale(expenses_key()) is True

        listed = await service.list_expenses()
        assert [(e.id, e.title, e.amount) for e in listed] == [(1, "Coffee", 4.0)]

        await service.delete_expense(1)
        assert cache.get(expenses_key()) == []
        assert await service.list_expenses() == []

    @pytest.mark.asyncio
    async def test_invalid_input_never_reaches_server(self, components: dict[str, Any], app: FastAPI) -> None:
        service = components["expense_service"]
        with pytest.raises(ValidationError):
            await service.create_expense("", 5)
        with pytest.raises(ValidationError):
            await service.create_expense("Coffee", -1)
        assert app.state.store.expenses == {}

    @pytest.mark.asyncio
    async def test_failed_delete_restores_cached_list(self, components: dict[str, Any]) -> None:
        service = components["expense_service"]
        await service.create_expense("Coffee", 4)
        before = await service.list_expenses()

        with pytest.raises(RequestFailed) as exc_info:
            await service.delete_expense(99)

        assert exc_info.value.status == 404
        assert components["cache"].get(expenses_key()) == before

    @pytest.mark.asyncio
    async def test_get_unknown_expense(self, components: dict[str, Any]) -> None:
        assert await components["expense_service"].get_expense(123) is None


class TestReceiptUpload:
    @pytest.mark.asyncio
    async def test_upload_attaches_receipt(self, components: dict[str, Any], app: FastAPI) -> None:
        service = components["expense_service"]
        created = await service.create_expense("Hotel", 120)
        await service.get_expense(created.id)

        result = await service.upload_receipt(created.id, _receipt())

        assert result.object_key.startswith("receipts/")
        assert result.object_key.endswith("/receipt.png")
        assert result.expense is not None
        assert result.expense.file_reference == result.object_key
        assert result.expense.file_url is not None

        stored = app.state.store.get_object(result.object_key)
        assert stored.data == _receipt().data
        assert stored.content_type == "image/png"

        # Detail and list are both refetched after the attach.
        cache = components["cache"]
        assert cache.is_stale(expense_key(created.id)) is True
        assert cache.is_stale(expenses_key()) is True
        refreshed = await service.get_expense(created.id)
        assert refreshed.file_url == result.expense.file_url

    @pytest.mark.asyncio
    async def test_download_link_serves_the_file(self, components: dict[str, Any], app: FastAPI) -> None:
        service = components["expense_service"]
        created = await service.create_expense("Hotel", 120)
        result = await service.upload_receipt(created.id, _receipt())

        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app)) as client:
            response = await client.get(result.expense.file_url)
        assert response.status_code == 200
        assert response.content == _receipt().data

    @pytest.mark.asyncio
    async def test_filename_with_special_characters_uploads(
        self, components: dict[str, Any], app: FastAPI
    ) -> None:
        service = components["expense_service"]
        created = await service.create_expense("Hotel", 120)
        receipt = LocalFile(filename="receipt #1.pdf", content_type="application/pdf", data=b"%PDF-1.4")

        result = await service.upload_receipt(created.id, receipt)

        assert result.object_key.endswith("/receipt #1.pdf")
        assert app.state.store.get_object(result.object_key).data == b"%PDF-1.4"
        assert result.expense is not None
        assert result.expense.file_reference == result.object_key

    @pytest.mark.asyncio
    async def test_signed_url_is_single_use(self, components: dict[str, Any], app: FastAPI) -> None:
        service = components["expense_service"]
        created = await service.create_expense("Hotel", 120)
        result = await service.upload_receipt(created.id, _receipt())

        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app)) as client:
            replay = await client.put(
                result.destination,
                content=b"other",
                headers={"Content-Type": "image/png"},
            )
        assert replay.status_code == 403
        assert app.state.store.get_object(result.object_key).data == _receipt().data

    @pytest.mark.asyncio
    async def test_expired_url_fails_in_transfer(self, components: dict[str, Any], app: FastAPI) -> None:
        app.state.store = ExpenseStore(grant_ttl_seconds=0)
        service = components["expense_service"]
        created = await service.create_expense("Hotel", 120)

        with pytest.raises(UploadError) as exc_info:
            await service.upload_receipt(created.id, _receipt())

        err = exc_info.value
        assert not isinstance(err, OrphanResourceWarning)
        assert err.phase is UploadPhase.TRANSFERRING
        assert err.session.failed_phase is UploadPhase.TRANSFERRING

    @pytest.mark.asyncio
    async def test_attach_to_missing_expense_orphans_object(
        self, components: dict[str, Any], app: FastAPI
    ) -> None:
        service = components["expense_service"]

        with pytest.raises(OrphanResourceWarning) as exc_info:
            await service.upload_receipt(77, _receipt())

        err = exc_info.value
        assert err.phase is UploadPhase.ATTACHING
        assert err.object_key is not None
        assert err.destination is not None
        # The object is in storage with nothing pointing at it.
        assert app.state.store.get_object(err.object_key) is not None
