"""Integration tests for the reference backend's HTTP endpoints using TestClient."""

from __future__ import annotations

from unittest.mock import MagicMock
from urllib.parse import urlsplit

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from expense_sync.main import create_app
from expense_sync.utils.errors import RequestFailed
from tests.conftest import make_settings


@pytest.fixture
def app() -> FastAPI:
    return create_app(make_settings())


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)


def _create(client: TestClient, title: str = "Lunch", amount: float = 12.5) -> dict:
    response = client.post("/api/expenses", json={"title": title, "amount": amount})
    assert response.status_code == 201
    return response.json()["expense"]


def _sign(client: TestClient, filename: str = "r.pdf", content_type: str = "application/pdf") -> dict:
    response = client.post("/api/upload/sign", json={"filename": filename, "contentType": content_type})
    assert response.status_code == 200
    return response.json()


def _path_and_query(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.path}?{parts.query}"


class TestExpenseEndpoints:
    def test_list_starts_empty(self, client: TestClient) -> None:
        response = client.get("/api/expenses")
        assert response.status_code == 200
        assert response.json() == {"expenses": []}

    def test_create_assigns_sequential_ids(self, client: TestClient) -> None:
        first = _create(client, "Lunch")
        second = _create(client, "Taxi", 30)
        assert (first["id"], second["id"]) == (1, 2)
        assert first == {"id": 1, "title": "Lunch", "amount": 12.5, "fileReference": None, "fileUrl": None}

    @pytest.mark.parametrize(
        "body",
        [{"title": "", "amount": 1}, {"title": "   ", "amount": 1}, {"title": "A", "amount": 0}, {"title": "A"}],
    )
    def test_create_rejects_invalid_body(self, client: TestClient, body: dict) -> None:
        assert client.post("/api/expenses", json=body).status_code == 422

    def test_create_strips_title(self, client: TestClient) -> None:
        assert _create(client, "  Lunch  ")["title"] == "Lunch"

    def test_get_unknown_returns_null(self, client: TestClient) -> None:
        response = client.get("/api/expenses/9")
        assert response.status_code == 200
        assert response.json() == {"expense": None}

    def test_delete(self, client: TestClient) -> None:
        created = _create(client)
        response = client.delete(f"/api/expenses/{created['id']}")
        assert response.status_code == 200
        assert client.get("/api/expenses").json() == {"expenses": []}

    def test_delete_unknown_is_404(self, client: TestClient) -> None:
        assert client.delete("/api/expenses/9").status_code == 404


class TestUploadEndpoints:
    def test_sign_returns_camel_case_url_and_key(self, client: TestClient) -> None:
        signed = _sign(client)
        assert set(signed) == {"uploadUrl", "key"}
        assert signed["key"].startswith("receipts/")
        assert "token=" in signed["uploadUrl"]

    def test_put_then_attach(self, client: TestClient) -> None:
        created = _create(client)
        signed = _sign(client)

        put = client.put(
            _path_and_query(signed["uploadUrl"]),
            content=b"%PDF",
            headers={"Content-Type": "application/pdf"},
        )
        assert put.status_code == 200

        patched = client.patch(f"/api/expenses/{created['id']}", json={"fileReference": signed["key"]})
        assert patched.status_code == 200
        expense = patched.json()["expense"]
        assert expense["fileReference"] == signed["key"]

        download = client.get(urlsplit(expense["fileUrl"]).path)
        assert download.status_code == 200
        assert download.content == b"%PDF"
        assert download.headers["content-type"].startswith("application/pdf")

    def test_filename_with_url_delimiters_keeps_token_in_query(self, app: FastAPI, client: TestClient) -> None:
        signed = _sign(client, filename="receipt #1?.pdf")
        parts = urlsplit(signed["uploadUrl"])
        assert parts.fragment == ""
        assert parts.query.startswith("token=")

        put = client.put(
            _path_and_query(signed["uploadUrl"]),
            content=b"%PDF",
            headers={"Content-Type": "application/pdf"},
        )
        assert put.status_code == 200
        assert app.state.store.get_object(signed["key"]).data == b"%PDF"

    def test_put_with_wrong_content_type_is_rejected(self, client: TestClient) -> None:
        signed = _sign(client, content_type="image/png")
        put = client.put(
            _path_and_query(signed["uploadUrl"]),
            content=b"x",
            headers={"Content-Type": "text/plain"},
        )
        assert put.status_code == 403

    def test_put_without_token_is_rejected(self, client: TestClient) -> None:
        signed = _sign(client)
        put = client.put(f"/storage/{signed['key']}", content=b"x", headers={"Content-Type": "application/pdf"})
        assert put.status_code == 403

    def test_attach_unknown_object_is_400(self, client: TestClient) -> None:
        created = _create(client)
        response = client.patch(f"/api/expenses/{created['id']}", json={"fileReference": "receipts/nope"})
        assert response.status_code == 400

    def test_attach_to_unknown_expense_is_404(self, client: TestClient) -> None:
        signed = _sign(client)
        client.put(_path_and_query(signed["uploadUrl"]), content=b"x", headers={"Content-Type": "application/pdf"})
        response = client.patch("/api/expenses/42", json={"fileReference": signed["key"]})
        assert response.status_code == 404

    def test_download_unknown_is_404(self, client: TestClient) -> None:
        assert client.get("/storage/receipts/missing.pdf").status_code == 404


class TestErrorHandling:
    def test_application_error_becomes_json_500(self, app: FastAPI, client: TestClient) -> None:
        app.state.store.list_expenses = MagicMock(
            side_effect=RequestFailed("backing store offline", provider_name="store")
        )
        response = client.get("/api/expenses")
        assert response.status_code == 500
        assert response.json() == {"error": "RequestFailed", "detail": "backing store offline"}
