"""FastAPI routes of the reference expense backend.

Implements the collaborator endpoints the client engine talks to, backed by
an in-memory :class:`ExpenseStore`.  Used for local development
(``python -m expense_sync.main``) and for end-to-end tests through
``httpx.ASGITransport``.

# ─── ROUTE MAP ────────────────────────────────────────────────────────
#
# Endpoint                      Method  Description
# ─────────────────────────────────────────────────────────────────────
# /api/expenses                 GET     List expenses
# /api/expenses                 POST    Create an expense
# /api/expenses/{id}            GET     One expense ({"expense": null} if unknown)
# /api/expenses/{id}            PATCH   Attach an uploaded receipt
# /api/expenses/{id}            DELETE  Delete an expense
# /api/upload/sign              POST    Issue a single-use upload URL
# /storage/{key}                PUT     Store receipt bytes (needs ?token=)
# /storage/{key}                GET     Download a stored receipt
#
# Session cookies and the identity provider are not checked here.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from typing import Annotated
from urllib.parse import quote

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response

from expense_sync.api.schemas import (
    AttachReceiptRequest,
    CreateExpenseRequest,
    ExpenseListResponse,
    ExpenseResponse,
    SignUploadRequest,
    SignUploadResponse,
)
from expense_sync.api.store import ExpenseStore
from expense_sync.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

router = APIRouter(prefix="/api")
storage_router = APIRouter(prefix="/storage")


def _get_store(request: Request) -> ExpenseStore:
    return request.app.state.store


StoreDep = Annotated[ExpenseStore, Depends(_get_store)]


# ---------------------------------------------------------------------------
# Expenses
# ---------------------------------------------------------------------------


@router.get("/expenses", response_model=ExpenseListResponse)
async def list_expenses(store: StoreDep) -> ExpenseListResponse:
    return ExpenseListResponse(expenses=store.list_expenses())


@router.post("/expenses", response_model=ExpenseResponse, status_code=201)
async def create_expense(body: CreateExpenseRequest, store: StoreDep) -> ExpenseResponse:
    expense = store.create_expense(body.title, body.amount)
    _logger.info("expense_stored", expense_id=expense.id)
    return ExpenseResponse(expense=expense)


@router.get("/expenses/{expense_id}", response_model=ExpenseResponse)
async def get_expense(expense_id: int, store: StoreDep) -> ExpenseResponse:
    return ExpenseResponse(expense=store.get_expense(expense_id))


@router.patch("/expenses/{expense_id}", response_model=ExpenseResponse)
async def attach_receipt(
    expense_id: int,
    body: AttachReceiptRequest,
    request: Request,
    store: StoreDep,
) -> ExpenseResponse:
    if store.get_object(body.file_reference) is None:
        raise HTTPException(status_code=400, detail="Unknown file reference")
    file_url = str(request.url_for("download_object", key=quote(body.file_reference)))
    expense = store.attach_receipt(expense_id, body.file_reference, file_url)
    if expense is None:
        raise HTTPException(status_code=404, detail=f"Expense {expense_id} not found")
    return ExpenseResponse(expense=expense)


@router.delete("/expenses/{expense_id}", response_model=ExpenseResponse)
async def delete_expense(expense_id: int, store: StoreDep) -> ExpenseResponse:
    expense = store.delete_expense(expense_id)
    if expense is None:
        raise HTTPException(status_code=404, detail=f"Expense {expense_id} not found")
    return ExpenseResponse(expense=expense)


# ---------------------------------------------------------------------------
# Uploads
# ---------------------------------------------------------------------------


@router.post("/upload/sign", response_model=SignUploadResponse)
async def sign_upload(body: SignUploadRequest, request: Request, store: StoreDep) -> SignUploadResponse:
    grant, token = store.issue_grant(body.filename, body.content_type)
    # Keys embed the user's filename; quote it so "#" or "?" stay in the path.
    upload_url = f"{request.url_for('upload_object', key=quote(grant.key))}?token={token}"
    _logger.info("upload_signed", key=grant.key, content_type=grant.content_type)
    return SignUploadResponse(upload_url=upload_url, key=grant.key)


@storage_router.put("/{key:path}", name="upload_object")
async def upload_object(
    key: str,
    request: Request,
    store: StoreDep,
    token: Annotated[str, Query()] = "",
) -> Response:
    content_type = request.headers.get("content-type", "application/octet-stream")
    if not store.redeem_grant(token, key, content_type):
        raise HTTPException(status_code=403, detail="Upload URL is invalid, expired or already used")
    data = await request.body()
    store.put_object(key, content_type, data)
    _logger.info("object_received", key=key, size=len(data))
    return Response(status_code=200)


@storage_router.get("/{key:path}", name="download_object")
async def download_object(key: str, store: StoreDep) -> Response:
    stored = store.get_object(key)
    if stored is None:
        raise HTTPException(status_code=404, detail="Object not found")
    return Response(content=stored.data, media_type=stored.content_type)
