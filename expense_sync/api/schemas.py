"""Pydantic request/response schemas for the reference expense backend.

These define the wire contract the client side of this package consumes:

    POST  /api/expenses        CreateExpenseRequest  → ExpenseResponse
    PATCH /api/expenses/{id}   AttachReceiptRequest  → ExpenseResponse
    POST  /api/upload/sign     SignUploadRequest     → SignUploadResponse

Field aliases keep the JSON camelCase while Python code stays snake_case.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from expense_sync.models.expense import Expense


class CreateExpenseRequest(BaseModel):
    title: str = Field(min_length=1)
    amount: float = Field(gt=0)

    @field_validator("title")
    @classmethod
    def _strip_title(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Title is required")
        return value


class AttachReceiptRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    file_reference: str = Field(alias="fileReference", min_length=1)


class SignUploadRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    filename: str = Field(min_length=1)
    content_type: str = Field(default="application/octet-stream", alias="contentType")


class SignUploadResponse(BaseModel):
    """Signed, single-use destination for one upload."""

    model_config = ConfigDict(populate_by_name=True)

    upload_url: str = Field(serialization_alias="uploadUrl")
    key: str


class ExpenseListResponse(BaseModel):
    expenses: list[Expense] = Field(default_factory=list)


class ExpenseResponse(BaseModel):
    expense: Expense | None = None


class ErrorResponse(BaseModel):
    """Standard error body returned by the error-handling middleware."""

    error: str
    detail: str = ""
