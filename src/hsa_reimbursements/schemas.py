"""Request and response bodies for the HTTP API."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict


class ExpenseIn(BaseModel):
    # Presence and ranges are checked by the expense store so that every
    # rule produces the same error shape.
    amount: Decimal | None = None
    date_paid: date | None = None
    payment_method: str | None = None
    description: str | None = None
    category_id: str | None = None


class ArchiveIn(BaseModel):
    archived: bool = True


class ReimbursementIn(BaseModel):
    expense_id: str
    amount: Decimal | None = None
    method: str | None = None
    notes: str | None = None


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str


class ExpenseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    amount: Decimal
    date_paid: date
    description: str | None
    payment_method: str
    category_id: str | None
    category_name: str | None
    total_reimbursed: Decimal
    remaining_to_reimburse: Decimal
    is_archived: bool
    created_at: datetime


class ReimbursementOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    expense_id: str
    amount: Decimal
    reimbursed_at: datetime
    method: str | None
    notes: str | None


class ReimbursementDeletedOut(BaseModel):
    deleted: str
    expense: ExpenseOut


class ImageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    expense_id: str
    image_url: str
    filename: str
    mime_type: str
    size_bytes: int
    created_at: datetime


class DeletedOut(BaseModel):
    deleted: str
