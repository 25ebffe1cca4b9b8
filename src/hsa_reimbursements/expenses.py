"""Expense records: create, edit, archive, delete and list."""

import logging
from datetime import date
from decimal import Decimal
from enum import StrEnum

from botocore.exceptions import ClientError
from sqlalchemy import select
from sqlalchemy.orm import Session

from hsa_reimbursements import receipt_store
from hsa_reimbursements.auth import RequestContext
from hsa_reimbursements.categories import resolve_category
from hsa_reimbursements.errors import NotFoundError, ValidationError
from hsa_reimbursements.locks import expense_lock
from hsa_reimbursements.models import Expense, Reimbursement
from hsa_reimbursements.money import ZERO, to_money

logger = logging.getLogger(__name__)


class ExpenseStatus(StrEnum):
    ACTIVE = "active"
    ARCHIVED = "archived"
    ALL = "all"


def parse_status(value: str | None) -> ExpenseStatus:
    if value is None:
        return ExpenseStatus.ACTIVE
    try:
        return ExpenseStatus(value.strip().lower())
    except ValueError:
        raise ValidationError("status must be one of: active, archived, all") from None


def _clean_fields(
    amount: object, date_paid: date | None, payment_method: str | None, description: str | None
) -> tuple[Decimal, date, str, str | None]:
    amount_value = to_money(amount)
    if date_paid is None:
        raise ValidationError("Date is required.")
    if payment_method is None or not payment_method.strip():
        raise ValidationError("Payment method is required.")
    description = description.strip() if description else None
    return amount_value, date_paid, payment_method.strip(), description or None


def reimbursed_total(session: Session, expense_id: str) -> Decimal:
    """Sum of an expense's reimbursements, read from the database rather than the identity map."""
    amounts = session.scalars(select(Reimbursement.amount).where(Reimbursement.expense_id == expense_id))
    return sum(amounts, ZERO)


def get_expense(session: Session, ctx: RequestContext, expense_id: str, *, for_update: bool = False) -> Expense:
    """Fetch one of the caller's expenses, optionally locking its row."""
    stmt = select(Expense).where(Expense.id == expense_id, Expense.user_id == ctx.user_id)
    if for_update:
        stmt = stmt.with_for_update(of=Expense).execution_options(populate_existing=True)
    expense = session.scalars(stmt).unique().one_or_none()
    if expense is None:
        raise NotFoundError("Expense", expense_id)
    return expense


def create_expense(
    session: Session,
    ctx: RequestContext,
    *,
    amount: object,
    date_paid: date | None,
    payment_method: str | None,
    category_id: str | None = None,
    description: str | None = None,
) -> Expense:
    amount_value, date_value, method, description = _clean_fields(amount, date_paid, payment_method, description)
    category = resolve_category(session, category_id)

    expense = Expense(
        user_id=ctx.user_id,
        amount=amount_value,
        date_paid=date_value,
        payment_method=method,
        category=category,
        description=description,
    )
    session.add(expense)
    session.commit()
    logger.info("Created expense %s for %s: %s on %s", expense.id, ctx.user_id, amount_value, date_value)
    return expense


def update_expense(
    session: Session,
    ctx: RequestContext,
    expense_id: str,
    *,
    amount: object,
    date_paid: date | None,
    payment_method: str | None,
    category_id: str | None = None,
    description: str | None = None,
) -> Expense:
    """Replace an expense's editable fields.

    The new amount may not fall below what has already been reimbursed.
    """
    amount_value, date_value, method, description = _clean_fields(amount, date_paid, payment_method, description)
    category = resolve_category(session, category_id)

    with expense_lock(expense_id):
        expense = get_expense(session, ctx, expense_id, for_update=True)
        already_reimbursed = reimbursed_total(session, expense.id)
        if amount_value < already_reimbursed:
            session.rollback()
            raise ValidationError(
                f"Expense amount cannot be less than the amount already reimbursed ({already_reimbursed:.2f})"
            )

        expense.amount = amount_value
        expense.date_paid = date_value
        expense.payment_method = method
        expense.category = category
        expense.description = description
        session.commit()

    logger.info("Updated expense %s", expense.id)
    return expense


def set_archived(session: Session, ctx: RequestContext, expense_id: str, archived: bool) -> Expense:
    expense = get_expense(session, ctx, expense_id)
    expense.is_archived = archived
    session.commit()
    logger.info("%s expense %s", "Archived" if archived else "Unarchived", expense.id)
    return expense


def archive_expense(session: Session, ctx: RequestContext, expense_id: str) -> Expense:
    return set_archived(session, ctx, expense_id, True)


def unarchive_expense(session: Session, ctx: RequestContext, expense_id: str) -> Expense:
    return set_archived(session, ctx, expense_id, False)


def delete_expense(session: Session, ctx: RequestContext, expense_id: str, bucket: str) -> None:
    """Delete an expense along with its reimbursements, receipt records and stored receipts.

    Stored objects are removed only after the database delete commits. An
    object that fails to delete is logged and the remaining keys are still tried.
    """
    with expense_lock(expense_id):
        expense = get_expense(session, ctx, expense_id, for_update=True)
        storage_keys = [image.storage_key for image in expense.images]
        reimbursement_count = len(expense.reimbursements)
        session.delete(expense)
        session.commit()

    orphaned = 0
    for key in storage_keys:
        try:
            receipt_store.delete_receipt(bucket, key)
        except ClientError:
            orphaned += 1
            logger.exception("Failed to delete stored receipt %s of expense %s", key, expense_id)

    logger.info(
        "Deleted expense %s with %d reimbursements and %d receipts (%d stored objects left behind)",
        expense_id,
        reimbursement_count,
        len(storage_keys),
        orphaned,
    )


def list_expenses(
    session: Session, ctx: RequestContext, status: ExpenseStatus = ExpenseStatus.ACTIVE
) -> list[Expense]:
    """The caller's expenses, most recently paid first."""
    stmt = select(Expense).where(Expense.user_id == ctx.user_id)
    if status is ExpenseStatus.ACTIVE:
        stmt = stmt.where(Expense.is_archived.is_(False))
    elif status is ExpenseStatus.ARCHIVED:
        stmt = stmt.where(Expense.is_archived.is_(True))
    stmt = stmt.order_by(Expense.date_paid.desc(), Expense.created_at.desc(), Expense.id)
    return list(session.scalars(stmt).unique())
