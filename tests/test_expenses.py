"""Tests for expenses module."""

from collections.abc import Callable
from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock, call, patch

import pytest
from botocore.exceptions import ClientError
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from hsa_reimbursements.auth import RequestContext
from hsa_reimbursements.errors import NotFoundError, ValidationError
from hsa_reimbursements.expenses import (
    ExpenseStatus,
    archive_expense,
    create_expense,
    delete_expense,
    get_expense,
    list_expenses,
    parse_status,
    unarchive_expense,
    update_expense,
)
from hsa_reimbursements.ledger import add_reimbursement
from hsa_reimbursements.models import Category, Expense, ReceiptImage, Reimbursement


def test_create_expense_stores_fields(
    session: Session, ctx: RequestContext, category: Callable[[str], Category]
) -> None:
    dental = category("Dental")
    expense = create_expense(
        session,
        ctx,
        amount="250.00",
        date_paid=date(2025, 4, 2),
        payment_method="  Credit card ",
        category_id=dental.id,
        description="Cleaning",
    )

    stored = get_expense(session, ctx, expense.id)
    assert stored.amount == Decimal("250.00")
    assert stored.date_paid == date(2025, 4, 2)
    assert stored.payment_method == "Credit card"
    assert stored.category_name == "Dental"
    assert stored.description == "Cleaning"
    assert stored.is_archived is False
    assert stored.total_reimbursed == Decimal("0.00")
    assert stored.remaining_to_reimburse == Decimal("250.00")


def test_create_expense_blank_description_becomes_none(make_expense: Callable[..., Expense]) -> None:
    expense = make_expense(description="   ")
    assert expense.description is None


def test_create_expense_without_category_is_uncategorized(make_expense: Callable[..., Expense]) -> None:
    expense = make_expense(category_id=None)
    assert expense.category_id is None
    assert expense.category_name is None


@pytest.mark.parametrize(
    ("fields", "message"),
    [
        ({"amount": "0"}, "positive"),
        ({"amount": "-10"}, "positive"),
        ({"amount": None}, "required"),
        ({"date_paid": None}, "Date is required"),
        ({"payment_method": ""}, "Payment method is required"),
        ({"payment_method": "   "}, "Payment method is required"),
        ({"payment_method": None}, "Payment method is required"),
        ({"category_id": "no-such-category"}, "Unknown category"),
    ],
)
def test_create_expense_validation(session: Session, ctx: RequestContext, fields: dict, message: str) -> None:
    kwargs: dict[str, object] = {
        "amount": "10.00",
        "date_paid": date(2025, 1, 1),
        "payment_method": "Cash",
        **fields,
    }
    with pytest.raises(ValidationError, match=message):
        create_expense(session, ctx, **kwargs)  # type: ignore[arg-type]

    assert session.scalar(select(func.count()).select_from(Expense)) == 0


def test_get_expense_of_other_user_is_not_found(
    make_expense: Callable[..., Expense], session: Session, other_ctx: RequestContext
) -> None:
    expense = make_expense()
    with pytest.raises(NotFoundError):
        get_expense(session, other_ctx, expense.id)


def test_update_expense_replaces_fields(
    make_expense: Callable[..., Expense], session: Session, ctx: RequestContext, category: Callable[[str], Category]
) -> None:
    expense = make_expense(amount="80.00", description="Old")
    vision = category("Vision")

    updated = update_expense(
        session,
        ctx,
        expense.id,
        amount="90.50",
        date_paid=date(2025, 5, 5),
        payment_method="Debit",
        category_id=vision.id,
        description=None,
    )

    assert updated.amount == Decimal("90.50")
    assert updated.date_paid == date(2025, 5, 5)
    assert updated.payment_method == "Debit"
    assert updated.category_name == "Vision"
    assert updated.description is None


def test_update_expense_cannot_drop_below_reimbursed_total(
    make_expense: Callable[..., Expense], session: Session, ctx: RequestContext
) -> None:
    expense = make_expense(amount="100.00")
    add_reimbursement(session, ctx, expense.id, "60.00")

    with pytest.raises(ValidationError, match="already reimbursed"):
        update_expense(
            session, ctx, expense.id, amount="59.99", date_paid=expense.date_paid, payment_method="Cash"
        )

    assert get_expense(session, ctx, expense.id).amount == Decimal("100.00")


def test_update_expense_down_to_reimbursed_total_is_allowed(
    make_expense: Callable[..., Expense], session: Session, ctx: RequestContext
) -> None:
    expense = make_expense(amount="100.00")
    add_reimbursement(session, ctx, expense.id, "60.00")

    updated = update_expense(
        session, ctx, expense.id, amount="60.00", date_paid=expense.date_paid, payment_method="Cash"
    )

    assert updated.remaining_to_reimburse == Decimal("0.00")


def test_update_expense_runs_same_validation(
    make_expense: Callable[..., Expense], session: Session, ctx: RequestContext
) -> None:
    expense = make_expense()
    with pytest.raises(ValidationError, match="Payment method"):
        update_expense(session, ctx, expense.id, amount="5.00", date_paid=date(2025, 1, 1), payment_method="")


def test_update_missing_expense_is_not_found(session: Session, ctx: RequestContext) -> None:
    with pytest.raises(NotFoundError):
        update_expense(session, ctx, "missing", amount="5.00", date_paid=date(2025, 1, 1), payment_method="Cash")


def test_archive_and_unarchive_toggle_listing(
    make_expense: Callable[..., Expense], session: Session, ctx: RequestContext
) -> None:
    expense = make_expense()

    archive_expense(session, ctx, expense.id)
    assert [e.id for e in list_expenses(session, ctx, ExpenseStatus.ACTIVE)] == []
    assert [e.id for e in list_expenses(session, ctx, ExpenseStatus.ARCHIVED)] == [expense.id]
    assert [e.id for e in list_expenses(session, ctx, ExpenseStatus.ALL)] == [expense.id]

    unarchive_expense(session, ctx, expense.id)
    assert [e.id for e in list_expenses(session, ctx, ExpenseStatus.ACTIVE)] == [expense.id]
    assert list_expenses(session, ctx, ExpenseStatus.ARCHIVED) == []


def test_list_expenses_most_recent_first(
    make_expense: Callable[..., Expense], session: Session, ctx: RequestContext
) -> None:
    older = make_expense(date_paid=date(2025, 1, 10))
    newest = make_expense(date_paid=date(2025, 6, 1))
    middle = make_expense(date_paid=date(2025, 3, 15))

    result = list_expenses(session, ctx)

    assert [e.id for e in result] == [newest.id, middle.id, older.id]


def test_list_expenses_same_day_order_is_stable(
    make_expense: Callable[..., Expense], session: Session, ctx: RequestContext
) -> None:
    for _ in range(4):
        make_expense(date_paid=date(2025, 2, 2))

    first = [e.id for e in list_expenses(session, ctx)]
    second = [e.id for e in list_expenses(session, ctx)]

    assert first == second


def test_list_expenses_only_returns_callers_records(
    make_expense: Callable[..., Expense], session: Session, ctx: RequestContext, other_ctx: RequestContext
) -> None:
    mine = make_expense()
    make_expense(owner=other_ctx)

    assert [e.id for e in list_expenses(session, ctx, ExpenseStatus.ALL)] == [mine.id]


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (None, ExpenseStatus.ACTIVE),
        ("active", ExpenseStatus.ACTIVE),
        ("ARCHIVED", ExpenseStatus.ARCHIVED),
        ("all", ExpenseStatus.ALL),
    ],
)
def test_parse_status(value: str | None, expected: ExpenseStatus) -> None:
    assert parse_status(value) is expected


def test_parse_status_rejects_unknown() -> None:
    with pytest.raises(ValidationError):
        parse_status("deleted")


@patch("hsa_reimbursements.expenses.receipt_store.delete_receipt")
def test_delete_expense_cascades_to_children(
    mock_delete: MagicMock, make_expense: Callable[..., Expense], session: Session, ctx: RequestContext
) -> None:
    expense = make_expense(amount="100.00")
    add_reimbursement(session, ctx, expense.id, "25.00")
    add_reimbursement(session, ctx, expense.id, "25.00")
    session.add_all(
        [
            ReceiptImage(
                expense=expense,
                storage_key="receipts/user-1/a.pdf",
                filename="a.pdf",
                mime_type="application/pdf",
                size_bytes=10,
            ),
            ReceiptImage(
                expense=expense,
                storage_key="receipts/user-1/b.png",
                filename="b.png",
                mime_type="image/png",
                size_bytes=20,
            ),
        ]
    )
    session.commit()

    delete_expense(session, ctx, expense.id, "test-bucket")

    assert session.scalar(select(func.count()).select_from(Expense)) == 0
    assert session.scalar(select(func.count()).select_from(Reimbursement)) == 0
    assert session.scalar(select(func.count()).select_from(ReceiptImage)) == 0
    mock_delete.assert_has_calls(
        [call("test-bucket", "receipts/user-1/a.pdf"), call("test-bucket", "receipts/user-1/b.png")], any_order=True
    )


@patch("hsa_reimbursements.expenses.receipt_store.delete_receipt")
def test_delete_expense_of_other_user_is_not_found(
    mock_delete: MagicMock, make_expense: Callable[..., Expense], session: Session, other_ctx: RequestContext
) -> None:
    expense = make_expense()
    with pytest.raises(NotFoundError):
        delete_expense(session, other_ctx, expense.id, "test-bucket")
    mock_delete.assert_not_called()


@patch("hsa_reimbursements.expenses.receipt_store.delete_receipt")
def test_delete_expense_keeps_going_when_a_stored_object_fails(
    mock_delete: MagicMock, make_expense: Callable[..., Expense], session: Session, ctx: RequestContext
) -> None:
    expense = make_expense()
    for name in ("a.pdf", "b.pdf"):
        session.add(
            ReceiptImage(
                expense=expense,
                storage_key=f"receipts/user-1/{name}",
                filename=name,
                mime_type="application/pdf",
                size_bytes=10,
            )
        )
    session.commit()
    mock_delete.side_effect = ClientError({"Error": {"Code": "AccessDenied", "Message": "denied"}}, "DeleteObject")

    delete_expense(session, ctx, expense.id, "test-bucket")

    assert mock_delete.call_count == 2
    assert session.scalar(select(func.count()).select_from(Expense)) == 0
