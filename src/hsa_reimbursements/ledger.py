"""Reimbursements recorded against expenses.

The cumulative reimbursed amount of an expense never exceeds the expense
amount. Additions for one expense are serialized so the balance check and the
insert happen as one step.
"""

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from hsa_reimbursements.auth import RequestContext
from hsa_reimbursements.errors import NotFoundError, OverLimitError
from hsa_reimbursements.expenses import get_expense, reimbursed_total
from hsa_reimbursements.locks import expense_lock
from hsa_reimbursements.models import Expense, Reimbursement, utcnow
from hsa_reimbursements.money import to_money

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return utcnow()


def _optional_text(value: str | None) -> str | None:
    if value is None:
        return None
    return value.strip() or None


def add_reimbursement(
    session: Session,
    ctx: RequestContext,
    expense_id: str,
    amount: object,
    method: str | None = None,
    notes: str | None = None,
) -> Reimbursement:
    """Record a reimbursement against one of the caller's expenses.

    Raises OverLimitError, leaving the ledger untouched, when the expense's
    reimbursed total would exceed its amount.
    """
    amount_value = to_money(amount)

    with expense_lock(expense_id):
        expense = get_expense(session, ctx, expense_id, for_update=True)
        current_total = reimbursed_total(session, expense.id)
        if current_total + amount_value > expense.amount:
            session.rollback()
            logger.warning(
                "Rejected reimbursement of %s for expense %s: %s of %s already reimbursed",
                amount_value,
                expense.id,
                current_total,
                expense.amount,
            )
            raise OverLimitError(expense.amount, current_total, amount_value)

        reimbursement = Reimbursement(
            expense=expense,
            amount=amount_value,
            reimbursed_at=_now(),
            method=_optional_text(method),
            notes=_optional_text(notes),
        )
        session.add(reimbursement)
        session.commit()

    logger.info("Recorded reimbursement %s of %s for expense %s", reimbursement.id, amount_value, expense.id)
    return reimbursement


def get_reimbursement(session: Session, ctx: RequestContext, reimbursement_id: str) -> Reimbursement:
    stmt = (
        select(Reimbursement)
        .join(Reimbursement.expense)
        .where(Reimbursement.id == reimbursement_id, Expense.user_id == ctx.user_id)
    )
    reimbursement = session.scalars(stmt).one_or_none()
    if reimbursement is None:
        raise NotFoundError("Reimbursement", reimbursement_id)
    return reimbursement


def delete_reimbursement(session: Session, ctx: RequestContext, reimbursement_id: str) -> Expense:
    """Remove a reimbursement. Returns the parent expense with its balance restored."""
    reimbursement = get_reimbursement(session, ctx, reimbursement_id)
    expense_id = reimbursement.expense_id

    with expense_lock(expense_id):
        expense = get_expense(session, ctx, expense_id, for_update=True)
        expense.reimbursements.remove(reimbursement)
        session.commit()

    logger.info("Deleted reimbursement %s of %s from expense %s", reimbursement_id, reimbursement.amount, expense_id)
    return expense


def list_reimbursements(session: Session, ctx: RequestContext, expense_id: str) -> list[Reimbursement]:
    """Reimbursements for one expense, newest first."""
    expense = get_expense(session, ctx, expense_id)
    stmt = (
        select(Reimbursement)
        .where(Reimbursement.expense_id == expense.id)
        .order_by(Reimbursement.reimbursed_at.desc(), Reimbursement.id)
    )
    return list(session.scalars(stmt))
