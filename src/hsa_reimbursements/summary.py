"""Eligible / reimbursed / remaining totals over a date range.

A range filters expenses by ``date_paid`` (inclusive on both ends). Every
reimbursement of an in-range expense counts toward its totals regardless of
when it was reimbursed. Without a range, only active expenses are included;
with one, archived expenses in the range are included too so that archiving
does not rewrite history.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from hsa_reimbursements.auth import RequestContext
from hsa_reimbursements.categories import UNCATEGORIZED, list_categories
from hsa_reimbursements.errors import ValidationError
from hsa_reimbursements.models import Category, Expense
from hsa_reimbursements.money import ZERO, money_number


@dataclass(frozen=True)
class DateRange:
    start: date | None = None
    end: date | None = None
    year: int | None = None

    def __post_init__(self) -> None:
        if self.start is not None and self.end is not None and self.start > self.end:
            raise ValidationError("'from' must be on or before 'to'")

    @classmethod
    def for_year(cls, year: int) -> "DateRange":
        if not 1900 <= year <= 9999:
            raise ValidationError("year is out of range")
        return cls(start=date(year, 1, 1), end=date(year, 12, 31), year=year)

    @property
    def is_open(self) -> bool:
        """True when no bound is set at all."""
        return self.start is None and self.end is None

    def contains(self, day: date) -> bool:
        if self.start is not None and day < self.start:
            return False
        if self.end is not None and day > self.end:
            return False
        return True

    @property
    def label(self) -> str:
        if self.year is not None:
            return str(self.year)
        if self.is_open:
            return "all"
        start = self.start.isoformat() if self.start else "beginning"
        end = self.end.isoformat() if self.end else "present"
        return f"{start}_to_{end}"


def _parse_date(value: str, name: str) -> date:
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        raise ValidationError(f"'{name}' must be a date in YYYY-MM-DD format") from None


def parse_range(from_: str | None = None, to: str | None = None, year: str | None = None) -> DateRange | None:
    """Build a range from query parameters. Returns None when none are given."""
    from_ = from_ or None
    to = to or None
    year = year or None
    if year is not None:
        if from_ is not None or to is not None:
            raise ValidationError("Use either 'year' or 'from'/'to', not both")
        try:
            year_value = int(year)
        except ValueError:
            raise ValidationError("'year' must be a number") from None
        return DateRange.for_year(year_value)
    if from_ is None and to is None:
        return None
    return DateRange(
        start=_parse_date(from_, "from") if from_ is not None else None,
        end=_parse_date(to, "to") if to is not None else None,
    )


@dataclass(frozen=True)
class Totals:
    eligible: Decimal = ZERO
    reimbursed: Decimal = ZERO
    remaining: Decimal = ZERO

    def add(self, expense: Expense) -> "Totals":
        return Totals(
            eligible=self.eligible + expense.amount,
            reimbursed=self.reimbursed + expense.total_reimbursed,
            remaining=self.remaining + expense.remaining_to_reimburse,
        )

    def to_dict(self) -> dict[str, float]:
        return {
            "totalEligible": money_number(self.eligible),
            "totalReimbursed": money_number(self.reimbursed),
            "remaining": money_number(self.remaining),
        }


@dataclass(frozen=True)
class CategorySummary:
    category_id: str | None
    category_name: str
    totals: Totals

    def to_dict(self) -> dict[str, Any]:
        return {"categoryId": self.category_id, "categoryName": self.category_name, **self.totals.to_dict()}


@dataclass(frozen=True)
class ExpenseSummary:
    expense_id: str
    date_paid: date
    description: str | None
    category_name: str | None
    amount: Decimal
    total_reimbursed: Decimal
    remaining: Decimal
    last_reimbursed_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "expenseId": self.expense_id,
            "datePaid": self.date_paid.isoformat(),
            "description": self.description,
            "categoryName": self.category_name,
            "amount": money_number(self.amount),
            "totalReimbursed": money_number(self.total_reimbursed),
            "remaining": money_number(self.remaining),
            "lastReimbursedAt": self.last_reimbursed_at.isoformat(),
        }


@dataclass(frozen=True)
class Summary:
    totals: Totals
    by_category: list[CategorySummary] = field(default_factory=list)
    by_expense: list[ExpenseSummary] = field(default_factory=list)
    date_range: DateRange | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.totals.to_dict(),
            "byCategory": [row.to_dict() for row in self.by_category],
            "byExpense": [row.to_dict() for row in self.by_expense],
            "from": self.date_range.start.isoformat() if self.date_range and self.date_range.start else None,
            "to": self.date_range.end.isoformat() if self.date_range and self.date_range.end else None,
        }


def in_scope(expense: Expense, date_range: DateRange | None) -> bool:
    if date_range is None or date_range.is_open:
        return not expense.is_archived
    return date_range.contains(expense.date_paid)


def aggregate(
    expenses: Iterable[Expense], categories: Sequence[Category], date_range: DateRange | None = None
) -> Summary:
    """Compute a summary from already-loaded expenses. Pure: no I/O, no clock."""
    scoped = [e for e in expenses if in_scope(e, date_range)]

    overall = Totals()
    per_category: dict[str | None, Totals] = {c.id: Totals() for c in categories}
    per_category.setdefault(None, Totals())
    rows: list[ExpenseSummary] = []

    for expense in scoped:
        overall = overall.add(expense)
        key = expense.category_id if expense.category_id in per_category else None
        per_category[key] = per_category[key].add(expense)

        last_reimbursed_at = expense.last_reimbursed_at
        if last_reimbursed_at is not None:
            rows.append(
                ExpenseSummary(
                    expense_id=expense.id,
                    date_paid=expense.date_paid,
                    description=expense.description,
                    category_name=expense.category_name,
                    amount=expense.amount,
                    total_reimbursed=expense.total_reimbursed,
                    remaining=expense.remaining_to_reimburse,
                    last_reimbursed_at=last_reimbursed_at,
                )
            )

    by_category = [
        CategorySummary(category_id=c.id, category_name=c.name, totals=per_category[c.id])
        for c in sorted(categories, key=lambda c: (c.name, c.id))
    ]
    by_category.append(CategorySummary(category_id=None, category_name=UNCATEGORIZED, totals=per_category[None]))

    # Newest reimbursement first; ties broken on date paid, then id, so output is stable.
    rows.sort(key=lambda r: r.expense_id)
    rows.sort(key=lambda r: (r.last_reimbursed_at, r.date_paid), reverse=True)

    return Summary(totals=overall, by_category=by_category, by_expense=rows, date_range=date_range)


def summarize(session: Session, ctx: RequestContext, date_range: DateRange | None = None) -> Summary:
    """Summary of the caller's expenses over an optional range."""
    stmt = (
        select(Expense)
        .where(Expense.user_id == ctx.user_id)
        .options(selectinload(Expense.reimbursements))
        .order_by(Expense.date_paid, Expense.id)
    )
    if date_range is None or date_range.is_open:
        stmt = stmt.where(Expense.is_archived.is_(False))
    else:
        if date_range.start is not None:
            stmt = stmt.where(Expense.date_paid >= date_range.start)
        if date_range.end is not None:
            stmt = stmt.where(Expense.date_paid <= date_range.end)

    expenses = list(session.scalars(stmt).unique())
    return aggregate(expenses, list_categories(session), date_range)
