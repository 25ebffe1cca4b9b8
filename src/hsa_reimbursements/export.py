"""Render the by-expense reimbursement summary as CSV."""

import csv
import io
from collections.abc import Iterator

from hsa_reimbursements.money import format_money
from hsa_reimbursements.summary import DateRange, ExpenseSummary, Summary

HEADERS = [
    "Date",
    "Description",
    "Amount",
    "Reimbursed",
    "Remaining",
]


def export_filename(date_range: DateRange | None) -> str:
    label = date_range.label if date_range is not None else "all"
    return f"hsa-reimbursements-{label}.csv"


def _row(row: ExpenseSummary) -> list[str]:
    return [
        row.date_paid.isoformat(),
        row.description or "",
        format_money(row.amount),
        format_money(row.total_reimbursed),
        format_money(row.remaining),
    ]


def iter_csv(summary: Summary) -> Iterator[str]:
    """Yield the CSV one line at a time, header first.

    One data row per ``summary.by_expense`` entry, in the same order.
    """
    buf = io.StringIO()
    writer = csv.writer(buf)

    writer.writerow(HEADERS)
    yield buf.getvalue()

    for row in summary.by_expense:
        buf.seek(0)
        buf.truncate(0)
        writer.writerow(_row(row))
        yield buf.getvalue()


def render_csv(summary: Summary) -> str:
    return "".join(iter_csv(summary))
