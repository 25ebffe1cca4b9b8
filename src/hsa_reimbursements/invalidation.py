"""Which read queries each mutation makes stale.

Clients use this to refresh cached lists after a write. Keys scoped to one
expense take the form ``<query>:<expense_id>``.
"""

from enum import StrEnum


class Query(StrEnum):
    EXPENSES = "expenses"
    EXPENSE = "expense"
    REIMBURSEMENTS = "reimbursements"
    IMAGES = "images"
    SUMMARY = "summary"


class Mutation(StrEnum):
    CREATE_EXPENSE = "create_expense"
    UPDATE_EXPENSE = "update_expense"
    ARCHIVE_EXPENSE = "archive_expense"
    DELETE_EXPENSE = "delete_expense"
    ADD_REIMBURSEMENT = "add_reimbursement"
    DELETE_REIMBURSEMENT = "delete_reimbursement"
    UPLOAD_RECEIPT = "upload_receipt"
    DELETE_RECEIPT = "delete_receipt"


# Queries scoped to a single expense are suffixed with its id.
_PER_EXPENSE = frozenset({Query.EXPENSE, Query.REIMBURSEMENTS, Query.IMAGES})

AFFECTED_QUERIES: dict[Mutation, tuple[Query, ...]] = {
    Mutation.CREATE_EXPENSE: (Query.EXPENSES, Query.SUMMARY),
    Mutation.UPDATE_EXPENSE: (Query.EXPENSES, Query.EXPENSE, Query.SUMMARY),
    Mutation.ARCHIVE_EXPENSE: (Query.EXPENSES, Query.EXPENSE, Query.SUMMARY),
    Mutation.DELETE_EXPENSE: (Query.EXPENSES, Query.EXPENSE, Query.REIMBURSEMENTS, Query.IMAGES, Query.SUMMARY),
    Mutation.ADD_REIMBURSEMENT: (Query.REIMBURSEMENTS, Query.EXPENSES, Query.EXPENSE, Query.SUMMARY),
    Mutation.DELETE_REIMBURSEMENT: (Query.REIMBURSEMENTS, Query.EXPENSES, Query.EXPENSE, Query.SUMMARY),
    Mutation.UPLOAD_RECEIPT: (Query.IMAGES,),
    Mutation.DELETE_RECEIPT: (Query.IMAGES,),
}


def affected_keys(mutation: Mutation, expense_id: str) -> list[str]:
    """Cache keys invalidated by ``mutation`` on the given expense."""
    return [
        f"{query}:{expense_id}" if query in _PER_EXPENSE else str(query)
        for query in AFFECTED_QUERIES[mutation]
    ]


def header_value(mutation: Mutation, expense_id: str) -> str:
    return ", ".join(affected_keys(mutation, expense_id))
