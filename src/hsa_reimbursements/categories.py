"""The fixed catalogue of expense categories."""

from sqlalchemy import select
from sqlalchemy.orm import Session

from hsa_reimbursements.errors import ValidationError
from hsa_reimbursements.models import Category

DEFAULT_CATEGORIES = ("Medical", "Dental", "Vision", "Pharmacy", "Other")

UNCATEGORIZED = "Uncategorized"


def seed_categories(session: Session) -> int:
    """Insert any missing default categories. Returns how many were added."""
    existing = set(session.scalars(select(Category.name)))
    missing = [name for name in DEFAULT_CATEGORIES if name not in existing]
    session.add_all(Category(name=name) for name in missing)
    session.flush()
    return len(missing)


def list_categories(session: Session) -> list[Category]:
    return list(session.scalars(select(Category).order_by(Category.name, Category.id)))


def resolve_category(session: Session, category_id: str | None) -> Category | None:
    """Look up a category by id for assignment to an expense.

    None or an empty id means uncategorized; an unknown id is a validation
    error since it comes from user input.
    """
    if not category_id:
        return None
    category = session.get(Category, category_id)
    if category is None:
        raise ValidationError("Unknown category")
    return category
