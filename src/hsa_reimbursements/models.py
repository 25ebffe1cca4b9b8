"""SQLAlchemy models for expenses, reimbursements and receipts."""

from datetime import UTC, date, datetime
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Numeric, String, Text, TypeDecorator
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from hsa_reimbursements.money import ZERO


class UTCDateTime(TypeDecorator[datetime]):
    """Stores UTC timestamps and always hands back timezone-aware values.

    SQLite drops tzinfo on the way in; this puts it back on the way out.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


def _new_id() -> str:
    return str(uuid4())


def utcnow() -> datetime:
    return datetime.now(tz=UTC)


class Base(DeclarativeBase):
    pass


class Category(Base):
    __tablename__ = "categories"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)


class Expense(Base):
    __tablename__ = "expenses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(128), index=True, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    date_paid: Mapped[date] = mapped_column(Date, nullable=False)
    payment_method: Mapped[str] = mapped_column(String(100), nullable=False)
    category_id: Mapped[str | None] = mapped_column(ForeignKey("categories.id"), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    category: Mapped[Category | None] = relationship(lazy="joined")
    reimbursements: Mapped[list["Reimbursement"]] = relationship(
        back_populates="expense",
        cascade="all, delete-orphan",
        order_by=lambda: (Reimbursement.reimbursed_at.desc(), Reimbursement.id),
    )
    images: Mapped[list["ReceiptImage"]] = relationship(
        back_populates="expense",
        cascade="all, delete-orphan",
        order_by=lambda: (ReceiptImage.created_at, ReceiptImage.id),
    )

    @property
    def category_name(self) -> str | None:
        return self.category.name if self.category is not None else None

    @property
    def total_reimbursed(self) -> Decimal:
        return sum((r.amount for r in self.reimbursements), ZERO)

    @property
    def remaining_to_reimburse(self) -> Decimal:
        return max(self.amount - self.total_reimbursed, ZERO)

    @property
    def last_reimbursed_at(self) -> datetime | None:
        return max((r.reimbursed_at for r in self.reimbursements), default=None)


class Reimbursement(Base):
    __tablename__ = "reimbursements"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    expense_id: Mapped[str] = mapped_column(ForeignKey("expenses.id", ondelete="CASCADE"), index=True, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    reimbursed_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    method: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    expense: Mapped[Expense] = relationship(back_populates="reimbursements")


class ReceiptImage(Base):
    __tablename__ = "receipt_images"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    expense_id: Mapped[str] = mapped_column(ForeignKey("expenses.id", ondelete="CASCADE"), index=True, nullable=False)
    storage_key: Mapped[str] = mapped_column(String(1024), nullable=False)
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)
    size_bytes: Mapped[int] = mapped_column(nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    expense: Mapped[Expense] = relationship(back_populates="images")
