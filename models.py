from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum as SAEnum,
    Index,
    Integer,
    PrimaryKeyConstraint,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


DEFAULT_CURRENCY = "INR"


class EntryKind(str, Enum):
    expense = "expense"
    income = "income"


def to_cents(amount: float | Decimal) -> int:
    cents = (Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(cents)


def cents_to_amount(cents: int) -> float:
    return cents / 100


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class LedgerEntryMixin(TimestampMixin):
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    date_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    receipt: Mapped[Optional[str]] = mapped_column(Text)
    currency: Mapped[str] = mapped_column(
        String(3), nullable=False, default=DEFAULT_CURRENCY
    )
    is_trashed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    @property
    def amount(self) -> float:
        return cents_to_amount(self.amount_cents)


class Expense(Base, LedgerEntryMixin):
    __tablename__ = "expenses"

    category: Mapped[str] = mapped_column(String(100), nullable=False)
    payment_method: Mapped[Optional[str]] = mapped_column(String(50))

    __table_args__ = (
        Index("ix_expenses_trashed_date_time", "is_trashed", "date_time"),
        Index("ix_expenses_trashed_category", "is_trashed", "category"),
        CheckConstraint("amount_cents > 0", name="ck_expenses_amount_positive"),
        {"sqlite_autoincrement": True},
    )


class Income(Base, LedgerEntryMixin):
    __tablename__ = "incomes"

    source: Mapped[str] = mapped_column(String(100), nullable=False)

    __table_args__ = (
        Index("ix_incomes_trashed_date_time", "is_trashed", "date_time"),
        Index("ix_incomes_trashed_source", "is_trashed", "source"),
        CheckConstraint("amount_cents > 0", name="ck_incomes_amount_positive"),
        {"sqlite_autoincrement": True},
    )


LedgerEntry = Expense | Income

MODEL_BY_KIND: dict[EntryKind, type[Expense] | type[Income]] = {
    EntryKind.expense: Expense,
    EntryKind.income: Income,
}


def model_for(kind: EntryKind) -> type[Expense] | type[Income]:
    return MODEL_BY_KIND[EntryKind(kind)]


def group_column(kind: EntryKind):
    """Column an entry kind is broken down by: category for expenses, source for incomes."""
    if EntryKind(kind) == EntryKind.expense:
        return Expense.category
    return Income.source


class Category(Base, TimestampMixin):
    """User-editable taxonomy: expense categories and income sources."""

    __tablename__ = "categories"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[EntryKind] = mapped_column(SAEnum(EntryKind), nullable=False)
    label: Mapped[str] = mapped_column(String(100), nullable=False)
    icon: Mapped[str] = mapped_column(String(50), nullable=False)
    color: Mapped[str] = mapped_column(String(7), nullable=False)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_custom: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (PrimaryKeyConstraint("name", "type", name="pk_categories"),)
