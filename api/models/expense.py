from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    String,
    Boolean,
    Integer,
    Date,
    DateTime,
    Numeric,
    Text,
    ForeignKey,
    CheckConstraint,
    Index,
)
from sqlalchemy.orm import Mapped, mapped_column

from api.database import Base, utcnow
from api.models.enums import ExpenseStatus, check_in


class Expense(Base):
    __tablename__ = "expenses"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    submitter_id: Mapped[int] = mapped_column(
        ForeignKey("users.id"), nullable=False
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    converted_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2))
    base_currency: Mapped[Optional[str]] = mapped_column(String(3))
    category: Mapped[Optional[str]] = mapped_column(String(100))
    expense_date: Mapped[date] = mapped_column(Date, nullable=False)
    receipt_image: Mapped[Optional[str]] = mapped_column(String(500))
    status: Mapped[str] = mapped_column(
        String(20), default=ExpenseStatus.DRAFT.value, nullable=False
    )

    # Routing snapshot, written once on submission. Later rule edits never
    # change how an already-routed expense is evaluated.
    approval_rule_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("approval_rules.id")
    )
    is_sequential: Mapped[Optional[bool]] = mapped_column(Boolean)
    min_approval_percentage: Mapped[Optional[int]] = mapped_column(Integer)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )
    submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    decided_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    __table_args__ = (
        CheckConstraint(check_in("status", ExpenseStatus), name="chk_expenses_status"),
        CheckConstraint("amount > 0", name="chk_expenses_amount_positive"),
        Index("idx_expenses_submitter", "submitter_id", "status"),
    )
