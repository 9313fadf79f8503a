from datetime import datetime
from typing import Optional

from sqlalchemy import (
    String,
    Integer,
    DateTime,
    Text,
    ForeignKey,
    CheckConstraint,
    UniqueConstraint,
    Index,
)
from sqlalchemy.orm import Mapped, mapped_column

from api.database import Base, utcnow
from api.models.enums import ApprovalStatus, check_in


class Approval(Base):
    __tablename__ = "approvals"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    expense_id: Mapped[int] = mapped_column(
        ForeignKey("expenses.id"), nullable=False
    )
    approver_id: Mapped[int] = mapped_column(
        ForeignKey("users.id"), nullable=False
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=ApprovalStatus.PENDING.value, nullable=False
    )
    comments: Mapped[Optional[str]] = mapped_column(Text)
    decided_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        CheckConstraint(check_in("status", ApprovalStatus), name="chk_approvals_status"),
        CheckConstraint("sequence > 0", name="chk_approval_sequence_positive"),
        UniqueConstraint("expense_id", "approver_id", name="uq_approvals_expense_approver"),
        Index("idx_approvals_expense", "expense_id"),
        Index("idx_approvals_approver", "approver_id", "status"),
    )
