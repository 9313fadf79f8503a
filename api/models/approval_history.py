from datetime import datetime
from typing import Optional

from sqlalchemy import String, DateTime, Text, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column

from api.database import Base, utcnow


class ApprovalHistoryEntry(Base):
    """Append-only audit trail of an expense's lifecycle."""

    __tablename__ = "approval_history"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    expense_id: Mapped[int] = mapped_column(
        ForeignKey("expenses.id"), nullable=False
    )
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    performed_by: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"))
    comments: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    __table_args__ = (
        Index("idx_approval_history_expense", "expense_id", "created_at"),
    )
