from datetime import datetime

from sqlalchemy import (
    String,
    Boolean,
    Integer,
    DateTime,
    ForeignKey,
    CheckConstraint,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from api.database import Base, utcnow


class ApprovalRule(Base):
    __tablename__ = "approval_rules"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    applies_to_user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id"), unique=True, nullable=False
    )
    is_sequential: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    min_approval_percentage: Mapped[int] = mapped_column(
        Integer, default=100, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    __table_args__ = (
        CheckConstraint(
            "min_approval_percentage BETWEEN 1 AND 100",
            name="chk_rules_min_percentage",
        ),
    )


class RuleApprover(Base):
    __tablename__ = "rule_approvers"

    rule_id: Mapped[int] = mapped_column(
        ForeignKey("approval_rules.id", ondelete="CASCADE"), primary_key=True
    )
    approver_user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id"), primary_key=True
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("rule_id", "sequence", name="uq_rule_approvers_sequence"),
        CheckConstraint("sequence > 0", name="chk_rule_approvers_sequence_positive"),
    )
