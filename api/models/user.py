from datetime import datetime
from typing import Optional

from sqlalchemy import String, DateTime, ForeignKey, Index, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from api.database import Base, utcnow
from api.models.enums import Role, check_in


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(
        ForeignKey("companies.id"), nullable=False
    )
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    # Direct manager; the approver of last resort when no rule targets this user.
    manager_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    __table_args__ = (
        CheckConstraint(check_in("role", Role), name="chk_users_role"),
        Index("idx_users_company", "company_id"),
        Index("idx_users_manager", "manager_id"),
    )
