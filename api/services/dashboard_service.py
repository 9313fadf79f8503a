"""
Dashboard capabilities per role.

Each role maps to one capability class; a richer role extends the payload
of the one below it (Employee < Manager < Admin).
"""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from api.models.approval_rule import ApprovalRule
from api.models.enums import ExpenseStatus, Role
from api.models.expense import Expense
from api.models.user import User
from api.services.approval_service import get_pending_approvals_for


def _empty_counts() -> dict[str, int]:
    return {s.value: 0 for s in ExpenseStatus}


async def _count_by_status(session: AsyncSession, *conditions) -> dict[str, int]:
    result = await session.execute(
        select(Expense.status, func.count(Expense.id))
        .where(*conditions)
        .group_by(Expense.status)
    )
    counts = _empty_counts()
    for status, count in result.all():
        counts[status] = count
    return counts


class EmployeeDashboard:
    role = Role.EMPLOYEE

    async def build(self, session: AsyncSession, current_user: dict) -> dict:
        return {
            "role": self.role.value,
            "my_expenses": await _count_by_status(
                session, Expense.submitter_id == current_user["user_id"]
            ),
        }


class ManagerDashboard(EmployeeDashboard):
    role = Role.MANAGER

    async def build(self, session: AsyncSession, current_user: dict) -> dict:
        payload = await super().build(session, current_user)
        pending = await get_pending_approvals_for(session, current_user["user_id"])
        payload["pending_approvals"] = len(pending)
        return payload


class AdminDashboard(ManagerDashboard):
    role = Role.ADMIN

    async def build(self, session: AsyncSession, current_user: dict) -> dict:
        payload = await super().build(session, current_user)
        company_id = current_user["company_id"]
        company_users = select(User.id).where(User.company_id == company_id)

        payload["company_expenses"] = await _count_by_status(
            session, Expense.submitter_id.in_(company_users)
        )
        payload["approval_rules"] = (
            await session.execute(
                select(func.count(ApprovalRule.id)).where(
                    ApprovalRule.applies_to_user_id.in_(company_users)
                )
            )
        ).scalar() or 0
        payload["users"] = (
            await session.execute(
                select(func.count(User.id)).where(User.company_id == company_id)
            )
        ).scalar() or 0
        return payload


DASHBOARD_CAPABILITIES = {
    Role.EMPLOYEE: EmployeeDashboard(),
    Role.MANAGER: ManagerDashboard(),
    Role.ADMIN: AdminDashboard(),
}


def capability_for(role: Role) -> EmployeeDashboard:
    return DASHBOARD_CAPABILITIES[Role(role)]
