"""Company directory reads: who can be targeted by, or named in, a rule."""

from typing import Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from api.models.enums import Role
from api.models.user import User
from api.schemas.common import DEFAULT_PAGE_LIMIT, page_offset
from api.services.rule_service import APPROVER_ROLES


async def list_company_users(
    session: AsyncSession,
    company_id: int,
    roles: Optional[Sequence[Role]] = None,
    page: int = 1,
    limit: int = DEFAULT_PAGE_LIMIT,
) -> tuple[list[User], int]:
    q = select(User).where(User.company_id == company_id)
    count_q = select(func.count(User.id)).where(User.company_id == company_id)
    if roles:
        values = [Role(r).value for r in roles]
        q = q.where(User.role.in_(values))
        count_q = count_q.where(User.role.in_(values))

    total = (await session.execute(count_q)).scalar() or 0
    result = await session.execute(
        q.order_by(User.name, User.id).offset(page_offset(page, limit)).limit(limit)
    )
    return list(result.scalars().all()), total


async def list_eligible_approvers(session: AsyncSession, company_id: int) -> list[User]:
    """Managers and admins of the company, the only users a rule may name."""
    result = await session.execute(
        select(User)
        .where(User.company_id == company_id, User.role.in_(sorted(APPROVER_ROLES)))
        .order_by(User.name, User.id)
    )
    return list(result.scalars().all())
