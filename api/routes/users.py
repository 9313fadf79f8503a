"""
User directory routes: admins list their company's users and the
managers/admins eligible as rule approvers.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from api.database import get_db
from api.middleware.auth import get_current_user
from api.middleware.authorization import require_roles
from api.models.enums import Role
from api.models.user import User
from api.schemas.common import (
    DEFAULT_PAGE_LIMIT,
    MAX_PAGE_LIMIT,
    PaginatedResponse,
    build_pagination,
)
from api.schemas.user import ApproverOption, UserResponse
from api.services import user_service

router = APIRouter()


def _to_response(u: User) -> UserResponse:
    return UserResponse(
        id=u.id,
        email=u.email,
        name=u.name,
        role=u.role,
        manager_id=u.manager_id,
        created_at=u.created_at.isoformat() if u.created_at else "",
    )


@router.get("", response_model=PaginatedResponse[UserResponse])
async def list_users(
    role: Optional[Role] = Query(None),
    page: int = Query(1, ge=1, le=1000),
    limit: int = Query(DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
    current_user: dict = Depends(get_current_user),
    _auth: None = Depends(require_roles(Role.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    users, total = await user_service.list_company_users(
        db,
        current_user["company_id"],
        roles=[role] if role else None,
        page=page,
        limit=limit,
    )
    return PaginatedResponse(
        data=[_to_response(u) for u in users],
        pagination=build_pagination(page, limit, total),
    )


@router.get("/approvers", response_model=List[ApproverOption])
async def list_approvers(
    current_user: dict = Depends(get_current_user),
    _auth: None = Depends(require_roles(Role.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    """Candidates for a rule's approver list."""
    users = await user_service.list_eligible_approvers(db, current_user["company_id"])
    return [ApproverOption(id=u.id, name=u.name, email=u.email, role=u.role) for u in users]
