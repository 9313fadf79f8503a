"""
Approval rule API routes: admins configure who approves a user's expenses.
"""

from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.database import get_db
from api.middleware.auth import get_current_user
from api.middleware.authorization import check_same_company, require_roles
from api.models.enums import Role
from api.schemas.approval_rule import (
    ApprovalRuleCreate,
    ApprovalRuleResponse,
    RuleApproverResponse,
)
from api.services import rule_service
from api.services.rule_service import RuleDefinition

router = APIRouter()


def _to_response(definition: RuleDefinition) -> ApprovalRuleResponse:
    rule = definition.rule
    return ApprovalRuleResponse(
        id=rule.id,
        name=rule.name,
        applies_to_user_id=rule.applies_to_user_id,
        is_sequential=rule.is_sequential,
        min_approval_percentage=rule.min_approval_percentage,
        approvers=[
            RuleApproverResponse(approver_user_id=a.approver_user_id, sequence=a.sequence)
            for a in definition.approvers
        ],
        created_at=rule.created_at.isoformat() if rule.created_at else "",
    )


@router.post("", response_model=ApprovalRuleResponse, status_code=status.HTTP_201_CREATED)
async def create_rule(
    body: ApprovalRuleCreate,
    current_user: dict = Depends(get_current_user),
    _auth: None = Depends(require_roles(Role.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    definition = await rule_service.create_rule(
        db,
        name=body.name,
        applies_to_user_id=body.applies_to_user_id,
        is_sequential=body.is_sequential,
        min_approval_percentage=body.min_approval_percentage,
        approver_ids=body.approvers,
        company_id=current_user["company_id"],
    )
    return _to_response(definition)


@router.get("/user/{user_id}", response_model=Optional[ApprovalRuleResponse])
async def get_rule_for_user(
    user_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """The rule targeting user_id, or null when the manager fallback applies."""
    user = await rule_service.get_user(db, user_id)
    check_same_company(current_user, user.company_id)
    definition = await rule_service.get_rule_for_user(db, user_id)
    return _to_response(definition) if definition else None
