"""
Approvals API routes: list the expenses awaiting the current user,
record an approve/reject decision.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from api.database import get_db
from api.middleware.auth import get_current_user
from api.middleware.authorization import check_self_approval
from api.models.enums import ApprovalStatus
from api.routes.expenses import expense_to_response
from api.schemas.approval import (
    DecisionRequest,
    DecisionResponse,
    PendingApprovalResponse,
)
from api.services import expense_service
from api.services.approval_service import get_pending_approvals_for

logger = structlog.get_logger()
router = APIRouter()


@router.get("/pending", response_model=list[PendingApprovalResponse])
async def list_pending_approvals(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Expenses on which the current user may decide right now."""
    pending = await get_pending_approvals_for(db, current_user["user_id"])
    return [
        PendingApprovalResponse(
            approval_id=p.approval.id,
            sequence=p.approval.sequence,
            submitter_name=p.submitter_name,
            expense=expense_to_response(p.expense),
        )
        for p in pending
    ]


@router.post("/expenses/{expense_id}/decision", response_model=DecisionResponse)
async def decide(
    expense_id: int,
    body: DecisionRequest,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    expense = await expense_service.get_expense(db, expense_id)
    check_self_approval(current_user["user_id"], expense.submitter_id)

    outcome = await expense_service.decide_approval(
        db,
        expense_id,
        current_user["user_id"],
        ApprovalStatus(body.decision),
        body.comments,
    )
    return DecisionResponse(
        expense_id=expense_id,
        approval_id=outcome.approval_id,
        expense_status=outcome.expense_status.value,
        is_terminal=outcome.is_terminal,
        approval_percentage=outcome.approval_percentage,
        next_approver_ids=outcome.next_approver_ids,
    )
