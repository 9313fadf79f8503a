"""
Expense API routes: create, list, inspect, submit and audit expenses.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from api.database import get_db
from api.middleware.auth import get_current_user
from api.models.approval import Approval
from api.models.approval_history import ApprovalHistoryEntry
from api.models.enums import ExpenseStatus, Role
from api.models.expense import Expense
from api.schemas.common import (
    DEFAULT_PAGE_LIMIT,
    MAX_PAGE_LIMIT,
    PaginatedResponse,
    build_pagination,
)
from api.schemas.expense import (
    ApprovalResponse,
    ExpenseCreate,
    ExpenseDetailResponse,
    ExpenseResponse,
    HistoryEntryResponse,
    SubmitExpenseResponse,
)
from api.services import expense_service
from api.services.expense_service import ApprovalView
from api.services.history_service import get_history
from api.services.rule_service import get_user

logger = structlog.get_logger()
router = APIRouter()


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def expense_to_response(e: Expense) -> ExpenseResponse:
    return ExpenseResponse(
        id=e.id,
        submitter_id=e.submitter_id,
        description=e.description,
        amount=e.amount,
        currency=e.currency,
        converted_amount=e.converted_amount,
        base_currency=e.base_currency,
        category=e.category,
        expense_date=e.expense_date.isoformat(),
        receipt_image=e.receipt_image,
        status=e.status,
        approval_rule_id=e.approval_rule_id,
        is_sequential=e.is_sequential,
        min_approval_percentage=e.min_approval_percentage,
        created_at=_iso(e.created_at) or "",
        submitted_at=_iso(e.submitted_at),
        decided_at=_iso(e.decided_at),
    )


def _approval_to_response(view: ApprovalView) -> ApprovalResponse:
    a = view.approval
    return ApprovalResponse(
        id=a.id,
        expense_id=a.expense_id,
        approver_id=a.approver_id,
        sequence=a.sequence,
        status=a.status,
        comments=a.comments,
        is_actionable=view.is_actionable,
        is_moot=view.is_moot,
        decided_at=_iso(a.decided_at),
        created_at=_iso(a.created_at) or "",
    )


def _history_to_response(h: ApprovalHistoryEntry) -> HistoryEntryResponse:
    return HistoryEntryResponse(
        id=h.id,
        expense_id=h.expense_id,
        action=h.action,
        performed_by=h.performed_by,
        comments=h.comments,
        created_at=_iso(h.created_at) or "",
    )


async def _ensure_can_view(db: AsyncSession, current_user: dict, expense: Expense):
    """Submitter, the expense's approvers, and admins of its company may view it."""
    if expense.submitter_id == current_user["user_id"]:
        return
    approver = await db.execute(
        select(Approval.id).where(
            Approval.expense_id == expense.id,
            Approval.approver_id == current_user["user_id"],
        )
    )
    if approver.first() is not None:
        return
    if current_user["role"] == Role.ADMIN:
        submitter = await get_user(db, expense.submitter_id)
        if submitter.company_id == current_user["company_id"]:
            return
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail={
            "error": {
                "code": "INSUFFICIENT_PERMISSIONS",
                "message": "You cannot access this expense",
            }
        },
    )


# ---------- LIST / GET ----------


@router.get("", response_model=PaginatedResponse[ExpenseResponse])
async def list_my_expenses(
    expense_status: Optional[ExpenseStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1, le=1000),
    limit: int = Query(DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    expenses, total = await expense_service.list_expenses_for_user(
        db, current_user["user_id"], expense_status, page, limit
    )
    return PaginatedResponse(
        data=[expense_to_response(e) for e in expenses],
        pagination=build_pagination(page, limit, total),
    )


@router.get("/{expense_id}", response_model=ExpenseDetailResponse)
async def get_expense(
    expense_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    detail = await expense_service.get_expense_detail(db, expense_id)
    await _ensure_can_view(db, current_user, detail.expense)
    return ExpenseDetailResponse(
        **expense_to_response(detail.expense).model_dump(),
        approvals=[_approval_to_response(v) for v in detail.approvals],
    )


@router.get("/{expense_id}/history", response_model=list[HistoryEntryResponse])
async def get_expense_history(
    expense_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    expense = await expense_service.get_expense(db, expense_id)
    await _ensure_can_view(db, current_user, expense)
    return [_history_to_response(h) for h in await get_history(db, expense_id)]


# ---------- CREATE / SUBMIT ----------


@router.post("", response_model=ExpenseResponse, status_code=status.HTTP_201_CREATED)
async def create_expense(
    body: ExpenseCreate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    expense = await expense_service.create_expense(
        db,
        submitter_id=current_user["user_id"],
        description=body.description,
        amount=body.amount,
        currency=body.currency,
        expense_date=body.expense_date,
        category=body.category,
        receipt_image=body.receipt_image,
        is_draft=body.is_draft,
    )
    return expense_to_response(expense)


@router.post("/{expense_id}/submit", response_model=SubmitExpenseResponse)
async def submit_expense(
    expense_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    logger.info("expense_submit_request", expense_id=expense_id, user=current_user["user_id"])
    expense = await expense_service.get_expense(db, expense_id)
    if expense.submitter_id != current_user["user_id"]:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the submitter can submit this expense",
        )

    result = await expense_service.submit_expense(db, expense_id)
    return SubmitExpenseResponse(
        status=result.expense.status,
        expense=expense_to_response(result.expense),
        history_entry=_history_to_response(result.history_entry),
    )
