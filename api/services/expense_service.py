"""
Expense service: creation and the expense lifecycle.

    Draft ──submit──> Submitted ──quorum──> Approved
                               └─reject───> Rejected

Approved and Rejected are terminal. Submission routes the expense through
its approval rule; decisions are evaluated by approval_service and the
resulting status is committed here.

All functions use the caller's session (no commit). get_db() auto-commits.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from api.database import utcnow
from api.models.approval import Approval
from api.models.approval_history import ApprovalHistoryEntry
from api.models.company import Company
from api.models.enums import ApprovalStatus, ExpenseStatus
from api.models.expense import Expense
from api.schemas.common import DEFAULT_PAGE_LIMIT, page_offset
from api.services import approval_service, rule_service
from api.services.currency_service import convert_amount
from api.services.errors import (
    ExpenseNotFound,
    InvalidStateTransition,
    ValidationError,
)
from api.services.history_service import get_history

logger = structlog.get_logger()

ALLOWED_TRANSITIONS = {
    ExpenseStatus.DRAFT: {ExpenseStatus.SUBMITTED},
    ExpenseStatus.SUBMITTED: {ExpenseStatus.APPROVED, ExpenseStatus.REJECTED},
    ExpenseStatus.APPROVED: set(),
    ExpenseStatus.REJECTED: set(),
}


@dataclass
class SubmissionResult:
    expense: Expense
    approvals: list[Approval]
    history_entry: ApprovalHistoryEntry


@dataclass
class ApprovalView:
    approval: Approval
    is_actionable: bool
    is_moot: bool


@dataclass
class ExpenseDetail:
    expense: Expense
    approvals: list[ApprovalView] = field(default_factory=list)


def transition(expense: Expense, target: ExpenseStatus) -> None:
    """Move expense to target, refusing anything outside ALLOWED_TRANSITIONS."""
    current = ExpenseStatus(expense.status)
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidStateTransition(
            f"Cannot move expense {expense.id} from {current.value} to {target.value}",
            current_status=current.value,
        )
    expense.status = target.value
    now = utcnow()
    if target == ExpenseStatus.SUBMITTED:
        expense.submitted_at = now
    elif target.is_terminal:
        expense.decided_at = now

    logger.info(
        "expense_status_changed",
        expense_id=expense.id,
        from_status=current.value,
        to_status=target.value,
    )


async def get_expense(
    session: AsyncSession, expense_id: int, for_update: bool = False
) -> Expense:
    q = select(Expense).where(Expense.id == expense_id)
    if for_update:
        # Serializes routing and decisions per expense. populate_existing
        # overwrites a copy the session already holds with the locked row.
        q = q.with_for_update().execution_options(populate_existing=True)
    result = await session.execute(q)
    expense = result.scalar_one_or_none()
    if not expense:
        raise ExpenseNotFound(f"Expense {expense_id} not found")
    return expense


async def create_expense(
    session: AsyncSession,
    submitter_id: int,
    description: str,
    amount: Decimal,
    currency: str,
    expense_date: date,
    category: Optional[str] = None,
    receipt_image: Optional[str] = None,
    is_draft: bool = True,
) -> Expense:
    """
    Create an expense in Draft, converting the amount into the company currency.

    With is_draft=False the new expense is submitted in the same transaction.
    """
    if amount is None or Decimal(amount) <= 0:
        raise ValidationError("amount must be positive", field="amount")
    currency = currency.upper()

    submitter = await rule_service.get_user(session, submitter_id)
    company_result = await session.execute(
        select(Company).where(Company.id == submitter.company_id)
    )
    company = company_result.scalar_one()
    base_currency = company.base_currency

    converted_amount = await convert_amount(Decimal(amount), currency, base_currency)

    expense = Expense(
        submitter_id=submitter_id,
        description=description,
        amount=Decimal(amount),
        currency=currency,
        converted_amount=converted_amount,
        base_currency=base_currency,
        category=category,
        expense_date=expense_date,
        receipt_image=receipt_image,
        status=ExpenseStatus.DRAFT.value,
    )
    session.add(expense)
    await session.flush()

    logger.info(
        "expense_created",
        expense_id=expense.id,
        submitter_id=submitter_id,
        amount=str(expense.amount),
        currency=currency,
        converted_amount=str(converted_amount),
        base_currency=base_currency,
        draft=is_draft,
    )

    if not is_draft:
        await submit_expense(session, expense.id)
    return expense


async def submit_expense(session: AsyncSession, expense_id: int) -> SubmissionResult:
    """
    Draft → Submitted: resolve the submitter's rule and route the expense.

    Raises InvalidStateTransition unless the expense is a Draft,
    NoApproverConfigured when nobody can approve it.
    """
    expense = await get_expense(session, expense_id, for_update=True)
    if expense.status != ExpenseStatus.DRAFT:
        raise InvalidStateTransition(
            f"Expense cannot be submitted. Current status: {expense.status}",
            current_status=expense.status,
        )

    rule = await rule_service.resolve_rule(session, expense.submitter_id)
    approvals = await approval_service.create_approval_workflow(session, expense, rule)
    transition(expense, ExpenseStatus.SUBMITTED)
    await session.flush()

    history = await get_history(session, expense.id)
    logger.info(
        "expense_submitted",
        expense_id=expense.id,
        rule_id=rule.rule_id,
        approvers=[a.approver_id for a in approvals],
    )
    return SubmissionResult(expense=expense, approvals=approvals, history_entry=history[-1])


async def decide_approval(
    session: AsyncSession,
    expense_id: int,
    approver_id: int,
    decision: ApprovalStatus,
    comments: Optional[str] = None,
) -> approval_service.DecisionOutcome:
    """Record one approver's decision and commit any terminal transition."""
    expense = await get_expense(session, expense_id, for_update=True)
    outcome = await approval_service.record_decision(
        session, expense, approver_id, decision, comments
    )
    if outcome.is_terminal:
        transition(expense, outcome.expense_status)
        await session.flush()
        logger.info(
            "expense_finalized",
            expense_id=expense.id,
            status=expense.status,
            decided_by=approver_id,
        )
    return outcome


async def get_expense_detail(session: AsyncSession, expense_id: int) -> ExpenseDetail:
    expense = await get_expense(session, expense_id)
    approvals = await approval_service.get_approvals(session, expense_id)
    actionable = approval_service.actionable_approvals(
        approvals, bool(expense.is_sequential), expense.status
    )
    actionable_ids = {a.id for a in actionable}
    return ExpenseDetail(
        expense=expense,
        approvals=[
            ApprovalView(
                approval=a,
                is_actionable=a.id in actionable_ids,
                is_moot=approval_service.is_moot(a, expense.status),
            )
            for a in approvals
        ],
    )


async def list_expenses_for_user(
    session: AsyncSession,
    user_id: int,
    status: Optional[ExpenseStatus] = None,
    page: int = 1,
    limit: int = DEFAULT_PAGE_LIMIT,
) -> tuple[list[Expense], int]:
    q = select(Expense).where(Expense.submitter_id == user_id)
    count_q = select(func.count(Expense.id)).where(Expense.submitter_id == user_id)
    if status is not None:
        q = q.where(Expense.status == ExpenseStatus(status).value)
        count_q = count_q.where(Expense.status == ExpenseStatus(status).value)

    total = (await session.execute(count_q)).scalar() or 0
    result = await session.execute(
        q.order_by(Expense.created_at.desc(), Expense.id.desc())
        .offset(page_offset(page, limit))
        .limit(limit)
    )
    return list(result.scalars().all()), total
