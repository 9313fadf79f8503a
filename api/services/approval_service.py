"""
Approval service: routing an expense to its approvers and evaluating quorum.

Routing materializes one Approval row per approver when an expense is
submitted. Who may act next is never stored: it is derived from the rows.

  parallel rule    every Pending row is actionable
  sequential rule  only the lowest-sequence Pending row is actionable

Quorum: any rejection rejects the expense outright. Otherwise the expense
is approved once approved * 100 >= min_approval_percentage * total.
"""

from dataclasses import dataclass, field
from typing import Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from api.database import utcnow
from api.models.approval import Approval
from api.models.enums import ApprovalStatus, ExpenseStatus, HistoryAction
from api.models.expense import Expense
from api.models.user import User
from api.services.errors import (
    AlreadyDecided,
    AlreadyRouted,
    ApprovalNotFound,
    InvalidStateTransition,
    NotYourTurn,
    ValidationError,
)
from api.services.history_service import append_history
from api.services.rule_service import ResolvedRule

logger = structlog.get_logger()

DECISIONS = (ApprovalStatus.APPROVED, ApprovalStatus.REJECTED)


@dataclass
class DecisionOutcome:
    approval_id: int
    expense_status: ExpenseStatus
    is_terminal: bool
    approval_percentage: float
    next_approver_ids: list[int] = field(default_factory=list)


@dataclass
class PendingApproval:
    expense: Expense
    approval: Approval
    submitter_name: Optional[str] = None


# ---------------------------------------------------------------------------
# Derived state
# ---------------------------------------------------------------------------


def actionable_approvals(
    approvals: Sequence[Approval], is_sequential: bool, expense_status: str
) -> list[Approval]:
    """Approval rows whose approver may decide right now."""
    if expense_status != ExpenseStatus.SUBMITTED:
        return []
    pending = sorted(
        (a for a in approvals if a.status == ApprovalStatus.PENDING),
        key=lambda a: a.sequence,
    )
    if not is_sequential:
        return pending
    if not pending:
        return []
    head = pending[0]
    earlier = [a for a in approvals if a.sequence < head.sequence]
    if all(a.status == ApprovalStatus.APPROVED for a in earlier):
        return [head]
    return []


def is_moot(approval: Approval, expense_status: str) -> bool:
    """A Pending row left behind once the expense reached a terminal state."""
    return (
        approval.status == ApprovalStatus.PENDING
        and ExpenseStatus(expense_status).is_terminal
    )


def approval_percentage(approvals: Sequence[Approval]) -> float:
    if not approvals:
        return 0.0
    approved = sum(1 for a in approvals if a.status == ApprovalStatus.APPROVED)
    return approved * 100 / len(approvals)


def evaluate_quorum(
    approvals: Sequence[Approval], min_approval_percentage: int
) -> ExpenseStatus:
    """Status the expense should hold given the decisions recorded so far."""
    if any(a.status == ApprovalStatus.REJECTED for a in approvals):
        return ExpenseStatus.REJECTED
    total = len(approvals)
    if total == 0:
        return ExpenseStatus.SUBMITTED
    approved = sum(1 for a in approvals if a.status == ApprovalStatus.APPROVED)
    # Integer comparison; 2 of 3 against 67% must not pass via float rounding.
    if approved * 100 >= min_approval_percentage * total:
        return ExpenseStatus.APPROVED
    return ExpenseStatus.SUBMITTED


# ---------------------------------------------------------------------------
# Ledger reads
# ---------------------------------------------------------------------------


async def get_approvals(session: AsyncSession, expense_id: int) -> list[Approval]:
    # Quorum is evaluated from these rows; never trust a copy loaded earlier
    # in the session.
    result = await session.execute(
        select(Approval)
        .where(Approval.expense_id == expense_id)
        .order_by(Approval.sequence)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def get_pending_approvals_for(
    session: AsyncSession, approver_id: int
) -> list[PendingApproval]:
    """Submitted expenses on which approver_id is currently actionable."""
    result = await session.execute(
        select(Approval, Expense)
        .join(Expense, Approval.expense_id == Expense.id)
        .where(
            Approval.approver_id == approver_id,
            Approval.status == ApprovalStatus.PENDING.value,
            Expense.status == ExpenseStatus.SUBMITTED.value,
        )
        .order_by(Expense.created_at.desc(), Expense.id.desc())
    )
    candidates = list(result.all())
    if not candidates:
        return []

    # Sequential expenses need their full ledger to know whose turn it is
    sequential_ids = [e.id for _, e in candidates if e.is_sequential]
    ledgers: dict[int, list[Approval]] = {}
    if sequential_ids:
        ledger_result = await session.execute(
            select(Approval).where(Approval.expense_id.in_(sequential_ids))
        )
        for a in ledger_result.scalars().all():
            ledgers.setdefault(a.expense_id, []).append(a)

    submitter_ids = list({e.submitter_id for _, e in candidates})
    users_result = await session.execute(select(User).where(User.id.in_(submitter_ids)))
    names = {u.id: u.name for u in users_result.scalars().all()}

    pending = []
    for approval, expense in candidates:
        if expense.is_sequential:
            actionable = actionable_approvals(
                ledgers.get(expense.id, []), True, expense.status
            )
            if approval.id not in {a.id for a in actionable}:
                continue
        pending.append(
            PendingApproval(
                expense=expense,
                approval=approval,
                submitter_name=names.get(expense.submitter_id),
            )
        )
    return pending


# ---------------------------------------------------------------------------
# Routing
# ---------------------------------------------------------------------------


async def create_approval_workflow(
    session: AsyncSession, expense: Expense, rule: ResolvedRule
) -> list[Approval]:
    """
    Materialize the expense's Approval rows from rule. All start Pending.

    The rule's settings are snapshotted onto the expense; evaluation of this
    expense never consults the rule again. Caller holds the expense lock.
    """
    existing = await session.execute(
        select(func.count(Approval.id)).where(Approval.expense_id == expense.id)
    )
    if (existing.scalar() or 0) > 0:
        raise AlreadyRouted(f"Expense {expense.id} has already been routed")

    if not rule.approvers:
        raise ValidationError("Cannot route an expense to an empty approver list")

    expense.approval_rule_id = rule.rule_id
    expense.is_sequential = rule.is_sequential
    expense.min_approval_percentage = rule.min_approval_percentage

    ordered = sorted(rule.approvers, key=lambda a: a.sequence)
    approvals = []
    for sequence, step in enumerate(ordered, start=1):
        approval = Approval(
            expense_id=expense.id,
            approver_id=step.user_id,
            sequence=sequence,
            status=ApprovalStatus.PENDING.value,
        )
        session.add(approval)
        approvals.append(approval)

    await session.flush()

    await append_history(
        session,
        expense.id,
        HistoryAction.SUBMITTED,
        performed_by=expense.submitter_id,
        comments="Expense submitted for approval",
    )

    logger.info(
        "approval_workflow_created",
        expense_id=expense.id,
        rule_id=rule.rule_id,
        fallback=rule.is_fallback,
        is_sequential=rule.is_sequential,
        steps=len(approvals),
    )
    return approvals


# ---------------------------------------------------------------------------
# Decisions
# ---------------------------------------------------------------------------


async def record_decision(
    session: AsyncSession,
    expense: Expense,
    approver_id: int,
    decision: ApprovalStatus,
    comments: Optional[str] = None,
) -> DecisionOutcome:
    """
    Record approver_id's decision on expense and evaluate the quorum.

    Caller must hold the expense row lock and apply the resulting status.
    The decision's history entry also marks any transition it causes.
    """
    try:
        decision = ApprovalStatus(decision)
    except ValueError:
        raise ValidationError(f"Unknown decision '{decision}'", field="decision")
    if decision not in DECISIONS:
        raise ValidationError("Decision must be Approved or Rejected", field="decision")

    approvals = await get_approvals(session, expense.id)
    current = next((a for a in approvals if a.approver_id == approver_id), None)
    if current is None:
        raise ApprovalNotFound(
            f"User {approver_id} is not an approver of expense {expense.id}"
        )
    if current.status != ApprovalStatus.PENDING:
        raise AlreadyDecided(
            f"Approval {current.id} was already decided: {current.status}"
        )
    if expense.status != ExpenseStatus.SUBMITTED:
        raise InvalidStateTransition(
            f"Expense {expense.id} is no longer awaiting approval",
            current_status=expense.status,
        )
    if expense.is_sequential:
        actionable = actionable_approvals(approvals, True, expense.status)
        if current not in actionable:
            raise NotYourTurn(
                "You are not the current approver for this expense",
                current_approver_ids=[a.approver_id for a in actionable],
            )

    current.status = decision.value
    current.comments = comments
    current.decided_at = utcnow()
    await session.flush()

    await append_history(
        session,
        expense.id,
        HistoryAction(decision.value),
        performed_by=approver_id,
        comments=comments,
    )

    outcome_status = evaluate_quorum(approvals, expense.min_approval_percentage or 100)
    next_ids = []
    if outcome_status == ExpenseStatus.SUBMITTED:
        next_ids = [
            a.approver_id
            for a in actionable_approvals(approvals, bool(expense.is_sequential), outcome_status)
        ]

    outcome = DecisionOutcome(
        approval_id=current.id,
        expense_status=outcome_status,
        is_terminal=outcome_status.is_terminal,
        approval_percentage=round(approval_percentage(approvals), 2),
        next_approver_ids=next_ids,
    )
    logger.info(
        "approval_decision_recorded",
        expense_id=expense.id,
        approver_id=approver_id,
        decision=decision.value,
        expense_status=outcome_status.value,
        approval_percentage=outcome.approval_percentage,
    )
    return outcome
