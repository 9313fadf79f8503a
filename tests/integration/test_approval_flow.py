"""
Integration tests: expense routing and decisions against a real database.

Each test gets a fresh in-memory SQLite schema (see conftest). Every service
call is followed by a commit, as get_db does at the end of a request.
"""

from datetime import date
from decimal import Decimal
from itertools import permutations
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select

from api.models.approval import Approval
from api.models.enums import ApprovalStatus, ExpenseStatus, HistoryAction
from api.models.expense import Expense
from api.services import approval_service, expense_service, rule_service
from api.services.errors import (
    AlreadyDecided,
    AlreadyRouted,
    ApprovalNotFound,
    DuplicateRule,
    InvalidStateTransition,
    NoApproverConfigured,
    NotYourTurn,
    UserNotFound,
    ValidationError,
)
from api.services.history_service import get_history

APPROVED = ApprovalStatus.APPROVED
REJECTED = ApprovalStatus.REJECTED


async def _draft(db, submitter, amount="120.00", currency="USD"):
    expense = await expense_service.create_expense(
        db,
        submitter_id=submitter.id,
        description="Client dinner",
        amount=Decimal(amount),
        currency=currency,
        expense_date=date(2024, 3, 1),
        category="Meals",
    )
    await db.commit()
    return expense


async def _submitted(db, submitter):
    expense = await _draft(db, submitter)
    await expense_service.submit_expense(db, expense.id)
    await db.commit()
    return expense


async def _rule(db, target, approvers, is_sequential=False, min_pct=100):
    definition = await rule_service.create_rule(
        db,
        name=None,
        applies_to_user_id=target.id,
        is_sequential=is_sequential,
        min_approval_percentage=min_pct,
        approver_ids=[a.id for a in approvers],
    )
    await db.commit()
    return definition


async def _decide(db, expense, approver, decision, comments=None):
    outcome = await expense_service.decide_approval(
        db, expense.id, approver.id, decision, comments
    )
    await db.commit()
    return outcome


async def _approval_count(db, expense_id):
    result = await db.execute(
        select(func.count(Approval.id)).where(Approval.expense_id == expense_id)
    )
    return result.scalar()


# ---------------------------------------------------------------------------
# End-to-end scenarios
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_scenario_manager_fallback(db, org):
    """No explicit rule: the submitter's manager is the single approver."""
    expense = await _submitted(db, org.emp)

    approvals = await approval_service.get_approvals(db, expense.id)
    assert [a.approver_id for a in approvals] == [org.m1.id]
    assert expense.status == ExpenseStatus.SUBMITTED.value
    assert expense.approval_rule_id is None
    assert expense.min_approval_percentage == 100

    outcome = await _decide(db, expense, org.m1, APPROVED, "ok")

    assert outcome.expense_status == ExpenseStatus.APPROVED
    assert outcome.is_terminal
    assert expense.status == ExpenseStatus.APPROVED.value
    assert expense.decided_at is not None


@pytest.mark.asyncio
async def test_scenario_sequential_approve_then_reject(db, org):
    await _rule(db, org.emp, [org.m2, org.m3], is_sequential=True)
    expense = await _submitted(db, org.emp)

    outcome = await _decide(db, expense, org.m2, APPROVED)
    assert outcome.expense_status == ExpenseStatus.SUBMITTED
    assert outcome.next_approver_ids == [org.m3.id]
    assert [p.expense.id for p in await approval_service.get_pending_approvals_for(db, org.m3.id)] == [expense.id]

    outcome = await _decide(db, expense, org.m3, REJECTED, "Missing receipt")
    assert outcome.expense_status == ExpenseStatus.REJECTED
    assert expense.status == ExpenseStatus.REJECTED.value

    statuses = {a.approver_id: a.status for a in await approval_service.get_approvals(db, expense.id)}
    assert statuses == {org.m2.id: "Approved", org.m3.id: "Rejected"}


# ---------------------------------------------------------------------------
# Quorum and short-circuit
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_rejection_short_circuits_and_leaves_moot_rows(db, org):
    await _rule(db, org.emp, [org.m1, org.m2, org.m3], is_sequential=False, min_pct=100)
    expense = await _submitted(db, org.emp)

    await _decide(db, expense, org.m1, APPROVED)
    outcome = await _decide(db, expense, org.m2, REJECTED)

    assert outcome.expense_status == ExpenseStatus.REJECTED
    detail = await expense_service.get_expense_detail(db, expense.id)
    third = next(v for v in detail.approvals if v.approval.approver_id == org.m3.id)
    assert third.approval.status == "Pending"
    assert third.is_moot
    assert not third.is_actionable

    with pytest.raises(InvalidStateTransition):
        await expense_service.decide_approval(db, expense.id, org.m3.id, APPROVED)
    assert await approval_service.get_pending_approvals_for(db, org.m3.id) == []


@pytest.mark.asyncio
async def test_sixty_percent_quorum_approves_after_two_of_three(db, org):
    await _rule(db, org.emp, [org.m1, org.m2, org.m3], min_pct=60)
    expense = await _submitted(db, org.emp)

    first = await _decide(db, expense, org.m3, APPROVED)
    assert first.expense_status == ExpenseStatus.SUBMITTED
    second = await _decide(db, expense, org.m1, APPROVED)
    assert second.expense_status == ExpenseStatus.APPROVED
    assert second.approval_percentage == 66.67

    detail = await expense_service.get_expense_detail(db, expense.id)
    moot = [v.approval.approver_id for v in detail.approvals if v.is_moot]
    assert moot == [org.m2.id]


@pytest.mark.asyncio
@pytest.mark.parametrize("order", list(permutations(range(3))))
async def test_parallel_outcome_independent_of_order(db, org, order):
    approvers = [org.m1, org.m2, org.m3]
    await _rule(db, org.emp, approvers, min_pct=100)
    expense = await _submitted(db, org.emp)

    statuses = []
    for idx in order:
        outcome = await _decide(db, expense, approvers[idx], APPROVED)
        statuses.append(outcome.expense_status)

    assert statuses == [ExpenseStatus.SUBMITTED, ExpenseStatus.SUBMITTED, ExpenseStatus.APPROVED]


@pytest.mark.asyncio
async def test_evaluation_uses_rule_snapshot_taken_at_submission(db, org):
    definition = await _rule(db, org.emp, [org.m1, org.m2], min_pct=100)
    expense = await _submitted(db, org.emp)

    definition.rule.min_approval_percentage = 50
    await db.commit()

    outcome = await _decide(db, expense, org.m1, APPROVED)
    assert outcome.expense_status == ExpenseStatus.SUBMITTED


# ---------------------------------------------------------------------------
# Sequential ordering
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_sequential_later_approver_gets_not_your_turn(db, org):
    await _rule(db, org.emp, [org.m1, org.m2, org.m3], is_sequential=True)
    expense = await _submitted(db, org.emp)

    for early in (org.m2, org.m3):
        with pytest.raises(NotYourTurn):
            await expense_service.decide_approval(db, expense.id, early.id, APPROVED)

    await _decide(db, expense, org.m1, APPROVED)
    with pytest.raises(NotYourTurn):
        await expense_service.decide_approval(db, expense.id, org.m3.id, APPROVED)

    await _decide(db, expense, org.m2, APPROVED)
    outcome = await _decide(db, expense, org.m3, APPROVED)
    assert outcome.expense_status == ExpenseStatus.APPROVED

    decided = sorted(
        await approval_service.get_approvals(db, expense.id), key=lambda a: a.decided_at
    )
    assert [a.sequence for a in decided] == [1, 2, 3]


@pytest.mark.asyncio
async def test_pending_list_shows_only_actionable_sequential_step(db, org):
    await _rule(db, org.emp, [org.m2, org.m3], is_sequential=True)
    expense = await _submitted(db, org.emp)

    assert len(await approval_service.get_pending_approvals_for(db, org.m2.id)) == 1
    assert await approval_service.get_pending_approvals_for(db, org.m3.id) == []


@pytest.mark.asyncio
async def test_pending_list_shows_every_parallel_approver(db, org):
    await _rule(db, org.emp, [org.m2, org.m3])
    expense = await _submitted(db, org.emp)

    for approver in (org.m2, org.m3):
        pending = await approval_service.get_pending_approvals_for(db, approver.id)
        assert [p.expense.id for p in pending] == [expense.id]
        assert pending[0].submitter_name == org.emp.name


# ---------------------------------------------------------------------------
# Guards
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_submit_twice_creates_no_duplicate_rows(db, org):
    expense = await _submitted(db, org.emp)

    with pytest.raises(InvalidStateTransition) as exc_info:
        await expense_service.submit_expense(db, expense.id)

    assert exc_info.value.current_status == "Submitted"
    assert await _approval_count(db, expense.id) == 1


@pytest.mark.asyncio
async def test_routing_twice_raises_already_routed(db, org):
    expense = await _submitted(db, org.emp)
    rule = await rule_service.resolve_rule(db, org.emp.id)

    with pytest.raises(AlreadyRouted):
        await approval_service.create_approval_workflow(db, expense, rule)
    assert await _approval_count(db, expense.id) == 1


@pytest.mark.asyncio
async def test_no_rule_and_no_manager_keeps_draft(db, org):
    expense = await _draft(db, org.orphan)

    with pytest.raises(NoApproverConfigured):
        await expense_service.submit_expense(db, expense.id)

    reloaded = await expense_service.get_expense(db, expense.id)
    assert reloaded.status == ExpenseStatus.DRAFT.value
    assert await _approval_count(db, expense.id) == 0


@pytest.mark.asyncio
async def test_manager_from_another_company_is_not_an_approver(db, org, other_org):
    org.orphan.manager_id = other_org.manager.id
    await db.commit()
    expense = await _draft(db, org.orphan)

    with pytest.raises(NoApproverConfigured):
        await expense_service.submit_expense(db, expense.id)

    assert expense.status == ExpenseStatus.DRAFT.value
    assert await _approval_count(db, expense.id) == 0


@pytest.mark.asyncio
async def test_failed_routing_rolls_back_every_approval_row(db, org):
    await _rule(db, org.emp, [org.m1, org.m2, org.m3])
    expense = await _draft(db, org.emp)
    expense_id = expense.id

    with patch(
        "api.services.approval_service.append_history",
        new=AsyncMock(side_effect=RuntimeError("history store unavailable")),
    ):
        with pytest.raises(RuntimeError):
            await expense_service.submit_expense(db, expense_id)
    await db.rollback()

    assert await _approval_count(db, expense_id) == 0
    assert await get_history(db, expense_id) == []


@pytest.mark.asyncio
async def test_double_decision_raises_already_decided(db, org):
    await _rule(db, org.emp, [org.m1, org.m2])
    expense = await _submitted(db, org.emp)
    await _decide(db, expense, org.m1, APPROVED)

    with pytest.raises(AlreadyDecided):
        await expense_service.decide_approval(db, expense.id, org.m1.id, REJECTED)


@pytest.mark.asyncio
async def test_outsider_decision_raises_approval_not_found(db, org):
    expense = await _submitted(db, org.emp)
    with pytest.raises(ApprovalNotFound):
        await expense_service.decide_approval(db, expense.id, org.m3.id, APPROVED)


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_second_rule_for_same_user_is_duplicate(db, org):
    await _rule(db, org.emp, [org.m2])
    with pytest.raises(DuplicateRule):
        await _rule(db, org.emp, [org.m3])


@pytest.mark.asyncio
async def test_rule_lookup_returns_ordered_approvers(db, org):
    await _rule(db, org.orphan, [org.m3, org.admin, org.m1], is_sequential=True, min_pct=60)

    definition = await rule_service.get_rule_for_user(db, org.orphan.id)
    assert definition.rule.name == f"Rule for {org.orphan.name}"
    assert [(a.approver_user_id, a.sequence) for a in definition.approvers] == [
        (org.m3.id, 1), (org.admin.id, 2), (org.m1.id, 3),
    ]
    assert await rule_service.get_rule_for_user(db, org.emp.id) is None


@pytest.mark.asyncio
async def test_rule_approvers_must_share_company(db, org, other_org):
    with pytest.raises(ValidationError):
        await _rule(db, org.emp, [other_org.manager])


@pytest.mark.asyncio
async def test_rule_target_scoped_to_caller_company(db, org, other_org):
    with pytest.raises(UserNotFound):
        await rule_service.create_rule(
            db, "x", org.emp.id, False, 100, [org.m1.id],
            company_id=other_org.company.id,
        )


# ---------------------------------------------------------------------------
# Creation and history
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_create_converts_to_company_currency(db, org):
    expense = await _draft(db, org.emp, amount="100.00", currency="eur")

    assert expense.currency == "EUR"
    assert expense.base_currency == "USD"
    assert expense.converted_amount == Decimal("118.00")
    assert expense.status == ExpenseStatus.DRAFT.value


@pytest.mark.asyncio
async def test_create_without_draft_submits_immediately(db, org):
    expense = await expense_service.create_expense(
        db, org.emp.id, "Taxi", Decimal("30.00"), "USD", date(2024, 3, 2), is_draft=False,
    )
    await db.commit()

    assert expense.status == ExpenseStatus.SUBMITTED.value
    assert await _approval_count(db, expense.id) == 1


@pytest.mark.asyncio
async def test_history_records_each_step_in_order(db, org):
    await _rule(db, org.emp, [org.m1, org.m2], is_sequential=True)
    expense = await _submitted(db, org.emp)
    await _decide(db, expense, org.m1, APPROVED, "fine")
    await _decide(db, expense, org.m2, REJECTED, "over budget")

    history = await get_history(db, expense.id)
    assert [h.action for h in history] == [
        HistoryAction.SUBMITTED.value,
        HistoryAction.APPROVED.value,
        HistoryAction.REJECTED.value,
    ]
    assert [h.performed_by for h in history] == [org.emp.id, org.m1.id, org.m2.id]
    assert history[2].comments == "over budget"


@pytest.mark.asyncio
async def test_list_expenses_filters_by_status(db, org):
    await _submitted(db, org.emp)
    await _draft(db, org.emp)

    items, total = await expense_service.list_expenses_for_user(db, org.emp.id)
    assert total == 2
    drafts, draft_total = await expense_service.list_expenses_for_user(
        db, org.emp.id, status=ExpenseStatus.DRAFT
    )
    assert draft_total == 1
    assert drafts[0].status == "Draft"

    result = await db.execute(select(func.count(Expense.id)))
    assert result.scalar() == 2
