"""
Unit tests for the pure derivations in api/services/approval_service.py

Tests: evaluate_quorum, approval_percentage, actionable_approvals, is_moot.
"""

from itertools import count, permutations
from types import SimpleNamespace

import pytest

from api.models.enums import ApprovalStatus, ExpenseStatus
from api.services.approval_service import (
    actionable_approvals,
    approval_percentage,
    evaluate_quorum,
    is_moot,
)

_ids = count(1)

P = ApprovalStatus.PENDING.value
A = ApprovalStatus.APPROVED.value
R = ApprovalStatus.REJECTED.value


def _ledger(*statuses):
    """Approval rows with sequences 1..n in the given statuses."""
    return [
        SimpleNamespace(id=next(_ids), approver_id=100 + seq, sequence=seq, status=s)
        for seq, s in enumerate(statuses, start=1)
    ]


# ---------------------------------------------------------------------------
# evaluate_quorum
# ---------------------------------------------------------------------------


def test_sixty_percent_of_three_needs_two_approvals():
    assert evaluate_quorum(_ledger(A, P, P), 60) == ExpenseStatus.SUBMITTED
    assert evaluate_quorum(_ledger(A, A, P), 60) == ExpenseStatus.APPROVED


def test_full_quorum_needs_every_approval():
    assert evaluate_quorum(_ledger(A, A, P), 100) == ExpenseStatus.SUBMITTED
    assert evaluate_quorum(_ledger(A, A, A), 100) == ExpenseStatus.APPROVED


def test_two_of_three_does_not_reach_sixty_seven_percent():
    # 66.67% < 67%; integer comparison must not round up
    assert evaluate_quorum(_ledger(A, A, P), 67) == ExpenseStatus.SUBMITTED
    assert evaluate_quorum(_ledger(A, A, P), 66) == ExpenseStatus.APPROVED


def test_any_rejection_rejects_even_when_quorum_met():
    assert evaluate_quorum(_ledger(A, A, R), 60) == ExpenseStatus.REJECTED
    assert evaluate_quorum(_ledger(R, P, P), 1) == ExpenseStatus.REJECTED


def test_single_approver_fallback():
    assert evaluate_quorum(_ledger(P), 100) == ExpenseStatus.SUBMITTED
    assert evaluate_quorum(_ledger(A), 100) == ExpenseStatus.APPROVED


def test_empty_ledger_stays_submitted():
    assert evaluate_quorum([], 100) == ExpenseStatus.SUBMITTED


@pytest.mark.parametrize("decisions", [(A, A, A), (A, A, R), (A, P, R), (A, A, P)])
def test_outcome_independent_of_decision_order(decisions):
    outcomes = {
        evaluate_quorum(_ledger(*order), 60) for order in permutations(decisions)
    }
    assert len(outcomes) == 1


def test_approval_percentage():
    assert approval_percentage([]) == 0.0
    assert approval_percentage(_ledger(A, P)) == 50.0
    assert round(approval_percentage(_ledger(A, A, P)), 2) == 66.67


# ---------------------------------------------------------------------------
# actionable_approvals / is_moot
# ---------------------------------------------------------------------------


def test_parallel_every_pending_row_is_actionable():
    ledger = _ledger(A, P, P)
    actionable = actionable_approvals(ledger, False, ExpenseStatus.SUBMITTED.value)
    assert [a.sequence for a in actionable] == [2, 3]


def test_sequential_only_head_is_actionable():
    ledger = _ledger(P, P, P)
    actionable = actionable_approvals(ledger, True, ExpenseStatus.SUBMITTED.value)
    assert [a.sequence for a in actionable] == [1]


def test_sequential_advances_after_approval():
    ledger = _ledger(A, P, P)
    actionable = actionable_approvals(ledger, True, ExpenseStatus.SUBMITTED.value)
    assert [a.sequence for a in actionable] == [2]


def test_sequential_order_taken_from_sequence_not_list_position():
    ledger = list(reversed(_ledger(A, P, P)))
    actionable = actionable_approvals(ledger, True, ExpenseStatus.SUBMITTED.value)
    assert [a.sequence for a in actionable] == [2]


@pytest.mark.parametrize(
    "expense_status",
    [ExpenseStatus.DRAFT.value, ExpenseStatus.APPROVED.value, ExpenseStatus.REJECTED.value],
)
def test_nothing_actionable_unless_submitted(expense_status):
    assert actionable_approvals(_ledger(P, P), False, expense_status) == []
    assert actionable_approvals(_ledger(P, P), True, expense_status) == []


def test_pending_rows_on_terminal_expense_are_moot():
    pending, approved = _ledger(P, A)
    assert is_moot(pending, ExpenseStatus.REJECTED.value)
    assert is_moot(pending, ExpenseStatus.APPROVED.value)
    assert not is_moot(pending, ExpenseStatus.SUBMITTED.value)
    assert not is_moot(approved, ExpenseStatus.APPROVED.value)
