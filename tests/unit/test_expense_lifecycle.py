"""
Unit tests for the expense state machine in api/services/expense_service.py
"""

from types import SimpleNamespace

import pytest

from api.models.enums import ExpenseStatus
from api.services.errors import InvalidStateTransition
from api.services.expense_service import ALLOWED_TRANSITIONS, transition


def _expense(status: ExpenseStatus):
    return SimpleNamespace(id=1, status=status.value, submitted_at=None, decided_at=None)


def test_submit_stamps_submitted_at():
    e = _expense(ExpenseStatus.DRAFT)
    transition(e, ExpenseStatus.SUBMITTED)
    assert e.status == "Submitted"
    assert e.submitted_at is not None
    assert e.decided_at is None


@pytest.mark.parametrize("target", [ExpenseStatus.APPROVED, ExpenseStatus.REJECTED])
def test_terminal_transition_stamps_decided_at(target):
    e = _expense(ExpenseStatus.SUBMITTED)
    transition(e, target)
    assert e.status == target.value
    assert e.decided_at is not None


@pytest.mark.parametrize(
    "current,target",
    [
        (ExpenseStatus.DRAFT, ExpenseStatus.APPROVED),
        (ExpenseStatus.DRAFT, ExpenseStatus.REJECTED),
        (ExpenseStatus.SUBMITTED, ExpenseStatus.DRAFT),
        (ExpenseStatus.SUBMITTED, ExpenseStatus.SUBMITTED),
        (ExpenseStatus.APPROVED, ExpenseStatus.REJECTED),
        (ExpenseStatus.REJECTED, ExpenseStatus.APPROVED),
        (ExpenseStatus.APPROVED, ExpenseStatus.DRAFT),
    ],
)
def test_illegal_transitions_raise(current, target):
    e = _expense(current)
    with pytest.raises(InvalidStateTransition) as exc_info:
        transition(e, target)
    assert exc_info.value.current_status == current.value
    assert e.status == current.value


def test_terminal_states_have_no_exits():
    assert all(
        not ALLOWED_TRANSITIONS[s] for s in ExpenseStatus if s.is_terminal
    )
