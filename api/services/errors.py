"""
Typed failures of the approval workflow.

Services raise these; api.main renders them into the standard
{"error": {"code": ..., "message": ...}} envelope with the matching status.
"""

from typing import Any, Optional

from fastapi import status as http_status


class ApprovalWorkflowError(Exception):
    code = "APPROVAL_WORKFLOW_ERROR"
    status_code = http_status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body = {"code": self.code, "message": self.message}
        body.update(self.details)
        return body


class NoApproverConfigured(ApprovalWorkflowError):
    code = "NO_APPROVER_CONFIGURED"
    status_code = http_status.HTTP_422_UNPROCESSABLE_ENTITY


class AlreadyRouted(ApprovalWorkflowError):
    code = "EXPENSE_ALREADY_ROUTED"
    status_code = http_status.HTTP_409_CONFLICT


class InvalidStateTransition(ApprovalWorkflowError):
    code = "INVALID_STATE_TRANSITION"
    status_code = http_status.HTTP_409_CONFLICT

    def __init__(self, message: str, current_status: Optional[str] = None):
        super().__init__(message, current_status=current_status)
        self.current_status = current_status


class ApprovalNotFound(ApprovalWorkflowError):
    code = "APPROVAL_NOT_FOUND"
    status_code = http_status.HTTP_404_NOT_FOUND


class NotYourTurn(ApprovalWorkflowError):
    code = "APPROVAL_NOT_YOUR_TURN"
    status_code = http_status.HTTP_403_FORBIDDEN


class AlreadyDecided(ApprovalWorkflowError):
    code = "APPROVAL_ALREADY_DECIDED"
    status_code = http_status.HTTP_409_CONFLICT


class DuplicateRule(ApprovalWorkflowError):
    code = "APPROVAL_RULE_DUPLICATE"
    status_code = http_status.HTTP_409_CONFLICT


class ValidationError(ApprovalWorkflowError):
    code = "VALIDATION_ERROR"
    status_code = http_status.HTTP_422_UNPROCESSABLE_ENTITY


class ExpenseNotFound(ApprovalWorkflowError):
    code = "EXPENSE_NOT_FOUND"
    status_code = http_status.HTTP_404_NOT_FOUND


class UserNotFound(ApprovalWorkflowError):
    code = "USER_NOT_FOUND"
    status_code = http_status.HTTP_404_NOT_FOUND
