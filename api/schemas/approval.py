from typing import List, Literal, Optional
from pydantic import BaseModel, Field

from api.schemas.expense import ExpenseResponse


class DecisionRequest(BaseModel):
    decision: Literal["Approved", "Rejected"]
    comments: Optional[str] = Field(None, max_length=1000)


class DecisionResponse(BaseModel):
    expense_id: int
    approval_id: int
    expense_status: str
    is_terminal: bool
    approval_percentage: float
    next_approver_ids: List[int] = []


class PendingApprovalResponse(BaseModel):
    approval_id: int
    sequence: int
    submitter_name: Optional[str] = None
    expense: ExpenseResponse
