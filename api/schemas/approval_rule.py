from typing import List, Optional
from pydantic import BaseModel, Field


class ApprovalRuleCreate(BaseModel):
    name: Optional[str] = Field(None, max_length=200)
    applies_to_user_id: int
    is_sequential: bool = False
    min_approval_percentage: int = Field(100, ge=1, le=100)
    # Ordered; position defines sequence starting at 1
    approvers: List[int] = Field(..., min_length=1, max_length=50)


class RuleApproverResponse(BaseModel):
    approver_user_id: int
    sequence: int

    model_config = {"from_attributes": True}


class ApprovalRuleResponse(BaseModel):
    id: int
    name: str
    applies_to_user_id: int
    is_sequential: bool
    min_approval_percentage: int
    approvers: List[RuleApproverResponse] = []
    created_at: str
