from datetime import date
from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, Field


class ExpenseCreate(BaseModel):
    description: str = Field(..., min_length=1, max_length=1000)
    amount: Decimal = Field(..., gt=0, max_digits=14, decimal_places=2)
    currency: str = Field(..., min_length=3, max_length=3)
    category: Optional[str] = Field(None, max_length=100)
    expense_date: date
    receipt_image: Optional[str] = Field(None, max_length=500)
    is_draft: bool = True


class ApprovalResponse(BaseModel):
    id: int
    expense_id: int
    approver_id: int
    sequence: int
    status: str
    comments: Optional[str] = None
    is_actionable: bool = False
    is_moot: bool = False
    decided_at: Optional[str] = None
    created_at: str

    model_config = {"from_attributes": True}


class ExpenseResponse(BaseModel):
    id: int
    submitter_id: int
    description: str
    amount: Decimal
    currency: str
    converted_amount: Optional[Decimal] = None
    base_currency: Optional[str] = None
    category: Optional[str] = None
    expense_date: str
    receipt_image: Optional[str] = None
    status: str
    approval_rule_id: Optional[int] = None
    is_sequential: Optional[bool] = None
    min_approval_percentage: Optional[int] = None
    created_at: str
    submitted_at: Optional[str] = None
    decided_at: Optional[str] = None

    model_config = {"from_attributes": True}


class ExpenseDetailResponse(ExpenseResponse):
    approvals: List[ApprovalResponse] = []


class HistoryEntryResponse(BaseModel):
    id: int
    expense_id: int
    action: str
    performed_by: Optional[int] = None
    comments: Optional[str] = None
    created_at: str

    model_config = {"from_attributes": True}


class SubmitExpenseResponse(BaseModel):
    status: str
    expense: ExpenseResponse
    history_entry: HistoryEntryResponse
