from typing import Dict, Optional
from pydantic import BaseModel


class DashboardResponse(BaseModel):
    role: str
    my_expenses: Dict[str, int]
    pending_approvals: Optional[int] = None
    company_expenses: Optional[Dict[str, int]] = None
    approval_rules: Optional[int] = None
    users: Optional[int] = None
