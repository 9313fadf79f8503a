from typing import Optional
from pydantic import BaseModel


class UserResponse(BaseModel):
    id: int
    email: str
    name: str
    role: str
    manager_id: Optional[int] = None
    created_at: str

    model_config = {"from_attributes": True}


class ApproverOption(BaseModel):
    id: int
    name: str
    email: str
    role: str
