from fastapi import Depends, HTTPException, status

from api.middleware.auth import get_current_user
from api.models.enums import Role


def require_roles(*allowed_roles: Role):
    """
    FastAPI dependency factory for role-based access control.

    Usage:
        @router.post("/approval-rules")
        async def create_rule(
            current_user: dict = Depends(get_current_user),
            _auth: None = Depends(require_roles(Role.ADMIN)),
        ):
    """
    async def check_role(current_user: dict = Depends(get_current_user)):
        if current_user["role"] not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "error": {
                        "code": "INSUFFICIENT_PERMISSIONS",
                        "message": (
                            f"Role '{current_user['role'].value}' cannot perform this action. "
                            f"Required: {[r.value for r in allowed_roles]}"
                        ),
                    }
                },
            )
        return None

    return check_role


def check_self_approval(approver_id: int, submitter_id: int):
    """Prevent approving or rejecting your own expense."""
    if approver_id == submitter_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": {
                    "code": "APPROVAL_SELF_APPROVE",
                    "message": "You cannot decide on your own expense",
                }
            },
        )


def check_same_company(current_user: dict, company_id: int):
    """Every entity is scoped to the caller's company."""
    if current_user["company_id"] != company_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": {
                    "code": "INSUFFICIENT_PERMISSIONS",
                    "message": "You can only access entities within your company",
                }
            },
        )
