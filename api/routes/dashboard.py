from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from api.database import get_db
from api.middleware.auth import get_current_user
from api.schemas.dashboard import DashboardResponse
from api.services.dashboard_service import capability_for

router = APIRouter()


@router.get("", response_model=DashboardResponse)
async def get_dashboard(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    capability = capability_for(current_user["role"])
    return await capability.build(db, current_user)
