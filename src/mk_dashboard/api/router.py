# src/mk_dashboard/api/router.py
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_common.database import get_db_session
from src.mk_common.identity import Identity
from src.mk_dashboard.application.schemas import DashboardStatsResponse
from src.mk_dashboard.application.service import DashboardService
from src.mk_gateway.auth.dependencies import get_current_identity

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


def get_dashboard_service() -> DashboardService:
    return DashboardService()


@router.get("/stats", response_model=DashboardStatsResponse)
async def get_stats(
    identity: Annotated[Identity, Depends(get_current_identity)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    svc: Annotated[DashboardService, Depends(get_dashboard_service)],
) -> DashboardStatsResponse:
    return await svc.stats(identity, db)
