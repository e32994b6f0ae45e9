"""Reports router: dashboard summary."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.core.clock import Clock, get_clock
from app.core.config import settings
from app.db.document_store import LedgerStore, get_store

from .schemas import DashboardSummary
from . import service

router = APIRouter(prefix="/api/v1/reports", tags=["reports"])


@router.get("/dashboard", response_model=DashboardSummary)
async def dashboard_summary(
    sweep_overdue: Optional[bool] = Query(None, description="Defaults to SWEEP_OVERDUE_ON_DASHBOARD"),
    store: LedgerStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> DashboardSummary:
    if sweep_overdue is None:
        sweep_overdue = settings.sweep_overdue_on_dashboard
    return await service.get_dashboard_summary(store, now=clock, sweep_overdue=sweep_overdue)
