"""Dashboard summary: the read-mostly view rendered on admin and faculty home screens."""

import logging

from app.api.v1.attendance import service as attendance_service
from app.api.v1.attendance.schemas import ALL_CLASSES, DailyAttendanceStat
from app.api.v1.fees import service as fee_service
from app.core.clock import Clock, as_utc, utc_now
from app.db.document_store import LedgerStore

from . import engine
from .schemas import DashboardSummary

logger = logging.getLogger(__name__)


async def get_dashboard_summary(
    store: LedgerStore,
    now: Clock = utc_now,
    sweep_overdue: bool = True,
) -> DashboardSummary:
    """Fee stats plus today's attendance across all classes.

    The overdue sweep runs first when ``sweep_overdue`` is set, so the fee
    counts reflect fees that fell due since the last load.
    """
    stamp = now()
    overdue_updated = await fee_service.update_overdue_fees(store, now) if sweep_overdue else 0
    fee_stats = await fee_service.get_fee_stats(store)

    today = as_utc(stamp).date()
    records = await attendance_service.get_class_attendance(store, ALL_CLASSES, today)
    daily = engine.build_daily_stats(records)
    today_attendance = daily[0] if daily else DailyAttendanceStat(date=today.isoformat())

    logger.debug("Dashboard summary built (%d fees, %d marks today)", fee_stats.total_fees, today_attendance.total)
    return DashboardSummary(
        generated_at=stamp,
        overdue_updated=overdue_updated,
        fee_stats=fee_stats,
        today_attendance=today_attendance,
    )
