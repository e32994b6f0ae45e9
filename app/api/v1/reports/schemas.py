"""Reports schemas."""

from datetime import datetime

from pydantic import BaseModel

from app.api.v1.attendance.schemas import DailyAttendanceStat
from app.api.v1.fees.schemas import FeeStats


class DashboardSummary(BaseModel):
    generated_at: datetime
    overdue_updated: int
    fee_stats: FeeStats
    today_attendance: DailyAttendanceStat
