"""Attendance schemas."""

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.core.enums import AttendanceStatus

ALL_CLASSES = "all"


class AttendanceEntry(BaseModel):
    """One student's mark inside a roster submission."""

    student_id: str = Field(..., min_length=1)
    status: AttendanceStatus


class AttendanceMarkRequest(BaseModel):
    """Roster submission for one class on one date. Re-submitting overwrites."""

    class_id: str = Field(..., min_length=1)
    date: date
    records: List[AttendanceEntry]
    marked_by: str = Field(..., min_length=1)


class AttendanceUpdate(BaseModel):
    """Student and date are fixed by the record id and cannot be patched."""

    model_config = ConfigDict(extra="forbid")

    status: Optional[AttendanceStatus] = None
    class_id: Optional[str] = Field(None, min_length=1)
    marked_by: Optional[str] = Field(None, min_length=1)

    @field_validator("status", "class_id", "marked_by", mode="before")
    @classmethod
    def _not_null(cls, value):
        if value is None:
            raise ValueError("may be omitted but not null")
        return value


class AttendanceRecord(BaseModel):
    id: str
    student_id: str
    date: date
    status: AttendanceStatus
    class_id: str
    marked_by: str
    marked_at: datetime
    updated_at: datetime


class AttendanceStats(BaseModel):
    total_days: int = 0
    present_days: int = 0
    absent_days: int = 0
    late_days: int = 0
    attendance_percentage: int = 0


class DailyAttendanceStat(BaseModel):
    date: str  # YYYY-MM-DD
    present: int = 0
    absent: int = 0
    late: int = 0
    total: int = 0
    percentage: int = 0


class ClassAttendanceReport(BaseModel):
    total_students: int = 0
    average_attendance: int = 0
    daily_stats: List[DailyAttendanceStat] = Field(default_factory=list)


class MonthlyAttendance(BaseModel):
    """Month bucket. ``attended_days`` counts a late mark as a full day; ``percentage`` weights it as half."""

    month: str  # YYYY-MM
    present_days: int = 0
    late_days: int = 0
    attended_days: int = 0
    total_days: int = 0
    percentage: int = 0


class StudentAttendanceReport(BaseModel):
    stats: AttendanceStats = Field(default_factory=AttendanceStats)
    records: List[AttendanceRecord] = Field(default_factory=list)
    monthly_breakdown: List[MonthlyAttendance] = Field(default_factory=list)
