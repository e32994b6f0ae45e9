"""Reporting engine: pure aggregation over fee and attendance records.

Nothing here touches the store. Percentages are rounded half-up and a zero
denominator always yields 0.
"""

from collections import Counter
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Dict, Hashable, Iterable, List, Sequence, TypeVar, Union

from app.api.v1.attendance.schemas import (
    AttendanceRecord,
    AttendanceStats,
    ClassAttendanceReport,
    DailyAttendanceStat,
    MonthlyAttendance,
)
from app.api.v1.fees.schemas import (
    CategoryBreakdown,
    FeeReport,
    FeeStats,
    MonthlyCollection,
    PaidFee,
    StudentFeeStats,
)
from app.core.clock import as_utc
from app.core.enums import AttendanceStatus, FeeStatus

T = TypeVar("T")
K = TypeVar("K", bound=Hashable)

Number = Union[int, Decimal]

_ONE = Decimal("1")


# ----- Arithmetic -----
def round_half_up(value: Decimal) -> int:
    return int(Decimal(value).quantize(_ONE, rounding=ROUND_HALF_UP))


def percentage(numerator: Number, denominator: Number) -> int:
    """numerator / denominator as a whole percentage; 0 for an empty denominator."""
    if not denominator:
        return 0
    return round_half_up(Decimal(numerator) * 100 / Decimal(denominator))


def weighted_attendance_percentage(present: int, late: int, total: int) -> int:
    """A late mark counts as half a present day."""
    return percentage(Decimal(present) + Decimal(late) / 2, total)


# ----- Bucketing -----
def day_key(value: Union[date, str]) -> str:
    if isinstance(value, datetime):
        return as_utc(value).date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)[:10]


def month_key(value: Union[date, str]) -> str:
    return day_key(value)[:7]


def group_by(items: Iterable[T], key: Callable[[T], K]) -> Dict[K, List[T]]:
    groups: Dict[K, List[T]] = {}
    for item in items:
        groups.setdefault(key(item), []).append(item)
    return groups


# ----- Fees -----
def _collected(fee: PaidFee) -> Decimal:
    return fee.paid_amount or fee.amount


def summarize_fees(fees: Sequence) -> FeeStats:
    counts = Counter(fee.status for fee in fees)
    total = len(fees)
    paid = counts[FeeStatus.PAID.value]
    return FeeStats(
        total_fees=total,
        paid_fees=paid,
        pending_fees=counts[FeeStatus.PENDING.value],
        overdue_fees=counts[FeeStatus.OVERDUE.value],
        collection_percentage=percentage(paid, total),
    )


def summarize_student_fees(fees: Sequence) -> StudentFeeStats:
    stats = StudentFeeStats(fees=list(fees))
    for fee in fees:
        stats.total_amount += fee.amount
        if isinstance(fee, PaidFee):
            stats.paid_amount += _collected(fee)
        elif fee.status == FeeStatus.OVERDUE.value:
            stats.overdue_amount += fee.amount
        else:
            stats.pending_amount += fee.amount
    return stats


def build_fee_report(fees: Sequence) -> FeeReport:
    report = FeeReport()
    monthly: Dict[str, Decimal] = {}
    for fee in fees:
        bucket = report.category_breakdown.setdefault(fee.category.value, CategoryBreakdown())
        bucket.count += 1
        if isinstance(fee, PaidFee):
            amount = _collected(fee)
            report.total_collection += amount
            bucket.collected += amount
            key = month_key(fee.paid_at)
            monthly[key] = monthly.get(key, Decimal("0")) + amount
        else:
            report.total_pending += fee.amount
            bucket.pending += fee.amount
    report.monthly_collection = [
        MonthlyCollection(month=month, amount=amount) for month, amount in sorted(monthly.items())
    ]
    return report


# ----- Attendance -----
def _status_counts(records: Iterable[AttendanceRecord]) -> Counter:
    return Counter(AttendanceStatus(r.status) for r in records)


def summarize_attendance(records: Sequence[AttendanceRecord]) -> AttendanceStats:
    counts = _status_counts(records)
    total = len(records)
    present = counts[AttendanceStatus.PRESENT]
    late = counts[AttendanceStatus.LATE]
    return AttendanceStats(
        total_days=total,
        present_days=present,
        absent_days=counts[AttendanceStatus.ABSENT],
        late_days=late,
        attendance_percentage=weighted_attendance_percentage(present, late, total),
    )


def build_daily_stats(records: Sequence[AttendanceRecord]) -> List[DailyAttendanceStat]:
    daily = []
    for key, day_records in group_by(records, lambda r: day_key(r.date)).items():
        counts = _status_counts(day_records)
        present = counts[AttendanceStatus.PRESENT]
        late = counts[AttendanceStatus.LATE]
        daily.append(
            DailyAttendanceStat(
                date=key,
                present=present,
                absent=counts[AttendanceStatus.ABSENT],
                late=late,
                total=len(day_records),
                percentage=weighted_attendance_percentage(present, late, len(day_records)),
            )
        )
    daily.sort(key=lambda stat: stat.date)
    return daily


def build_class_report(records: Sequence[AttendanceRecord]) -> ClassAttendanceReport:
    daily = build_daily_stats(records)
    if not daily:
        return ClassAttendanceReport()
    # No roster is held here; the largest day stands in for class size.
    total_students = max(stat.total for stat in daily)
    average = round_half_up(Decimal(sum(stat.percentage for stat in daily)) / len(daily))
    return ClassAttendanceReport(
        total_students=total_students,
        average_attendance=average,
        daily_stats=daily,
    )


def build_monthly_breakdown(records: Sequence[AttendanceRecord]) -> List[MonthlyAttendance]:
    months = []
    for key, month_records in group_by(records, lambda r: month_key(r.date)).items():
        counts = _status_counts(month_records)
        present = counts[AttendanceStatus.PRESENT]
        late = counts[AttendanceStatus.LATE]
        months.append(
            MonthlyAttendance(
                month=key,
                present_days=present,
                late_days=late,
                attended_days=present + late,
                total_days=len(month_records),
                percentage=weighted_attendance_percentage(present, late, len(month_records)),
            )
        )
    months.sort(key=lambda m: m.month)
    return months
