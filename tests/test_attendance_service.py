"""Attendance ledger: roster submission, overwrites, stats and reports."""

from datetime import date, timedelta

import pytest

from app.api.v1.attendance import service
from app.api.v1.attendance.schemas import AttendanceEntry
from app.core.clock import fixed_clock
from app.core.enums import AttendanceStatus
from app.core.exceptions import ValidationError
from app.db.document_store import SqlDocumentStore

from conftest import NOW


async def _mark(store, class_id, day, marks, marked_by="F1", clock=None):
    records = [{"student_id": s, "status": st} for s, st in marks]
    return await service.mark_attendance(store, class_id, day, records, marked_by, now=clock or fixed_clock(NOW))


@pytest.mark.asyncio
async def test_mark_attendance_writes_one_record_per_student(store: SqlDocumentStore, clock) -> None:
    result = await _mark(store, "X", "2025-09-01", [("S1", "present"), ("S2", "absent"), ("S3", "late")])
    assert result.success is True
    assert result.count == 3

    records = await service.get_class_attendance(store, "X", "2025-09-01")
    assert {r.id for r in records} == {"S1_2025-09-01", "S2_2025-09-01", "S3_2025-09-01"}
    by_student = {r.student_id: r for r in records}
    assert by_student["S3"].status == AttendanceStatus.LATE
    assert by_student["S1"].marked_by == "F1"
    assert by_student["S1"].marked_at == NOW
    assert by_student["S1"].date == date(2025, 9, 1)


@pytest.mark.asyncio
async def test_resubmission_overwrites_instead_of_duplicating(store: SqlDocumentStore) -> None:
    await _mark(store, "X", "2025-09-01", [("S1", "present")])
    corrected_at = NOW + timedelta(hours=2)
    await _mark(store, "X", "2025-09-01", [("S1", "absent")], clock=fixed_clock(corrected_at))

    records = await service.get_student_attendance(store, "S1")
    assert len(records) == 1
    assert records[0].id == "S1_2025-09-01"
    assert records[0].status == AttendanceStatus.ABSENT
    assert records[0].updated_at == corrected_at


@pytest.mark.asyncio
async def test_duplicate_student_in_one_submission_last_wins(store: SqlDocumentStore) -> None:
    result = await _mark(store, "X", "2025-09-01", [("S1", "present"), ("S1", "late")])
    assert result.count == 1
    records = await service.get_student_attendance(store, "S1")
    assert [r.status for r in records] == [AttendanceStatus.LATE]


@pytest.mark.asyncio
async def test_mark_attendance_accepts_entry_models(store: SqlDocumentStore, clock) -> None:
    entries = [AttendanceEntry(student_id="S1", status=AttendanceStatus.PRESENT)]
    result = await service.mark_attendance(store, "X", date(2025, 9, 1), entries, "F1", now=clock)
    assert result.success is True


@pytest.mark.asyncio
async def test_mark_attendance_rejects_bad_input(store: SqlDocumentStore, clock) -> None:
    with pytest.raises(ValidationError):
        await service.mark_attendance(store, "X", "09/01/2025", [], "F1", now=clock)
    with pytest.raises(ValidationError):
        await service.mark_attendance(store, "X", "2025-09-01", [{"student_id": "S1", "status": "excused"}], "F1", now=clock)


@pytest.mark.asyncio
async def test_mark_attendance_reports_store_failure(failing_store) -> None:
    result = await _mark(failing_store, "X", "2025-09-01", [("S1", "present")])
    assert result.success is False
    assert result.error


@pytest.mark.asyncio
async def test_class_attendance_all_sentinel(store: SqlDocumentStore) -> None:
    await _mark(store, "X", "2025-09-01", [("S1", "present")])
    await _mark(store, "Y", "2025-09-01", [("S2", "absent")])
    await _mark(store, "X", "2025-09-02", [("S1", "late")])

    assert {r.student_id for r in await service.get_class_attendance(store, "X", "2025-09-01")} == {"S1"}
    assert {r.student_id for r in await service.get_class_attendance(store, "all", "2025-09-01")} == {"S1", "S2"}
    assert await service.get_class_attendance(store, "Z", "2025-09-01") == []


@pytest.mark.asyncio
async def test_student_attendance_range_needs_both_bounds(store: SqlDocumentStore) -> None:
    for day in ("2025-08-31", "2025-09-01", "2025-09-15", "2025-10-01"):
        await _mark(store, "X", day, [("S1", "present")])

    everything = await service.get_student_attendance(store, "S1")
    assert [r.date.isoformat() for r in everything] == ["2025-10-01", "2025-09-15", "2025-09-01", "2025-08-31"]

    september = await service.get_student_attendance(store, "S1", "2025-09-01", "2025-09-30")
    assert [r.date.isoformat() for r in september] == ["2025-09-15", "2025-09-01"]

    only_start = await service.get_student_attendance(store, "S1", "2025-09-01", None)
    assert len(only_start) == 4


@pytest.mark.asyncio
async def test_attendance_by_date_range(store: SqlDocumentStore) -> None:
    await _mark(store, "X", "2025-09-01", [("S1", "present")])
    await _mark(store, "Y", "2025-09-02", [("S2", "present")])
    await _mark(store, "X", "2025-09-20", [("S1", "present")])

    assert len(await service.get_attendance_by_date_range(store, "2025-09-01", "2025-09-10")) == 2
    assert len(await service.get_attendance_by_date_range(store, "2025-09-01", "2025-09-10", "all")) == 2
    only_x = await service.get_attendance_by_date_range(store, "2025-09-01", "2025-09-30", "X")
    assert [r.date.isoformat() for r in only_x] == ["2025-09-20", "2025-09-01"]


@pytest.mark.asyncio
async def test_weighted_attendance_percentage(store: SqlDocumentStore) -> None:
    start = date(2025, 9, 1)
    statuses = ["present"] * 8 + ["late", "absent"]
    for offset, status in enumerate(statuses):
        await _mark(store, "X", start + timedelta(days=offset), [("S1", status)])

    stats = await service.get_attendance_stats(store, "S1")
    assert stats.total_days == 10
    assert stats.present_days == 8
    assert stats.late_days == 1
    assert stats.absent_days == 1
    assert stats.attendance_percentage == 85


@pytest.mark.asyncio
async def test_attendance_stats_without_records(store: SqlDocumentStore) -> None:
    stats = await service.get_attendance_stats(store, "nobody")
    assert stats.total_days == 0
    assert stats.attendance_percentage == 0


@pytest.mark.asyncio
async def test_reads_degrade_on_store_failure(failing_store) -> None:
    assert await service.get_class_attendance(failing_store, "X", "2025-09-01") == []
    assert await service.get_student_attendance(failing_store, "S1") == []
    stats = await service.get_attendance_stats(failing_store, "S1")
    assert stats.attendance_percentage == 0
    report = await service.get_class_attendance_report(failing_store, "X", "2025-09-01", "2025-09-30")
    assert report.total_students == 0
    assert report.daily_stats == []


@pytest.mark.asyncio
async def test_update_and_delete_single_record(store: SqlDocumentStore) -> None:
    await _mark(store, "X", "2025-09-01", [("S1", "absent")])
    later = fixed_clock(NOW + timedelta(days=1))

    result = await service.update_attendance_record(store, "S1_2025-09-01", {"status": "late"}, now=later)
    assert result.success is True
    [record] = await service.get_student_attendance(store, "S1")
    assert record.status == AttendanceStatus.LATE
    assert record.updated_at == NOW + timedelta(days=1)
    assert record.marked_at == NOW

    assert (await service.update_attendance_record(store, "S9_2025-09-01", {"status": "late"})).success is False
    with pytest.raises(ValidationError):
        await service.update_attendance_record(store, "S1_2025-09-01", {"date": "2025-09-02"})

    assert (await service.delete_attendance_record(store, "S1_2025-09-01")).success is True
    assert await service.get_student_attendance(store, "S1") == []
    assert (await service.delete_attendance_record(store, "S1_2025-09-01")).success is True


@pytest.mark.asyncio
@pytest.mark.parametrize("updates", [{"status": None}, {"class_id": None}, {"marked_by": None}])
async def test_update_attendance_rejects_null_for_required_fields(store: SqlDocumentStore, clock, updates) -> None:
    await _mark(store, "X", "2025-09-01", [("S1", "present")])
    with pytest.raises(ValidationError):
        await service.update_attendance_record(store, "S1_2025-09-01", updates, now=clock)

    [record] = await service.get_student_attendance(store, "S1")
    assert record.status == AttendanceStatus.PRESENT
    assert record.class_id == "X"
    assert (await service.get_attendance_stats(store, "S1")).attendance_percentage == 100


@pytest.mark.asyncio
async def test_class_attendance_report(store: SqlDocumentStore) -> None:
    await _mark(store, "X", "2025-09-02", [("S1", "present"), ("S2", "late"), ("S3", "absent")])
    await _mark(store, "X", "2025-09-01", [("S1", "present"), ("S2", "present")])
    await _mark(store, "Y", "2025-09-01", [("S9", "absent")])

    report = await service.get_class_attendance_report(store, "X", "2025-09-01", "2025-09-30")
    assert [s.date for s in report.daily_stats] == ["2025-09-01", "2025-09-02"]
    first, second = report.daily_stats
    assert (first.present, first.absent, first.late, first.total, first.percentage) == (2, 0, 0, 2, 100)
    assert (second.present, second.absent, second.late, second.total, second.percentage) == (1, 1, 1, 3, 50)
    assert report.total_students == 3
    assert report.average_attendance == 75


@pytest.mark.asyncio
async def test_class_attendance_report_empty_range(store: SqlDocumentStore) -> None:
    report = await service.get_class_attendance_report(store, "X", "2025-01-01", "2025-01-31")
    assert report.total_students == 0
    assert report.average_attendance == 0
    assert report.daily_stats == []


@pytest.mark.asyncio
async def test_student_attendance_report_monthly_breakdown(store: SqlDocumentStore) -> None:
    marks = [
        ("2025-08-28", "present"),
        ("2025-08-29", "late"),
        ("2025-09-01", "present"),
        ("2025-09-02", "absent"),
        ("2025-09-03", "late"),
        ("2025-09-04", "present"),
    ]
    for day, status in marks:
        await _mark(store, "X", day, [("S1", status)])

    report = await service.get_student_attendance_report(store, "S1", "2025-08-01", "2025-09-30")
    assert report.stats.total_days == 6
    assert report.stats.attendance_percentage == 67
    assert len(report.records) == 6

    august, september = report.monthly_breakdown
    assert august.month == "2025-08"
    assert (august.present_days, august.late_days, august.attended_days, august.total_days) == (1, 1, 2, 2)
    assert august.percentage == 75
    assert september.month == "2025-09"
    assert (september.present_days, september.late_days, september.attended_days, september.total_days) == (2, 1, 3, 4)
    assert september.percentage == 63
