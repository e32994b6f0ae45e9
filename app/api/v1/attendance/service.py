"""Attendance service: roster submission, per-mark edits, stats and reports."""

import logging
from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from pydantic import ValidationError as SchemaValidationError

from app.api.v1.reports import engine
from app.core.clock import Clock, utc_now
from app.core.exceptions import ServiceError, StoreError, ValidationError
from app.core.ids import attendance_id
from app.core.schemas import OperationResult
from app.db.document_store import LedgerStore, OrderBy, where

from .schemas import (
    ALL_CLASSES,
    AttendanceEntry,
    AttendanceRecord,
    AttendanceStats,
    AttendanceUpdate,
    ClassAttendanceReport,
    StudentAttendanceReport,
)

logger = logging.getLogger(__name__)

ATTENDANCE = "attendance"

DateLike = Union[date, str]


def _date_key(value: DateLike, name: str = "date") -> str:
    """Normalize to YYYY-MM-DD, the string-ordered form stored on every mark."""
    if isinstance(value, date):
        return value.isoformat()
    try:
        return date.fromisoformat(str(value).strip()).isoformat()
    except ValueError as e:
        raise ValidationError(f"Invalid {name}: {value!r} (expected YYYY-MM-DD)") from e


def _to_records(docs: Sequence[Dict[str, Any]]) -> List[AttendanceRecord]:
    records = []
    for doc in docs:
        try:
            records.append(AttendanceRecord.model_validate(doc))
        except SchemaValidationError:
            logger.warning("Skipping malformed attendance document %s", doc.get("id"))
    return records


async def _query(store: LedgerStore, filters, order_by: Optional[OrderBy] = None) -> List[AttendanceRecord]:
    try:
        docs = await store.query(ATTENDANCE, filters, order_by)
    except StoreError as e:
        logger.error("Error getting attendance: %s", e.message)
        return []
    return _to_records(docs)


# ----- Roster submission -----
async def mark_attendance(
    store: LedgerStore,
    class_id: str,
    att_date: DateLike,
    records: Sequence[Union[AttendanceEntry, Mapping[str, Any]]],
    marked_by: str,
    now: Clock = utc_now,
) -> OperationResult:
    """Upsert one mark per student for ``att_date`` in a single batch.

    Marks are keyed ``<student_id>_<date>``, so submitting the same class and
    date again overwrites earlier marks instead of adding new ones.
    """
    day = _date_key(att_date)
    try:
        entries = [r if isinstance(r, AttendanceEntry) else AttendanceEntry.model_validate(r) for r in records]
    except SchemaValidationError as e:
        raise ValidationError(f"Invalid attendance entry: {e.errors()[0].get('msg')}") from e
    if not class_id or not marked_by:
        raise ValidationError("class_id and marked_by are required")

    # Last entry wins when a student appears twice in one submission.
    latest = {entry.student_id: entry for entry in entries}
    stamp = now()
    batch = store.batch()
    for entry in latest.values():
        doc_id = attendance_id(entry.student_id, day)
        batch.set(
            ATTENDANCE,
            doc_id,
            {
                "id": doc_id,
                "student_id": entry.student_id,
                "date": day,
                "status": entry.status,
                "class_id": class_id,
                "marked_by": marked_by,
                "marked_at": stamp,
                "updated_at": stamp,
            },
            merge=True,
        )
    try:
        await batch.commit()
    except ServiceError as e:
        logger.error("Error marking attendance for class %s on %s: %s", class_id, day, e.message)
        return OperationResult(success=False, error=e.message, count=0)
    logger.info("Marked attendance for %d students in class %s on %s", len(latest), class_id, day)
    return OperationResult(success=True, count=len(latest))


# ----- Reads -----
async def get_class_attendance(store: LedgerStore, class_id: str, att_date: DateLike) -> List[AttendanceRecord]:
    """All marks for one class on one date; ``class_id == "all"`` spans every class."""
    filters = [where("date", "==", _date_key(att_date))]
    if class_id != ALL_CLASSES:
        filters.append(where("class_id", "==", class_id))
    return await _query(store, filters)


async def get_student_attendance(
    store: LedgerStore,
    student_id: str,
    start_date: Optional[DateLike] = None,
    end_date: Optional[DateLike] = None,
) -> List[AttendanceRecord]:
    """Newest first. The range applies only when both bounds are given."""
    filters = [where("student_id", "==", student_id)]
    if start_date and end_date:
        filters.append(where("date", ">=", _date_key(start_date, "start_date")))
        filters.append(where("date", "<=", _date_key(end_date, "end_date")))
    return await _query(store, filters, OrderBy("date", descending=True))


async def get_attendance_by_date_range(
    store: LedgerStore,
    start_date: DateLike,
    end_date: DateLike,
    class_id: Optional[str] = None,
) -> List[AttendanceRecord]:
    filters = [
        where("date", ">=", _date_key(start_date, "start_date")),
        where("date", "<=", _date_key(end_date, "end_date")),
    ]
    if class_id and class_id != ALL_CLASSES:
        filters.append(where("class_id", "==", class_id))
    return await _query(store, filters, OrderBy("date", descending=True))


async def get_attendance_stats(
    store: LedgerStore,
    student_id: str,
    start_date: Optional[DateLike] = None,
    end_date: Optional[DateLike] = None,
) -> AttendanceStats:
    records = await get_student_attendance(store, student_id, start_date, end_date)
    return engine.summarize_attendance(records)


# ----- Single-mark edits -----
async def update_attendance_record(
    store: LedgerStore,
    record_id: str,
    updates: Union[AttendanceUpdate, Mapping[str, Any]],
    now: Clock = utc_now,
) -> OperationResult:
    try:
        updates = updates if isinstance(updates, AttendanceUpdate) else AttendanceUpdate.model_validate(updates)
    except SchemaValidationError as e:
        raise ValidationError(f"Invalid attendance update: {e.errors()[0].get('msg')}") from e
    fields = updates.model_dump(exclude_unset=True)
    fields["updated_at"] = now()
    try:
        await store.update(ATTENDANCE, record_id, fields)
    except ServiceError as e:
        logger.error("Error updating attendance record %s: %s", record_id, e.message)
        return OperationResult(success=False, id=record_id, error=e.message)
    return OperationResult(success=True, id=record_id)


async def delete_attendance_record(store: LedgerStore, record_id: str) -> OperationResult:
    try:
        await store.delete(ATTENDANCE, record_id)
    except ServiceError as e:
        logger.error("Error deleting attendance record %s: %s", record_id, e.message)
        return OperationResult(success=False, id=record_id, error=e.message)
    return OperationResult(success=True, id=record_id)


# ----- Reports -----
async def get_class_attendance_report(
    store: LedgerStore,
    class_id: str,
    start_date: DateLike,
    end_date: DateLike,
) -> ClassAttendanceReport:
    records = await get_attendance_by_date_range(store, start_date, end_date, class_id)
    return engine.build_class_report(records)


async def get_student_attendance_report(
    store: LedgerStore,
    student_id: str,
    start_date: DateLike,
    end_date: DateLike,
) -> StudentAttendanceReport:
    records = await get_student_attendance(store, student_id, start_date, end_date)
    return StudentAttendanceReport(
        stats=engine.summarize_attendance(records),
        records=records,
        monthly_breakdown=engine.build_monthly_breakdown(records),
    )
