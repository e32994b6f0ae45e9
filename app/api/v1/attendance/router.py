"""Attendance router: roster submission, per-mark edits, stats and reports."""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.core.clock import Clock, get_clock
from app.core.exceptions import ServiceError
from app.core.schemas import OperationResult
from app.db.document_store import LedgerStore, get_store

from .schemas import (
    AttendanceMarkRequest,
    AttendanceRecord,
    AttendanceStats,
    AttendanceUpdate,
    ClassAttendanceReport,
    StudentAttendanceReport,
)
from . import service

router = APIRouter(prefix="/api/v1/attendance", tags=["attendance"])


def _check_range(start_date: Optional[date], end_date: Optional[date]) -> None:
    if start_date and end_date and start_date > end_date:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="start_date must not be after end_date")


@router.post("/mark", response_model=OperationResult)
async def mark_attendance(
    payload: AttendanceMarkRequest,
    store: LedgerStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> OperationResult:
    """Submit a class roster for one date. Re-submitting the same date overwrites earlier marks."""
    try:
        return await service.mark_attendance(
            store,
            payload.class_id,
            payload.date,
            payload.records,
            payload.marked_by,
            now=clock,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/class/{class_id}", response_model=List[AttendanceRecord])
async def class_attendance(
    class_id: str,
    att_date: date = Query(..., alias="date"),
    store: LedgerStore = Depends(get_store),
) -> List[AttendanceRecord]:
    """Marks for one class on one date; use ``all`` as class_id for every class."""
    return await service.get_class_attendance(store, class_id, att_date)


@router.get("/class/{class_id}/report", response_model=ClassAttendanceReport)
async def class_attendance_report(
    class_id: str,
    start_date: date,
    end_date: date,
    store: LedgerStore = Depends(get_store),
) -> ClassAttendanceReport:
    _check_range(start_date, end_date)
    return await service.get_class_attendance_report(store, class_id, start_date, end_date)


@router.get("/range", response_model=List[AttendanceRecord])
async def attendance_by_date_range(
    start_date: date,
    end_date: date,
    class_id: Optional[str] = Query(None),
    store: LedgerStore = Depends(get_store),
) -> List[AttendanceRecord]:
    _check_range(start_date, end_date)
    return await service.get_attendance_by_date_range(store, start_date, end_date, class_id)


@router.get("/student/{student_id}", response_model=List[AttendanceRecord])
async def student_attendance(
    student_id: str,
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    store: LedgerStore = Depends(get_store),
) -> List[AttendanceRecord]:
    _check_range(start_date, end_date)
    return await service.get_student_attendance(store, student_id, start_date, end_date)


@router.get("/student/{student_id}/stats", response_model=AttendanceStats)
async def student_attendance_stats(
    student_id: str,
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    store: LedgerStore = Depends(get_store),
) -> AttendanceStats:
    _check_range(start_date, end_date)
    return await service.get_attendance_stats(store, student_id, start_date, end_date)


@router.get("/student/{student_id}/report", response_model=StudentAttendanceReport)
async def student_attendance_report(
    student_id: str,
    start_date: date,
    end_date: date,
    store: LedgerStore = Depends(get_store),
) -> StudentAttendanceReport:
    _check_range(start_date, end_date)
    return await service.get_student_attendance_report(store, student_id, start_date, end_date)


@router.patch("/{attendance_id}", response_model=OperationResult)
async def update_attendance_record(
    attendance_id: str,
    payload: AttendanceUpdate,
    store: LedgerStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> OperationResult:
    try:
        return await service.update_attendance_record(store, attendance_id, payload, now=clock)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete("/{attendance_id}", response_model=OperationResult)
async def delete_attendance_record(
    attendance_id: str,
    store: LedgerStore = Depends(get_store),
) -> OperationResult:
    return await service.delete_attendance_record(store, attendance_id)
