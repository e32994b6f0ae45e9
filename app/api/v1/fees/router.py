"""Fees router: fee records, payments, overdue sweep, stats and report."""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.core.clock import Clock, get_clock
from app.core.enums import FeeCategory, FeeStatus
from app.core.exceptions import ServiceError
from app.core.schemas import BulkCreateResult, OperationResult
from app.db.document_store import LedgerStore, get_store

from .schemas import (
    Fee,
    FeeCreate,
    FeePaymentCreate,
    FeeReport,
    FeeStats,
    FeeUpdate,
    PaymentResponse,
    StudentFeeStats,
)
from . import service

router = APIRouter(prefix="/api/v1/fees", tags=["fees"])


# --- Fee records ---
@router.post("", response_model=OperationResult, status_code=status.HTTP_201_CREATED)
async def create_fee(
    payload: FeeCreate,
    store: LedgerStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> OperationResult:
    try:
        fee_id = await service.create_fee(store, payload, now=clock)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return OperationResult(success=True, id=fee_id)


@router.post("/bulk", response_model=BulkCreateResult, status_code=status.HTTP_201_CREATED)
async def bulk_create_fees(
    payload: List[FeeCreate],
    store: LedgerStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> BulkCreateResult:
    try:
        return await service.bulk_create_fees(store, payload, now=clock)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("", response_model=List[Fee])
async def list_fees(store: LedgerStore = Depends(get_store)) -> List[Fee]:
    return await service.get_all_fees(store)


@router.get("/stats", response_model=FeeStats)
async def fee_stats(store: LedgerStore = Depends(get_store)) -> FeeStats:
    return await service.get_fee_stats(store)


@router.get("/report", response_model=FeeReport)
async def fee_report(
    start_date: date,
    end_date: date,
    category: Optional[FeeCategory] = Query(None),
    store: LedgerStore = Depends(get_store),
) -> FeeReport:
    if start_date > end_date:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="start_date must not be after end_date")
    return await service.generate_fee_report(store, start_date, end_date, category)


@router.post("/overdue/sweep", response_model=OperationResult)
async def sweep_overdue_fees(
    store: LedgerStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> OperationResult:
    updated = await service.update_overdue_fees(store, now=clock)
    return OperationResult(success=True, count=updated)


@router.get("/status/{fee_status}", response_model=List[Fee])
async def list_fees_by_status(
    fee_status: FeeStatus,
    store: LedgerStore = Depends(get_store),
) -> List[Fee]:
    return await service.get_fees_by_status(store, fee_status)


@router.get("/category/{category}", response_model=List[Fee])
async def list_fees_by_category(
    category: FeeCategory,
    store: LedgerStore = Depends(get_store),
) -> List[Fee]:
    return await service.get_fees_by_category(store, category)


# --- Student views ---
@router.get("/student/{student_id}", response_model=List[Fee])
async def list_student_fees(
    student_id: str,
    store: LedgerStore = Depends(get_store),
) -> List[Fee]:
    return await service.get_student_fees(store, student_id)


@router.get("/student/{student_id}/stats", response_model=StudentFeeStats)
async def student_fee_stats(
    student_id: str,
    store: LedgerStore = Depends(get_store),
) -> StudentFeeStats:
    return await service.get_student_fee_stats(store, student_id)


@router.get("/student/{student_id}/payments", response_model=List[PaymentResponse])
async def student_payment_history(
    student_id: str,
    store: LedgerStore = Depends(get_store),
) -> List[PaymentResponse]:
    return await service.get_student_payments(store, student_id)


# --- Payment ---
@router.post("/payments", response_model=OperationResult)
async def process_payment(
    payload: FeePaymentCreate,
    store: LedgerStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> OperationResult:
    try:
        return await service.process_payment(store, payload, now=clock)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


# --- Single fee ---
@router.get("/{fee_id}", response_model=Fee)
async def get_fee(fee_id: str, store: LedgerStore = Depends(get_store)) -> Fee:
    fee = await service.get_fee(store, fee_id)
    if fee is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Fee record not found")
    return fee


@router.get("/{fee_id}/payments", response_model=List[PaymentResponse])
async def fee_payments(fee_id: str, store: LedgerStore = Depends(get_store)) -> List[PaymentResponse]:
    return await service.get_fee_payments(store, fee_id)


@router.patch("/{fee_id}", response_model=OperationResult)
async def update_fee(
    fee_id: str,
    payload: FeeUpdate,
    store: LedgerStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> OperationResult:
    try:
        return await service.update_fee(store, fee_id, payload, now=clock)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete("/{fee_id}", response_model=OperationResult)
async def delete_fee(fee_id: str, store: LedgerStore = Depends(get_store)) -> OperationResult:
    return await service.delete_fee(store, fee_id)
