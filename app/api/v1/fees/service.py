"""Fees service: fee lifecycle, payments, overdue sweep, stats and reports."""

import logging
from datetime import date, datetime, time, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from pydantic import ValidationError as SchemaValidationError

from app.api.v1.reports import engine
from app.core.clock import Clock, as_utc, utc_now
from app.core.config import settings
from app.core.enums import FeeCategory, FeeStatus
from app.core.exceptions import ConflictError, NotFoundError, ServiceError, StoreError, ValidationError
from app.core.ids import generate_id
from app.core.schemas import BulkCreateResult, OperationResult
from app.db.document_store import LedgerStore, OrderBy, where

from .schemas import (
    Fee,
    FeeCreate,
    FeePaymentCreate,
    FeeReport,
    FeeStats,
    FeeUpdate,
    PaidFee,
    PaymentResponse,
    StudentFeeStats,
    fee_adapter,
)

logger = logging.getLogger(__name__)

FEES = "fees"
PAYMENTS = "payments"


def _validate(model, data: Union[Mapping[str, Any], Any], what: str):
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except SchemaValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(p) for p in first.get("loc", ())) or what
        raise ValidationError(f"Invalid {what}: {field}: {first.get('msg')}") from e


def _to_fee(doc: Dict[str, Any]) -> Optional[Fee]:
    try:
        return fee_adapter.validate_python(doc)
    except SchemaValidationError:
        logger.warning("Skipping malformed fee document %s", doc.get("id"))
        return None


def _to_fees(docs: Sequence[Dict[str, Any]]) -> List[Fee]:
    return [fee for fee in (_to_fee(d) for d in docs) if fee is not None]


def _new_fee_document(record: FeeCreate, now: datetime) -> Dict[str, Any]:
    return {
        "id": generate_id(settings.id_length),
        "student_id": record.student_id,
        "amount": record.amount,
        "due_date": record.due_date,
        "description": record.description,
        "category": record.category,
        "semester": record.semester,
        "academic_year": record.academic_year,
        "status": FeeStatus.PENDING,
        "created_at": now,
        "updated_at": now,
    }


# --- Create ---
async def create_fee(
    store: LedgerStore,
    record: Union[FeeCreate, Mapping[str, Any]],
    now: Clock = utc_now,
) -> str:
    """Persist a pending fee and return its id. Raises ValidationError or StoreError."""
    record = _validate(FeeCreate, record, "fee record")
    doc = _new_fee_document(record, now())
    try:
        await store.create(FEES, doc["id"], doc)
    except ServiceError as e:
        logger.error("Error creating fee for student %s: %s", record.student_id, e.message)
        raise
    logger.info("Created fee %s for student %s", doc["id"], record.student_id)
    return doc["id"]


async def bulk_create_fees(
    store: LedgerStore,
    records: Sequence[Union[FeeCreate, Mapping[str, Any]]],
    now: Clock = utc_now,
) -> BulkCreateResult:
    """Create every fee in one batch, or none of them."""
    validated = [_validate(FeeCreate, r, f"fee record #{i}") for i, r in enumerate(records)]
    stamp = now()
    batch = store.batch()
    ids = []
    for record in validated:
        doc = _new_fee_document(record, stamp)
        batch.create(FEES, doc["id"], doc)
        ids.append(doc["id"])
    try:
        await batch.commit()
    except ServiceError as e:
        logger.error("Error bulk creating %d fees: %s", len(validated), e.message)
        return BulkCreateResult(success=False, error=e.message, count=0)
    logger.info("Bulk created %d fees", len(ids))
    return BulkCreateResult(success=True, ids=ids, count=len(ids))


# --- Read ---
async def _query_fees(store: LedgerStore, filters=(), order_by: Optional[OrderBy] = None) -> List[Fee]:
    try:
        docs = await store.query(FEES, filters, order_by)
    except StoreError as e:
        logger.error("Error getting fees: %s", e.message)
        return []
    return _to_fees(docs)


async def get_fee(store: LedgerStore, fee_id: str) -> Optional[Fee]:
    try:
        doc = await store.get(FEES, fee_id)
    except StoreError as e:
        logger.error("Error getting fee %s: %s", fee_id, e.message)
        return None
    return _to_fee(doc) if doc is not None else None


async def get_all_fees(store: LedgerStore) -> List[Fee]:
    return await _query_fees(store, order_by=OrderBy("created_at", descending=True))


async def get_student_fees(store: LedgerStore, student_id: str) -> List[Fee]:
    return await _query_fees(
        store,
        [where("student_id", "==", student_id)],
        OrderBy("due_date", descending=True),
    )


def _as_enum(enum_cls, value, name: str):
    try:
        return enum_cls(value)
    except ValueError as e:
        raise ValidationError(f"Unknown {name}: {value!r}") from e


async def get_fees_by_status(store: LedgerStore, fee_status: FeeStatus) -> List[Fee]:
    return await _query_fees(
        store,
        [where("status", "==", _as_enum(FeeStatus, fee_status, "fee status"))],
        OrderBy("due_date"),
    )


async def get_fees_by_category(store: LedgerStore, category: FeeCategory) -> List[Fee]:
    return await _query_fees(
        store,
        [where("category", "==", _as_enum(FeeCategory, category, "fee category"))],
        OrderBy("due_date", descending=True),
    )


# --- Update / delete ---
async def update_fee(
    store: LedgerStore,
    fee_id: str,
    updates: Union[FeeUpdate, Mapping[str, Any]],
    now: Clock = utc_now,
) -> OperationResult:
    """Patch descriptive fields.

    ``due_date`` may only move while the fee is pending: an overdue or paid
    fee keeps the due date its status was derived from.
    """
    updates = _validate(FeeUpdate, updates, "fee update")
    fields = updates.model_dump(exclude_unset=True)
    fields["updated_at"] = now()
    try:
        if "due_date" in fields:
            doc = await store.get(FEES, fee_id)
            if doc is None:
                raise NotFoundError("Fee record not found")
            if doc.get("status") != FeeStatus.PENDING.value:
                raise ConflictError("Due date can only change while the fee is pending")
            batch = store.batch()
            batch.update(FEES, fee_id, fields, expected={"status": FeeStatus.PENDING})
            await batch.commit()
        else:
            await store.update(FEES, fee_id, fields)
    except ServiceError as e:
        logger.error("Error updating fee %s: %s", fee_id, e.message)
        return OperationResult(success=False, id=fee_id, error=e.message)
    return OperationResult(success=True, id=fee_id)


async def delete_fee(store: LedgerStore, fee_id: str) -> OperationResult:
    try:
        await store.delete(FEES, fee_id)
    except ServiceError as e:
        logger.error("Error deleting fee %s: %s", fee_id, e.message)
        return OperationResult(success=False, id=fee_id, error=e.message)
    logger.info("Deleted fee %s", fee_id)
    return OperationResult(success=True, id=fee_id)


# --- Payment ---
async def process_payment(
    store: LedgerStore,
    payment: Union[FeePaymentCreate, Mapping[str, Any]],
    now: Clock = utc_now,
) -> OperationResult:
    """Settle a fee: flip it to paid and write its Payment receipt in one batch.

    The fee update is guarded by the status read here, so a second payment
    racing on the same fee fails with a conflict instead of creating a
    second receipt.
    """
    payment = _validate(FeePaymentCreate, payment, "payment")
    try:
        doc = await store.get(FEES, payment.fee_id)
        if doc is None:
            raise NotFoundError("Fee record not found")
        fee = fee_adapter.validate_python(doc)
        if isinstance(fee, PaidFee):
            raise ConflictError("Fee is already paid")

        stamp = now()
        payment_id = generate_id(settings.id_length)
        batch = store.batch()
        batch.update(
            FEES,
            fee.id,
            {
                "status": FeeStatus.PAID,
                "paid_amount": payment.amount,
                "payment_method": payment.payment_method,
                "payment_ref": payment.payment_ref,
                "paid_at": stamp,
                "received_by": payment.received_by,
                "remarks": payment.remarks,
                "updated_at": stamp,
            },
            expected={"status": fee.status},
        )
        batch.set(
            PAYMENTS,
            payment_id,
            {
                "id": payment_id,
                "fee_id": fee.id,
                "student_id": fee.student_id,
                "amount": payment.amount,
                "payment_method": payment.payment_method,
                "payment_ref": payment.payment_ref,
                "received_by": payment.received_by,
                "remarks": payment.remarks,
                "created_at": stamp,
            },
        )
        await batch.commit()
    except ServiceError as e:
        logger.error("Error processing payment for fee %s: %s", payment.fee_id, e.message)
        return OperationResult(success=False, id=None, error=e.message)
    except SchemaValidationError:
        logger.error("Fee %s is malformed; payment not recorded", payment.fee_id)
        return OperationResult(success=False, error="Fee record is malformed")
    logger.info("Recorded payment %s for fee %s", payment_id, fee.id)
    return OperationResult(success=True, id=payment_id)


async def _query_payments(store: LedgerStore, field: str, value: str) -> List[PaymentResponse]:
    try:
        docs = await store.query(
            PAYMENTS,
            [where(field, "==", value)],
            OrderBy("created_at", descending=True),
        )
    except StoreError as e:
        logger.error("Error getting payments by %s: %s", field, e.message)
        return []
    return [PaymentResponse.model_validate(d) for d in docs]


async def get_fee_payments(store: LedgerStore, fee_id: str) -> List[PaymentResponse]:
    return await _query_payments(store, "fee_id", fee_id)


async def get_student_payments(store: LedgerStore, student_id: str) -> List[PaymentResponse]:
    return await _query_payments(store, "student_id", student_id)


# --- Overdue sweep ---
SWEEP_ATTEMPTS = 2


async def _sweep_once(store: LedgerStore, stamp: datetime) -> int:
    docs = await store.query(FEES, [where("status", "==", FeeStatus.PENDING)])
    batch = store.batch()
    for fee in _to_fees(docs):
        if as_utc(fee.due_date) < stamp:
            batch.update(
                FEES,
                fee.id,
                {"status": FeeStatus.OVERDUE, "updated_at": stamp},
                expected={"status": FeeStatus.PENDING},
            )
    if len(batch):
        await batch.commit()
    return len(batch)


async def update_overdue_fees(store: LedgerStore, now: Clock = utc_now) -> int:
    """Flip pending fees whose due date has passed to overdue. Returns the count.

    The sweep is one batch, so a payment landing on any swept fee between the
    read and the commit aborts all of it. On that conflict the pending fees
    are read again and the sweep retried.
    """
    stamp = now()
    for attempt in range(1, SWEEP_ATTEMPTS + 1):
        try:
            updated = await _sweep_once(store, stamp)
        except ConflictError as e:
            if attempt == SWEEP_ATTEMPTS:
                logger.error("Overdue sweep kept conflicting, giving up: %s", e.message)
                return 0
            logger.warning("Overdue sweep conflicted with a concurrent write, retrying: %s", e.message)
            continue
        except ServiceError as e:
            logger.error("Error updating overdue fees: %s", e.message)
            return 0
        if updated:
            logger.info("Marked %d fees overdue", updated)
        return updated
    return 0


# --- Stats / report ---
async def get_fee_stats(store: LedgerStore) -> FeeStats:
    return engine.summarize_fees(await get_all_fees(store))


async def get_student_fee_stats(store: LedgerStore, student_id: str) -> StudentFeeStats:
    return engine.summarize_student_fees(await get_student_fees(store, student_id))


def _range_bound(value: Union[date, datetime], end: bool = False) -> datetime:
    """A bare date covers the whole day: midnight for a start, last microsecond for an end."""
    if isinstance(value, datetime):
        return as_utc(value)
    return datetime.combine(value, time.max if end else time.min, tzinfo=timezone.utc)


async def generate_fee_report(
    store: LedgerStore,
    start_date: Union[date, datetime],
    end_date: Union[date, datetime],
    category: Optional[FeeCategory] = None,
) -> FeeReport:
    """Collection report over fees created in [start_date, end_date]."""
    filters = [
        where("created_at", ">=", _range_bound(start_date)),
        where("created_at", "<=", _range_bound(end_date, end=True)),
    ]
    if category:
        filters.append(where("category", "==", _as_enum(FeeCategory, category, "fee category")))
    fees = await _query_fees(store, filters)
    return engine.build_fee_report(fees)
