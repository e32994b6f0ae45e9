"""Fees schemas."""

from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from app.core.clock import as_utc
from app.core.enums import FeeCategory, PaymentMethod


def _coerce_point_in_time(value):
    """Accept datetimes, dates and ISO strings; dates mean midnight UTC."""
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    if isinstance(value, str) and len(value.strip()) == 10:
        return datetime.combine(date.fromisoformat(value.strip()), time.min, tzinfo=timezone.utc)
    return value


# --- Input ---
class FeeCreate(BaseModel):
    student_id: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)
    due_date: datetime
    description: str = ""
    category: FeeCategory
    semester: Optional[str] = None
    academic_year: Optional[str] = None

    @field_validator("due_date", mode="before")
    @classmethod
    def _parse_due_date(cls, value):
        return _coerce_point_in_time(value)

    @field_validator("due_date")
    @classmethod
    def _due_date_utc(cls, value: datetime) -> datetime:
        return as_utc(value)


class FeeUpdate(BaseModel):
    """Descriptive fields only. Status moves through payment and the overdue sweep."""

    model_config = ConfigDict(extra="forbid")

    student_id: Optional[str] = Field(None, min_length=1)
    amount: Optional[Decimal] = Field(None, gt=0)
    due_date: Optional[datetime] = None
    description: Optional[str] = None
    category: Optional[FeeCategory] = None
    semester: Optional[str] = None
    academic_year: Optional[str] = None

    @field_validator("student_id", "amount", "due_date", "description", "category", mode="before")
    @classmethod
    def _not_null(cls, value):
        if value is None:
            raise ValueError("may be omitted but not null")
        return value

    @field_validator("due_date", mode="before")
    @classmethod
    def _parse_due_date(cls, value):
        return _coerce_point_in_time(value)

    @field_validator("due_date")
    @classmethod
    def _due_date_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value) if value is not None else None


class FeePaymentCreate(BaseModel):
    fee_id: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)
    payment_method: PaymentMethod
    payment_ref: Optional[str] = None
    remarks: Optional[str] = None
    received_by: str = Field(..., min_length=1)


# --- Stored fee, one model per lifecycle state ---
class FeeBase(BaseModel):
    id: str
    student_id: str
    amount: Decimal
    due_date: datetime
    description: str = ""
    category: FeeCategory
    semester: Optional[str] = None
    academic_year: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class PendingFee(FeeBase):
    status: Literal["pending"] = "pending"


class OverdueFee(FeeBase):
    status: Literal["overdue"] = "overdue"


class PaidFee(FeeBase):
    status: Literal["paid"] = "paid"
    paid_amount: Decimal
    payment_method: PaymentMethod
    payment_ref: Optional[str] = None
    paid_at: datetime
    received_by: str
    remarks: Optional[str] = None


Fee = Annotated[Union[PendingFee, OverdueFee, PaidFee], Field(discriminator="status")]

fee_adapter: TypeAdapter = TypeAdapter(Fee)


class PaymentResponse(BaseModel):
    """Immutable receipt for one fee settlement."""

    id: str
    fee_id: str
    student_id: str
    amount: Decimal
    payment_method: PaymentMethod
    payment_ref: Optional[str] = None
    received_by: str
    remarks: Optional[str] = None
    created_at: datetime


# --- Stats / reports ---
class FeeStats(BaseModel):
    total_fees: int = 0
    paid_fees: int = 0
    pending_fees: int = 0
    overdue_fees: int = 0
    collection_percentage: int = 0


class StudentFeeStats(BaseModel):
    total_amount: Decimal = Decimal("0")
    paid_amount: Decimal = Decimal("0")
    pending_amount: Decimal = Decimal("0")
    overdue_amount: Decimal = Decimal("0")
    fees: List[Fee] = Field(default_factory=list)


class CategoryBreakdown(BaseModel):
    collected: Decimal = Decimal("0")
    pending: Decimal = Decimal("0")
    count: int = 0


class MonthlyCollection(BaseModel):
    month: str  # YYYY-MM
    amount: Decimal


class FeeReport(BaseModel):
    total_collection: Decimal = Decimal("0")
    total_pending: Decimal = Decimal("0")
    category_breakdown: Dict[str, CategoryBreakdown] = Field(default_factory=dict)
    monthly_collection: List[MonthlyCollection] = Field(default_factory=list)
