from enum import Enum


class FeeCategory(str, Enum):
    TUITION = "tuition"
    LIBRARY = "library"
    LAB = "lab"
    EXAM = "exam"
    TRANSPORT = "transport"
    HOSTEL = "hostel"
    OTHER = "other"


class FeeStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    ONLINE = "online"
    BANK_TRANSFER = "bank_transfer"
    CHEQUE = "cheque"


class AttendanceStatus(str, Enum):
    PRESENT = "present"
    ABSENT = "absent"
    LATE = "late"
