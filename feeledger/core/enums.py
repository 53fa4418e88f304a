from enum import Enum


class PaymentStatus(str, Enum):
    pending = "pending"
    paid = "paid"
    overdue = "overdue"


class StudentFeeStatus(str, Enum):
    NOT_STARTED = "Not Started"
    PENDING = "Pending"
    PAID = "Paid"


class FeesStructure(str, Enum):
    ANNUAL = "Annual"
    QUARTERLY = "Quarterly"
    MONTHLY = "Monthly"
    NOT_SET = "Not Set"


class FeeEventKind(str, Enum):
    PAYMENT_ADDED = "PaymentAdded"
    PAYMENT_RECORDED = "PaymentRecorded"
    PAYMENT_UPDATED = "PaymentUpdated"
    PAYMENT_DELETED = "PaymentDeleted"
    STUDENT_UPDATED = "StudentUpdated"
