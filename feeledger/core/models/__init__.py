from feeledger.core.models.student import StudentRecord
from feeledger.core.models.payment import PaymentRecord

__all__ = [
    "StudentRecord",
    "PaymentRecord",
]
