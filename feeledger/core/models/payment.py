"""Payment transaction: one fee instalment for a student."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, Date, DateTime, ForeignKey, Numeric, String, Text, Uuid

from feeledger.core.enums import PaymentStatus
from feeledger.db.session import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PaymentRecord(Base):
    """Fee instalment. paid_date, method and receipt_id are only set once status is paid."""

    __tablename__ = "payments"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    student_id = Column(
        String(50),
        ForeignKey("students.student_id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    # Copied from the student so listings need no join; refreshed on student edits.
    student_name = Column(String(255), nullable=True)
    student_class = Column(String(50), nullable=True)

    amount = Column(Numeric(12, 2), nullable=False)
    status = Column(String(20), nullable=False, default=PaymentStatus.pending.value, index=True)
    due_date = Column(Date, nullable=False)
    paid_date = Column(DateTime(timezone=True), nullable=True)
    method = Column(String(30), nullable=True)
    receipt_id = Column(String(40), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)
