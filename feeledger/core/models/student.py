"""Student aggregate: descriptive fields plus the cached fee balance kept by reconciliation."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, Date, DateTime, Numeric, String, Text, Uuid

from feeledger.core.enums import FeesStructure, StudentFeeStatus
from feeledger.db.session import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StudentRecord(Base):
    """
    One row per student. total_fees is authoritative; fees_paid, fees_due and status
    are denormalized from payments and only written by the reconciliation engine.
    """

    __tablename__ = "students"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    student_id = Column(String(50), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=False)
    student_class = Column(String(50), nullable=True)
    contact = Column(String(30), nullable=True)
    email = Column(String(255), nullable=True)
    address = Column(Text, nullable=True)
    admission_date = Column(Date, nullable=True)
    fees_structure = Column(String(20), nullable=False, default=FeesStructure.NOT_SET.value)

    total_fees = Column(Numeric(12, 2), nullable=False, default=0)
    fees_paid = Column(Numeric(12, 2), nullable=False, default=0)
    fees_due = Column(Numeric(12, 2), nullable=False, default=0)
    status = Column(String(20), nullable=False, default=StudentFeeStatus.NOT_STARTED.value)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)
