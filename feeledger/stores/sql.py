"""SQLAlchemy-backed stores. Every call commits on its own; there is no cross-call transaction."""

import asyncio
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Awaitable, Dict, List, Optional, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.core.config import settings
from feeledger.core.enums import FeesStructure, PaymentStatus, StudentFeeStatus
from feeledger.core.exceptions import NotFoundError, ServiceError, StoreUnavailableError, ValidationError
from feeledger.core.models import PaymentRecord, StudentRecord
from feeledger.core.schemas import Payment, Student

from .base import PaymentStore, StudentStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _to_decimal(val) -> Decimal:
    if val is None:
        return Decimal("0")
    return val if isinstance(val, Decimal) else Decimal(str(val))


def _as_utc(val: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything is written in UTC.
    if val is None:
        return None
    if val.tzinfo is None:
        return val.replace(tzinfo=timezone.utc)
    return val.astimezone(timezone.utc)


def _plain(patch: Dict[str, Any]) -> Dict[str, Any]:
    return {k: (v.value if isinstance(v, (PaymentStatus, StudentFeeStatus, FeesStructure)) else v) for k, v in patch.items()}


def _student_from_row(row: StudentRecord) -> Student:
    return Student(
        id=row.id,
        student_id=row.student_id,
        name=row.name,
        student_class=row.student_class,
        contact=row.contact,
        email=row.email,
        address=row.address,
        admission_date=row.admission_date,
        fees_structure=row.fees_structure or FeesStructure.NOT_SET.value,
        total_fees=_to_decimal(row.total_fees),
        fees_paid=_to_decimal(row.fees_paid),
        fees_due=_to_decimal(row.fees_due),
        status=row.status,
        created_at=_as_utc(row.created_at),
        updated_at=_as_utc(row.updated_at),
    )


def _payment_from_row(row: PaymentRecord) -> Payment:
    return Payment(
        id=row.id,
        student_id=row.student_id,
        student_name=row.student_name,
        student_class=row.student_class,
        amount=_to_decimal(row.amount),
        status=row.status,
        due_date=row.due_date,
        paid_date=_as_utc(row.paid_date),
        method=row.method,
        receipt_id=row.receipt_id,
        notes=row.notes,
        created_at=_as_utc(row.created_at),
        updated_at=_as_utc(row.updated_at),
    )


class _SqlStore:
    def __init__(self, db: AsyncSession, timeout: Optional[float] = None) -> None:
        self.db = db
        self.timeout = settings.store_timeout_seconds if timeout is None else timeout

    async def _run(self, operation: str, call: Awaitable[T]) -> T:
        """Run one store call under the configured timeout, mapping driver failures to service errors."""
        try:
            return await asyncio.wait_for(call, self.timeout)
        except ServiceError:
            raise
        except IntegrityError as e:
            await self._rollback(operation)
            raise ValidationError("Record conflicts with existing data") from e
        except asyncio.TimeoutError as e:
            logger.warning("Store call %s timed out after %ss", operation, self.timeout)
            await self._rollback(operation)
            raise StoreUnavailableError() from e
        except (SQLAlchemyError, OSError) as e:
            logger.warning("Store call %s failed: %s", operation, e)
            await self._rollback(operation)
            raise StoreUnavailableError() from e

    async def _rollback(self, operation: str) -> None:
        try:
            await self.db.rollback()
        except SQLAlchemyError:
            logger.warning("Rollback after failed %s did not complete", operation, exc_info=True)


class SqlStudentStore(_SqlStore, StudentStore):
    async def _get_row(self, student_id: str) -> StudentRecord:
        row = (
            await self.db.execute(select(StudentRecord).where(StudentRecord.student_id == student_id))
        ).scalar_one_or_none()
        if row is None:
            raise NotFoundError(f"Student {student_id} not found")
        return row

    async def _create(self, data: Dict[str, Any]) -> Student:
        row = StudentRecord(**_plain(data))
        self.db.add(row)
        await self.db.commit()
        await self.db.refresh(row)
        return _student_from_row(row)

    async def _get(self, student_id: str) -> Student:
        return _student_from_row(await self._get_row(student_id))

    async def _list_all(self) -> List[Student]:
        result = await self.db.execute(select(StudentRecord).order_by(StudentRecord.student_id))
        return [_student_from_row(r) for r in result.scalars().all()]

    async def _update(self, student_id: str, patch: Dict[str, Any]) -> Student:
        row = await self._get_row(student_id)
        for field, value in _plain(patch).items():
            setattr(row, field, value)
        await self.db.commit()
        await self.db.refresh(row)
        return _student_from_row(row)

    async def _delete(self, student_id: str) -> None:
        row = await self._get_row(student_id)
        await self.db.delete(row)
        await self.db.commit()

    async def create(self, data: Dict[str, Any]) -> Student:
        return await self._run("students.create", self._create(data))

    async def get(self, student_id: str) -> Student:
        return await self._run("students.get", self._get(student_id))

    async def list_all(self) -> List[Student]:
        return await self._run("students.list_all", self._list_all())

    async def update(self, student_id: str, patch: Dict[str, Any]) -> Student:
        return await self._run("students.update", self._update(student_id, patch))

    async def delete(self, student_id: str) -> None:
        await self._run("students.delete", self._delete(student_id))


class SqlPaymentStore(_SqlStore, PaymentStore):
    async def _get_row(self, payment_id: UUID) -> PaymentRecord:
        row = await self.db.get(PaymentRecord, payment_id)
        if row is None:
            raise NotFoundError(f"Payment {payment_id} not found")
        return row

    async def _create(self, data: Dict[str, Any]) -> Payment:
        row = PaymentRecord(**_plain(data))
        self.db.add(row)
        await self.db.commit()
        await self.db.refresh(row)
        return _payment_from_row(row)

    async def _get(self, payment_id: UUID) -> Payment:
        return _payment_from_row(await self._get_row(payment_id))

    async def _list(self, student_id: Optional[str]) -> List[Payment]:
        stmt = select(PaymentRecord)
        if student_id is not None:
            stmt = stmt.where(PaymentRecord.student_id == student_id)
        stmt = stmt.order_by(PaymentRecord.due_date, PaymentRecord.created_at)
        result = await self.db.execute(stmt)
        return [_payment_from_row(r) for r in result.scalars().all()]

    async def _update(self, payment_id: UUID, patch: Dict[str, Any]) -> Payment:
        row = await self._get_row(payment_id)
        for field, value in _plain(patch).items():
            setattr(row, field, value)
        await self.db.commit()
        await self.db.refresh(row)
        return _payment_from_row(row)

    async def _delete(self, payment_id: UUID) -> None:
        row = await self._get_row(payment_id)
        await self.db.delete(row)
        await self.db.commit()

    async def create(self, data: Dict[str, Any]) -> Payment:
        return await self._run("payments.create", self._create(data))

    async def get(self, payment_id: UUID) -> Payment:
        return await self._run("payments.get", self._get(payment_id))

    async def list_by_student(self, student_id: str) -> List[Payment]:
        return await self._run("payments.list_by_student", self._list(student_id))

    async def list_all(self) -> List[Payment]:
        return await self._run("payments.list_all", self._list(None))

    async def update(self, payment_id: UUID, patch: Dict[str, Any]) -> Payment:
        return await self._run("payments.update", self._update(payment_id, patch))

    async def delete(self, payment_id: UUID) -> None:
        await self._run("payments.delete", self._delete(payment_id))
