"""Payment operations: validation before writes, record/edit/delete and the events they publish."""

import asyncio
from decimal import Decimal
from uuid import uuid4

import pytest
from pydantic import ValidationError as SchemaValidationError

from conftest import NEXT_MONTH, NOW
from feeledger.core.enums import FeeEventKind, PaymentStatus, StudentFeeStatus
from feeledger.core.exceptions import NotFoundError, StoreUnavailableError, ValidationError
from feeledger.core.schemas import PaymentCreate, PaymentUpdate, StudentCreate


def _create(amount, student_id="S1") -> PaymentCreate:
    return PaymentCreate(student_id=student_id, amount=Decimal(amount), due_date=NEXT_MONTH)


@pytest.mark.asyncio
async def test_amount_above_remaining_balance_is_rejected_without_write(ledger, student, events, payment_store) -> None:
    events.clear()
    with pytest.raises(ValidationError) as exc:
        await ledger.add_payment(_create("1000.01"))

    assert "exceeds remaining balance of 1000" in exc.value.message
    assert exc.value.status_code == 400
    assert await payment_store.list_all() == []
    assert events == []


@pytest.mark.asyncio
async def test_second_instalment_over_remaining_is_rejected(ledger, student) -> None:
    first = await ledger.add_payment(_create("600"))
    recorded = await ledger.record_payment(first.payment.id, "Cash")
    assert recorded.student.fees_paid == Decimal("600")

    with pytest.raises(ValidationError) as exc:
        await ledger.add_payment(_create("500"))
    assert "remaining balance of 400" in exc.value.message

    second = await ledger.add_payment(_create("400"))
    assert second.payment.amount == Decimal("400")


@pytest.mark.asyncio
async def test_pending_instalments_do_not_reduce_remaining_balance(ledger, student) -> None:
    first = await ledger.add_payment(_create("600"))
    assert first.student.fees_paid == Decimal("0")

    second = await ledger.add_payment(_create("500"))

    assert second.payment.amount == Decimal("500")
    assert second.payment.status == PaymentStatus.pending
    assert second.student.fees_due == Decimal("1000")


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", ["0", "-5"])
async def test_non_positive_amount_is_rejected(ledger, student, amount) -> None:
    with pytest.raises(ValidationError):
        await ledger.add_payment(_create(amount))


@pytest.mark.asyncio
async def test_unknown_student_is_not_found(ledger) -> None:
    with pytest.raises(NotFoundError):
        await ledger.add_payment(_create("10", student_id="NOPE"))


def test_missing_required_field_is_rejected() -> None:
    with pytest.raises(SchemaValidationError):
        PaymentCreate(student_id="S1", amount=Decimal("10"))


@pytest.mark.asyncio
async def test_new_payment_is_pending_with_student_details(ledger, student, events) -> None:
    events.clear()
    result = await ledger.add_payment(_create("250"))

    payment = result.payment
    assert payment.status == PaymentStatus.pending
    assert payment.student_name == "Asha Rao"
    assert payment.student_class == "5A"
    assert payment.created_at == NOW
    assert payment.paid_date is None and payment.method is None and payment.receipt_id is None
    assert result.reconciled is True
    # Pending instalments do not move the aggregate, so no StudentUpdated.
    assert [e.kind for e in events] == [FeeEventKind.PAYMENT_ADDED]


@pytest.mark.asyncio
async def test_record_payment_sets_paid_fields(ledger, student, events) -> None:
    added = await ledger.add_payment(_create("400"))
    events.clear()

    result = await ledger.record_payment(added.payment.id, " Cash ")

    payment = result.payment
    assert payment.status == PaymentStatus.paid
    assert payment.method == "Cash"
    assert payment.paid_date == NOW
    assert payment.receipt_id.startswith("RCT-")
    assert result.student.fees_paid == Decimal("400")
    assert result.student.fees_due == Decimal("600")
    assert result.student.status == StudentFeeStatus.PENDING
    assert [e.kind for e in events] == [FeeEventKind.PAYMENT_RECORDED, FeeEventKind.STUDENT_UPDATED]
    # Aggregate already reflects the payment when StudentUpdated is delivered.
    assert events[1].student.fees_paid == Decimal("400")


@pytest.mark.asyncio
async def test_record_twice_is_rejected(ledger, student) -> None:
    added = await ledger.add_payment(_create("400"))
    await ledger.record_payment(added.payment.id, "Cash")
    with pytest.raises(ValidationError):
        await ledger.record_payment(added.payment.id, "Cash")


@pytest.mark.asyncio
async def test_record_requires_method(ledger, student) -> None:
    added = await ledger.add_payment(_create("400"))
    with pytest.raises(ValidationError):
        await ledger.record_payment(added.payment.id, "  ")


@pytest.mark.asyncio
async def test_record_unknown_payment(ledger) -> None:
    with pytest.raises(NotFoundError):
        await ledger.record_payment(uuid4(), "Cash")


@pytest.mark.asyncio
async def test_edit_paid_amount_updates_balance(ledger, student, events) -> None:
    added = await ledger.add_payment(_create("600"))
    await ledger.record_payment(added.payment.id, "Cash")
    events.clear()

    result = await ledger.update_payment(added.payment.id, PaymentUpdate(amount=Decimal("500")))

    assert result.payment.amount == Decimal("500")
    assert result.payment.status == PaymentStatus.paid
    assert result.student.fees_paid == Decimal("500")
    assert result.student.fees_due == Decimal("500")
    assert [e.kind for e in events] == [FeeEventKind.PAYMENT_UPDATED, FeeEventKind.STUDENT_UPDATED]


@pytest.mark.asyncio
async def test_edit_ceiling_adds_back_the_edited_payment(ledger, student) -> None:
    a = await ledger.add_payment(_create("600"))
    b = await ledger.add_payment(_create("300"))
    await ledger.record_payment(a.payment.id, "Cash")
    await ledger.record_payment(b.payment.id, "Cash")

    result = await ledger.update_payment(a.payment.id, PaymentUpdate(amount=Decimal("700")))
    assert result.payment.amount == Decimal("700")
    assert result.student.fees_paid == Decimal("1000")

    with pytest.raises(ValidationError) as exc:
        await ledger.update_payment(a.payment.id, PaymentUpdate(amount=Decimal("701")))
    assert "remaining balance of 700" in exc.value.message


@pytest.mark.asyncio
async def test_revert_to_pending_clears_paid_fields(ledger, student) -> None:
    added = await ledger.add_payment(_create("600"))
    await ledger.record_payment(added.payment.id, "Cash")

    result = await ledger.update_payment(added.payment.id, PaymentUpdate(status=PaymentStatus.pending))

    assert result.payment.status == PaymentStatus.pending
    assert result.payment.paid_date is None
    assert result.payment.method is None
    assert result.payment.receipt_id is None
    assert result.student.fees_paid == Decimal("0")
    assert result.student.status == StudentFeeStatus.NOT_STARTED


@pytest.mark.asyncio
async def test_edit_cannot_mark_paid_or_overdue(ledger, student) -> None:
    added = await ledger.add_payment(_create("600"))
    with pytest.raises(ValidationError):
        await ledger.update_payment(added.payment.id, PaymentUpdate(status=PaymentStatus.paid))
    with pytest.raises(ValidationError):
        await ledger.update_payment(added.payment.id, PaymentUpdate(status=PaymentStatus.overdue))


@pytest.mark.asyncio
async def test_method_only_editable_on_paid_payment(ledger, student) -> None:
    added = await ledger.add_payment(_create("600"))
    with pytest.raises(ValidationError):
        await ledger.update_payment(added.payment.id, PaymentUpdate(method="UPI"))

    await ledger.record_payment(added.payment.id, "Cash")
    result = await ledger.update_payment(added.payment.id, PaymentUpdate(method="UPI"))
    assert result.payment.method == "UPI"


@pytest.mark.asyncio
async def test_delete_paid_payment_reduces_balance(ledger, student, events, payment_store) -> None:
    added = await ledger.add_payment(_create("600"))
    await ledger.record_payment(added.payment.id, "Cash")
    events.clear()

    result = await ledger.delete_payment(added.payment.id)

    assert result.student.fees_paid == Decimal("0")
    assert result.student.fees_due == Decimal("1000")
    assert await payment_store.list_all() == []
    assert [e.kind for e in events] == [FeeEventKind.PAYMENT_DELETED, FeeEventKind.STUDENT_UPDATED]


@pytest.mark.asyncio
async def test_payment_write_failure_aborts_operation(flaky_ledger, flaky_payments, flaky_students, events) -> None:
    await flaky_ledger.add_student(StudentCreate(student_id="S1", name="Asha", total_fees=Decimal("1000")))
    flaky_payments.failing.add("create")
    flaky_students.calls.clear()
    events.clear()

    with pytest.raises(StoreUnavailableError) as exc:
        await flaky_ledger.add_payment(_create("100"))

    assert exc.value.status_code == 503
    assert "update" not in flaky_students.calls
    assert events == []


@pytest.mark.asyncio
async def test_list_payments_for_unknown_student(ledger) -> None:
    with pytest.raises(NotFoundError):
        await ledger.list_payments(student_id="NOPE")


@pytest.mark.asyncio
async def test_concurrent_adds_for_one_student_are_serialized(ledger, student, payment_store) -> None:
    results = await asyncio.gather(
        ledger.add_payment(_create("600")),
        ledger.add_payment(_create("400")),
    )
    assert all(r.reconciled for r in results)
    assert len(await payment_store.list_by_student("S1")) == 2

    for result in results:
        await ledger.record_payment(result.payment.id, "Cash")

    stored = await ledger.get_student("S1")
    assert stored.fees_paid == Decimal("1000")
    assert stored.fees_due == Decimal("0")
    assert stored.status == StudentFeeStatus.PAID
