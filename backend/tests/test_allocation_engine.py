"""
Allocation engine: FIFO and manual allocation over in-memory documents.
"""
from datetime import date
from decimal import Decimal

import pytest

from erp_ledger.core.exceptions import OverAllocationError, ValidationError
from erp_ledger.services.allocation_engine import OutstandingDocument, allocate


def doc(id, day, balance):
    return OutstandingDocument(id=id, document_date=date(2024, 1, day), balance_due=Decimal(balance))


def as_map(result):
    return {line.document_id: line.amount for line in result.allocations}


def test_fifo_settles_oldest_first():
    result = allocate(Decimal("120"), [doc(1, 1, "100"), doc(2, 2, "50")])

    assert as_map(result) == {1: Decimal("100.00"), 2: Decimal("20.00")}
    assert result.unallocated_remainder == Decimal("0.00")


def test_fifo_orders_by_date_not_input_order():
    result = allocate(Decimal("60"), [doc(2, 5, "50"), doc(1, 3, "50")])

    assert [line.document_id for line in result.allocations] == [1, 2]
    assert as_map(result) == {1: Decimal("50.00"), 2: Decimal("10.00")}


def test_fifo_leftover_becomes_remainder():
    result = allocate(Decimal("150"), [doc(1, 1, "100")])

    assert as_map(result) == {1: Decimal("100.00")}
    assert result.unallocated_remainder == Decimal("50.00")


def test_fifo_without_documents_leaves_everything_unallocated():
    result = allocate(Decimal("75.50"), [])

    assert result.allocations == []
    assert result.unallocated_remainder == Decimal("75.50")


def test_manual_allocation_within_bounds():
    result = allocate(
        Decimal("100"),
        [doc(1, 1, "80"), doc(2, 2, "80")],
        {2: Decimal("60"), 1: Decimal("30")}
    )

    assert as_map(result) == {2: Decimal("60.00"), 1: Decimal("30.00")}
    assert result.allocated_total == Decimal("90.00")
    assert result.unallocated_remainder == Decimal("10.00")


def test_manual_allocation_above_balance_due_is_rejected():
    with pytest.raises(OverAllocationError):
        allocate(Decimal("100"), [doc(1, 1, "40")], {1: Decimal("41")})


def test_manual_allocation_above_payment_is_rejected():
    with pytest.raises(OverAllocationError):
        allocate(Decimal("100"), [doc(1, 1, "80"), doc(2, 2, "80")], {1: Decimal("80"), 2: Decimal("21")})


def test_manual_allocation_to_unknown_document_is_rejected():
    with pytest.raises(ValidationError) as exc:
        allocate(Decimal("100"), [doc(1, 1, "80")], {99: Decimal("10")})
    assert exc.value.field == "allocations"


def test_manual_negative_amount_is_rejected():
    with pytest.raises(ValidationError):
        allocate(Decimal("100"), [doc(1, 1, "80")], {1: Decimal("-5")})


def test_zero_allocations_are_omitted():
    result = allocate(Decimal("50"), [doc(1, 1, "80"), doc(2, 2, "80")], {1: Decimal("0"), 2: Decimal("50")})

    assert as_map(result) == {2: Decimal("50.00")}


@pytest.mark.parametrize("amount", ["0", "-10"])
def test_non_positive_payment_is_rejected(amount):
    with pytest.raises(ValidationError):
        allocate(Decimal(amount), [doc(1, 1, "80")])


def test_amounts_are_rounded_half_up():
    result = allocate(Decimal("10.005"), [doc(1, 1, "100")])

    assert as_map(result) == {1: Decimal("10.01")}
