"""
Refunds of unused advance balances.
"""
from datetime import date
from decimal import Decimal

import pytest

from erp_ledger.core.exceptions import InsufficientBalanceError, ValidationError
from erp_ledger.models import AdvanceDrawdown, PaymentType, RecordStatus

DAY = date(2024, 5, 1)


def test_supplier_refund_draws_oldest_advance_first(db_session, settlement, bank, supplier):
    older = settlement.create_payment(
        party_id=supplier.id, amount=Decimal("300"), payment_date=date(2024, 1, 1),
        account_id=bank.id, is_advance=True
    )
    newer = settlement.create_payment(
        party_id=supplier.id, amount=Decimal("500"), payment_date=date(2024, 2, 1),
        account_id=bank.id, is_advance=True
    )
    db_session.refresh(supplier)
    db_session.refresh(bank)
    assert supplier.outstanding == Decimal("-800.00")
    bank_before = bank.balance

    refund = settlement.create_advance_refund(
        party_id=supplier.id, account_id=bank.id, amount=Decimal("400"), refund_date=DAY
    )
    for obj in (older, newer, supplier, bank):
        db_session.refresh(obj)

    assert refund.payment_type == PaymentType.REFUND.value
    assert refund.code == "REF-00001"
    assert older.advance_balance == Decimal("0.00")
    assert newer.advance_balance == Decimal("400.00")
    assert [(d.advance_id, d.amount) for d in sorted(refund.drawdowns, key=lambda d: d.id)] == [
        (older.id, Decimal("300.00")), (newer.id, Decimal("100.00"))
    ]
    assert supplier.outstanding == Decimal("-400.00")
    assert bank.balance == bank_before + Decimal("400")


def test_refund_beyond_advance_balance_reports_available(settlement, bank, supplier):
    settlement.create_payment(
        party_id=supplier.id, amount=Decimal("150"), payment_date=DAY, account_id=bank.id, is_advance=True
    )

    with pytest.raises(InsufficientBalanceError) as exc:
        settlement.create_advance_refund(
            party_id=supplier.id, account_id=bank.id, amount=Decimal("150.01"), refund_date=DAY
        )
    assert exc.value.available == Decimal("150.00")


def test_customer_refund_pays_money_out(db_session, settlement, bank, customer):
    settlement.create_receipt(
        party_id=customer.id, amount=Decimal("200"), payment_date=DAY, account_id=bank.id, is_advance=True
    )

    settlement.create_advance_refund(
        party_id=customer.id, account_id=bank.id, amount=Decimal("200"), refund_date=DAY
    )
    db_session.refresh(customer)
    db_session.refresh(bank)

    assert customer.outstanding == Decimal("0.00")
    assert bank.balance == Decimal("100000.00")


def test_refund_of_remainder_advance_leaves_outstanding_alone(db_session, settlement, bank, customer, make_document):
    make_document(customer, "100")
    settlement.create_receipt(party_id=customer.id, amount=Decimal("160"), payment_date=DAY, account_id=bank.id)
    db_session.refresh(customer)
    assert customer.outstanding == Decimal("0.00")

    settlement.create_advance_refund(
        party_id=customer.id, account_id=bank.id, amount=Decimal("60"), refund_date=DAY
    )
    db_session.refresh(customer)

    assert customer.outstanding == Decimal("0.00")
    assert settlement.list_open_advances(customer.id) == []


def test_reversing_a_refund_restores_the_advances(db_session, settlement, bank, supplier):
    advance = settlement.create_payment(
        party_id=supplier.id, amount=Decimal("300"), payment_date=DAY, account_id=bank.id, is_advance=True
    )
    refund = settlement.create_advance_refund(
        party_id=supplier.id, account_id=bank.id, amount=Decimal("120"), refund_date=DAY
    )

    settlement.reverse(refund.id)
    db_session.refresh(advance)
    db_session.refresh(supplier)

    assert advance.advance_balance == Decimal("300.00")
    assert advance.status == RecordStatus.ACTIVE.value
    assert supplier.outstanding == Decimal("-300.00")
    assert db_session.query(AdvanceDrawdown).count() == 1


def test_entities_have_no_refundable_advances(settlement, bank, make_party):
    lender = make_party(name="City Finance", role="Entity")
    with pytest.raises(ValidationError):
        settlement.create_advance_refund(
            party_id=lender.id, account_id=bank.id, amount=Decimal("10"), refund_date=DAY
        )
