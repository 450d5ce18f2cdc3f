"""
Contra transfers between the company's own accounts.
"""
from datetime import date
from decimal import Decimal

import pytest

from erp_ledger.core.exceptions import AlreadyReversedError, InsufficientBalanceError, ValidationError
from erp_ledger.models import LedgerEntry, RecordStatus

DAY = date(2024, 4, 1)


def test_transfer_conserves_money(db_session, settlement, make_account, customer):
    bank = make_account(name="Bank", balance="1000")
    cash = make_account(name="Petty Cash", type="Cash", balance="50")

    transfer = settlement.create_transfer(
        from_account_id=bank.id, to_account_id=cash.id, amount=Decimal("400"), transfer_date=DAY
    )
    db_session.refresh(bank)
    db_session.refresh(cash)
    db_session.refresh(customer)

    assert transfer.transfer_number == "TRF-00001"
    assert bank.balance == Decimal("600.00")
    assert cash.balance == Decimal("450.00")
    assert customer.outstanding == Decimal("0.00")

    rows = db_session.query(LedgerEntry).filter(LedgerEntry.transaction_id == transfer.transaction_id).all()
    assert {(r.ref_id, r.debit, r.credit) for r in rows} == {
        (cash.id, Decimal("400.00"), Decimal("0.00")),
        (bank.id, Decimal("0.00"), Decimal("400.00")),
    }


def test_transfer_to_same_account_is_rejected(settlement, make_account):
    bank = make_account(balance="1000")
    with pytest.raises(ValidationError):
        settlement.create_transfer(
            from_account_id=bank.id, to_account_id=bank.id, amount=Decimal("1"), transfer_date=DAY
        )


def test_transfer_beyond_balance_reports_available(db_session, settlement, make_account):
    bank = make_account(name="Bank", balance="300")
    cash = make_account(name="Cash", type="Cash")

    with pytest.raises(InsufficientBalanceError) as exc:
        settlement.create_transfer(
            from_account_id=bank.id, to_account_id=cash.id, amount=Decimal("300.01"), transfer_date=DAY
        )
    assert exc.value.available == Decimal("300.00")
    assert "300.00" in exc.value.message

    db_session.refresh(bank)
    assert bank.balance == Decimal("300.00")


def test_credit_line_can_transfer_up_to_its_limit(db_session, settlement, make_account):
    cc = make_account(name="CC", type="CC", balance="-200", sanctioned_limit="1000")
    bank = make_account(name="Bank")

    with pytest.raises(InsufficientBalanceError) as exc:
        settlement.create_transfer(
            from_account_id=cc.id, to_account_id=bank.id, amount=Decimal("900"), transfer_date=DAY
        )
    assert exc.value.available == Decimal("800.00")

    settlement.create_transfer(from_account_id=cc.id, to_account_id=bank.id, amount=Decimal("800"), transfer_date=DAY)
    db_session.refresh(cc)
    assert cc.balance == Decimal("-1000.00")


def test_transfer_reversal(db_session, settlement, make_account):
    bank = make_account(name="Bank", balance="1000")
    cash = make_account(name="Cash", type="Cash")
    transfer = settlement.create_transfer(
        from_account_id=bank.id, to_account_id=cash.id, amount=Decimal("250"), transfer_date=DAY
    )

    reversed_transfer = settlement.reverse_transfer(transfer.id, reason="Wrong account")
    db_session.refresh(bank)
    db_session.refresh(cash)

    assert reversed_transfer.status == RecordStatus.REVERSED.value
    assert bank.balance == Decimal("1000.00")
    assert cash.balance == Decimal("0.00")

    with pytest.raises(AlreadyReversedError):
        settlement.reverse_transfer(transfer.id)
