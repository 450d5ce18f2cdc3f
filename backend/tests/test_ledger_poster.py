"""
Ledger poster: balanced postings and the balances they move.
"""
from datetime import date
from decimal import Decimal

import pytest

from erp_ledger.core.exceptions import NotFoundError, UnbalancedTransactionError, ValidationError
from erp_ledger.models import LedgerEntry, NominalHead, PartyRole
from erp_ledger.services.ledger_poster import LedgerLine, LedgerPoster, LedgerRef, PostingContext

CONTEXT = PostingContext(date(2024, 1, 10), "Test")


def test_balanced_posting_moves_account_and_customer(db_session, bank, customer):
    poster = LedgerPoster(db_session)
    entries = poster.post("T-1", [
        LedgerLine(LedgerRef.account(bank.id), debit=Decimal("250")),
        LedgerLine(LedgerRef.party(customer.id), credit=Decimal("250")),
    ], CONTEXT)
    db_session.commit()

    assert len(entries) == 2
    assert bank.balance == Decimal("100250.00")
    assert customer.outstanding == Decimal("-250.00")


def test_supplier_credit_increases_outstanding(db_session, supplier):
    LedgerPoster(db_session).post("T-1", [
        LedgerLine(LedgerRef.nominal(NominalHead.PURCHASES), debit=Decimal("90")),
        LedgerLine(LedgerRef.party(supplier.id), credit=Decimal("90")),
    ], CONTEXT)
    db_session.commit()

    assert supplier.outstanding == Decimal("90.00")


def test_unbalanced_posting_writes_nothing(db_session, bank, customer):
    with pytest.raises(UnbalancedTransactionError):
        LedgerPoster(db_session).post("T-1", [
            LedgerLine(LedgerRef.account(bank.id), debit=Decimal("100")),
            LedgerLine(LedgerRef.party(customer.id), credit=Decimal("99.99")),
        ], CONTEXT)
    db_session.rollback()

    assert db_session.query(LedgerEntry).count() == 0
    assert bank.balance == Decimal("100000.00")


def test_line_with_both_sides_is_rejected(db_session, bank, customer):
    with pytest.raises(UnbalancedTransactionError):
        LedgerPoster(db_session).post("T-1", [
            LedgerLine(LedgerRef.account(bank.id), debit=Decimal("10"), credit=Decimal("10")),
        ], CONTEXT)


def test_empty_posting_is_rejected(db_session):
    with pytest.raises(UnbalancedTransactionError):
        LedgerPoster(db_session).post("T-1", [], CONTEXT)


def test_unknown_account_is_not_found(db_session, customer):
    with pytest.raises(NotFoundError):
        LedgerPoster(db_session).post("T-1", [
            LedgerLine(LedgerRef.account(999), debit=Decimal("10")),
            LedgerLine(LedgerRef.party(customer.id), credit=Decimal("10")),
        ], CONTEXT)


def test_lines_on_same_reference_are_netted(db_session, make_account, bank):
    cash = make_account(name="Cash", type="Cash", balance="0")
    LedgerPoster(db_session).post("T-1", [
        LedgerLine(LedgerRef.account(bank.id), debit=Decimal("30")),
        LedgerLine(LedgerRef.account(bank.id), credit=Decimal("100")),
        LedgerLine(LedgerRef.account(cash.id), debit=Decimal("70")),
    ], CONTEXT)
    db_session.commit()

    assert bank.balance == Decimal("99930.00")
    assert cash.balance == Decimal("70.00")


def test_reversal_restores_balances(db_session, bank, make_party):
    lender = make_party(name="City Finance", role=PartyRole.ENTITY.value)
    poster = LedgerPoster(db_session)
    poster.post("T-1", [
        LedgerLine(LedgerRef.account(bank.id), debit=Decimal("500")),
        LedgerLine(LedgerRef.party(lender.id), credit=Decimal("500")),
    ], CONTEXT)
    reversal_number = poster.next_reversal_number()
    reversal = poster.post_reversal("T-1", reversal_number, CONTEXT)
    db_session.commit()

    assert reversal_number == "REV-00001"
    assert bank.balance == Decimal("100000.00")
    assert lender.outstanding == Decimal("0.00")
    assert all(e.is_reversal and e.reverses_transaction_id == "T-1" for e in reversal)
    assert poster.next_reversal_number() == "REV-00002"


def test_reversal_of_unknown_transaction_is_not_found(db_session):
    with pytest.raises(NotFoundError):
        LedgerPoster(db_session).post_reversal("NOPE-1", "REV-00001", CONTEXT)


def test_transaction_id_cannot_be_reused(db_session, bank, customer):
    poster = LedgerPoster(db_session)
    lines = [
        LedgerLine(LedgerRef.account(bank.id), debit=Decimal("40")),
        LedgerLine(LedgerRef.party(customer.id), credit=Decimal("40")),
    ]
    poster.post("T-1", lines, CONTEXT)

    with pytest.raises(ValidationError):
        poster.post("T-1", lines, CONTEXT)
    db_session.commit()

    assert len(poster.get_entries("T-1")) == 2
    assert bank.balance == Decimal("100040.00")
