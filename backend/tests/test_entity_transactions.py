"""
Loans and investments with financial entities.
"""
from datetime import date
from decimal import Decimal

import pytest

from erp_ledger.core.exceptions import InsufficientBalanceError, ValidationError
from erp_ledger.models import LedgerEntry

DAY = date(2024, 7, 1)


@pytest.fixture
def lender(make_party):
    return make_party(name="City Finance", role="Entity")


def test_loan_taken_raises_liability(db_session, settlement, bank, lender):
    loan = settlement.create_entity_transaction(
        party_id=lender.id, account_id=bank.id, transaction_type="LOAN_TAKEN",
        amount=Decimal("10000"), transaction_date=DAY
    )
    db_session.refresh(bank)
    db_session.refresh(lender)

    assert loan.code == "FIN-00001"
    assert bank.balance == Decimal("110000.00")
    assert lender.outstanding == Decimal("10000.00")


def test_repayment_splits_principal_and_interest(db_session, settlement, bank, lender):
    settlement.create_entity_transaction(
        party_id=lender.id, account_id=bank.id, transaction_type="LOAN_TAKEN",
        amount=Decimal("10000"), transaction_date=DAY
    )
    repayment = settlement.create_entity_transaction(
        party_id=lender.id, account_id=bank.id, transaction_type="REPAYMENT", amount=Decimal("1200"),
        transaction_date=DAY, principal_amount=Decimal("1000"), interest_amount=Decimal("200")
    )
    db_session.refresh(bank)

    assert bank.balance == Decimal("108800.00")
    interest_rows = db_session.query(LedgerEntry).filter(
        LedgerEntry.transaction_id == repayment.transaction_id, LedgerEntry.ref_kind == "NOMINAL"
    ).all()
    assert [(r.ref_id, r.debit) for r in interest_rows] == [(3, Decimal("200.00"))]

    summary = settlement.get_entity_summary(lender.id)
    assert summary["total_taken"] == Decimal("10000.00")
    assert summary["total_repaid_gross"] == Decimal("1200.00")
    assert summary["principal_repaid"] == Decimal("1000.00")
    assert summary["interest_paid"] == Decimal("200.00")
    assert summary["outstanding"] == Decimal("9000.00")


def test_repayment_split_must_add_up(settlement, bank, lender):
    with pytest.raises(ValidationError):
        settlement.create_entity_transaction(
            party_id=lender.id, account_id=bank.id, transaction_type="REPAYMENT", amount=Decimal("1200"),
            transaction_date=DAY, principal_amount=Decimal("1000"), interest_amount=Decimal("100")
        )


def test_missing_principal_is_derived(settlement, bank, lender):
    repayment = settlement.create_entity_transaction(
        party_id=lender.id, account_id=bank.id, transaction_type="REPAYMENT", amount=Decimal("300"),
        transaction_date=DAY, interest_amount=Decimal("50")
    )
    assert repayment.principal_amount == Decimal("250.00")
    assert repayment.interest_amount == Decimal("50.00")


def test_unsplit_repayment_is_all_principal(settlement, bank, lender):
    repayment = settlement.create_entity_transaction(
        party_id=lender.id, account_id=bank.id, transaction_type="REPAYMENT", amount=Decimal("300"),
        transaction_date=DAY
    )
    assert repayment.principal_amount == Decimal("300.00")
    assert repayment.interest_amount == Decimal("0.00")


def test_loan_given_becomes_receivable(db_session, settlement, bank, lender):
    settlement.create_entity_transaction(
        party_id=lender.id, account_id=bank.id, transaction_type="LOAN_GIVEN",
        amount=Decimal("5000"), transaction_date=DAY
    )
    db_session.refresh(lender)
    assert lender.outstanding == Decimal("-5000.00")
    assert settlement.get_entity_summary(lender.id)["total_given"] == Decimal("5000.00")


def test_outflow_respects_credit_limit(settlement, make_account, lender):
    cc = make_account(name="CC", type="CC", balance="0", sanctioned_limit="1000")
    with pytest.raises(InsufficientBalanceError):
        settlement.create_entity_transaction(
            party_id=lender.id, account_id=cc.id, transaction_type="INVESTMENT_MADE",
            amount=Decimal("1500"), transaction_date=DAY
        )


def test_only_entities_and_known_types(settlement, bank, customer, lender):
    with pytest.raises(ValidationError):
        settlement.create_entity_transaction(
            party_id=customer.id, account_id=bank.id, transaction_type="LOAN_TAKEN",
            amount=Decimal("10"), transaction_date=DAY
        )
    with pytest.raises(ValidationError):
        settlement.create_entity_transaction(
            party_id=lender.id, account_id=bank.id, transaction_type="GIFT",
            amount=Decimal("10"), transaction_date=DAY
        )
    with pytest.raises(ValidationError):
        settlement.get_entity_summary(customer.id)


def test_entity_transaction_reversal(db_session, settlement, bank, lender):
    loan = settlement.create_entity_transaction(
        party_id=lender.id, account_id=bank.id, transaction_type="BORROWING",
        amount=Decimal("750"), transaction_date=DAY
    )
    settlement.reverse(loan.id)
    db_session.refresh(bank)
    db_session.refresh(lender)

    assert bank.balance == Decimal("100000.00")
    assert lender.outstanding == Decimal("0.00")
    assert settlement.get_entity_summary(lender.id)["total_taken"] == Decimal("0.00")
