"""
Statement Service - running-balance history of an account, party or nominal head
"""
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Tuple
import math

from sqlalchemy import func, select
from sqlalchemy.orm import Session, aliased

from erp_ledger.core.config import settings
from erp_ledger.core.exceptions import NotFoundError, ValidationError
from erp_ledger.core.money import ZERO, to_money
from erp_ledger.models import Account, LedgerEntry, LedgerRefKind, NominalHead, Party, PartyRole


@dataclass
class StatementRow:
    entry_id: int
    transaction_id: str
    transaction_date: date
    voucher_type: Optional[str]
    description: Optional[str]
    debit: Decimal
    credit: Decimal
    is_reversal: bool
    balance_before: Decimal
    balance_after: Decimal


def build_statement(current_balance: Decimal, history_desc, debit_increases: bool) -> List[StatementRow]:
    """
    Attach running balances to a newest-first history.

    ``current_balance`` is the balance after the newest row. Each earlier
    balance is derived by undoing one row at a time, so no per-row query
    is needed.
    """
    balance_after = to_money(current_balance)
    rows = []
    for entry in history_desc:
        debit = to_money(entry.debit)
        credit = to_money(entry.credit)
        if debit_increases:
            balance_before = to_money(balance_after - debit + credit)
        else:
            balance_before = to_money(balance_after - credit + debit)
        rows.append(StatementRow(
            entry_id=entry.id,
            transaction_id=entry.transaction_id,
            transaction_date=entry.transaction_date,
            voucher_type=entry.voucher_type,
            description=entry.description,
            debit=debit,
            credit=credit,
            is_reversal=bool(entry.is_reversal),
            balance_before=balance_before,
            balance_after=balance_after
        ))
        balance_after = balance_before
    return rows


class StatementService:
    def __init__(self, db: Session):
        self.db = db

    def get_statement(self, kind: str, ref_id: int, page: int = 1, limit: Optional[int] = None) -> Dict:
        """One page of a ledger reference's history, newest first, with its summary"""
        limit = min(limit or settings.DEFAULT_PAGE_SIZE, settings.MAX_PAGE_SIZE)
        page = max(page, 1)
        offset = (page - 1) * limit

        current_balance, debit_increases = self._resolve(kind, ref_id)
        ref_filter = (LedgerEntry.ref_kind == kind, LedgerEntry.ref_id == ref_id)
        newest_first = (LedgerEntry.transaction_date.desc(), LedgerEntry.id.desc())

        total = self.db.query(func.count(LedgerEntry.id)).filter(*ref_filter).scalar() or 0

        # Balance right after the newest row of this page
        newer = self.db.query(
            LedgerEntry.debit.label("debit"), LedgerEntry.credit.label("credit")
        ).filter(*ref_filter).order_by(*newest_first).limit(offset).subquery()
        newer_debit, newer_credit = self._sum_pair(
            self.db.query(func.sum(newer.c.debit), func.sum(newer.c.credit)).one()
        )
        if debit_increases:
            page_start = to_money(current_balance - newer_debit + newer_credit)
        else:
            page_start = to_money(current_balance - newer_credit + newer_debit)

        entries = self.db.query(LedgerEntry).filter(
            *ref_filter
        ).order_by(*newest_first).offset(offset).limit(limit).all()

        history = build_statement(page_start, entries, debit_increases)

        # Inflow/outflow ignore reversed transactions and the reversals themselves
        reversal = aliased(LedgerEntry)
        reversed_ids = select(reversal.reverses_transaction_id).where(
            reversal.reverses_transaction_id.isnot(None)
        )
        total_debit, total_credit = self._sum_pair(
            self.db.query(func.sum(LedgerEntry.debit), func.sum(LedgerEntry.credit)).filter(
                *ref_filter,
                LedgerEntry.is_reversal == False,  # noqa: E712
                LedgerEntry.transaction_id.notin_(reversed_ids)
            ).one()
        )

        return {
            "ref": {"kind": kind, "id": ref_id},
            "history": history,
            "summary": {
                "current_balance": to_money(current_balance),
                "total_inflow": total_debit if debit_increases else total_credit,
                "total_outflow": total_credit if debit_increases else total_debit,
            },
            "meta": {
                "page": page,
                "limit": limit,
                "total": total,
                "total_pages": math.ceil(total / limit) if total else 0,
            },
        }

    def _resolve(self, kind: str, ref_id: int) -> Tuple[Decimal, bool]:
        """Current balance and sign convention of a ledger reference"""
        if kind == LedgerRefKind.ACCOUNT.value:
            account = self.db.query(Account).filter(Account.id == ref_id).first()
            if not account:
                raise NotFoundError(f"Account {ref_id} not found")
            return to_money(account.balance), True

        if kind == LedgerRefKind.PARTY.value:
            party = self.db.query(Party).filter(Party.id == ref_id).first()
            if not party:
                raise NotFoundError(f"Party {ref_id} not found")
            return to_money(party.outstanding), party.role == PartyRole.CUSTOMER.value

        if kind == LedgerRefKind.PARTY_ADVANCE.value:
            if not self.db.query(Party).filter(Party.id == ref_id).first():
                raise NotFoundError(f"Party {ref_id} not found")
        elif kind == LedgerRefKind.NOMINAL.value:
            if ref_id not in {head.value for head in NominalHead}:
                raise NotFoundError(f"Nominal head {ref_id} not found")
        else:
            raise ValidationError(f"Unknown ledger reference kind {kind}", field="kind")

        # No stored balance: derive it from the rows
        debit, credit = self._sum_pair(
            self.db.query(func.sum(LedgerEntry.debit), func.sum(LedgerEntry.credit)).filter(
                LedgerEntry.ref_kind == kind,
                LedgerEntry.ref_id == ref_id
            ).one()
        )
        return to_money(credit - debit), False

    @staticmethod
    def _sum_pair(row) -> Tuple[Decimal, Decimal]:
        debit, credit = row
        return to_money(debit or ZERO), to_money(credit or ZERO)
