"""
Ledger Poster - balanced double-entry postings and the balance projections they drive
"""
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional
import logging

from sqlalchemy.orm import Session

from erp_ledger.core.exceptions import NotFoundError, UnbalancedTransactionError, ValidationError
from erp_ledger.core.money import ZERO, to_money
from erp_ledger.models import Account, LedgerEntry, LedgerRefKind, Party, PartyRole

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerRef:
    """An Account, a Party sub-ledger, a party's advance sub-ledger or a nominal head"""
    kind: str
    id: int

    @classmethod
    def account(cls, account_id: int) -> "LedgerRef":
        return cls(LedgerRefKind.ACCOUNT.value, account_id)

    @classmethod
    def party(cls, party_id: int) -> "LedgerRef":
        return cls(LedgerRefKind.PARTY.value, party_id)

    @classmethod
    def party_advance(cls, party_id: int) -> "LedgerRef":
        return cls(LedgerRefKind.PARTY_ADVANCE.value, party_id)

    @classmethod
    def nominal(cls, head) -> "LedgerRef":
        return cls(LedgerRefKind.NOMINAL.value, head.value)


@dataclass
class LedgerLine:
    ref: LedgerRef
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    description: Optional[str] = None


@dataclass
class PostingContext:
    transaction_date: date
    voucher_type: str
    description: Optional[str] = None


def next_sequence_number(db: Session, model, field: str, prefix: str) -> str:
    """Get the next PREFIX-NNNNN number for a column, skipping non-numeric suffixes"""
    column = getattr(model, field)
    highest = 0
    for (value,) in db.query(column).filter(column.like(f"{prefix}-%")).all():
        suffix = value[len(prefix) + 1:]
        if suffix.isdigit():
            highest = max(highest, int(suffix))
    return f"{prefix}-{highest + 1:05d}"


class LedgerPoster:
    """Writes ledger rows and applies their net effect to Account and Party balances"""

    def __init__(self, db: Session):
        self.db = db

    def post(
        self,
        transaction_id: str,
        lines: List[LedgerLine],
        context: PostingContext,
        is_reversal: bool = False,
        reverses_transaction_id: Optional[str] = None
    ) -> List[LedgerEntry]:
        """
        Post one balanced transaction.

        Every line must carry exactly one positive side and the debit and credit
        totals must match. Rows are inserted and each distinct ledger reference
        has its stored balance updated once, all inside the caller's session.
        """
        if not lines:
            self._unbalanced(transaction_id, "no ledger lines supplied")

        # A transaction id names exactly one immutable entry set
        if self.db.query(LedgerEntry.id).filter(LedgerEntry.transaction_id == transaction_id).first():
            raise ValidationError(
                f"Ledger transaction {transaction_id} is already posted", field="transaction_id"
            )

        total_debit = ZERO
        total_credit = ZERO
        for line in lines:
            debit = to_money(line.debit)
            credit = to_money(line.credit)
            if debit < 0 or credit < 0 or (debit > 0) == (credit > 0):
                self._unbalanced(
                    transaction_id,
                    f"line for {line.ref.kind}:{line.ref.id} must have exactly one positive side"
                )
            total_debit += debit
            total_credit += credit

        if to_money(total_debit) != to_money(total_credit):
            self._unbalanced(
                transaction_id,
                f"debits {to_money(total_debit)} do not equal credits {to_money(total_credit)}"
            )

        entries = []
        net: Dict[LedgerRef, Decimal] = {}
        for line in lines:
            debit = to_money(line.debit)
            credit = to_money(line.credit)
            entry = LedgerEntry(
                transaction_id=transaction_id,
                ref_kind=line.ref.kind,
                ref_id=line.ref.id,
                debit=debit,
                credit=credit,
                transaction_date=context.transaction_date,
                voucher_type=context.voucher_type,
                description=line.description or context.description,
                is_reversal=is_reversal,
                reverses_transaction_id=reverses_transaction_id
            )
            self.db.add(entry)
            entries.append(entry)
            net[line.ref] = net.get(line.ref, ZERO) + debit - credit

        for ref, amount in net.items():
            self._apply(ref, amount)

        self.db.flush()
        logger.info(
            f"Posted {transaction_id} ({context.voucher_type}): "
            f"{len(entries)} rows, total {to_money(total_debit)}"
        )
        return entries

    def post_reversal(
        self,
        original_transaction_id: str,
        new_transaction_id: str,
        context: PostingContext
    ) -> List[LedgerEntry]:
        """Post the equal-and-opposite entry set of an earlier transaction"""
        originals = self.get_entries(original_transaction_id)
        if not originals:
            raise NotFoundError(f"Ledger transaction {original_transaction_id} not found")

        lines = [
            LedgerLine(
                ref=LedgerRef(entry.ref_kind, entry.ref_id),
                debit=entry.credit,
                credit=entry.debit,
                description=f"Reversal of {original_transaction_id}"
            )
            for entry in originals
        ]
        return self.post(
            new_transaction_id,
            lines,
            context,
            is_reversal=True,
            reverses_transaction_id=original_transaction_id
        )

    def get_entries(self, transaction_id: str) -> List[LedgerEntry]:
        return self.db.query(LedgerEntry).filter(
            LedgerEntry.transaction_id == transaction_id
        ).order_by(LedgerEntry.id).all()

    def next_reversal_number(self) -> str:
        return next_sequence_number(self.db, LedgerEntry, "transaction_id", "REV")

    def _apply(self, ref: LedgerRef, net_debit: Decimal):
        if ref.kind == LedgerRefKind.ACCOUNT.value:
            account = self.db.query(Account).filter(
                Account.id == ref.id
            ).with_for_update().first()
            if not account:
                raise NotFoundError(f"Account {ref.id} not found")
            account.balance = to_money(to_money(account.balance) + net_debit)

        elif ref.kind == LedgerRefKind.PARTY.value:
            party = self.db.query(Party).filter(
                Party.id == ref.id
            ).with_for_update().first()
            if not party:
                raise NotFoundError(f"Party {ref.id} not found")
            if party.role == PartyRole.CUSTOMER.value:
                party.outstanding = to_money(to_money(party.outstanding) + net_debit)
            else:
                party.outstanding = to_money(to_money(party.outstanding) - net_debit)

        # PARTY_ADVANCE and NOMINAL refs carry no stored balance

    def _unbalanced(self, transaction_id: str, reason: str):
        logger.error(f"Unbalanced transaction {transaction_id}: {reason}")
        raise UnbalancedTransactionError(f"Transaction {transaction_id} rejected: {reason}")
