"""
Allocation Engine

Splits a payment amount across outstanding documents, either as the caller
requests (manual) or oldest-first (FIFO). Works purely on its inputs; the
caller fetches the documents and persists the result.
"""
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional

from erp_ledger.core.exceptions import OverAllocationError, ValidationError
from erp_ledger.core.money import ZERO, money_sum, to_money


@dataclass
class OutstandingDocument:
    id: int
    document_date: date
    balance_due: Decimal
    grand_total: Optional[Decimal] = None
    number: Optional[str] = None


@dataclass
class AllocationLine:
    document_id: int
    amount: Decimal


@dataclass
class AllocationResult:
    allocations: List[AllocationLine] = field(default_factory=list)
    unallocated_remainder: Decimal = ZERO

    @property
    def allocated_total(self) -> Decimal:
        return money_sum(a.amount for a in self.allocations)


def allocate(
    payment_amount: Decimal,
    outstanding_documents: List[OutstandingDocument],
    requested_allocations: Optional[Dict[int, Decimal]] = None
) -> AllocationResult:
    """
    Allocate a payment against outstanding documents.

    With ``requested_allocations`` each amount is checked against the
    document's balance due and the total against the payment amount.
    Without it, documents are settled oldest first. Zero amounts never
    produce an allocation line.
    """
    amount = to_money(payment_amount)
    if amount <= 0:
        raise ValidationError("Payment amount must be greater than zero", field="amount")

    documents = sorted(outstanding_documents, key=lambda d: (d.document_date, d.id))

    if requested_allocations is not None:
        return _allocate_manual(amount, documents, requested_allocations)
    return _allocate_fifo(amount, documents)


def _allocate_manual(amount, documents, requested_allocations) -> AllocationResult:
    by_id = {doc.id: doc for doc in documents}
    lines = []
    total = ZERO

    for document_id, requested in requested_allocations.items():
        requested = to_money(requested)
        if requested < 0:
            raise ValidationError(
                f"Allocation for document {document_id} cannot be negative",
                field="allocations"
            )
        if requested == 0:
            continue

        doc = by_id.get(document_id)
        if doc is None:
            raise ValidationError(
                f"Document {document_id} is not outstanding for this party",
                field="allocations"
            )
        if requested > to_money(doc.balance_due):
            raise OverAllocationError(
                f"Allocation {requested} exceeds balance due {to_money(doc.balance_due)} "
                f"on document {doc.number or doc.id}",
                field="allocations"
            )
        total += requested
        lines.append(AllocationLine(document_id=document_id, amount=requested))

    total = to_money(total)
    if total > amount:
        raise OverAllocationError(
            f"Allocations total {total} exceeds payment amount {amount}",
            field="allocations"
        )

    return AllocationResult(allocations=lines, unallocated_remainder=to_money(amount - total))


def _allocate_fifo(amount, documents) -> AllocationResult:
    lines = []
    remaining = amount

    for doc in documents:
        if remaining <= 0:
            break
        balance_due = to_money(doc.balance_due)
        if balance_due <= 0:
            continue
        applied = min(balance_due, remaining)
        lines.append(AllocationLine(document_id=doc.id, amount=applied))
        remaining = to_money(remaining - applied)

    return AllocationResult(allocations=lines, unallocated_remainder=remaining)
