"""
Document Service - Invoices and Bills as seen by the settlement engine
"""
from typing import Optional, List
from sqlalchemy.orm import Session
from decimal import Decimal
from datetime import date
import logging

from erp_ledger.core.exceptions import NotFoundError, ValidationError
from erp_ledger.core.money import ZERO, to_money
from erp_ledger.models import (
    Document, DocumentType, DocumentStatus, PaymentStatus, PaymentAllocation,
    Payment, Party, PartyRole, RecordStatus, NominalHead
)
from erp_ledger.services.allocation_engine import OutstandingDocument
from erp_ledger.services.audit_service import AuditService, AuditAction
from erp_ledger.services.ledger_poster import (
    LedgerPoster, LedgerLine, LedgerRef, PostingContext, next_sequence_number
)

logger = logging.getLogger(__name__)

DOCUMENT_PREFIXES = {
    DocumentType.INVOICE.value: "INV",
    DocumentType.BILL.value: "BILL",
}


class DocumentService:
    def __init__(self, db: Session):
        self.db = db
        self.poster = LedgerPoster(db)

    def get_by_id(self, document_id: int) -> Optional[Document]:
        return self.db.query(Document).filter(Document.id == document_id).first()

    def get_for_update(self, document_id: int) -> Optional[Document]:
        return self.db.query(Document).filter(
            Document.id == document_id
        ).with_for_update().first()

    def get_next_number(self, doc_type: str) -> str:
        return next_sequence_number(self.db, Document, "number", DOCUMENT_PREFIXES[doc_type])

    def create_document(
        self,
        party_id: int,
        doc_type: str,
        document_date: date,
        grand_total: Decimal,
        number: Optional[str] = None,
        notes: Optional[str] = None
    ) -> Document:
        """Create a draft invoice or bill"""
        if doc_type not in DOCUMENT_PREFIXES:
            raise ValidationError(f"Unknown document type {doc_type}", field="doc_type")

        grand_total = to_money(grand_total)
        if grand_total <= 0:
            raise ValidationError("Grand total must be greater than zero", field="grand_total")

        party = self.db.query(Party).filter(Party.id == party_id).first()
        if not party:
            raise NotFoundError(f"Party {party_id} not found")

        expected_role = PartyRole.CUSTOMER.value if doc_type == DocumentType.INVOICE.value else PartyRole.SUPPLIER.value
        if party.role != expected_role:
            raise ValidationError(
                f"A {doc_type} can only be raised for a {expected_role}", field="party_id"
            )

        document = Document(
            number=number or self.get_next_number(doc_type),
            doc_type=doc_type,
            party_id=party_id,
            document_date=document_date,
            grand_total=grand_total,
            paid_amount=ZERO,
            balance_due=ZERO,
            status=DocumentStatus.DRAFT.value,
            payment_status=PaymentStatus.UNPAID.value,
            notes=notes
        )
        self.db.add(document)
        self.db.flush()
        return document

    def confirm_document(self, document_id: int) -> Document:
        """Confirm a draft; it starts counting toward the party's outstanding"""
        document = self.get_for_update(document_id)
        if not document:
            raise NotFoundError(f"Document {document_id} not found")
        if document.status != DocumentStatus.DRAFT.value:
            raise ValidationError(f"Document {document.number} is {document.status}, not Draft", field="status")

        amount = to_money(document.grand_total)
        if document.doc_type == DocumentType.INVOICE.value:
            lines = [
                LedgerLine(LedgerRef.party(document.party_id), debit=amount),
                LedgerLine(LedgerRef.nominal(NominalHead.SALES), credit=amount),
            ]
        else:
            lines = [
                LedgerLine(LedgerRef.nominal(NominalHead.PURCHASES), debit=amount),
                LedgerLine(LedgerRef.party(document.party_id), credit=amount),
            ]

        # The ledger voucher is independent of the caller-supplied document number
        transaction_id = next_sequence_number(
            self.db, Document, "transaction_id", DOCUMENT_PREFIXES[document.doc_type]
        )
        self.poster.post(
            transaction_id,
            lines,
            PostingContext(document.document_date, document.doc_type, f"{document.doc_type} {document.number}")
        )

        document.status = DocumentStatus.CONFIRMED.value
        document.balance_due = amount
        document.paid_amount = ZERO
        document.payment_status = PaymentStatus.UNPAID.value
        document.transaction_id = transaction_id
        self.db.flush()

        AuditService(self.db).log(
            action=AuditAction.DOCUMENT_CONFIRMED,
            resource_type="Document",
            resource_id=document.id,
            description=f"Confirmed {document.doc_type} {document.number}",
            new_values={"grand_total": amount}
        )
        return document

    def cancel_document(self, document_id: int, cancel_date: Optional[date] = None) -> Document:
        """Cancel a document; confirmed ones are reversed out of the ledger"""
        document = self.get_for_update(document_id)
        if not document:
            raise NotFoundError(f"Document {document_id} not found")
        if document.status == DocumentStatus.CANCELLED.value:
            raise ValidationError(f"Document {document.number} is already cancelled", field="status")

        if document.status == DocumentStatus.CONFIRMED.value:
            if self.get_active_allocated_total(document.id) > 0:
                raise ValidationError(
                    f"Document {document.number} has payments allocated; reverse them first",
                    field="status"
                )
            self.poster.post_reversal(
                document.transaction_id,
                self.poster.next_reversal_number(),
                PostingContext(cancel_date or date.today(), "Cancellation", f"Cancel {document.number}")
            )

        old_status = document.status
        document.status = DocumentStatus.CANCELLED.value
        document.balance_due = ZERO
        self.db.flush()

        AuditService(self.db).log(
            action=AuditAction.DOCUMENT_CANCELLED,
            resource_type="Document",
            resource_id=document.id,
            description=f"Cancelled {document.doc_type} {document.number}",
            old_values={"status": old_status},
            new_values={"status": document.status}
        )
        return document

    def list_outstanding_documents(self, party_id: int, for_update: bool = False) -> List[OutstandingDocument]:
        """Confirmed documents with a balance due, oldest first"""
        query = self.db.query(Document).filter(
            Document.party_id == party_id,
            Document.status == DocumentStatus.CONFIRMED.value,
            Document.balance_due > 0
        ).order_by(Document.document_date, Document.id)
        if for_update:
            query = query.with_for_update()
        documents = query.all()

        return [
            OutstandingDocument(
                id=d.id,
                document_date=d.document_date,
                balance_due=to_money(d.balance_due),
                grand_total=to_money(d.grand_total),
                number=d.number
            )
            for d in documents
        ]

    def get_active_allocated_total(self, document_id: int) -> Decimal:
        allocations = self.db.query(PaymentAllocation).join(Payment).filter(
            PaymentAllocation.document_id == document_id,
            Payment.status == RecordStatus.ACTIVE.value
        ).all()
        return to_money(sum((to_money(a.amount) for a in allocations), ZERO))

    def apply_allocation(self, document: Document, amount: Decimal):
        """Reduce a document's balance due by an allocated amount"""
        amount = to_money(amount)
        document.paid_amount = to_money(to_money(document.paid_amount) + amount)
        document.balance_due = to_money(to_money(document.balance_due) - amount)
        self._refresh_payment_status(document)

    def release_allocation(self, document: Document, amount: Decimal):
        """Give an allocated amount back to a document's balance due"""
        amount = to_money(amount)
        document.paid_amount = to_money(to_money(document.paid_amount) - amount)
        document.balance_due = to_money(to_money(document.balance_due) + amount)
        self._refresh_payment_status(document)

    def _refresh_payment_status(self, document: Document):
        if document.balance_due <= 0:
            document.payment_status = PaymentStatus.PAID.value
        elif document.paid_amount > 0:
            document.payment_status = PaymentStatus.PARTIAL.value
        else:
            document.payment_status = PaymentStatus.UNPAID.value
