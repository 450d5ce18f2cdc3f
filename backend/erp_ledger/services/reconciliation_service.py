"""
Reconciliation Service

Recomputes each party's outstanding from confirmed documents, active
allocations and open explicit advances, and overwrites the stored value
when it has drifted past the tolerance. Safe to re-run.
"""
from decimal import Decimal
from typing import Dict, List
import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from erp_ledger.core.config import settings
from erp_ledger.core.exceptions import NotFoundError, ValidationError
from erp_ledger.core.money import ZERO, to_money
from erp_ledger.models import (
    AdvanceKind, Document, DocumentStatus, Party, PartyRole, Payment,
    PaymentAllocation, RecordStatus
)
from erp_ledger.services.audit_service import AuditAction, AuditService

logger = logging.getLogger(__name__)


class ReconciliationService:
    def __init__(self, db: Session):
        self.db = db

    def compute_outstanding(self, party: Party) -> Decimal:
        """Outstanding as implied by documents, allocations and explicit advances"""
        confirmed_total = self.db.query(func.sum(Document.grand_total)).filter(
            Document.party_id == party.id,
            Document.status == DocumentStatus.CONFIRMED.value
        ).scalar()

        allocated_total = self.db.query(func.sum(PaymentAllocation.amount)).join(
            Payment, PaymentAllocation.payment_id == Payment.id
        ).join(
            Document, PaymentAllocation.document_id == Document.id
        ).filter(
            Document.party_id == party.id,
            Document.status == DocumentStatus.CONFIRMED.value,
            Payment.status == RecordStatus.ACTIVE.value
        ).scalar()

        open_advances = self.db.query(func.sum(Payment.advance_balance)).filter(
            Payment.party_id == party.id,
            Payment.status == RecordStatus.ACTIVE.value,
            Payment.advance_kind == AdvanceKind.EXPLICIT.value
        ).scalar()

        computed = to_money(
            to_money(party.opening_balance)
            + to_money(confirmed_total or ZERO)
            - to_money(allocated_total or ZERO)
            - to_money(open_advances or ZERO)
        )
        if settings.RECONCILIATION_CLAMP_NEGATIVE and computed < 0:
            computed = ZERO
        return computed

    def recalculate_outstanding(self, party_id: int) -> Dict:
        """Recompute one party and commit the correction, if any"""
        try:
            party = self.db.query(Party).filter(Party.id == party_id).with_for_update().first()
            if not party:
                raise NotFoundError(f"Party {party_id} not found")
            if party.role == PartyRole.ENTITY.value:
                raise ValidationError("Entity balances are not derived from documents", field="party_id")

            previous = to_money(party.outstanding)
            corrected = self.compute_outstanding(party)
            drift = to_money(corrected - previous)
            updated = abs(drift) > settings.DRIFT_TOLERANCE

            if updated:
                party.outstanding = corrected
                logger.warning(
                    f"Outstanding drift for {party.role} {party.name} (id={party.id}): "
                    f"{previous} -> {corrected} (drift {drift})"
                )
                AuditService(self.db).log(
                    action=AuditAction.DRIFT_CORRECTED,
                    resource_type="Party",
                    resource_id=party.id,
                    description=f"Outstanding corrected by {drift}",
                    old_values={"outstanding": previous},
                    new_values={"outstanding": corrected}
                )

            detail = {
                "party_id": party.id,
                "party_name": party.name,
                "role": party.role,
                "previous": previous,
                "corrected": corrected,
                "drift": drift,
                "updated": updated,
            }
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return detail

    def recalculate_all(self) -> Dict:
        """Recompute every customer and supplier, one commit per party"""
        party_ids = [
            row.id for row in self.db.query(Party.id).filter(
                Party.role.in_([PartyRole.CUSTOMER.value, PartyRole.SUPPLIER.value])
            ).order_by(Party.id).all()
        ]

        details: List[Dict] = []
        for party_id in party_ids:
            details.append(self.recalculate_outstanding(party_id))

        updated_count = sum(1 for d in details if d["updated"])
        logger.info(f"Reconciliation finished: {updated_count} of {len(details)} parties corrected")
        return {"updated_count": updated_count, "details": details}
