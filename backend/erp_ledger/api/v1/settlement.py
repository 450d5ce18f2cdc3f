"""
Settlement API Routes - Receipts, Payments, Advances, Refunds, Transfers, Reversals
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Dict, List, Optional

from erp_ledger.core.database import get_db
from erp_ledger.core.exceptions import ValidationError
from erp_ledger.schemas import (
    PartySettlementCreate, PaymentResponse, PaymentListResponse,
    AdvanceAdjustRequest, AdvanceRefundCreate,
    TransferCreate, TransferResponse, ReversalRequest,
    EntityTransactionCreate, EntitySummaryResponse
)
from erp_ledger.services.settlement_service import (
    SettlementService, ReceiptCommand, PaymentCommand, AdvanceRefundCommand,
    TransferCommand, TransferReversalCommand, ReversalCommand, AmendPaymentCommand,
    EntityTransactionCommand, AdvanceAdjustmentCommand
)
from erp_ledger.models import PaymentType

router = APIRouter(prefix="/settlement", tags=["Settlement"])


def _to_command(command_class, data: PartySettlementCreate):
    allocations: Optional[Dict] = None
    if data.allocations is not None:
        allocations = {}
        for line in data.allocations:
            if line.document_id in allocations:
                raise ValidationError(
                    f"Document {line.document_id} appears more than once", field="allocations"
                )
            allocations[line.document_id] = line.amount

    return command_class(
        party_id=data.party_id,
        amount=data.amount,
        payment_date=data.payment_date,
        account_id=data.account_id,
        mode=data.mode.value,
        allocations=allocations,
        is_advance=data.is_advance,
        use_advance=data.use_advance,
        source_advance_id=data.source_advance_id,
        reference=data.reference,
        remarks=data.remarks
    )


# ==================== RECEIPTS & PAYMENTS ====================

@router.post("/receipts", response_model=PaymentResponse, status_code=201)
async def create_receipt(data: PartySettlementCreate, db: Session = Depends(get_db)):
    """Record money received from a customer"""
    return SettlementService(db).execute(_to_command(ReceiptCommand, data))


@router.post("/payments", response_model=PaymentResponse, status_code=201)
async def create_payment(data: PartySettlementCreate, db: Session = Depends(get_db)):
    """Record money paid to a supplier"""
    return SettlementService(db).execute(_to_command(PaymentCommand, data))


@router.get("/payments", response_model=PaymentListResponse)
async def list_payments(
    payment_type: Optional[str] = None,
    party_id: Optional[int] = None,
    account_id: Optional[int] = None,
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db)
):
    return SettlementService(db).list_payments(payment_type, party_id, account_id, page, limit)


@router.get("/payments/{payment_id}", response_model=PaymentResponse)
async def get_payment(payment_id: int, db: Session = Depends(get_db)):
    return SettlementService(db).get_payment(payment_id)


@router.put("/payments/{payment_id}", response_model=PaymentResponse)
async def amend_payment(payment_id: int, data: PartySettlementCreate, db: Session = Depends(get_db)):
    """Reverse a payment and record its replacement in one step"""
    service = SettlementService(db)
    original = service.get_payment(payment_id)
    command_class = ReceiptCommand if original.payment_type == PaymentType.RECEIPT.value else PaymentCommand
    return service.execute(AmendPaymentCommand(payment_id, _to_command(command_class, data), data.remarks))


@router.post("/payments/{payment_id}/reverse", response_model=PaymentResponse)
async def reverse_payment(payment_id: int, data: Optional[ReversalRequest] = None, db: Session = Depends(get_db)):
    """Reverse a receipt, payment, refund or entity transaction"""
    data = data or ReversalRequest()
    return SettlementService(db).execute(ReversalCommand(payment_id, data.reason, data.reversal_date))


# ==================== ADVANCES ====================

@router.get("/advances/{party_id}", response_model=List[PaymentResponse])
async def list_open_advances(party_id: int, db: Session = Depends(get_db)):
    """Advances of a party that still have a balance"""
    return SettlementService(db).list_open_advances(party_id)


@router.post("/advances/{advance_id}/adjust", response_model=PaymentResponse, status_code=201)
async def adjust_advance(advance_id: int, data: AdvanceAdjustRequest, db: Session = Depends(get_db)):
    """Apply part of an advance to one document"""
    return SettlementService(db).execute(
        AdvanceAdjustmentCommand(advance_id, data.document_id, data.amount, data.adjustment_date)
    )


@router.post("/refunds", response_model=PaymentResponse, status_code=201)
async def create_advance_refund(data: AdvanceRefundCreate, db: Session = Depends(get_db)):
    """Refund unused advance balance"""
    return SettlementService(db).execute(AdvanceRefundCommand(
        party_id=data.party_id,
        account_id=data.account_id,
        amount=data.amount,
        refund_date=data.refund_date,
        mode=data.mode.value,
        reference=data.reference,
        remarks=data.remarks
    ))


# ==================== TRANSFERS ====================

@router.post("/transfers", response_model=TransferResponse, status_code=201)
async def create_transfer(data: TransferCreate, db: Session = Depends(get_db)):
    """Create a fund transfer"""
    return SettlementService(db).execute(TransferCommand(**data.model_dump()))


@router.post("/transfers/{transfer_id}/reverse", response_model=TransferResponse)
async def reverse_transfer(transfer_id: int, data: Optional[ReversalRequest] = None, db: Session = Depends(get_db)):
    data = data or ReversalRequest()
    return SettlementService(db).execute(TransferReversalCommand(transfer_id, data.reason, data.reversal_date))


# ==================== ENTITY TRANSACTIONS ====================

@router.post("/entity-transactions", response_model=PaymentResponse, status_code=201)
async def create_entity_transaction(data: EntityTransactionCreate, db: Session = Depends(get_db)):
    """Record a loan, investment or repayment with a financial entity"""
    return SettlementService(db).execute(EntityTransactionCommand(
        party_id=data.party_id,
        account_id=data.account_id,
        transaction_type=data.transaction_type.value,
        amount=data.amount,
        transaction_date=data.transaction_date,
        principal_amount=data.principal_amount,
        interest_amount=data.interest_amount,
        mode=data.mode.value,
        reference=data.reference,
        remarks=data.remarks
    ))


@router.get("/entities/{party_id}/summary", response_model=EntitySummaryResponse)
async def get_entity_summary(party_id: int, db: Session = Depends(get_db)):
    return SettlementService(db).get_entity_summary(party_id)
