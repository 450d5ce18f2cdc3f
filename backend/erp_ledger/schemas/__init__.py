"""
Pydantic Schemas for API Validation
"""
from pydantic import BaseModel, Field, ConfigDict
from typing import Dict, List, Optional
from datetime import datetime, date
from decimal import Decimal
from enum import Enum


# ==================== ENUMS ====================

class PaymentModeEnum(str, Enum):
    BANK = "Bank"
    CASH = "Cash"
    CHEQUE = "Cheque"
    UPI = "UPI"


class LedgerRefKindEnum(str, Enum):
    ACCOUNT = "ACCOUNT"
    PARTY = "PARTY"
    PARTY_ADVANCE = "PARTY_ADVANCE"
    NOMINAL = "NOMINAL"


class EntityTransactionTypeEnum(str, Enum):
    LOAN_TAKEN = "LOAN_TAKEN"
    BORROWING = "BORROWING"
    INVESTMENT_RECEIVED = "INVESTMENT_RECEIVED"
    LOAN_GIVEN = "LOAN_GIVEN"
    INVESTMENT_MADE = "INVESTMENT_MADE"
    REPAYMENT = "REPAYMENT"


# ==================== SETTLEMENT SCHEMAS ====================

class AllocationRequest(BaseModel):
    document_id: int
    amount: Decimal = Field(..., ge=0)


class PartySettlementCreate(BaseModel):
    party_id: int
    amount: Decimal = Field(..., gt=0)
    payment_date: date
    account_id: Optional[int] = None
    mode: PaymentModeEnum = PaymentModeEnum.BANK
    allocations: Optional[List[AllocationRequest]] = None  # None means FIFO
    is_advance: bool = False
    use_advance: bool = False
    source_advance_id: Optional[int] = None
    reference: Optional[str] = None
    remarks: Optional[str] = None


class AdvanceAdjustRequest(BaseModel):
    document_id: int
    amount: Decimal = Field(..., gt=0)
    adjustment_date: Optional[date] = None


class AdvanceRefundCreate(BaseModel):
    party_id: int
    account_id: int
    amount: Decimal = Field(..., gt=0)
    refund_date: date
    mode: PaymentModeEnum = PaymentModeEnum.BANK
    reference: Optional[str] = None
    remarks: Optional[str] = None


class TransferCreate(BaseModel):
    from_account_id: int
    to_account_id: int
    amount: Decimal = Field(..., gt=0)
    transfer_date: date
    reference: Optional[str] = None
    description: Optional[str] = None


class ReversalRequest(BaseModel):
    reason: Optional[str] = None
    reversal_date: Optional[date] = None


class EntityTransactionCreate(BaseModel):
    party_id: int
    account_id: int
    transaction_type: EntityTransactionTypeEnum
    amount: Decimal = Field(..., gt=0)
    transaction_date: date
    principal_amount: Optional[Decimal] = Field(None, ge=0)
    interest_amount: Optional[Decimal] = Field(None, ge=0)
    mode: PaymentModeEnum = PaymentModeEnum.BANK
    reference: Optional[str] = None
    remarks: Optional[str] = None


class AllocationResponse(BaseModel):
    id: int
    document_id: int
    amount: Decimal

    model_config = ConfigDict(from_attributes=True)


class DrawdownResponse(BaseModel):
    advance_id: int
    amount: Decimal

    model_config = ConfigDict(from_attributes=True)


class PaymentResponse(BaseModel):
    id: int
    code: str
    payment_type: str
    party_id: int
    payment_date: date
    amount: Decimal
    mode: str
    account_id: Optional[int] = None
    is_advance: bool
    advance_kind: Optional[str] = None
    advance_balance: Decimal
    source_advance_id: Optional[int] = None
    entity_transaction_type: Optional[str] = None
    principal_amount: Optional[Decimal] = None
    interest_amount: Optional[Decimal] = None
    status: str
    reference: Optional[str] = None
    remarks: Optional[str] = None
    transaction_id: str
    reversal_transaction_id: Optional[str] = None
    reversed_at: Optional[datetime] = None
    created_at: datetime
    allocations: List[AllocationResponse] = []
    drawdowns: List[DrawdownResponse] = []

    model_config = ConfigDict(from_attributes=True)


class TransferResponse(BaseModel):
    id: int
    transfer_number: str
    transfer_date: date
    amount: Decimal
    from_account_id: int
    to_account_id: int
    reference: Optional[str] = None
    description: Optional[str] = None
    status: str
    transaction_id: str
    reversal_transaction_id: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PageMeta(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class PaymentListResponse(BaseModel):
    data: List[PaymentResponse]
    meta: PageMeta


class EntitySummaryResponse(BaseModel):
    party_id: int
    party_name: str
    total_taken: Decimal
    total_given: Decimal
    total_repaid_gross: Decimal
    principal_repaid: Decimal
    interest_paid: Decimal
    outstanding: Decimal


# ==================== LEDGER SCHEMAS ====================

class StatementRowResponse(BaseModel):
    entry_id: int
    transaction_id: str
    transaction_date: date
    voucher_type: Optional[str] = None
    description: Optional[str] = None
    debit: Decimal
    credit: Decimal
    is_reversal: bool
    balance_before: Decimal
    balance_after: Decimal

    model_config = ConfigDict(from_attributes=True)


class StatementSummary(BaseModel):
    current_balance: Decimal
    total_inflow: Decimal
    total_outflow: Decimal


class StatementResponse(BaseModel):
    ref: Dict
    history: List[StatementRowResponse]
    summary: StatementSummary
    meta: PageMeta


class CreditLineStatusResponse(BaseModel):
    account_id: int
    account_name: str
    sanctioned_limit: Decimal
    utilized: Decimal
    available_limit: Decimal
    is_overdrawn: bool


class AccountsSummaryResponse(BaseModel):
    bank_total: Decimal
    cash_total: Decimal
    credit_limit_total: Decimal
    credit_utilized: Decimal
    receivables: Decimal
    payables: Decimal
    entity_liabilities: Decimal
    net_position: Decimal


class ReconciliationDetail(BaseModel):
    party_id: int
    party_name: str
    role: str
    previous: Decimal
    corrected: Decimal
    drift: Decimal
    updated: bool


class ReconciliationResponse(BaseModel):
    updated_count: int
    details: List[ReconciliationDetail]
