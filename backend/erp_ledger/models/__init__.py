"""
SQLAlchemy Models for the Ledger & Settlement Engine
"""
from datetime import datetime
from decimal import Decimal
from sqlalchemy import (
    Column, Integer, String, Text, Boolean, DateTime, Date, Numeric,
    ForeignKey, Index, UniqueConstraint
)
from sqlalchemy.orm import relationship
import enum

from erp_ledger.core.database import Base


# ==================== ENUMS ====================

class AccountType(enum.Enum):
    BANK = "Bank"
    CASH = "Cash"
    CC = "CC"


class PartyRole(enum.Enum):
    CUSTOMER = "Customer"
    SUPPLIER = "Supplier"
    ENTITY = "Entity"


class DocumentType(enum.Enum):
    INVOICE = "Invoice"
    BILL = "Bill"


class DocumentStatus(enum.Enum):
    DRAFT = "Draft"
    CONFIRMED = "Confirmed"
    CANCELLED = "Cancelled"


class PaymentStatus(enum.Enum):
    UNPAID = "Unpaid"
    PARTIAL = "Partial"
    PAID = "Paid"


class PaymentType(enum.Enum):
    RECEIPT = "Receipt"
    PAYMENT = "Payment"
    REFUND = "Refund"
    ENTITY = "Entity"


class PaymentMode(enum.Enum):
    BANK = "Bank"
    CASH = "Cash"
    CHEQUE = "Cheque"
    UPI = "UPI"
    ADJUSTMENT = "Adjustment"


class AdvanceKind(enum.Enum):
    EXPLICIT = "Explicit"    # created with is_advance, already netted against outstanding
    REMAINDER = "Remainder"  # unallocated leftover of an ordinary receipt/payment


class RecordStatus(enum.Enum):
    ACTIVE = "Active"
    REVERSED = "Reversed"


class LedgerRefKind(enum.Enum):
    ACCOUNT = "ACCOUNT"
    PARTY = "PARTY"
    PARTY_ADVANCE = "PARTY_ADVANCE"
    NOMINAL = "NOMINAL"


class NominalHead(enum.Enum):
    SALES = 1
    PURCHASES = 2
    INTEREST_EXPENSE = 3


class EntityTransactionType(enum.Enum):
    LOAN_TAKEN = "LOAN_TAKEN"
    BORROWING = "BORROWING"
    INVESTMENT_RECEIVED = "INVESTMENT_RECEIVED"
    LOAN_GIVEN = "LOAN_GIVEN"
    INVESTMENT_MADE = "INVESTMENT_MADE"
    REPAYMENT = "REPAYMENT"


# ==================== MASTER DATA ====================

class Account(Base):
    """Bank, cash or credit-line (CC) account"""
    __tablename__ = 'accounts'

    id = Column(Integer, primary_key=True)
    code = Column(String(20), nullable=True)
    name = Column(String(255), nullable=False)
    type = Column(String(10), nullable=False, default=AccountType.BANK.value)
    bank_name = Column(String(255), nullable=True)
    account_number = Column(String(50), nullable=True)
    balance = Column(Numeric(15, 2), default=Decimal("0.00"), nullable=False)
    sanctioned_limit = Column(Numeric(15, 2), default=Decimal("0.00"), nullable=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def is_credit_line(self) -> bool:
        return self.type == AccountType.CC.value

    __table_args__ = (
        Index('ix_accounts_code', 'code'),
    )


class Party(Base):
    """Customer, supplier or financial entity (lender/investor)"""
    __tablename__ = 'parties'

    id = Column(Integer, primary_key=True)
    code = Column(String(20), nullable=True)
    name = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False)
    opening_balance = Column(Numeric(15, 2), default=Decimal("0.00"), nullable=False)
    outstanding = Column(Numeric(15, 2), default=Decimal("0.00"), nullable=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    documents = relationship("Document", back_populates="party")
    payments = relationship("Payment", back_populates="party")

    __table_args__ = (
        Index('ix_parties_role', 'role'),
    )


# ==================== DOCUMENTS ====================

class Document(Base):
    """Invoice (customer) or bill (supplier)"""
    __tablename__ = 'documents'

    id = Column(Integer, primary_key=True)
    number = Column(String(50), nullable=False)
    doc_type = Column(String(10), nullable=False)
    party_id = Column(Integer, ForeignKey('parties.id', ondelete='CASCADE'), nullable=False)
    document_date = Column(Date, nullable=False)
    grand_total = Column(Numeric(15, 2), nullable=False)
    paid_amount = Column(Numeric(15, 2), default=Decimal("0.00"), nullable=False)
    balance_due = Column(Numeric(15, 2), default=Decimal("0.00"), nullable=False)
    status = Column(String(20), default=DocumentStatus.DRAFT.value, nullable=False)
    payment_status = Column(String(20), default=PaymentStatus.UNPAID.value, nullable=False)
    transaction_id = Column(String(50), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    party = relationship("Party", back_populates="documents")
    allocations = relationship("PaymentAllocation", back_populates="document")

    __table_args__ = (
        UniqueConstraint('number', 'doc_type', name='uq_document_number'),
        Index('ix_documents_party_id', 'party_id'),
    )


# ==================== SETTLEMENT ====================

class Payment(Base):
    """Receipt, payment, refund or entity transaction"""
    __tablename__ = 'payments'

    id = Column(Integer, primary_key=True)
    code = Column(String(50), nullable=False)
    payment_type = Column(String(20), nullable=False)
    party_id = Column(Integer, ForeignKey('parties.id', ondelete='CASCADE'), nullable=False)
    payment_date = Column(Date, nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    mode = Column(String(20), default=PaymentMode.BANK.value, nullable=False)
    account_id = Column(Integer, ForeignKey('accounts.id', ondelete='SET NULL'), nullable=True)

    # Advance bookkeeping
    is_advance = Column(Boolean, default=False, nullable=False)
    advance_kind = Column(String(20), nullable=True)
    advance_balance = Column(Numeric(15, 2), default=Decimal("0.00"), nullable=False)
    source_advance_id = Column(Integer, ForeignKey('payments.id', ondelete='SET NULL'), nullable=True)

    # Entity transactions
    entity_transaction_type = Column(String(30), nullable=True)
    principal_amount = Column(Numeric(15, 2), nullable=True)
    interest_amount = Column(Numeric(15, 2), nullable=True)

    status = Column(String(20), default=RecordStatus.ACTIVE.value, nullable=False)
    reference = Column(String(100), nullable=True)
    remarks = Column(Text, nullable=True)
    transaction_id = Column(String(50), nullable=False)
    reversal_transaction_id = Column(String(50), nullable=True)
    reversed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    party = relationship("Party", back_populates="payments")
    account = relationship("Account")
    source_advance = relationship("Payment", remote_side=[id])
    allocations = relationship("PaymentAllocation", back_populates="payment", cascade="all, delete-orphan")
    drawdowns = relationship(
        "AdvanceDrawdown", back_populates="refund",
        foreign_keys="AdvanceDrawdown.refund_id", cascade="all, delete-orphan"
    )

    @property
    def is_reversed(self) -> bool:
        return self.status == RecordStatus.REVERSED.value

    __table_args__ = (
        UniqueConstraint('code', name='uq_payment_code'),
        Index('ix_payments_party_id', 'party_id'),
        Index('ix_payments_payment_date', 'payment_date'),
    )


class PaymentAllocation(Base):
    """Portion of a payment applied to a document"""
    __tablename__ = 'payment_allocations'

    id = Column(Integer, primary_key=True)
    payment_id = Column(Integer, ForeignKey('payments.id', ondelete='CASCADE'), nullable=False)
    document_id = Column(Integer, ForeignKey('documents.id', ondelete='CASCADE'), nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    payment = relationship("Payment", back_populates="allocations")
    document = relationship("Document", back_populates="allocations")

    __table_args__ = (
        Index('ix_payment_allocations_document_id', 'document_id'),
    )


class AdvanceDrawdown(Base):
    """Portion of an advance consumed by a refund"""
    __tablename__ = 'advance_drawdowns'

    id = Column(Integer, primary_key=True)
    refund_id = Column(Integer, ForeignKey('payments.id', ondelete='CASCADE'), nullable=False)
    advance_id = Column(Integer, ForeignKey('payments.id', ondelete='CASCADE'), nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    refund = relationship("Payment", foreign_keys=[refund_id], back_populates="drawdowns")
    advance = relationship("Payment", foreign_keys=[advance_id])


class Transfer(Base):
    """Contra movement between two accounts"""
    __tablename__ = 'transfers'

    id = Column(Integer, primary_key=True)
    transfer_number = Column(String(50), nullable=False)
    transfer_date = Column(Date, nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    from_account_id = Column(Integer, ForeignKey('accounts.id', ondelete='CASCADE'), nullable=False)
    to_account_id = Column(Integer, ForeignKey('accounts.id', ondelete='CASCADE'), nullable=False)
    reference = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    status = Column(String(20), default=RecordStatus.ACTIVE.value, nullable=False)
    transaction_id = Column(String(50), nullable=False)
    reversal_transaction_id = Column(String(50), nullable=True)
    reversed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    from_account = relationship("Account", foreign_keys=[from_account_id])
    to_account = relationship("Account", foreign_keys=[to_account_id])

    __table_args__ = (
        UniqueConstraint('transfer_number', name='uq_transfer_number'),
    )


# ==================== LEDGER ====================

class LedgerEntry(Base):
    """One row of a double-entry posting"""
    __tablename__ = 'ledger_entries'

    id = Column(Integer, primary_key=True)
    transaction_id = Column(String(50), nullable=False)
    ref_kind = Column(String(20), nullable=False)
    ref_id = Column(Integer, nullable=False)
    debit = Column(Numeric(15, 2), default=Decimal("0.00"), nullable=False)
    credit = Column(Numeric(15, 2), default=Decimal("0.00"), nullable=False)
    transaction_date = Column(Date, nullable=False)
    voucher_type = Column(String(30), nullable=True)
    description = Column(Text, nullable=True)
    is_reversal = Column(Boolean, default=False, nullable=False)
    reverses_transaction_id = Column(String(50), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index('ix_ledger_entries_transaction_id', 'transaction_id'),
        Index('ix_ledger_entries_ref', 'ref_kind', 'ref_id'),
        Index('ix_ledger_entries_transaction_date', 'transaction_date'),
    )


# ==================== AUDIT ====================

class AuditLog(Base):
    """Audit trail for sensitive operations"""
    __tablename__ = 'audit_logs'

    id = Column(Integer, primary_key=True)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Who performed the action
    username = Column(String(100), nullable=True)
    ip_address = Column(String(50), nullable=True)

    # What action was performed
    action = Column(String(50), nullable=False)  # CREATE, REVERSE, REFUND, DRIFT_CORRECTED, etc.
    resource_type = Column(String(100), nullable=False)  # Payment, Transfer, Party, etc.
    resource_id = Column(Integer, nullable=True)

    # Details
    description = Column(Text, nullable=True)
    old_values = Column(Text, nullable=True)  # JSON string of old values
    new_values = Column(Text, nullable=True)  # JSON string of new values

    status = Column(String(20), default='success')

    __table_args__ = (
        Index('ix_audit_logs_timestamp', 'timestamp'),
        Index('ix_audit_logs_resource', 'resource_type', 'resource_id'),
    )
