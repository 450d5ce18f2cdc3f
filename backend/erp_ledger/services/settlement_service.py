"""
Settlement Service

The single entry point for every money movement: receipts, payments,
advances and their adjustment, advance refunds, transfers, entity
(lender/investor) transactions and reversals. Each command runs as one
unit of work on the session: everything it writes is committed together
or rolled back together.
"""
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import ClassVar, Dict, List, Optional
import logging
import math

from sqlalchemy.orm import Session

from erp_ledger.core.config import settings
from erp_ledger.core.exceptions import (
    AlreadyReversedError, InsufficientBalanceError, NotFoundError, ValidationError
)
from erp_ledger.core.money import ZERO, money_sum, to_money
from erp_ledger.models import (
    AdvanceDrawdown, AdvanceKind, EntityTransactionType, NominalHead, Party, PartyRole,
    Payment, PaymentAllocation, PaymentMode, PaymentType, RecordStatus, Transfer
)
from erp_ledger.services.account_service import AccountService, PartyService
from erp_ledger.services.allocation_engine import AllocationResult, allocate
from erp_ledger.services.audit_service import AuditAction, AuditService
from erp_ledger.services.document_service import DocumentService
from erp_ledger.services.ledger_poster import (
    LedgerLine, LedgerPoster, LedgerRef, PostingContext, next_sequence_number
)

logger = logging.getLogger(__name__)

VOUCHER_PREFIXES = {
    PaymentType.RECEIPT.value: "RCPT",
    PaymentType.PAYMENT.value: "PAY",
    PaymentType.REFUND.value: "REF",
    PaymentType.ENTITY.value: "FIN",
}

ENTITY_INFLOW_TYPES = (
    EntityTransactionType.LOAN_TAKEN.value,
    EntityTransactionType.BORROWING.value,
    EntityTransactionType.INVESTMENT_RECEIVED.value,
)
ENTITY_OUTFLOW_TYPES = (
    EntityTransactionType.LOAN_GIVEN.value,
    EntityTransactionType.INVESTMENT_MADE.value,
)


# ==================== COMMANDS ====================

@dataclass
class PartySettlementCommand:
    party_id: int
    amount: Decimal
    payment_date: date
    account_id: Optional[int] = None
    mode: str = PaymentMode.BANK.value
    allocations: Optional[Dict[int, Decimal]] = None
    is_advance: bool = False
    use_advance: bool = False
    source_advance_id: Optional[int] = None
    reference: Optional[str] = None
    remarks: Optional[str] = None

    payment_type: ClassVar[str] = ""


@dataclass
class ReceiptCommand(PartySettlementCommand):
    """Money received from a customer"""
    payment_type: ClassVar[str] = PaymentType.RECEIPT.value


@dataclass
class PaymentCommand(PartySettlementCommand):
    """Money paid to a supplier"""
    payment_type: ClassVar[str] = PaymentType.PAYMENT.value


@dataclass
class AdvanceAdjustmentCommand:
    advance_id: int
    document_id: int
    amount: Decimal
    adjustment_date: Optional[date] = None


@dataclass
class AdvanceRefundCommand:
    party_id: int
    account_id: int
    amount: Decimal
    refund_date: date
    mode: str = PaymentMode.BANK.value
    reference: Optional[str] = None
    remarks: Optional[str] = None


@dataclass
class TransferCommand:
    from_account_id: int
    to_account_id: int
    amount: Decimal
    transfer_date: date
    reference: Optional[str] = None
    description: Optional[str] = None


@dataclass
class TransferReversalCommand:
    transfer_id: int
    reason: Optional[str] = None
    reversal_date: Optional[date] = None


@dataclass
class ReversalCommand:
    payment_id: int
    reason: Optional[str] = None
    reversal_date: Optional[date] = None


@dataclass
class AmendPaymentCommand:
    payment_id: int
    replacement: PartySettlementCommand
    reason: Optional[str] = None


@dataclass
class EntityTransactionCommand:
    party_id: int
    account_id: int
    transaction_type: str
    amount: Decimal
    transaction_date: date
    principal_amount: Optional[Decimal] = None
    interest_amount: Optional[Decimal] = None
    mode: str = PaymentMode.BANK.value
    reference: Optional[str] = None
    remarks: Optional[str] = None


# ==================== ORCHESTRATOR ====================

class SettlementService:
    def __init__(self, db: Session):
        self.db = db
        self.poster = LedgerPoster(db)
        self.accounts = AccountService(db)
        self.parties = PartyService(db)
        self.documents = DocumentService(db)
        self.audit = AuditService(db)
        self._handlers = {
            ReceiptCommand: self._settle_party,
            PaymentCommand: self._settle_party,
            AdvanceAdjustmentCommand: self._adjust_advance,
            AdvanceRefundCommand: self._refund_advance,
            TransferCommand: self._transfer,
            TransferReversalCommand: self._reverse_transfer,
            ReversalCommand: self._reverse,
            AmendPaymentCommand: self._amend,
            EntityTransactionCommand: self._entity_transaction,
        }

    def execute(self, command):
        """Run one command as a single unit of work"""
        handler = self._handlers.get(type(command))
        if handler is None:
            raise ValidationError(f"Unsupported settlement command {type(command).__name__}")

        try:
            result = handler(command)
            voucher = getattr(result, "transaction_id", None)
            amount = getattr(result, "amount", None)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Settlement {type(command).__name__} committed: {voucher} amount {amount}")
        self.db.refresh(result)
        return result

    # Convenience wrappers

    def create_receipt(self, **fields) -> Payment:
        return self.execute(ReceiptCommand(**fields))

    def create_payment(self, **fields) -> Payment:
        return self.execute(PaymentCommand(**fields))

    def adjust_advance(self, advance_id: int, document_id: int, amount: Decimal,
                       adjustment_date: Optional[date] = None) -> Payment:
        return self.execute(AdvanceAdjustmentCommand(advance_id, document_id, amount, adjustment_date))

    def create_advance_refund(self, **fields) -> Payment:
        return self.execute(AdvanceRefundCommand(**fields))

    def create_transfer(self, **fields) -> Transfer:
        return self.execute(TransferCommand(**fields))

    def reverse_transfer(self, transfer_id: int, reason: Optional[str] = None) -> Transfer:
        return self.execute(TransferReversalCommand(transfer_id, reason))

    def reverse(self, payment_id: int, reason: Optional[str] = None) -> Payment:
        return self.execute(ReversalCommand(payment_id, reason))

    def amend_payment(self, payment_id: int, replacement: PartySettlementCommand,
                      reason: Optional[str] = None) -> Payment:
        return self.execute(AmendPaymentCommand(payment_id, replacement, reason))

    def create_entity_transaction(self, **fields) -> Payment:
        return self.execute(EntityTransactionCommand(**fields))

    # ==================== RECEIPTS / PAYMENTS ====================

    def _settle_party(self, command: PartySettlementCommand) -> Payment:
        payment_type = command.payment_type
        is_receipt = payment_type == PaymentType.RECEIPT.value
        amount = to_money(command.amount)
        if amount <= 0:
            raise ValidationError("Amount must be greater than zero", field="amount")

        party = self.parties.get_for_update(command.party_id)
        expected_role = PartyRole.CUSTOMER.value if is_receipt else PartyRole.SUPPLIER.value
        if party.role != expected_role:
            raise ValidationError(
                f"A {payment_type.lower()} must be made against a {expected_role.lower()}",
                field="party_id"
            )

        account = None
        source = None
        if command.use_advance:
            if command.account_id:
                raise ValidationError(
                    "Choose either an account or an advance, not both", field="account_id"
                )
            if command.is_advance:
                raise ValidationError("An advance cannot be funded by another advance", field="is_advance")
            if not command.source_advance_id:
                raise ValidationError("Select the advance to adjust", field="source_advance_id")
            source = self._get_advance_source(command.source_advance_id, party, payment_type, amount)
        else:
            if not command.account_id:
                raise ValidationError("An account is required", field="account_id")
            account = self.accounts.get_for_update(command.account_id)
            if not is_receipt:
                self.accounts.check_credit_line(account, amount)

        if command.is_advance:
            if command.allocations:
                raise ValidationError("An advance cannot be allocated to documents", field="allocations")
            result = AllocationResult(allocations=[], unallocated_remainder=amount)
        else:
            outstanding = self.documents.list_outstanding_documents(party.id, for_update=True)
            result = allocate(amount, outstanding, command.allocations)

        remainder = result.unallocated_remainder
        allocated = result.allocated_total
        if source is not None and remainder > 0:
            raise ValidationError(
                f"Advance adjustment must be fully allocated; {remainder} is unallocated",
                field="allocations"
            )

        if command.is_advance:
            advance_kind = AdvanceKind.EXPLICIT.value
            advance_balance = amount
        elif remainder > 0:
            advance_kind = AdvanceKind.REMAINDER.value
            advance_balance = remainder
        else:
            advance_kind = None
            advance_balance = ZERO

        code = next_sequence_number(self.db, Payment, "code", VOUCHER_PREFIXES[payment_type])
        payment = Payment(
            code=code,
            payment_type=payment_type,
            party_id=party.id,
            payment_date=command.payment_date,
            amount=amount,
            mode=PaymentMode.ADJUSTMENT.value if source is not None else command.mode,
            account_id=account.id if account is not None else None,
            is_advance=advance_kind is not None,
            advance_kind=advance_kind,
            advance_balance=advance_balance,
            source_advance_id=source.id if source is not None else None,
            status=RecordStatus.ACTIVE.value,
            reference=command.reference,
            remarks=command.remarks,
            transaction_id=code
        )
        self.db.add(payment)

        for line in result.allocations:
            document = self.documents.get_for_update(line.document_id)
            self.documents.apply_allocation(document, line.amount)
            payment.allocations.append(PaymentAllocation(document_id=document.id, amount=line.amount))

        if source is not None:
            source.advance_balance = to_money(to_money(source.advance_balance) - amount)
            funding_ref = self._advance_ref(source)
        else:
            funding_ref = LedgerRef.account(account.id)

        # Party side of the posting
        party_side = []
        if command.is_advance:
            party_side.append((LedgerRef.party(party.id), amount))
        else:
            if allocated > 0:
                party_side.append((LedgerRef.party(party.id), allocated))
            if remainder > 0:
                party_side.append((LedgerRef.party_advance(party.id), remainder))

        description = f"{payment_type} {code} - {party.name}"
        if is_receipt:
            lines = [LedgerLine(funding_ref, debit=amount)]
            lines += [LedgerLine(ref, credit=value) for ref, value in party_side]
        else:
            lines = [LedgerLine(funding_ref, credit=amount)]
            lines += [LedgerLine(ref, debit=value) for ref, value in party_side]

        self.db.flush()
        self.poster.post(code, lines, PostingContext(command.payment_date, payment_type, description))

        if source is not None:
            action = AuditAction.ADVANCE_ADJUSTED
        else:
            action = AuditAction.PAYMENT_RECEIVED if is_receipt else AuditAction.PAYMENT_MADE
        self.audit.log(
            action=action,
            resource_type="Payment",
            resource_id=payment.id,
            description=description,
            new_values={
                "amount": amount,
                "allocated": allocated,
                "advance_balance": advance_balance,
                "source_advance_id": payment.source_advance_id,
            }
        )
        return payment

    def _adjust_advance(self, command: AdvanceAdjustmentCommand) -> Payment:
        advance = self.db.query(Payment).filter(Payment.id == command.advance_id).first()
        if not advance:
            raise NotFoundError(f"Advance {command.advance_id} not found")

        command_class = ReceiptCommand if advance.payment_type == PaymentType.RECEIPT.value else PaymentCommand
        return self._settle_party(command_class(
            party_id=advance.party_id,
            amount=command.amount,
            payment_date=command.adjustment_date or date.today(),
            allocations={command.document_id: to_money(command.amount)},
            use_advance=True,
            source_advance_id=advance.id,
            remarks=f"Adjusted against advance {advance.code}"
        ))

    def _get_advance_source(self, advance_id: int, party: Party, payment_type: str, amount: Decimal) -> Payment:
        source = self._get_payment_for_update(advance_id)
        if (source.party_id != party.id or source.payment_type != payment_type
                or not source.is_advance or source.is_reversed):
            raise ValidationError(
                f"Payment {source.code} is not an open advance of {party.name}",
                field="source_advance_id"
            )
        available = to_money(source.advance_balance)
        if amount > available:
            raise InsufficientBalanceError(
                f"Advance {source.code} has only {available} available",
                available=available,
                field="source_advance_id"
            )
        return source

    @staticmethod
    def _advance_ref(advance: Payment) -> LedgerRef:
        # Explicit advances already sit on the party sub-ledger
        if advance.advance_kind == AdvanceKind.EXPLICIT.value:
            return LedgerRef.party(advance.party_id)
        return LedgerRef.party_advance(advance.party_id)

    # ==================== ADVANCE REFUNDS ====================

    def _refund_advance(self, command: AdvanceRefundCommand) -> Payment:
        amount = to_money(command.amount)
        if amount <= 0:
            raise ValidationError("Refund amount must be greater than zero", field="amount")

        party = self.parties.get_for_update(command.party_id)
        if party.role == PartyRole.SUPPLIER.value:
            advance_type = PaymentType.PAYMENT.value
        elif party.role == PartyRole.CUSTOMER.value:
            advance_type = PaymentType.RECEIPT.value
        else:
            raise ValidationError("Refunds apply to customer or supplier advances only", field="party_id")

        account = self.accounts.get_for_update(command.account_id)

        advances = self.db.query(Payment).filter(
            Payment.party_id == party.id,
            Payment.payment_type == advance_type,
            Payment.is_advance == True,  # noqa: E712
            Payment.status == RecordStatus.ACTIVE.value,
            Payment.advance_balance > 0
        ).order_by(Payment.payment_date, Payment.id).with_for_update().all()

        available = money_sum(a.advance_balance for a in advances)
        if amount > available:
            raise InsufficientBalanceError(
                f"Refund exceeds available advance balance. Available: {available}",
                available=available,
                field="amount"
            )

        is_customer = party.role == PartyRole.CUSTOMER.value
        if is_customer:
            self.accounts.check_credit_line(account, amount)

        code = next_sequence_number(self.db, Payment, "code", VOUCHER_PREFIXES[PaymentType.REFUND.value])
        refund = Payment(
            code=code,
            payment_type=PaymentType.REFUND.value,
            party_id=party.id,
            payment_date=command.refund_date,
            amount=amount,
            mode=command.mode,
            account_id=account.id,
            status=RecordStatus.ACTIVE.value,
            reference=command.reference,
            remarks=command.remarks,
            transaction_id=code
        )
        self.db.add(refund)

        # Oldest advances are drawn first
        remaining = amount
        drawn: Dict[LedgerRef, Decimal] = {}
        for advance in advances:
            if remaining <= 0:
                break
            take = min(to_money(advance.advance_balance), remaining)
            advance.advance_balance = to_money(to_money(advance.advance_balance) - take)
            refund.drawdowns.append(AdvanceDrawdown(advance_id=advance.id, amount=take))
            ref = self._advance_ref(advance)
            drawn[ref] = drawn.get(ref, ZERO) + take
            remaining = to_money(remaining - take)

        description = f"Advance refund {code} - {party.name}"
        if is_customer:
            lines = [LedgerLine(ref, debit=value) for ref, value in drawn.items()]
            lines.append(LedgerLine(LedgerRef.account(account.id), credit=amount))
        else:
            lines = [LedgerLine(LedgerRef.account(account.id), debit=amount)]
            lines += [LedgerLine(ref, credit=value) for ref, value in drawn.items()]

        self.db.flush()
        self.poster.post(code, lines, PostingContext(command.refund_date, PaymentType.REFUND.value, description))

        self.audit.log(
            action=AuditAction.ADVANCE_REFUNDED,
            resource_type="Payment",
            resource_id=refund.id,
            description=description,
            new_values={
                "amount": amount,
                "drawdowns": [{"advance_id": d.advance_id, "amount": d.amount} for d in refund.drawdowns],
            }
        )
        return refund

    # ==================== TRANSFERS ====================

    def _transfer(self, command: TransferCommand) -> Transfer:
        amount = to_money(command.amount)
        if amount <= 0:
            raise ValidationError("Transfer amount must be greater than zero", field="amount")
        if command.from_account_id == command.to_account_id:
            raise ValidationError("Cannot transfer funds to the same account", field="to_account_id")

        # Lock in id order so two opposite transfers cannot deadlock
        first, second = sorted([command.from_account_id, command.to_account_id])
        locked = {first: self.accounts.get_for_update(first), second: self.accounts.get_for_update(second)}
        from_account = locked[command.from_account_id]
        to_account = locked[command.to_account_id]

        available = self.accounts.get_available_balance(from_account)
        if amount > available:
            raise InsufficientBalanceError(
                f"Insufficient funds in {from_account.name}. Available: {available}",
                available=available,
                field="amount"
            )

        number = next_sequence_number(self.db, Transfer, "transfer_number", "TRF")
        transfer = Transfer(
            transfer_number=number,
            transfer_date=command.transfer_date,
            amount=amount,
            from_account_id=from_account.id,
            to_account_id=to_account.id,
            reference=command.reference,
            description=command.description,
            status=RecordStatus.ACTIVE.value,
            transaction_id=number
        )
        self.db.add(transfer)
        self.db.flush()

        self.poster.post(
            number,
            [
                LedgerLine(LedgerRef.account(to_account.id), debit=amount,
                           description=f"Transfer from {from_account.name}"),
                LedgerLine(LedgerRef.account(from_account.id), credit=amount,
                           description=f"Transfer to {to_account.name}"),
            ],
            PostingContext(command.transfer_date, "Transfer", command.description)
        )

        self.audit.log(
            action=AuditAction.TRANSFER_COMPLETED,
            resource_type="Transfer",
            resource_id=transfer.id,
            description=f"{from_account.name} -> {to_account.name}",
            new_values={"amount": amount, "transfer_number": number}
        )
        return transfer

    def _reverse_transfer(self, command: TransferReversalCommand) -> Transfer:
        transfer = self.db.query(Transfer).filter(
            Transfer.id == command.transfer_id
        ).with_for_update().first()
        if not transfer:
            raise NotFoundError(f"Transfer {command.transfer_id} not found")
        if transfer.status == RecordStatus.REVERSED.value:
            raise AlreadyReversedError(f"Transfer {transfer.transfer_number} is already reversed")

        reversal_number = self.poster.next_reversal_number()
        self.poster.post_reversal(
            transfer.transaction_id,
            reversal_number,
            PostingContext(command.reversal_date or date.today(), "Reversal", command.reason)
        )

        transfer.status = RecordStatus.REVERSED.value
        transfer.reversal_transaction_id = reversal_number
        transfer.reversed_at = datetime.utcnow()
        self.db.flush()

        self.audit.log(
            action=AuditAction.TRANSFER_REVERSED,
            resource_type="Transfer",
            resource_id=transfer.id,
            description=command.reason or f"Reversed transfer {transfer.transfer_number}",
            old_values={"status": RecordStatus.ACTIVE.value},
            new_values={"status": transfer.status, "reversal_transaction_id": reversal_number}
        )
        return transfer

    # ==================== REVERSALS ====================

    def _reverse(self, command: ReversalCommand) -> Payment:
        payment = self._get_payment_for_update(command.payment_id)
        if payment.is_reversed:
            raise AlreadyReversedError(f"Payment {payment.code} is already reversed")

        if payment.is_advance:
            original_advance = to_money(
                to_money(payment.amount) - money_sum(a.amount for a in payment.allocations)
            )
            if to_money(payment.advance_balance) < original_advance:
                raise ValidationError(
                    f"Advance {payment.code} has been adjusted or refunded; reverse those first",
                    field="payment_id"
                )

        old_values = {
            "status": payment.status,
            "advance_balance": payment.advance_balance,
            "allocations": [{"document_id": a.document_id, "amount": a.amount} for a in payment.allocations],
        }

        reversal_number = self.poster.next_reversal_number()
        self.poster.post_reversal(
            payment.transaction_id,
            reversal_number,
            PostingContext(command.reversal_date or date.today(), "Reversal", command.reason)
        )

        for allocation in payment.allocations:
            document = self.documents.get_for_update(allocation.document_id)
            self.documents.release_allocation(document, allocation.amount)

        if payment.source_advance_id:
            source = self._get_payment_for_update(payment.source_advance_id)
            source.advance_balance = to_money(to_money(source.advance_balance) + to_money(payment.amount))

        for drawdown in payment.drawdowns:
            advance = self._get_payment_for_update(drawdown.advance_id)
            advance.advance_balance = to_money(to_money(advance.advance_balance) + to_money(drawdown.amount))

        payment.status = RecordStatus.REVERSED.value
        payment.advance_balance = ZERO
        payment.reversal_transaction_id = reversal_number
        payment.reversed_at = datetime.utcnow()
        if command.reason:
            payment.remarks = f"{payment.remarks}\nReversed: {command.reason}" if payment.remarks \
                else f"Reversed: {command.reason}"
        self.db.flush()

        self.audit.log(
            action=AuditAction.PAYMENT_REVERSED,
            resource_type="Payment",
            resource_id=payment.id,
            description=command.reason or f"Reversed {payment.code}",
            old_values=old_values,
            new_values={"status": payment.status, "reversal_transaction_id": reversal_number}
        )
        return payment

    def _amend(self, command: AmendPaymentCommand) -> Payment:
        original = self._get_payment_for_update(command.payment_id)
        if original.payment_type != command.replacement.payment_type:
            raise ValidationError(
                f"{original.code} is a {original.payment_type}; the replacement must be too",
                field="payment_type"
            )
        if original.party_id != command.replacement.party_id:
            raise ValidationError("A payment cannot be moved to another party", field="party_id")

        self._reverse(ReversalCommand(original.id, command.reason or "Amended"))
        replacement = self._settle_party(command.replacement)

        self.audit.log(
            action=AuditAction.PAYMENT_AMENDED,
            resource_type="Payment",
            resource_id=replacement.id,
            description=f"{original.code} amended as {replacement.code}",
            old_values={"payment_id": original.id, "amount": original.amount},
            new_values={"payment_id": replacement.id, "amount": replacement.amount}
        )
        return replacement

    # ==================== ENTITY TRANSACTIONS ====================

    def _entity_transaction(self, command: EntityTransactionCommand) -> Payment:
        amount = to_money(command.amount)
        if amount <= 0:
            raise ValidationError("Amount must be greater than zero", field="amount")

        txn_type = command.transaction_type
        if txn_type not in ENTITY_INFLOW_TYPES + ENTITY_OUTFLOW_TYPES + (EntityTransactionType.REPAYMENT.value,):
            raise ValidationError(f"Unknown entity transaction type {txn_type}", field="transaction_type")

        party = self.parties.get_for_update(command.party_id)
        if party.role != PartyRole.ENTITY.value:
            raise ValidationError(f"{party.name} is not a financial entity", field="party_id")

        account = self.accounts.get_for_update(command.account_id)
        account_ref = LedgerRef.account(account.id)
        party_ref = LedgerRef.party(party.id)

        principal = None
        interest = None
        if txn_type in ENTITY_INFLOW_TYPES:
            lines = [LedgerLine(account_ref, debit=amount), LedgerLine(party_ref, credit=amount)]
        elif txn_type in ENTITY_OUTFLOW_TYPES:
            self.accounts.check_credit_line(account, amount)
            lines = [LedgerLine(party_ref, debit=amount), LedgerLine(account_ref, credit=amount)]
        else:
            principal, interest = self._split_repayment(amount, command.principal_amount, command.interest_amount)
            self.accounts.check_credit_line(account, amount)
            lines = [LedgerLine(account_ref, credit=amount)]
            if principal > 0:
                lines.append(LedgerLine(party_ref, debit=principal, description="Principal repaid"))
            if interest > 0:
                lines.append(LedgerLine(LedgerRef.nominal(NominalHead.INTEREST_EXPENSE), debit=interest,
                                        description="Interest paid"))

        code = next_sequence_number(self.db, Payment, "code", VOUCHER_PREFIXES[PaymentType.ENTITY.value])
        payment = Payment(
            code=code,
            payment_type=PaymentType.ENTITY.value,
            party_id=party.id,
            payment_date=command.transaction_date,
            amount=amount,
            mode=command.mode,
            account_id=account.id,
            entity_transaction_type=txn_type,
            principal_amount=principal,
            interest_amount=interest,
            status=RecordStatus.ACTIVE.value,
            reference=command.reference,
            remarks=command.remarks,
            transaction_id=code
        )
        self.db.add(payment)
        self.db.flush()

        description = f"{txn_type} {code} - {party.name}"
        self.poster.post(code, lines, PostingContext(command.transaction_date, txn_type, description))

        self.audit.log(
            action=AuditAction.ENTITY_TRANSACTION,
            resource_type="Payment",
            resource_id=payment.id,
            description=description,
            new_values={"amount": amount, "principal": principal, "interest": interest}
        )
        return payment

    @staticmethod
    def _split_repayment(amount: Decimal, principal: Optional[Decimal], interest: Optional[Decimal]):
        """Resolve the principal/interest split of a repayment"""
        if principal is None and interest is None:
            principal, interest = amount, ZERO
        elif principal is None:
            interest = to_money(interest)
            principal = to_money(amount - interest)
        elif interest is None:
            principal = to_money(principal)
            interest = to_money(amount - principal)
        else:
            principal = to_money(principal)
            interest = to_money(interest)

        if principal < 0 or interest < 0:
            raise ValidationError("Principal and interest cannot be negative", field="principal_amount")
        if abs(principal + interest - amount) > settings.DRIFT_TOLERANCE:
            raise ValidationError(
                f"Principal {principal} plus interest {interest} must equal the amount {amount}",
                field="interest_amount"
            )
        # Absorb rounding into interest so the posting balances exactly
        return principal, to_money(amount - principal)

    # ==================== QUERIES ====================

    def get_payment(self, payment_id: int) -> Payment:
        payment = self.db.query(Payment).filter(Payment.id == payment_id).first()
        if not payment:
            raise NotFoundError(f"Payment {payment_id} not found")
        return payment

    def list_open_advances(self, party_id: int) -> List[Payment]:
        """Active advances with a balance left, newest first"""
        return self.db.query(Payment).filter(
            Payment.party_id == party_id,
            Payment.is_advance == True,  # noqa: E712
            Payment.status == RecordStatus.ACTIVE.value,
            Payment.advance_balance > 0
        ).order_by(Payment.payment_date.desc(), Payment.id.desc()).all()

    def list_payments(
        self,
        payment_type: Optional[str] = None,
        party_id: Optional[int] = None,
        account_id: Optional[int] = None,
        page: int = 1,
        limit: Optional[int] = None
    ) -> Dict:
        limit = min(limit or settings.DEFAULT_PAGE_SIZE, settings.MAX_PAGE_SIZE)
        page = max(page, 1)

        query = self.db.query(Payment)
        if payment_type:
            query = query.filter(Payment.payment_type == payment_type)
        if party_id:
            query = query.filter(Payment.party_id == party_id)
        if account_id:
            query = query.filter(Payment.account_id == account_id)

        total = query.count()
        data = query.order_by(
            Payment.payment_date.desc(), Payment.id.desc()
        ).offset((page - 1) * limit).limit(limit).all()

        return {
            "data": data,
            "meta": {
                "page": page,
                "limit": limit,
                "total": total,
                "total_pages": math.ceil(total / limit) if total else 0,
            },
        }

    def get_entity_summary(self, party_id: int) -> Dict:
        party = self.parties.get_by_id(party_id)
        if not party:
            raise NotFoundError(f"Party {party_id} not found")
        if party.role != PartyRole.ENTITY.value:
            raise ValidationError(f"{party.name} is not a financial entity", field="party_id")

        transactions = self.db.query(Payment).filter(
            Payment.party_id == party_id,
            Payment.payment_type == PaymentType.ENTITY.value,
            Payment.status == RecordStatus.ACTIVE.value
        ).all()

        total_taken = ZERO
        total_given = ZERO
        total_repaid = ZERO
        principal_repaid = ZERO
        for txn in transactions:
            if txn.entity_transaction_type in ENTITY_INFLOW_TYPES:
                total_taken += to_money(txn.amount)
            elif txn.entity_transaction_type in ENTITY_OUTFLOW_TYPES:
                total_given += to_money(txn.amount)
            elif txn.entity_transaction_type == EntityTransactionType.REPAYMENT.value:
                total_repaid += to_money(txn.amount)
                principal_repaid += to_money(txn.principal_amount if txn.principal_amount is not None else txn.amount)

        return {
            "party_id": party.id,
            "party_name": party.name,
            "total_taken": to_money(total_taken),
            "total_given": to_money(total_given),
            "total_repaid_gross": to_money(total_repaid),
            "principal_repaid": to_money(principal_repaid),
            "interest_paid": max(ZERO, to_money(total_repaid - principal_repaid)),
            "outstanding": to_money(party.outstanding),
        }

    def _get_payment_for_update(self, payment_id: int) -> Payment:
        payment = self.db.query(Payment).filter(
            Payment.id == payment_id
        ).with_for_update().first()
        if not payment:
            raise NotFoundError(f"Payment {payment_id} not found", field="payment_id")
        return payment
