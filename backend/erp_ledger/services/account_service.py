"""
Account Service - Bank, Cash and credit-line accounts, party balances
"""
from typing import Optional, Dict
from sqlalchemy.orm import Session
from decimal import Decimal

from erp_ledger.core.exceptions import InsufficientBalanceError, NotFoundError, ValidationError
from erp_ledger.core.money import ZERO, to_money
from erp_ledger.models import Account, AccountType, Party, PartyRole


class AccountService:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, account_id: int) -> Optional[Account]:
        return self.db.query(Account).filter(Account.id == account_id).first()

    def get_for_update(self, account_id: int) -> Account:
        """Lock an account row for the rest of the unit of work"""
        account = self.db.query(Account).filter(
            Account.id == account_id
        ).with_for_update().first()
        if not account:
            raise NotFoundError(f"Account {account_id} not found", field="account_id")
        if not account.is_active:
            raise ValidationError(f"Account {account.name} is inactive", field="account_id")
        return account

    def get_available_balance(self, account: Account) -> Decimal:
        """Spendable amount: the balance, plus the sanctioned limit for credit lines"""
        balance = to_money(account.balance)
        if account.is_credit_line:
            return to_money(to_money(account.sanctioned_limit) + balance)
        return balance

    def check_credit_line(self, account: Account, outflow: Decimal):
        """Refuse an outflow that would push a CC account past its sanctioned limit"""
        if not account.is_credit_line:
            return
        available = self.get_available_balance(account)
        if to_money(outflow) > available:
            raise InsufficientBalanceError(
                f"Credit limit exceeded on {account.name}. Available: {available}",
                available=available,
                field="account_id"
            )

    def get_credit_line_status(self, account_id: int) -> Dict:
        account = self.get_by_id(account_id)
        if not account:
            raise NotFoundError(f"Account {account_id} not found")
        if not account.is_credit_line:
            raise ValidationError(f"Account {account.name} is not a credit line", field="account_id")

        balance = to_money(account.balance)
        limit = to_money(account.sanctioned_limit)
        utilized = to_money(-balance) if balance < 0 else ZERO
        return {
            "account_id": account.id,
            "account_name": account.name,
            "sanctioned_limit": limit,
            "utilized": utilized,
            "available_limit": to_money(limit - utilized),
            "is_overdrawn": utilized > limit,
        }

    def get_accounts_summary(self) -> Dict:
        """Totals across every account and party"""
        bank_total = ZERO
        cash_total = ZERO
        credit_utilized = ZERO
        credit_limit = ZERO

        for account in self.db.query(Account).filter(Account.is_active == True).all():  # noqa: E712
            balance = to_money(account.balance)
            if account.type == AccountType.BANK.value:
                bank_total += balance
            elif account.type == AccountType.CASH.value:
                cash_total += balance
            elif account.type == AccountType.CC.value:
                credit_limit += to_money(account.sanctioned_limit)
                if balance < 0:
                    credit_utilized += -balance

        receivables = self._sum_outstanding(PartyRole.CUSTOMER.value)
        payables = self._sum_outstanding(PartyRole.SUPPLIER.value)
        entity_liabilities = self._sum_outstanding(PartyRole.ENTITY.value)

        return {
            "bank_total": to_money(bank_total),
            "cash_total": to_money(cash_total),
            "credit_limit_total": to_money(credit_limit),
            "credit_utilized": to_money(credit_utilized),
            "receivables": receivables,
            "payables": payables,
            "entity_liabilities": entity_liabilities,
            "net_position": to_money(
                bank_total + cash_total - credit_utilized + receivables - payables - entity_liabilities
            ),
        }

    def _sum_outstanding(self, role: str) -> Decimal:
        parties = self.db.query(Party).filter(Party.role == role).all()
        return to_money(sum((to_money(p.outstanding) for p in parties), ZERO))


class PartyService:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, party_id: int) -> Optional[Party]:
        return self.db.query(Party).filter(Party.id == party_id).first()

    def get_for_update(self, party_id: int) -> Party:
        party = self.db.query(Party).filter(
            Party.id == party_id
        ).with_for_update().first()
        if not party:
            raise NotFoundError(f"Party {party_id} not found", field="party_id")
        return party
