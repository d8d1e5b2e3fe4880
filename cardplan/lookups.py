"""
Collaborator Lookups

Contracts for the transaction ledger and the account directory, which live
outside the engine. The engine only reads a transaction's amount, currency,
account, type and date, and writes back which plan it belongs to.

The storage-backed implementations keep collaborator rows in the engine's
own storage, so the linkage write-back joins the plan creation's atomic block.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from datetime import date, datetime, timezone
from dataclasses import dataclass
from typing import Any, Dict, Optional
from enum import Enum

from .currency import Money, Currency
from .storage import StorageInterface


class AccountType(Enum):
    """Account kinds known to the finance tracker"""
    CASH = "CASH"
    BANK = "BANK"
    CREDIT_CARD = "CREDIT_CARD"
    E_WALLET = "E_WALLET"
    INVESTMENT = "INVESTMENT"


class TransactionType(Enum):
    """Ledger transaction kinds"""
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"
    TRANSFER = "TRANSFER"


@dataclass
class AccountRecord:
    """What the engine needs to know about an account"""
    id: str
    type: AccountType
    name: str = ""
    currency: Optional[Currency] = None
    billing_day: Optional[int] = None  # Statement day; first due date anchors on it

    @property
    def is_credit_card(self) -> bool:
        return self.type == AccountType.CREDIT_CARD


@dataclass
class TransactionRecord:
    """What the engine needs to know about a ledger transaction"""
    id: str
    account_id: str
    amount: Money
    type: TransactionType
    description: str = ""
    transaction_date: Optional[date] = None
    plan_id: Optional[str] = None

    @property
    def currency(self) -> Currency:
        return self.amount.currency

    @property
    def already_planned(self) -> bool:
        return self.plan_id is not None


class TransactionLookup(ABC):
    """Read access to the transaction ledger plus the plan linkage write-back"""

    @abstractmethod
    def get_transaction(self, transaction_id: str) -> Optional[TransactionRecord]:
        pass

    @abstractmethod
    def link_plan(self, transaction_id: str, plan_id: Optional[str]) -> None:
        """Record (or clear, with None) the plan a transaction is repaid by"""
        pass


class AccountLookup(ABC):
    """Read access to the account directory"""

    @abstractmethod
    def get_account(self, account_id: str) -> Optional[AccountRecord]:
        pass


class StorageTransactionLookup(TransactionLookup):
    """Transactions kept in a storage table"""

    def __init__(self, storage: StorageInterface, table: str = "transactions"):
        self.storage = storage
        self.table = table

    def add_transaction(self, transaction: TransactionRecord) -> TransactionRecord:
        self.storage.save(self.table, transaction.id, self._to_dict(transaction))
        return transaction

    def get_transaction(self, transaction_id: str) -> Optional[TransactionRecord]:
        data = self.storage.load(self.table, transaction_id)
        if data:
            return self._from_dict(data)
        return None

    def link_plan(self, transaction_id: str, plan_id: Optional[str]) -> None:
        data = self.storage.load(self.table, transaction_id)
        if data is None:
            return
        data['plan_id'] = plan_id
        data['updated_at'] = datetime.now(timezone.utc).isoformat()
        self.storage.save(self.table, transaction_id, data)

    @staticmethod
    def _to_dict(transaction: TransactionRecord) -> Dict[str, Any]:
        return {
            'id': transaction.id,
            'account_id': transaction.account_id,
            'amount': str(transaction.amount.amount),
            'currency': transaction.currency.code,
            'type': transaction.type.value,
            'description': transaction.description,
            'transaction_date': transaction.transaction_date.isoformat() if transaction.transaction_date else None,
            'plan_id': transaction.plan_id,
        }

    @staticmethod
    def _from_dict(data: Dict[str, Any]) -> TransactionRecord:
        return TransactionRecord(
            id=data['id'],
            account_id=data['account_id'],
            amount=Money(Decimal(data['amount']), Currency[data['currency']]),
            type=TransactionType(data['type']),
            description=data.get('description') or "",
            transaction_date=date.fromisoformat(data['transaction_date']) if data.get('transaction_date') else None,
            plan_id=data.get('plan_id'),
        )


class StorageAccountLookup(AccountLookup):
    """Accounts kept in a storage table"""

    def __init__(self, storage: StorageInterface, table: str = "accounts"):
        self.storage = storage
        self.table = table

    def add_account(self, account: AccountRecord) -> AccountRecord:
        self.storage.save(self.table, account.id, {
            'id': account.id,
            'type': account.type.value,
            'name': account.name,
            'currency': account.currency.code if account.currency else None,
            'billing_day': account.billing_day,
        })
        return account

    def get_account(self, account_id: str) -> Optional[AccountRecord]:
        data = self.storage.load(self.table, account_id)
        if not data:
            return None
        return AccountRecord(
            id=data['id'],
            type=AccountType(data['type']),
            name=data.get('name') or "",
            currency=Currency[data['currency']] if data.get('currency') else None,
            billing_day=data.get('billing_day'),
        )
