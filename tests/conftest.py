"""
Shared fixtures: an in-memory engine on a fixed clock, plus helpers that seed
credit card accounts and expense transactions into its storage.
"""

import pytest
from decimal import Decimal
from datetime import date

from cardplan.config import PlanEngineConfig
from cardplan.currency import Money, Currency
from cardplan.storage import InMemoryStorage
from cardplan.clock import FixedClock
from cardplan.engine import PlanEngine
from cardplan.lookups import AccountRecord, AccountType, TransactionRecord, TransactionType


TODAY = date(2024, 1, 10)


@pytest.fixture
def clock():
    return FixedClock(TODAY)


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def config():
    return PlanEngineConfig(
        database_url="memory://",
        bulk_max_workers=4,
        upcoming_default_days=7,
        reminder_days_ahead=3
    )


@pytest.fixture
def engine(storage, config, clock):
    engine = PlanEngine(storage=storage, config=config, clock=clock)
    yield engine
    engine.close()


@pytest.fixture
def add_account(engine):
    """Seed an account; credit card with no billing day unless told otherwise"""
    def _add(account_id="card-1", account_type=AccountType.CREDIT_CARD,
             currency=Currency.VND, billing_day=None):
        return engine.accounts.add_account(AccountRecord(
            id=account_id,
            type=account_type,
            name=f"Account {account_id}",
            currency=currency,
            billing_day=billing_day
        ))
    return _add


@pytest.fixture
def add_transaction(engine):
    """Seed a transaction; an expense on card-1 dated 2024-01-05 by default"""
    def _add(transaction_id, amount, account_id="card-1", currency=Currency.VND,
             transaction_type=TransactionType.EXPENSE, transaction_date=date(2024, 1, 5)):
        return engine.transactions.add_transaction(TransactionRecord(
            id=transaction_id,
            account_id=account_id,
            amount=Money(Decimal(str(amount)), currency),
            type=transaction_type,
            description=f"Purchase {transaction_id}",
            transaction_date=transaction_date
        ))
    return _add


@pytest.fixture
def card(add_account):
    return add_account()
