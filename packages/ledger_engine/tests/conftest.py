"""Shared builders for ledger engine tests."""

from datetime import date

import pytest

from packages.ledger_engine.models import StatementBatch, Transaction


def make_tx(day, narration="UPI-Swiggy-food", debit=0.0, credit=0.0, balance=0.0, **kwargs):
    """Build a Transaction; ``day`` is an ISO date string or a date."""
    if isinstance(day, str):
        day = date.fromisoformat(day)
    return Transaction(
        date=day,
        narration=narration,
        debit_amount=debit,
        credit_amount=credit,
        closing_balance=balance,
        **kwargs,
    )


@pytest.fixture
def tx():
    return make_tx


@pytest.fixture
def batch():
    def _batch(transactions, user_id="user-1", **kwargs):
        return StatementBatch(user_id=user_id, transactions=list(transactions), **kwargs)

    return _batch
