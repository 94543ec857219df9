"""Summary aggregation — a pure reduction from transactions to statistics."""

import math
from typing import List, Sequence

from .balance import BALANCE_EPSILON, derive_starting_balance
from .models import CREDIT, DEBIT, StatementSummary, Transaction


def _tie_key(t: Transaction):
    return (t.closing_balance, t.transaction_id, t.narration, t.type or "", t.amount or 0.0)


def _matches(a: float, b: float) -> bool:
    return abs(a - b) <= BALANCE_EPSILON


def _chain_start(day: List[Transaction]) -> Transaction:
    """The row whose opening balance no other same-day row closes into."""
    if len(day) == 1:
        return day[0]
    heads = [
        t for i, t in enumerate(day)
        if not any(
            _matches(derive_starting_balance(t), other.closing_balance)
            for j, other in enumerate(day) if j != i
        )
    ]
    return min(heads or day, key=_tie_key)


def _chain_end(day: List[Transaction]) -> Transaction:
    """The row whose closing balance opens no other same-day row."""
    if len(day) == 1:
        return day[0]
    tails = [
        t for i, t in enumerate(day)
        if not any(
            _matches(t.closing_balance, derive_starting_balance(other))
            for j, other in enumerate(day) if j != i
        )
    ]
    return min(tails or day, key=_tie_key)


def aggregate(transactions: Sequence[Transaction]) -> StatementSummary:
    """Compute the summary of a transaction sequence.

    The result depends only on the multiset of transactions. Totals use
    ``math.fsum``. Starting and ending balances come from the first and last
    days; when several rows share such a day, the balance chain decides which
    one opens or closes it, and a fixed sort key settles any remaining tie.
    """
    if not transactions:
        return StatementSummary()

    ordered = sorted(transactions, key=lambda t: t.date)
    first_day = [t for t in ordered if t.date == ordered[0].date]
    last_day = [t for t in ordered if t.date == ordered[-1].date]
    total_debit = math.fsum(t.debit_amount for t in ordered)
    total_credit = math.fsum(t.credit_amount for t in ordered)

    return StatementSummary(
        total_debit=total_debit,
        total_credit=total_credit,
        net_cashflow=total_credit - total_debit,
        start_date=ordered[0].date,
        end_date=ordered[-1].date,
        starting_balance=derive_starting_balance(_chain_start(first_day)),
        ending_balance=_chain_end(last_day).closing_balance,
        transaction_count=len(ordered),
        credit_count=sum(1 for t in ordered if t.type == CREDIT),
        debit_count=sum(1 for t in ordered if t.type == DEBIT),
    )
