"""Running-balance continuity checks and repair.

For a date-sorted sequence, each closing balance must equal the previous
closing balance plus this transaction's credit minus its debit. The first
transaction's stated balance is trusted. Mismatches beyond ``epsilon`` are
overwritten with the expected value and reported; this pass never aborts a
merge.
"""

from dataclasses import dataclass, replace
from typing import List, Optional, Sequence, Tuple

import structlog

from .models import Transaction

logger = structlog.get_logger()

BALANCE_EPSILON = 0.01


@dataclass(frozen=True)
class BalanceDiscrepancy:
    """One repaired closing balance."""

    index: int
    transaction_id: str
    stated: float
    expected: float

    @property
    def delta(self) -> float:
        return self.stated - self.expected


def derive_starting_balance(first: Transaction) -> float:
    """Balance before the first transaction: closing - credit + debit."""
    return first.closing_balance - first.credit_amount + first.debit_amount


def _expected_after(previous_balance: float, transaction: Transaction) -> float:
    return previous_balance + transaction.credit_amount - transaction.debit_amount


def find_discrepancies(
    transactions: Sequence[Transaction], epsilon: float = BALANCE_EPSILON
) -> List[BalanceDiscrepancy]:
    """Check the chain without changing anything.

    Each balance is compared against its stated predecessor, so a single bad
    row shows up once rather than cascading.
    """
    found = []
    for i in range(1, len(transactions)):
        expected = _expected_after(transactions[i - 1].closing_balance, transactions[i])
        if abs(expected - transactions[i].closing_balance) > epsilon:
            found.append(
                BalanceDiscrepancy(
                    index=i,
                    transaction_id=transactions[i].transaction_id,
                    stated=transactions[i].closing_balance,
                    expected=expected,
                )
            )
    return found


def repair_balances(
    transactions: Sequence[Transaction],
    epsilon: float = BALANCE_EPSILON,
    alert_threshold: Optional[float] = None,
) -> Tuple[List[Transaction], List[BalanceDiscrepancy]]:
    """Repair the running-balance chain of a date-sorted sequence.

    Args:
        transactions: Merged transactions, sorted ascending by date.
        epsilon: Tolerance in currency units.
        alert_threshold: Discrepancies larger than this are logged at error
            level instead of warning. They are still repaired.

    Returns:
        (repaired transactions, discrepancies). Unchanged transactions are
        returned as the same objects.
    """
    if not transactions:
        return [], []

    repaired = [transactions[0]]
    discrepancies = []
    for i in range(1, len(transactions)):
        current = transactions[i]
        expected = _expected_after(repaired[i - 1].closing_balance, current)

        if abs(expected - current.closing_balance) > epsilon:
            discrepancy = BalanceDiscrepancy(
                index=i,
                transaction_id=current.transaction_id,
                stated=current.closing_balance,
                expected=expected,
            )
            discrepancies.append(discrepancy)
            event = "balance_discrepancy_repaired"
            log = logger.warning
            if alert_threshold is not None and abs(discrepancy.delta) > alert_threshold:
                event = "balance_discrepancy_large"
                log = logger.error
            log(
                event,
                index=i,
                transaction_id=current.transaction_id,
                stated=current.closing_balance,
                expected=round(expected, 2),
            )
            current = replace(current, closing_balance=expected)

        repaired.append(current)

    return repaired, discrepancies
