"""
SCALE Ledger Engine

Consolidates repeated, overlapping statement uploads into one deduplicated,
date-ordered, balance-consistent ledger per user.
"""

__version__ = "0.1.0"

from .balance import BalanceDiscrepancy, find_discrepancies, repair_balances
from .errors import (
    EmptyLedgerError,
    InvalidTransactionFields,
    LedgerEngineError,
    LedgerOwnershipError,
    PersistenceConflict,
)
from .identity import assign_identities, compute_transaction_id
from .interval_index import DateRangeIndex
from .merge import LedgerMergeEngine, MergeResult
from .models import (
    DateRangeInterval,
    Ledger,
    StatementBatch,
    StatementSummary,
    Transaction,
)
from .summary import aggregate

__all__ = [
    "BalanceDiscrepancy",
    "DateRangeIndex",
    "DateRangeInterval",
    "EmptyLedgerError",
    "InvalidTransactionFields",
    "Ledger",
    "LedgerEngineError",
    "LedgerOwnershipError",
    "LedgerMergeEngine",
    "MergeResult",
    "PersistenceConflict",
    "StatementBatch",
    "StatementSummary",
    "Transaction",
    "aggregate",
    "assign_identities",
    "compute_transaction_id",
    "find_discrepancies",
    "repair_balances",
]
