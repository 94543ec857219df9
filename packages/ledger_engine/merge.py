"""Ledger merge engine — folds statement batches into a user's ledger.

The engine is a pure, synchronous core: it takes the current ledger (or None)
and a parsed batch and returns the next ledger. Fetching and saving the
ledger row is the caller's job (see apps/api/domains/ledger/service.py).

Merge semantics:
    - identity is the content fingerprint from ``identity.py``
    - a transaction already in the ledger is dropped (first write wins)
    - the result is stably sorted by date, balance-repaired, and summarised
    - merging the same batch twice changes nothing
"""

import uuid
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Callable, List, Optional, Set, Tuple

import structlog

from .balance import BALANCE_EPSILON, BalanceDiscrepancy, repair_balances
from .errors import EmptyLedgerError, LedgerOwnershipError
from .identity import assign_identities
from .interval_index import ONE_DAY, DateRangeIndex
from .models import Ledger, StatementBatch, Transaction
from .summary import aggregate

logger = structlog.get_logger()


@dataclass
class MergeResult:
    """Outcome of folding one batch into a ledger."""

    ledger: Ledger
    created: bool = False
    added: int = 0
    duplicates: int = 0
    overlapping_statements: Set[str] = field(default_factory=set)
    is_contiguous: bool = True
    discrepancies: List[BalanceDiscrepancy] = field(default_factory=list)
    changed: bool = False


def _new_ledger_id() -> str:
    return str(uuid.uuid4())


def _by_date(transactions: List[Transaction]) -> List[Transaction]:
    # sorted() is stable: same-day transactions keep insertion order
    return sorted(transactions, key=lambda t: t.date)


class LedgerMergeEngine:
    """Stateless merge service. Construct one per request.

    Args:
        epsilon: Balance tolerance in currency units.
        gap_tolerance: Statements this close to existing coverage count as
            continuous.
        identity_workers: Thread count for fingerprinting; None or 1 hashes
            inline.
        discrepancy_alert: Balance repairs larger than this are logged at
            error level.
        id_factory: Produces ids for newly created ledgers.
    """

    def __init__(
        self,
        epsilon: float = BALANCE_EPSILON,
        gap_tolerance: timedelta = ONE_DAY,
        identity_workers: Optional[int] = None,
        discrepancy_alert: Optional[float] = None,
        id_factory: Callable[[], str] = _new_ledger_id,
    ):
        self.epsilon = epsilon
        self.gap_tolerance = gap_tolerance
        self.identity_workers = identity_workers
        self.discrepancy_alert = discrepancy_alert
        self.id_factory = id_factory

    def merge(self, existing: Optional[Ledger], batch: StatementBatch) -> Ledger:
        """Fold ``batch`` into ``existing`` and return the resulting ledger."""
        return self.merge_with_report(existing, batch).ledger

    def merge_with_report(
        self, existing: Optional[Ledger], batch: StatementBatch
    ) -> MergeResult:
        """Fold ``batch`` into ``existing`` and report what changed.

        Raises:
            EmptyLedgerError: no existing ledger and the batch is empty.
            LedgerOwnershipError: the batch belongs to another user.
            InvalidTransactionFields: any row has a bad date, amount or type;
                nothing is merged.
        """
        if existing is not None and existing.user_id != batch.user_id:
            raise LedgerOwnershipError(batch.user_id, existing.user_id)

        if batch.is_empty():
            if existing is None:
                raise EmptyLedgerError()
            logger.info("ledger_merge_noop", user_id=batch.user_id, statement_id=batch.id, reason="empty_batch")
            return MergeResult(ledger=existing)

        tagged = assign_identities(batch.transactions, batch.id, max_workers=self.identity_workers)
        start, end = self._batch_bounds(batch, tagged)

        if existing is None:
            return self._create(batch, tagged, start, end)
        return self._fold(existing, batch, tagged, start, end)

    def _batch_bounds(
        self, batch: StatementBatch, tagged: List[Transaction]
    ) -> Tuple[date, date]:
        summary = batch.summary
        if summary is not None and summary.start_date and summary.end_date:
            return summary.start_date, summary.end_date
        dates = [t.date for t in tagged]
        return min(dates), max(dates)

    def _dedupe(self, tagged: List[Transaction], known: Set[str]) -> List[Transaction]:
        fresh = []
        for t in tagged:
            if t.transaction_id in known:
                continue
            known.add(t.transaction_id)
            fresh.append(t)
        return fresh

    def _create(
        self, batch: StatementBatch, tagged: List[Transaction], start: date, end: date
    ) -> MergeResult:
        unique = self._dedupe(tagged, set())
        if len(unique) < len(tagged):
            logger.warning(
                "duplicate_in_batch",
                user_id=batch.user_id,
                statement_id=batch.id,
                dropped=len(tagged) - len(unique),
            )

        repaired, discrepancies = repair_balances(
            _by_date(unique), self.epsilon, self.discrepancy_alert
        )
        ledger = Ledger(
            id=self.id_factory(),
            user_id=batch.user_id,
            transactions=repaired,
            summary=aggregate(repaired),
            first_date=start,
            last_date=end,
        )
        logger.info(
            "ledger_created",
            user_id=batch.user_id,
            ledger_id=ledger.id,
            statement_id=batch.id,
            transactions=len(repaired),
            balance_repairs=len(discrepancies),
        )
        return MergeResult(
            ledger=ledger,
            created=True,
            changed=True,
            added=len(unique),
            duplicates=len(tagged) - len(unique),
            discrepancies=discrepancies,
        )

    def _fold(
        self,
        existing: Ledger,
        batch: StatementBatch,
        tagged: List[Transaction],
        start: date,
        end: date,
    ) -> MergeResult:
        overlapping = DateRangeIndex.from_ledger(existing).find_overlapping(
            start, end, self.gap_tolerance
        )
        if not overlapping:
            logger.warning(
                "ledger_coverage_gap",
                user_id=batch.user_id,
                statement_id=batch.id,
                batch_start=start.isoformat(),
                batch_end=end.isoformat(),
                ledger_start=existing.first_date.isoformat(),
                ledger_end=existing.last_date.isoformat(),
            )

        fresh = self._dedupe(tagged, existing.transaction_ids())
        duplicates = len(tagged) - len(fresh)
        first_date = min(existing.first_date, start)
        last_date = max(existing.last_date, end)

        if not fresh and (first_date, last_date) == (existing.first_date, existing.last_date):
            logger.info(
                "ledger_merge_noop",
                user_id=batch.user_id,
                statement_id=batch.id,
                reason="all_duplicates",
                duplicates=duplicates,
            )
            return MergeResult(
                ledger=existing,
                duplicates=duplicates,
                overlapping_statements=overlapping,
                is_contiguous=bool(overlapping),
            )

        repaired, discrepancies = repair_balances(
            _by_date(existing.transactions + fresh), self.epsilon, self.discrepancy_alert
        )
        ledger = Ledger(
            id=existing.id,
            user_id=existing.user_id,
            transactions=repaired,
            summary=aggregate(repaired),
            first_date=first_date,
            last_date=last_date,
        )
        logger.info(
            "ledger_merged",
            user_id=batch.user_id,
            ledger_id=ledger.id,
            statement_id=batch.id,
            added=len(fresh),
            duplicates=duplicates,
            overlapping=sorted(overlapping),
            transactions=len(repaired),
            balance_repairs=len(discrepancies),
        )
        return MergeResult(
            ledger=ledger,
            added=len(fresh),
            duplicates=duplicates,
            overlapping_statements=overlapping,
            is_contiguous=bool(overlapping),
            discrepancies=discrepancies,
            changed=True,
        )
