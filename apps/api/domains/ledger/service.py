"""Ledger service — fetch, merge, save with retry on concurrent writes."""

from typing import Callable, List, Optional

import structlog
from fastapi import Depends
from supabase import Client

from apps.api.core.auth import get_user_client
from apps.api.core.config import Settings, settings as default_settings
from packages.ledger_engine.errors import PersistenceConflict
from packages.ledger_engine.merge import LedgerMergeEngine, MergeResult
from packages.ledger_engine.models import Ledger, StatementBatch, StatementSummary, Transaction
from apps.api.domains.ledger.repository import LedgerRepository

logger = structlog.get_logger()


def build_engine(config: Optional[Settings] = None) -> LedgerMergeEngine:
    """Create a merge engine tuned from settings (library defaults if unset)."""
    config = config or default_settings
    if config is None:
        return LedgerMergeEngine()
    return LedgerMergeEngine(
        epsilon=config.LEDGER_BALANCE_EPSILON,
        gap_tolerance=config.gap_tolerance,
        identity_workers=config.LEDGER_IDENTITY_WORKERS or None,
        discrepancy_alert=config.LEDGER_DISCREPANCY_ALERT,
    )


class LedgerService:
    def __init__(
        self,
        repository: LedgerRepository,
        engine_factory: Callable[[], LedgerMergeEngine] = build_engine,
        max_attempts: int = 3,
    ):
        self.repository = repository
        self.engine_factory = engine_factory
        self.max_attempts = max(1, max_attempts)

    def ingest(self, batch: StatementBatch) -> MergeResult:
        """Merge ``batch`` into the stored ledger of ``batch.user_id``.

        The merge is deterministic and idempotent, so when a save loses a
        race the whole fetch-merge-save cycle is simply repeated.

        Raises:
            PersistenceConflict: still conflicting after ``max_attempts``.
        """
        for attempt in range(1, self.max_attempts + 1):
            stored = self.repository.fetch(batch.user_id)
            existing = stored.ledger if stored else None
            result = self.engine_factory().merge_with_report(existing, batch)
            if not result.changed:
                return result

            try:
                self.repository.save(result.ledger, stored.version if stored else None)
            except PersistenceConflict:
                logger.warning(
                    "ledger_persistence_conflict",
                    user_id=batch.user_id,
                    statement_id=batch.id,
                    attempt=attempt,
                )
                if attempt == self.max_attempts:
                    raise
                continue

            logger.info(
                "ledger_saved",
                user_id=batch.user_id,
                ledger_id=result.ledger.id,
                transactions=len(result.ledger),
                attempt=attempt,
            )
            return result

        raise PersistenceConflict(batch.user_id)

    def get_ledger(self, user_id: str) -> Optional[Ledger]:
        stored = self.repository.fetch(user_id)
        return stored.ledger if stored else None

    def get_transactions(self, user_id: str) -> List[Transaction]:
        """Ledger transactions in date order; empty when no ledger exists."""
        ledger = self.get_ledger(user_id)
        return list(ledger.transactions) if ledger else []

    def get_summary(self, user_id: str) -> Optional[StatementSummary]:
        ledger = self.get_ledger(user_id)
        return ledger.summary if ledger else None


def get_ledger_service(client: Client = Depends(get_user_client)) -> LedgerService:
    """FastAPI dependency: a service bound to the caller's RLS-scoped client."""
    table = default_settings.LEDGER_TABLE if default_settings else "super_statement"
    attempts = default_settings.LEDGER_MAX_MERGE_ATTEMPTS if default_settings else 3
    return LedgerService(LedgerRepository(client, table), max_attempts=attempts)
