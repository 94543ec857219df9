"""Ledger row store on Supabase.

One row per user in ``super_statement``. Writes use optimistic concurrency:
an update only lands if ``updated_at`` still matches the value read, the same
compare-and-set the worker uses to claim jobs. A lost race surfaces as
PersistenceConflict and the service re-runs the merge on fresh state.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import structlog
from supabase import Client

from packages.ledger_engine.errors import PersistenceConflict
from packages.ledger_engine.models import Ledger

logger = structlog.get_logger()


@dataclass
class StoredLedger:
    ledger: Ledger
    version: Optional[str]


def _is_duplicate_key(exc: Exception) -> bool:
    return "duplicate key" in str(exc) or "23505" in str(exc)


def _version_of(response, fallback: str) -> str:
    # the updated_at trigger may overwrite the value we sent
    if response.data and response.data[0].get("updated_at"):
        return response.data[0]["updated_at"]
    return fallback


class LedgerRepository:
    """Fetch and save a user's ledger row."""

    def __init__(self, client: Client, table: str = "super_statement"):
        self.client = client
        self.table = table

    def fetch(self, user_id: str) -> Optional[StoredLedger]:
        result = (
            self.client.table(self.table)
            .select("*")
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )
        if not result.data:
            return None
        row = result.data[0]
        return StoredLedger(ledger=Ledger.from_row(row), version=row.get("updated_at"))

    def save(self, ledger: Ledger, version: Optional[str]) -> str:
        """Persist ``ledger``; ``version`` is None for a ledger never stored.

        Returns the new version stamp.

        Raises:
            PersistenceConflict: another writer inserted or updated the row
                since it was read.
        """
        now_iso = datetime.now(timezone.utc).isoformat()
        row = ledger.to_row()
        row["updated_at"] = now_iso

        if version is None:
            try:
                response = self.client.table(self.table).insert(row).execute()
            except Exception as e:
                if _is_duplicate_key(e):
                    raise PersistenceConflict(ledger.user_id, "Ledger was created concurrently") from e
                raise
            return _version_of(response, now_iso)

        response = (
            self.client.table(self.table)
            .update(row)
            .eq("id", ledger.id)
            .eq("updated_at", version)
            .execute()
        )
        if not response.data:
            raise PersistenceConflict(ledger.user_id)
        return _version_of(response, now_iso)
