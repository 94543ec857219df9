"""Error kinds raised by the ledger consolidation engine.

Balance-continuity problems are repaired in place and never raised; only
input and persistence failures surface as exceptions.
"""

from typing import Optional


class LedgerEngineError(Exception):
    """Base class for all ledger engine errors."""


class InvalidTransactionFields(LedgerEngineError):
    """A transaction is missing or has unparseable identity fields.

    Raised for the whole batch, not just the offending row, so a ledger is
    never left partially updated.
    """

    def __init__(self, detail: str, row: Optional[int] = None, field: str = ""):
        self.detail = detail
        self.row = row
        self.field = field
        if row is not None:
            detail = f"row {row}: {detail}"
        super().__init__(detail)


class EmptyLedgerError(LedgerEngineError):
    """Merge requested with no existing ledger and no batch data."""

    def __init__(self, detail: str = "Cannot create a ledger from an empty statement"):
        self.detail = detail
        super().__init__(detail)


class LedgerOwnershipError(LedgerEngineError):
    """A batch was merged into a ledger owned by a different user."""

    def __init__(self, batch_user_id: str, ledger_user_id: str):
        self.batch_user_id = batch_user_id
        self.ledger_user_id = ledger_user_id
        self.detail = "Statement does not belong to this ledger"
        super().__init__(
            f"batch for user {batch_user_id} cannot merge into ledger of user {ledger_user_id}"
        )


class PersistenceConflict(LedgerEngineError):
    """The ledger row changed between fetch and upsert.

    Safe to retry: merging the same batch again is idempotent.
    """

    def __init__(self, user_id: str, detail: str = "Ledger was modified concurrently"):
        self.user_id = user_id
        self.detail = detail
        super().__init__(f"{detail} (user {user_id})")
