"""Tests for the Supabase-backed ledger repository."""

from datetime import date
from unittest.mock import MagicMock

import pytest

from apps.api.domains.ledger.repository import LedgerRepository
from packages.ledger_engine.errors import PersistenceConflict
from packages.ledger_engine.identity import compute_transaction_id
from packages.ledger_engine.models import Ledger, StatementSummary, Transaction


def _ledger():
    tx = Transaction(
        date=date(2024, 1, 5),
        narration="UPI-Swiggy-food",
        debit_amount=450,
        closing_balance=10000,
        transaction_id="a" * 64,
        statement_id="stmt-a",
    )
    return Ledger(
        id="ledger-1",
        user_id="user-1",
        transactions=[tx],
        summary=StatementSummary(),
        first_date=date(2024, 1, 1),
        last_date=date(2024, 1, 31),
    )


@pytest.fixture
def table():
    mock_table = MagicMock()
    mock_table.select.return_value = mock_table
    mock_table.insert.return_value = mock_table
    mock_table.update.return_value = mock_table
    mock_table.eq.return_value = mock_table
    mock_table.limit.return_value = mock_table
    return mock_table


@pytest.fixture
def repo(table):
    client = MagicMock()
    client.table.return_value = table
    return LedgerRepository(client, "super_statement")


class TestFetch:
    def test_absent_row_returns_none(self, repo, table):
        table.execute.return_value = MagicMock(data=[])
        assert repo.fetch("user-1") is None
        table.eq.assert_called_with("user_id", "user-1")

    def test_row_is_loaded_with_version(self, repo, table):
        row = _ledger().to_row()
        row["updated_at"] = "2024-02-01T10:00:00+00:00"
        table.execute.return_value = MagicMock(data=[row])

        stored = repo.fetch("user-1")

        assert stored.version == "2024-02-01T10:00:00+00:00"
        assert stored.ledger.id == "ledger-1"
        assert stored.ledger.transactions[0].transaction_id == compute_transaction_id(
            date(2024, 1, 5), "UPI-Swiggy-food", 450, "debit"
        )
        # summary is recomputed on load
        assert stored.ledger.summary.total_debit == 450
        assert stored.ledger.first_date == date(2024, 1, 1)


class TestSave:
    def test_new_ledger_is_inserted(self, repo, table):
        table.execute.return_value = MagicMock(data=[{}])

        version = repo.save(_ledger(), None)

        row = table.insert.call_args[0][0]
        assert row["user_id"] == "user-1"
        assert row["updated_at"] == version
        table.update.assert_not_called()

    def test_duplicate_insert_is_a_conflict(self, repo, table):
        table.execute.side_effect = Exception(
            'duplicate key value violates unique constraint "super_statement_user_id_key" (23505)'
        )
        with pytest.raises(PersistenceConflict):
            repo.save(_ledger(), None)

    def test_other_insert_errors_propagate(self, repo, table):
        table.execute.side_effect = RuntimeError("connection reset")
        with pytest.raises(RuntimeError):
            repo.save(_ledger(), None)

    def test_update_is_conditional_on_version(self, repo, table):
        table.execute.return_value = MagicMock(data=[{"id": "ledger-1"}])

        repo.save(_ledger(), "v1")

        table.update.assert_called_once()
        eq_calls = [c.args for c in table.eq.call_args_list]
        assert ("id", "ledger-1") in eq_calls
        assert ("updated_at", "v1") in eq_calls

    def test_stale_version_is_a_conflict(self, repo, table):
        table.execute.return_value = MagicMock(data=[])
        with pytest.raises(PersistenceConflict) as exc_info:
            repo.save(_ledger(), "stale")
        assert exc_info.value.user_id == "user-1"

    def test_version_comes_from_stored_row(self, repo, table):
        table.execute.return_value = MagicMock(
            data=[{"id": "ledger-1", "updated_at": "2024-02-01T10:00:00.5+00:00"}]
        )
        assert repo.save(_ledger(), "v1") == "2024-02-01T10:00:00.5+00:00"
