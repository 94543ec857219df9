"""Tests for the ledger merge engine."""

from datetime import date

import pytest

from packages.ledger_engine.errors import (
    EmptyLedgerError,
    InvalidTransactionFields,
    LedgerOwnershipError,
)
from packages.ledger_engine.merge import LedgerMergeEngine
from packages.ledger_engine.models import StatementSummary
from packages.ledger_engine.summary import aggregate


@pytest.fixture
def engine():
    return LedgerMergeEngine()


@pytest.fixture
def batch_a(tx, batch):
    return batch([tx("2024-01-05", "UPI-Swiggy-food", debit=450, balance=10000)], id="stmt-a")


@pytest.fixture
def batch_b(tx, batch):
    return batch(
        [
            tx("2024-01-05", "UPI-Swiggy-food", debit=450, balance=10000),
            tx("2024-01-10", "SALARY JAN", credit=8000, balance=18000),
        ],
        id="stmt-b",
    )


def ids(ledger):
    return {t.transaction_id for t in ledger.transactions}


class TestCreate:
    def test_first_merge_creates_ledger(self, engine, batch_a):
        result = engine.merge_with_report(None, batch_a)
        ledger = result.ledger

        assert result.created
        assert result.changed
        assert ledger.user_id == "user-1"
        assert len(ledger) == 1
        assert ledger.transactions[0].statement_id == "stmt-a"
        assert len(ledger.transactions[0].transaction_id) == 64
        assert ledger.first_date == ledger.last_date == date(2024, 1, 5)

    def test_bounds_come_from_batch_summary(self, engine, tx, batch):
        summary = StatementSummary(start_date=date(2024, 1, 1), end_date=date(2024, 1, 31))
        ledger = engine.merge(None, batch([tx("2024-01-05", debit=450, balance=10000)], summary=summary))

        assert ledger.first_date == date(2024, 1, 1)
        assert ledger.last_date == date(2024, 1, 31)
        # the stored summary is derived, not copied from the batch
        assert ledger.summary == aggregate(ledger.transactions)

    def test_duplicates_within_batch_collapse(self, engine, tx, batch):
        row = tx("2024-01-05", "UPI-Swiggy-food", debit=450, balance=10000)
        result = engine.merge_with_report(None, batch([row, row]))

        assert len(result.ledger) == 1
        assert result.duplicates == 1

    def test_id_factory(self, tx, batch):
        engine = LedgerMergeEngine(id_factory=lambda: "ledger-42")
        ledger = engine.merge(None, batch([tx("2024-01-05", debit=450)]))
        assert ledger.id == "ledger-42"

    def test_empty_batch_without_ledger_raises(self, engine, batch):
        with pytest.raises(EmptyLedgerError):
            engine.merge(None, batch([]))


class TestFold:
    def test_statement_example(self, engine, tx, batch, batch_a):
        """Re-uploading January plus one new credit yields two transactions.

        The new row states 17550, which does not follow 10000 + 8000, so it
        is repaired to 18000 and the repair is reported.
        """
        ledger = engine.merge(None, batch_a)
        assert len(ledger) == 1

        batch_b = batch(
            [
                tx("2024-01-05", "UPI-Swiggy-food", debit=450, balance=10000),
                tx("2024-01-10", "SALARY JAN", credit=8000, balance=17550),
            ],
            id="stmt-b",
        )
        result = engine.merge_with_report(ledger, batch_b)
        merged = result.ledger

        assert len(merged) == 2
        assert result.added == 1
        assert result.duplicates == 1
        assert merged.summary.transaction_count == 2
        assert merged.summary.total_debit == 450
        assert merged.summary.total_credit == 8000
        assert merged.summary.starting_balance == 10450
        assert merged.summary.ending_balance == 18000
        assert [d.index for d in result.discrepancies] == [1]

    def test_consistent_example_needs_no_repair(self, engine, batch_a, batch_b):
        ledger = engine.merge(engine.merge(None, batch_a), batch_b)
        assert ledger.summary.ending_balance == 18000
        assert ledger.summary.starting_balance == 10450

    def test_idempotent(self, engine, batch_a, batch_b):
        once = engine.merge(engine.merge(None, batch_a), batch_b)
        result = engine.merge_with_report(once, batch_b)

        assert ids(result.ledger) == ids(once)
        assert result.ledger is once
        assert not result.changed
        assert result.duplicates == 2

    def test_commutative_for_disjoint_batches(self, engine, tx, batch):
        jan = batch(
            [tx("2024-01-05", "A", debit=100, balance=900), tx("2024-01-20", "B", credit=50, balance=950)],
            id="jan",
        )
        feb = batch(
            [tx("2024-02-03", "C", debit=25, balance=925), tx("2024-02-14", "D", debit=75, balance=850)],
            id="feb",
        )

        ab = engine.merge(engine.merge(None, jan), feb)
        ba = engine.merge(engine.merge(None, feb), jan)

        assert ids(ab) == ids(ba)
        assert ab.summary == ba.summary
        assert (ab.first_date, ab.last_date) == (ba.first_date, ba.last_date)

    def test_first_write_wins_on_duplicates(self, engine, tx, batch):
        row = tx("2024-01-05", "UPI-Swiggy-food", debit=450, balance=10000, category="Food")
        dup = tx("2024-01-05", "UPI-Swiggy-food", debit=450, balance=10000, category="Other")

        ledger = engine.merge(None, batch([row], id="first"))
        ledger = engine.merge(ledger, batch([dup, tx("2024-01-06", "X", debit=1, balance=9999)], id="second"))

        kept = ledger.transactions[0]
        assert kept.statement_id == "first"
        assert kept.category == "Food"

    def test_sorted_by_date_with_stable_ties(self, engine, tx, batch):
        ledger = engine.merge(
            None,
            batch([tx("2024-01-10", "late", credit=10, balance=110), tx("2024-01-01", "early", credit=100, balance=100)]),
        )
        ledger = engine.merge(
            ledger,
            batch(
                [
                    tx("2024-01-10", "same-day-1", debit=5, balance=105),
                    tx("2024-01-05", "middle", credit=0.5, balance=100.5),
                    tx("2024-01-10", "same-day-2", debit=5, balance=100),
                ]
            ),
        )

        dates = [t.date for t in ledger.transactions]
        assert all(dates[i] <= dates[i + 1] for i in range(len(dates) - 1))
        assert [t.narration for t in ledger.transactions] == [
            "early",
            "middle",
            "late",
            "same-day-1",
            "same-day-2",
        ]

    def test_merged_chain_is_continuous(self, engine, tx, batch):
        ledger = engine.merge(
            None, batch([tx("2024-01-01", "A", credit=100, balance=100), tx("2024-01-03", "C", debit=10, balance=90)])
        )
        ledger = engine.merge(ledger, batch([tx("2024-01-02", "B", debit=20, balance=80)]))

        balances = [t.closing_balance for t in ledger.transactions]
        for prev, cur, t in zip(balances, balances[1:], ledger.transactions[1:]):
            assert cur == pytest.approx(prev + t.credit_amount - t.debit_amount, abs=0.01)
        assert ledger.summary == aggregate(ledger.transactions)

    def test_bounds_widen(self, engine, tx, batch):
        ledger = engine.merge(None, batch([tx("2024-02-10", debit=1, balance=99)]))
        summary = StatementSummary(start_date=date(2024, 1, 1), end_date=date(2024, 1, 31))
        ledger = engine.merge(ledger, batch([tx("2024-01-15", "Y", debit=1, balance=100)], summary=summary))

        assert ledger.first_date == date(2024, 1, 1)
        assert ledger.last_date == date(2024, 2, 10)

    def test_ledger_id_is_stable(self, engine, batch_a, batch_b):
        created = engine.merge(None, batch_a)
        assert engine.merge(created, batch_b).id == created.id

    def test_empty_batch_is_noop(self, engine, batch, batch_a):
        ledger = engine.merge(None, batch_a)
        assert engine.merge(ledger, batch([])) is ledger

    def test_invalid_row_aborts_whole_batch(self, engine, tx, batch, batch_a):
        ledger = engine.merge(None, batch_a)
        bad = batch(
            [
                tx("2024-01-07", "fine", debit=1, balance=9999),
                tx("2024-01-08", "broken", amount=float("nan"), type="debit"),
            ]
        )
        with pytest.raises(InvalidTransactionFields):
            engine.merge(ledger, bad)
        assert len(ledger) == 1

    def test_rejects_other_users_batch(self, engine, batch, batch_a, tx):
        ledger = engine.merge(None, batch_a)
        with pytest.raises(LedgerOwnershipError) as exc_info:
            engine.merge(ledger, batch([tx("2024-01-06", debit=1)], user_id="user-2"))
        assert exc_info.value.ledger_user_id == "user-1"

    def test_parallel_identities_match(self, tx, batch, batch_a, batch_b):
        inline = LedgerMergeEngine()
        parallel = LedgerMergeEngine(identity_workers=4)
        a = inline.merge(inline.merge(None, batch_a), batch_b)
        b = parallel.merge(parallel.merge(None, batch_a), batch_b)
        assert ids(a) == ids(b)


class TestCoverage:
    def test_overlapping_statements_reported(self, engine, batch_a, batch_b):
        ledger = engine.merge(None, batch_a)
        result = engine.merge_with_report(ledger, batch_b)

        assert result.overlapping_statements == {"stmt-a"}
        assert result.is_contiguous

    def test_adjacent_statement_is_contiguous(self, engine, tx, batch):
        ledger = engine.merge(None, batch([tx("2024-01-31", "A", debit=1, balance=99)], id="jan"))
        result = engine.merge_with_report(ledger, batch([tx("2024-02-01", "B", debit=1, balance=98)], id="feb"))

        assert result.overlapping_statements == {"jan"}
        assert result.is_contiguous

    def test_disjoint_statement_is_a_gap(self, engine, tx, batch):
        ledger = engine.merge(None, batch([tx("2024-01-10", "A", debit=1, balance=99)], id="jan"))
        result = engine.merge_with_report(ledger, batch([tx("2024-03-10", "B", debit=1, balance=98)], id="mar"))

        assert result.overlapping_statements == set()
        assert not result.is_contiguous
        assert len(result.ledger) == 2
