"""Pydantic schemas for the ledger domain.

Request models accept both snake_case and the camelCase keys the dashboard
front end uses (``debitAmount``, ``closingBalance``...). Responses are
snake_case.
"""

from datetime import date
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from packages.ledger_engine.errors import InvalidTransactionFields
from packages.ledger_engine.merge import MergeResult
from packages.ledger_engine.models import (
    Ledger,
    StatementBatch,
    StatementSummary,
    Transaction,
    coerce_date,
)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TransactionIn(_CamelModel):
    """One parsed statement line as produced by the statement parser."""

    date: Any = None
    narration: str = ""
    value_date: Any = None
    debit_amount: float = 0.0
    credit_amount: float = 0.0
    chq_ref_number: str = ""
    closing_balance: float = 0.0
    amount: Optional[float] = None
    type: Optional[Literal["credit", "debit"]] = None
    category: Optional[str] = None
    upi_id: Optional[str] = None
    merchant: Optional[str] = None

    def to_domain(self, row: int) -> Transaction:
        try:
            tx_date = coerce_date(self.date)
        except ValueError as e:
            raise InvalidTransactionFields(f"invalid date: {e}", row=row, field="date") from e
        value_date = None
        if self.value_date not in (None, ""):
            try:
                value_date = coerce_date(self.value_date)
            except ValueError as e:
                raise InvalidTransactionFields(
                    f"invalid value date: {e}", row=row, field="value_date"
                ) from e

        return Transaction(
            date=tx_date,
            narration=self.narration,
            debit_amount=self.debit_amount,
            credit_amount=self.credit_amount,
            closing_balance=self.closing_balance,
            value_date=value_date,
            chq_ref_number=self.chq_ref_number,
            amount=self.amount,
            type=self.type,
            category=self.category,
            upi_id=self.upi_id,
            merchant=self.merchant,
        )


class StatementSummaryIn(_CamelModel):
    """Summary pre-computed by the parser. Only the date range is used."""

    start_date: Optional[date] = None
    end_date: Optional[date] = None
    total_debit: float = 0.0
    total_credit: float = 0.0
    starting_balance: float = 0.0
    ending_balance: float = 0.0


class StatementBatchIn(_CamelModel):
    """One uploaded statement to merge into the caller's ledger."""

    id: Optional[str] = Field(
        default=None,
        description="Client-side statement id; reuse it when retrying an upload",
    )
    name: str = ""
    transactions: list[TransactionIn] = Field(default_factory=list)
    summary: Optional[StatementSummaryIn] = None

    def to_domain(self, user_id: str) -> StatementBatch:
        """Convert to an engine batch.

        Raises:
            InvalidTransactionFields: for the first row with a bad date.
        """
        transactions = [t.to_domain(i) for i, t in enumerate(self.transactions)]
        summary = None
        if self.summary is not None and self.summary.start_date and self.summary.end_date:
            summary = StatementSummary(
                start_date=self.summary.start_date,
                end_date=self.summary.end_date,
            )
        kwargs = {"id": self.id} if self.id else {}
        return StatementBatch(
            user_id=user_id,
            transactions=transactions,
            summary=summary,
            name=self.name,
            **kwargs,
        )


class TransactionOut(BaseModel):
    """A ledger transaction with its identity and origin."""

    transaction_id: str
    statement_id: str
    date: date
    value_date: Optional[date] = None
    narration: str
    debit_amount: float
    credit_amount: float
    closing_balance: float
    amount: float
    type: str
    chq_ref_number: str = ""
    category: Optional[str] = None
    upi_id: Optional[str] = None
    merchant: Optional[str] = None

    @classmethod
    def from_domain(cls, t: Transaction) -> "TransactionOut":
        return cls(
            transaction_id=t.transaction_id,
            statement_id=t.statement_id,
            date=t.date,
            value_date=t.value_date,
            narration=t.narration,
            debit_amount=t.debit_amount,
            credit_amount=t.credit_amount,
            closing_balance=t.closing_balance,
            amount=t.amount,
            type=t.type,
            chq_ref_number=t.chq_ref_number,
            category=t.category,
            upi_id=t.upi_id,
            merchant=t.merchant,
        )


class SummaryOut(BaseModel):
    """Aggregate statistics of a ledger."""

    total_debit: float
    total_credit: float
    net_cashflow: float
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    starting_balance: float
    ending_balance: float
    transaction_count: int
    credit_count: int
    debit_count: int

    @classmethod
    def from_domain(cls, s: StatementSummary) -> "SummaryOut":
        return cls(
            total_debit=round(s.total_debit, 2),
            total_credit=round(s.total_credit, 2),
            net_cashflow=round(s.net_cashflow, 2),
            start_date=s.start_date,
            end_date=s.end_date,
            starting_balance=round(s.starting_balance, 2),
            ending_balance=round(s.ending_balance, 2),
            transaction_count=s.transaction_count,
            credit_count=s.credit_count,
            debit_count=s.debit_count,
        )


class LedgerOut(BaseModel):
    """The caller's consolidated ledger."""

    id: str
    first_date: date
    last_date: date
    summary: SummaryOut
    transactions: list[TransactionOut]

    @classmethod
    def from_domain(cls, ledger: Ledger) -> "LedgerOut":
        return cls(
            id=ledger.id,
            first_date=ledger.first_date,
            last_date=ledger.last_date,
            summary=SummaryOut.from_domain(ledger.summary),
            transactions=[TransactionOut.from_domain(t) for t in ledger.transactions],
        )


class TransactionsOut(BaseModel):
    transactions: list[TransactionOut]
    count: int


class BalanceRepairOut(BaseModel):
    """A closing balance the engine corrected during the merge."""

    index: int
    transaction_id: str
    stated: float
    expected: float


class MergeResponse(BaseModel):
    """Outcome of merging one statement into the ledger."""

    ledger_id: str
    statement_id: str
    created: bool
    changed: bool
    added: int
    duplicates_skipped: int
    transaction_count: int
    overlapping_statements: list[str]
    is_contiguous: bool
    balance_repairs: list[BalanceRepairOut]
    summary: SummaryOut

    @classmethod
    def from_result(cls, result: MergeResult, statement_id: str) -> "MergeResponse":
        return cls(
            ledger_id=result.ledger.id,
            statement_id=statement_id,
            created=result.created,
            changed=result.changed,
            added=result.added,
            duplicates_skipped=result.duplicates,
            transaction_count=len(result.ledger),
            overlapping_statements=sorted(result.overlapping_statements),
            is_contiguous=result.is_contiguous,
            balance_repairs=[
                BalanceRepairOut(
                    index=d.index,
                    transaction_id=d.transaction_id,
                    stated=d.stated,
                    expected=round(d.expected, 2),
                )
                for d in result.discrepancies
            ],
            summary=SummaryOut.from_domain(result.ledger.summary),
        )
