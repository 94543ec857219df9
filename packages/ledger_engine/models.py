"""Domain records for the ledger consolidation engine.

Rows are persisted with the camelCase keys the dashboard front end already
writes into the ``super_statement`` jsonb columns, so ``to_dict``/``from_dict``
translate between those keys and the snake_case attributes used here.
"""

import math
import uuid
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Set

CREDIT = "credit"
DEBIT = "debit"
TRANSACTION_TYPES = (CREDIT, DEBIT)


def coerce_date(value: Any) -> date:
    """Reduce a date, datetime or ISO-8601 string to a calendar date.

    Raises:
        ValueError: if the value is missing or cannot be parsed.
    """
    if value is None:
        raise ValueError("date is missing")
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValueError("date is missing")
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(text).date()
        except ValueError:
            return date.fromisoformat(text[:10])
    raise ValueError(f"unsupported date value: {value!r}")


def coerce_amount(value: Any) -> float:
    """Convert a numeric-ish value to a finite float.

    Raises:
        ValueError: if the value is missing, unparseable or not finite.
    """
    if value is None or isinstance(value, bool):
        raise ValueError("amount is missing")
    if isinstance(value, str):
        value = value.replace(",", "").strip()
        if not value:
            raise ValueError("amount is missing")
    amount = float(value)
    if not math.isfinite(amount):
        raise ValueError(f"amount is not finite: {value!r}")
    return amount


def _optional_date(value: Any) -> Optional[date]:
    if value in (None, ""):
        return None
    return coerce_date(value)


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class Transaction:
    """A single statement line.

    ``amount`` and ``type`` are derived from the debit/credit columns when not
    supplied: a positive debit makes it a debit of that amount, anything else
    is a credit of ``credit_amount``.
    """

    date: date
    narration: str
    debit_amount: float = 0.0
    credit_amount: float = 0.0
    closing_balance: float = 0.0
    value_date: Optional[date] = None
    chq_ref_number: str = ""
    amount: Optional[float] = None
    type: Optional[str] = None
    category: Optional[str] = None
    upi_id: Optional[str] = None
    merchant: Optional[str] = None
    transaction_id: str = ""
    statement_id: str = ""

    def __post_init__(self):
        if self.type is None:
            derived = DEBIT if (self.debit_amount or 0) > 0 else CREDIT
            object.__setattr__(self, "type", derived)
        if self.amount is None:
            derived_amount = self.debit_amount if self.type == DEBIT else self.credit_amount
            object.__setattr__(self, "amount", derived_amount)
        if self.value_date is None and isinstance(self.date, date):
            object.__setattr__(self, "value_date", self.date)

    @property
    def net_change(self) -> float:
        """Effect of this transaction on the running balance."""
        return self.credit_amount - self.debit_amount

    def with_identity(self, transaction_id: str, statement_id: str) -> "Transaction":
        return replace(self, transaction_id=transaction_id, statement_id=statement_id)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize with the front end's camelCase keys and ISO dates."""
        return {
            "date": _iso(self.date),
            "narration": self.narration,
            "valueDate": _iso(self.value_date),
            "debitAmount": self.debit_amount,
            "creditAmount": self.credit_amount,
            "chqRefNumber": self.chq_ref_number,
            "closingBalance": self.closing_balance,
            "amount": self.amount,
            "type": self.type,
            "category": self.category,
            "upiId": self.upi_id,
            "merchant": self.merchant,
            "transactionId": self.transaction_id,
            "statementId": self.statement_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Transaction":
        return cls(
            date=coerce_date(data.get("date")),
            narration=data.get("narration") or "",
            debit_amount=float(data.get("debitAmount") or 0.0),
            credit_amount=float(data.get("creditAmount") or 0.0),
            closing_balance=float(data.get("closingBalance") or 0.0),
            value_date=_optional_date(data.get("valueDate")),
            chq_ref_number=data.get("chqRefNumber") or "",
            amount=data.get("amount"),
            type=data.get("type"),
            category=data.get("category"),
            upi_id=data.get("upiId"),
            merchant=data.get("merchant"),
            transaction_id=data.get("transactionId") or "",
            statement_id=data.get("statementId") or "",
        )


@dataclass(frozen=True)
class StatementSummary:
    """Aggregate statistics over a transaction sequence."""

    total_debit: float = 0.0
    total_credit: float = 0.0
    net_cashflow: float = 0.0
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    starting_balance: float = 0.0
    ending_balance: float = 0.0
    transaction_count: int = 0
    credit_count: int = 0
    debit_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalDebit": self.total_debit,
            "totalCredit": self.total_credit,
            "netCashflow": self.net_cashflow,
            "startDate": _iso(self.start_date),
            "endDate": _iso(self.end_date),
            "startingBalance": self.starting_balance,
            "endingBalance": self.ending_balance,
            "transactionCount": self.transaction_count,
            "creditCount": self.credit_count,
            "debitCount": self.debit_count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StatementSummary":
        return cls(
            total_debit=float(data.get("totalDebit") or 0.0),
            total_credit=float(data.get("totalCredit") or 0.0),
            net_cashflow=float(data.get("netCashflow") or 0.0),
            start_date=_optional_date(data.get("startDate")),
            end_date=_optional_date(data.get("endDate")),
            starting_balance=float(data.get("startingBalance") or 0.0),
            ending_balance=float(data.get("endingBalance") or 0.0),
            transaction_count=int(data.get("transactionCount") or 0),
            credit_count=int(data.get("creditCount") or 0),
            debit_count=int(data.get("debitCount") or 0),
        )


@dataclass(frozen=True)
class StatementBatch:
    """One parsed upload, consumed exactly once by the merge engine."""

    user_id: str
    transactions: List[Transaction] = field(default_factory=list)
    summary: Optional[StatementSummary] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    name: str = ""
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def is_empty(self) -> bool:
        return not self.transactions


@dataclass
class Ledger:
    """Per-user canonical transaction history (the "super statement")."""

    id: str
    user_id: str
    transactions: List[Transaction]
    summary: StatementSummary
    first_date: date
    last_date: date

    def __len__(self) -> int:
        return len(self.transactions)

    def transaction_ids(self) -> Set[str]:
        return {t.transaction_id for t in self.transactions}

    def statement_ids(self) -> List[str]:
        """Originating statement ids in order of first appearance."""
        seen: Dict[str, None] = {}
        for t in self.transactions:
            seen.setdefault(t.statement_id, None)
        return list(seen)

    def to_row(self) -> Dict[str, Any]:
        """Row shape for the ``super_statement`` table."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "transactions": [t.to_dict() for t in self.transactions],
            "first_date": self.first_date.isoformat(),
            "last_date": self.last_date.isoformat(),
            "summary": self.summary.to_dict(),
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Ledger":
        """Load a stored row.

        Transaction ids and the summary are re-derived rather than trusted.
        Rows written by other clients may carry ids hashed another way, or
        none at all; content duplicates this exposes collapse to the first.
        The stored statement id of each transaction is kept.
        """
        from .identity import transaction_identity
        from .summary import aggregate

        transactions: List[Transaction] = []
        seen: Set[str] = set()
        for data in row.get("transactions") or []:
            stored = Transaction.from_dict(data)
            transaction_id = transaction_identity(stored)
            if transaction_id in seen:
                continue
            seen.add(transaction_id)
            transactions.append(stored.with_identity(transaction_id, stored.statement_id))
        return cls(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            transactions=transactions,
            summary=aggregate(transactions),
            first_date=coerce_date(row["first_date"]),
            last_date=coerce_date(row["last_date"]),
        )


@dataclass(frozen=True)
class DateRangeInterval:
    """A statement's covered date range, keyed by its group id."""

    group_id: str
    start_date: date
    end_date: date

    def __post_init__(self):
        if self.end_date < self.start_date:
            raise ValueError(
                f"interval {self.group_id} ends ({self.end_date}) before it starts ({self.start_date})"
            )
