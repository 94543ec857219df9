"""Adapter from a parsed statement DataFrame to a StatementBatch.

The statement parsers hand over a DataFrame with one row per statement line.
Column names vary by bank export, so they are matched against priority lists
the same way the ingestion normalizer does.
"""

import re
from dataclasses import replace
from typing import Dict, List, Optional, Tuple

import pandas as pd

from .models import DEBIT, StatementBatch, Transaction
from .summary import aggregate

COLUMN_PRIORITIES = {
    "date": ["date", "transaction date", "transaction_date", "txn date", "posting date"],
    "narration": ["narration", "description", "details", "particulars", "memo"],
    "value_date": ["value date", "value_date", "value dt", "valuedate"],
    "debit": ["debit", "withdrawal amt.", "withdrawal", "debit amount", "dr"],
    "credit": ["credit", "deposit amt.", "deposit", "credit amount", "cr"],
    "balance": ["closing balance", "closing_balance", "balance"],
    "ref": ["chq./ref.no.", "chq/ref number", "chq_ref_number", "reference", "ref"],
}

# UPI-<MERCHANT NAME>-<VPA and trailing reference>
UPI_PATTERN = re.compile(r"UPI-([A-Za-z\s]+)-(.+)")


def extract_upi_details(narration: str) -> Tuple[Optional[str], Optional[str]]:
    """Return (upi_id, merchant) from a UPI narration, or (None, None)."""
    match = UPI_PATTERN.search(narration or "")
    if not match:
        return None, None
    return match.group(2).strip(), match.group(1).strip()


def _resolve_columns(columns: List[str]) -> Dict[str, str]:
    resolved = {}
    normalized = {str(c).strip().lower(): c for c in columns}
    for target, candidates in COLUMN_PRIORITIES.items():
        for candidate in candidates:
            if candidate in normalized:
                resolved[target] = normalized[candidate]
                break
    return resolved


def _numeric(df: pd.DataFrame, column: Optional[str]) -> pd.Series:
    if column is None:
        return pd.Series(0.0, index=df.index)
    cleaned = df[column].astype(str).str.replace(",", "", regex=False).str.strip()
    return pd.to_numeric(cleaned, errors="coerce").fillna(0.0)


def batch_from_dataframe(
    df: pd.DataFrame,
    user_id: str,
    name: str = "",
    statement_id: Optional[str] = None,
) -> StatementBatch:
    """Build a StatementBatch from a parsed statement.

    Rows without a parseable date or a narration are skipped. Debit rows
    default to category "Withdrawal", credit rows to "Deposit". The batch
    summary is derived from the kept rows.

    Raises:
        ValueError: if the frame has no date or narration column.
    """
    columns = _resolve_columns(list(df.columns))
    missing = [c for c in ("date", "narration") if c not in columns]
    if missing:
        raise ValueError(f"Statement is missing required columns: {', '.join(missing)}")

    dates = pd.to_datetime(df[columns["date"]], dayfirst=True, errors="coerce")
    value_dates = (
        pd.to_datetime(df[columns["value_date"]], dayfirst=True, errors="coerce")
        if "value_date" in columns
        else dates
    )
    narrations = df[columns["narration"]]
    debits = _numeric(df, columns.get("debit"))
    credits = _numeric(df, columns.get("credit"))
    balances = _numeric(df, columns.get("balance"))
    refs = df[columns["ref"]] if "ref" in columns else pd.Series("", index=df.index)

    transactions = []
    for pos in range(len(df)):
        narration = narrations.iloc[pos]
        if pd.isna(dates.iloc[pos]) or pd.isna(narration) or not str(narration).strip():
            continue

        narration = str(narration)
        upi_id, merchant = extract_upi_details(narration)
        value_date = value_dates.iloc[pos]
        ref = refs.iloc[pos]
        tx = Transaction(
            date=dates.iloc[pos].date(),
            narration=narration,
            debit_amount=float(debits.iloc[pos]),
            credit_amount=float(credits.iloc[pos]),
            closing_balance=float(balances.iloc[pos]),
            value_date=None if pd.isna(value_date) else value_date.date(),
            chq_ref_number="" if pd.isna(ref) else str(ref).strip(),
            upi_id=upi_id,
            merchant=merchant,
        )
        category = "Withdrawal" if tx.type == DEBIT else "Deposit"
        transactions.append(replace(tx, category=category))

    kwargs = {}
    if statement_id:
        kwargs["id"] = statement_id
    return StatementBatch(
        user_id=user_id,
        transactions=transactions,
        summary=aggregate(transactions),
        name=name,
        **kwargs,
    )
