"""Transaction identity — content fingerprints used as the dedup key.

Bank exports carry no transaction ID that survives across statements
(cheque/ref numbers repeat), so identity is a SHA256 over the fields that
define a transaction:

    SHA256(date.isoformat()|narration|amount:.2f|type)

The narration is hashed byte-for-byte. Two exports that format the same
narration differently produce different fingerprints; there is no fuzzy
matching.
"""

import hashlib
from concurrent.futures import ThreadPoolExecutor
from typing import Any, List, Optional, Sequence

from .errors import InvalidTransactionFields
from .models import TRANSACTION_TYPES, Transaction, coerce_amount, coerce_date


def compute_transaction_id(date: Any, narration: str, amount: Any, type: str) -> str:
    """Generate the deterministic fingerprint for one transaction.

    Args:
        date: Transaction date (date, datetime or ISO 8601 string). Datetimes
            are reduced to their calendar date.
        narration: Statement narration, used exactly as given.
        amount: Transaction amount, normalized to 2 decimal places.
        type: "credit" or "debit".

    Returns:
        64-character lowercase hex SHA256 hash.

    Raises:
        InvalidTransactionFields: if the date or amount is missing or
            unparseable, or the type is unknown.
    """
    try:
        normalized_date = coerce_date(date).isoformat()
    except (TypeError, ValueError) as e:
        raise InvalidTransactionFields(f"invalid date: {e}", field="date") from e

    try:
        normalized_amount = f"{coerce_amount(amount):.2f}"
    except (TypeError, ValueError) as e:
        raise InvalidTransactionFields(f"invalid amount: {e}", field="amount") from e

    if type not in TRANSACTION_TYPES:
        raise InvalidTransactionFields(f"invalid type: {type!r}", field="type")

    raw = f"{normalized_date}|{narration or ''}|{normalized_amount}|{type}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def transaction_identity(transaction: Transaction) -> str:
    return compute_transaction_id(
        transaction.date, transaction.narration, transaction.amount, transaction.type
    )


def _identify_row(args) -> str:
    index, transaction = args
    try:
        return transaction_identity(transaction)
    except InvalidTransactionFields as e:
        raise InvalidTransactionFields(e.detail, row=index, field=e.field) from e


def assign_identities(
    transactions: Sequence[Transaction],
    statement_id: str,
    max_workers: Optional[int] = None,
) -> List[Transaction]:
    """Tag every transaction with its fingerprint and originating statement.

    Order is preserved. With ``max_workers > 1`` hashing fans out over a
    thread pool; results are collected before returning either way.

    Raises:
        InvalidTransactionFields: for the first invalid row. Nothing is
            returned for the batch in that case.
    """
    rows = list(enumerate(transactions))
    if max_workers and max_workers > 1 and len(rows) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            ids = list(pool.map(_identify_row, rows))
    else:
        ids = [_identify_row(row) for row in rows]

    return [t.with_identity(tx_id, statement_id) for t, tx_id in zip(transactions, ids)]
