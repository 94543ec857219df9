"""Ledger router — statement upload and consolidated ledger reads."""

from fastapi import APIRouter, Depends
from supabase import Client

from apps.api.core.auth import get_current_user_id, get_user_client
from apps.api.core.errors import NotFoundError
from apps.api.core.logging import bind_request_context
from apps.api.domains.ledger.schemas import (
    LedgerOut,
    MergeResponse,
    StatementBatchIn,
    SummaryOut,
    TransactionOut,
    TransactionsOut,
)
from apps.api.domains.ledger.service import LedgerService, get_ledger_service

router = APIRouter(prefix="/ledger", tags=["ledger"])


async def current_user(client: Client = Depends(get_user_client)) -> str:
    user_id = get_current_user_id(client)
    bind_request_context(user_id=user_id)
    return user_id


@router.post("/statements", response_model=MergeResponse)
async def upload_statement(
    payload: StatementBatchIn,
    user_id: str = Depends(current_user),
    service: LedgerService = Depends(get_ledger_service),
):
    """Merge one parsed statement into the caller's ledger.

    Re-uploading a statement is a no-op: ``added`` is 0 and ``changed`` false.
    """
    batch = payload.to_domain(user_id)
    result = service.ingest(batch)
    return MergeResponse.from_result(result, statement_id=batch.id)


@router.get("", response_model=LedgerOut)
async def get_ledger(
    user_id: str = Depends(current_user),
    service: LedgerService = Depends(get_ledger_service),
):
    ledger = service.get_ledger(user_id)
    if ledger is None:
        raise NotFoundError("No ledger yet; upload a statement first")
    return LedgerOut.from_domain(ledger)


@router.get("/transactions", response_model=TransactionsOut)
async def list_transactions(
    user_id: str = Depends(current_user),
    service: LedgerService = Depends(get_ledger_service),
):
    """List ledger transactions in date order."""
    transactions = service.get_transactions(user_id)
    return TransactionsOut(
        transactions=[TransactionOut.from_domain(t) for t in transactions],
        count=len(transactions),
    )


@router.get("/summary", response_model=SummaryOut)
async def get_summary(
    user_id: str = Depends(current_user),
    service: LedgerService = Depends(get_ledger_service),
):
    summary = service.get_summary(user_id)
    if summary is None:
        raise NotFoundError("No ledger yet; upload a statement first")
    return SummaryOut.from_domain(summary)
