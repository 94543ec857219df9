"""Tests for the ledger domain router."""

from unittest.mock import MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from apps.api.core.auth import get_user_client
from apps.api.core.errors import register_error_handlers
from apps.api.domains.ledger.repository import StoredLedger
from apps.api.domains.ledger.router import router
from apps.api.domains.ledger.service import LedgerService, get_ledger_service
from packages.ledger_engine.errors import PersistenceConflict
from packages.ledger_engine.merge import LedgerMergeEngine


class InMemoryRepository:
    def __init__(self):
        self.rows = {}
        self.saves = 0

    def fetch(self, user_id):
        return self.rows.get(user_id)

    def save(self, ledger, version):
        self.saves += 1
        self.rows[ledger.user_id] = StoredLedger(ledger=ledger, version=f"v{self.saves}")
        return f"v{self.saves}"


JANUARY = {
    "id": "stmt-jan",
    "name": "january.pdf",
    "transactions": [
        {
            "date": "2024-01-05",
            "narration": "UPI-Swiggy-food",
            "debitAmount": 450,
            "creditAmount": 0,
            "closingBalance": 10000,
        },
    ],
    "summary": {"startDate": "2024-01-01", "endDate": "2024-01-31"},
}

JANUARY_AGAIN = {
    "id": "stmt-jan-2",
    "transactions": [
        JANUARY["transactions"][0],
        {
            "date": "2024-01-10",
            "narration": "SALARY JAN",
            "creditAmount": 8000,
            "closingBalance": 18000,
        },
    ],
}


@pytest.fixture
def repository():
    return InMemoryRepository()


@pytest.fixture
def app(repository):
    app = FastAPI()
    register_error_handlers(app)
    app.include_router(router, prefix="/api/v1")

    mock_client = MagicMock()
    mock_user = MagicMock()
    mock_user.id = "test-user-123"
    mock_client.auth.get_user.return_value = MagicMock(user=mock_user)

    app.dependency_overrides[get_user_client] = lambda: mock_client
    app.dependency_overrides[get_ledger_service] = lambda: LedgerService(
        repository, engine_factory=LedgerMergeEngine
    )
    return app


@pytest.fixture
def client(app):
    c = TestClient(app)
    yield c
    app.dependency_overrides.clear()


class TestUpload:
    def test_first_upload_creates_ledger(self, client):
        response = client.post("/api/v1/ledger/statements", json=JANUARY)
        assert response.status_code == 200

        data = response.json()
        assert data["created"] is True
        assert data["statement_id"] == "stmt-jan"
        assert data["added"] == 1
        assert data["transaction_count"] == 1
        assert data["summary"]["start_date"] == "2024-01-05"

    def test_reupload_is_noop(self, client, repository):
        client.post("/api/v1/ledger/statements", json=JANUARY)
        response = client.post("/api/v1/ledger/statements", json={**JANUARY, "id": "stmt-retry"})

        data = response.json()
        assert data["changed"] is False
        assert data["added"] == 0
        assert data["duplicates_skipped"] == 1
        assert repository.saves == 1

    def test_overlapping_upload_adds_new_rows(self, client):
        client.post("/api/v1/ledger/statements", json=JANUARY)
        data = client.post("/api/v1/ledger/statements", json=JANUARY_AGAIN).json()

        assert data["added"] == 1
        assert data["duplicates_skipped"] == 1
        assert data["overlapping_statements"] == ["stmt-jan"]
        assert data["is_contiguous"] is True
        assert data["summary"]["ending_balance"] == 18000
        assert data["summary"]["transaction_count"] == 2

    def test_upload_without_ledger_or_rows_is_422(self, client):
        response = client.post("/api/v1/ledger/statements", json={"transactions": []})
        assert response.status_code == 422
        assert response.json()["title"] == "Unprocessable Entity"

    def test_bad_date_is_422_with_row(self, client):
        payload = {"transactions": [{"date": "not-a-date", "narration": "x", "debitAmount": 1}]}
        response = client.post("/api/v1/ledger/statements", json=payload)
        assert response.status_code == 422
        assert response.json()["detail"].startswith("row 0:")

    def test_conflict_is_409(self, app, client):
        service = MagicMock()
        service.ingest.side_effect = PersistenceConflict("test-user-123")
        app.dependency_overrides[get_ledger_service] = lambda: service

        response = client.post("/api/v1/ledger/statements", json=JANUARY)
        assert response.status_code == 409


class TestReads:
    def test_ledger_absent_is_404(self, client):
        response = client.get("/api/v1/ledger")
        assert response.status_code == 404

    def test_summary_absent_is_404(self, client):
        assert client.get("/api/v1/ledger/summary").status_code == 404

    def test_transactions_absent_is_empty(self, client):
        data = client.get("/api/v1/ledger/transactions").json()
        assert data == {"transactions": [], "count": 0}

    def test_reads_after_upload(self, client):
        client.post("/api/v1/ledger/statements", json=JANUARY)
        client.post("/api/v1/ledger/statements", json=JANUARY_AGAIN)

        ledger = client.get("/api/v1/ledger").json()
        assert ledger["first_date"] == "2024-01-01"
        assert ledger["last_date"] == "2024-01-31"
        assert [t["narration"] for t in ledger["transactions"]] == ["UPI-Swiggy-food", "SALARY JAN"]

        txs = client.get("/api/v1/ledger/transactions").json()
        assert txs["count"] == 2
        assert txs["transactions"][1]["statement_id"] == "stmt-jan-2"
        assert txs["transactions"][1]["type"] == "credit"

        summary = client.get("/api/v1/ledger/summary").json()
        assert summary["total_credit"] == 8000
        assert summary["total_debit"] == 450
        assert summary["credit_count"] == 1


class TestAuth:
    def test_invalid_token_is_401(self, app, client):
        bad_client = MagicMock()
        bad_client.auth.get_user.return_value = MagicMock(user=None)
        app.dependency_overrides[get_user_client] = lambda: bad_client

        response = client.get("/api/v1/ledger")
        assert response.status_code == 401
