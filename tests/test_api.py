from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

import models  # noqa: F401
from database import Base
from document_store import DocumentStore
from main import app
from services import Workspace, get_workspace


@pytest.fixture
def workspace():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    workspace = Workspace(DocumentStore(engine), current_user="sam")
    app.dependency_overrides[get_workspace] = lambda: workspace
    yield workspace
    app.dependency_overrides.clear()


@pytest.fixture
def client(workspace):
    return TestClient(app)


def test_collection_crud(client, workspace):
    created = client.post(
        "/api/expenses",
        json={"id": "e1", "amount": "50", "date": "2026-01-05", "category": "Repairs"},
    )
    assert created.status_code == 201
    assert created.json()["category"] == "repairs"

    patched = client.patch("/api/expenses/e1", json={"amount": "75"})
    assert patched.status_code == 200
    assert Decimal(patched.json()["amount"]) == Decimal("75")

    listed = client.get("/api/expenses")
    assert [doc["id"] for doc in listed.json()] == ["e1"]

    assert client.delete("/api/expenses/e1").status_code == 204
    assert client.get("/api/expenses/e1").status_code == 404
    assert workspace.store.load("expenses") == []


def test_invalid_and_missing_records(client):
    assert client.post("/api/expenses", json={"amount": "-1", "date": "2026-01-01"}).status_code == 400
    assert client.patch("/api/expenses/missing", json={"amount": "1"}).status_code == 404
    assert client.delete("/api/expenses/missing").status_code == 404


def test_financial_summary(client):
    client.post("/api/properties", json={"id": "propA", "name": "Elm Street"})
    for payload in (
        {"type": "income", "amount": "100", "propertyId": "propA", "date": "2026-01-10"},
        {"type": "expense", "amount": "40", "propertyId": "propA", "date": "2026-01-12"},
        {"type": "income", "amount": "50", "propertyId": "propB", "date": "2026-02-03"},
    ):
        assert client.post("/api/transactions", json=payload).status_code == 201

    response = client.get(
        "/api/financials/summary",
        params={"period": "custom", "start": "2026-01-01", "end": "2026-12-31"},
    )

    body = response.json()
    assert Decimal(body["total_income"]) == Decimal("150")
    assert Decimal(body["total_expenses"]) == Decimal("40")
    assert Decimal(body["profit"]) == Decimal("110")
    assert Decimal(body["by_property"]["propA"]["profit"]) == Decimal("60")
    assert [row["month"] for row in body["by_month"]] == ["2026-02", "2026-01"]
    assert [row["label"] for row in body["by_month"]] == ["Feb 2026", "Jan 2026"]
    assert body["display"] == {
        "total_income": "$150",
        "total_expenses": "$40",
        "profit": "$110",
    }

    filtered = client.get("/api/transactions/filtered", params={"type": "income"})
    assert len(filtered.json()) == 2


def test_summary_rejects_unknown_period(client):
    assert client.get("/api/financials/summary", params={"period": "fortnight"}).status_code == 400


def test_recurring_run(client):
    client.post(
        "/api/expenses",
        json={
            "id": "t1",
            "amount": "1200",
            "category": "mortgage",
            "isTemplate": True,
            "recurringFrequency": "monthly",
            "dueDay": 31,
            "createdAt": "2025-01-01T00:00:00",
        },
    )

    pending = client.get("/api/expenses/recurring", params={"as_of": "2026-03-15"}).json()
    assert len(pending["pending"]) == 3
    assert Decimal(pending["commitments"]["monthly_total"]) == Decimal("1200")

    run = client.post("/api/expenses/recurring/run", params={"as_of": "2026-03-15"}).json()
    assert sorted(doc["date"] for doc in run["generated"]) == [
        "2026-01-31",
        "2026-02-28",
        "2026-03-31",
    ]

    again = client.post("/api/expenses/recurring/run", params={"as_of": "2026-03-15"}).json()
    assert again["generated"] == []
    assert client.get("/api/expenses/recurring", params={"as_of": "bad"}).status_code == 400


def test_tenants(client):
    client.post("/api/properties", json={"id": "p1", "name": "Elm Street"})

    saved = client.post(
        "/api/properties/p1/tenants", json={"name": "Ann", "leaseEnd": "2027-01-05"}
    )
    assert saved.status_code == 200
    tenant_id = saved.json()["id"]

    roster = client.get("/api/tenants").json()
    assert roster["vacant"] == 0
    assert roster["tenants"][0]["tenant"]["name"] == "Ann"
    assert roster["tenants"][0]["leaseEnd"] == "Jan 5, 2027"

    assert client.post("/api/properties/nope/tenants", json={"name": "Ann"}).status_code == 404
    assert client.delete(f"/api/properties/p1/tenants/{tenant_id}").status_code == 204
    assert client.get("/api/tenants").json()["vacant"] == 1


def test_shared_task_actions(client):
    task = client.post("/api/shared/tasks", json={"title": "Fix gate"}).json()

    done = client.post(f"/api/shared/tasks/{task['id']}/complete").json()

    assert done["status"] == "done"
    assert done["completedBy"] == "sam"
    assert client.post("/api/shared/tasks/missing/complete").status_code == 404


def test_notifications_and_export(client):
    client.post(
        "/api/transactions",
        json={"type": "income", "amount": "100", "date": "2026-01-10"},
    )

    notifications = client.get("/api/notifications").json()
    assert notifications[0]["message"] == "Income added"

    export = client.get("/api/export/transactions.csv")
    assert export.headers["content-type"].startswith("text/csv")
    assert "2026-01-10,income,100.00" in export.text
