from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from config import get_settings
from database import Base
from identity import issue_owner_token
from main import app, get_db
from periods import local_today


@pytest.fixture
def client():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    def override_get_db():
        db = SessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()
    engine.dispose()


def auth(owner: str = "alice") -> dict[str, str]:
    return {"Authorization": f"Bearer {issue_owner_token(owner)}"}


def post_txn(client: TestClient, body: dict, owner: str = "alice") -> dict:
    response = client.post("/api/transactions", json=body, headers=auth(owner))
    assert response.status_code == 201, response.text
    return response.json()


def test_owner_required(client: TestClient) -> None:
    for method, path in [
        ("get", "/api/categories"),
        ("get", "/api/transactions"),
        ("get", "/api/reports/dashboard"),
        ("post", "/api/reports/generate"),
        ("delete", "/api/transactions/1"),
    ]:
        response = getattr(client, method)(path)
        assert response.status_code == 401
        assert response.json()["message"]

    assert client.get("/api/health").status_code == 200
    assert client.get("/api/auth/user", headers=auth("bob")).json() == {"id": "bob"}


def test_transaction_amount_is_exact_decimal_string(client: TestClient) -> None:
    created = post_txn(client, {"amount": "156.75", "type": "debit", "notes": "Groceries"})
    assert created["amount"] == "156.75"
    assert created["less"] == "0.00"
    assert created["serial"] == 1
    assert created["notes"] == "Groceries"

    listed = client.get("/api/transactions", headers=auth()).json()
    assert [t["amount"] for t in listed] == ["156.75"]


def test_numeric_json_amount_is_accepted(client: TestClient) -> None:
    created = post_txn(client, {"amount": 0.1, "type": "credit", "detail": "Tip"})
    assert created["amount"] == "0.10"
    assert created["notes"] == "Tip"


@pytest.mark.parametrize(
    "body, field",
    [
        ({"type": "debit"}, "amount"),
        ({"amount": "ten", "type": "debit"}, "amount"),
        ({"amount": "-4.00", "type": "debit"}, "amount"),
        ({"amount": "1,000", "type": "credit"}, "amount"),
        ({"amount": "1e30", "type": "credit"}, "amount"),
        ({"amount": "99999999999999999999.99", "type": "credit"}, "amount"),
        ({"amount": "123456789012345678.00", "type": "credit"}, "amount"),
        ({"amount": "4.00", "less": "1.001", "type": "debit"}, "less"),
        ({"amount": "4.00", "type": "transfer"}, "type"),
        ({"amount": "4.00", "type": "debit", "categoryId": 999}, "categoryId"),
    ],
)
def test_create_validation_errors(client: TestClient, body: dict, field: str) -> None:
    response = client.post("/api/transactions", json=body, headers=auth())
    assert response.status_code == 400
    payload = response.json()
    assert payload["field"] == field
    assert payload["message"]
    assert client.get("/api/transactions", headers=auth()).json() == []


def test_categories_and_accounts(client: TestClient) -> None:
    response = client.post(
        "/api/categories", json={"name": "Food", "type": "debit"}, headers=auth()
    )
    assert response.status_code == 201
    food = response.json()
    assert food["type"] == "debit"
    assert food["userId"] == "alice"

    bad = client.post("/api/categories", json={"name": "", "type": "debit"}, headers=auth())
    assert bad.status_code == 400
    assert bad.json()["field"] == "name"

    account = client.post("/api/accounts", json={"name": "Wallet", "code": "W1"}, headers=auth())
    assert account.status_code == 201
    duplicate = client.post(
        "/api/accounts", json={"name": "Other wallet", "code": "W1"}, headers=auth()
    )
    assert duplicate.status_code == 400
    assert duplicate.json() == {"message": "Code already exists", "field": "code"}

    assert [c["name"] for c in client.get("/api/categories", headers=auth()).json()] == [
        "Food",
        "Wallet",
    ]
    assert [c["code"] for c in client.get("/api/accounts", headers=auth()).json()] == ["W1"]
    found = client.get("/api/accounts/search", params={"q": "wal"}, headers=auth()).json()
    assert [c["name"] for c in found] == ["Wallet"]
    assert client.get("/api/categories", headers=auth("bob")).json() == []

    txn = post_txn(
        client, {"amount": "3.00", "type": "debit", "accountId": account.json()["id"]}
    )
    assert txn["category"]["code"] == "W1"

    assert client.delete(f"/api/categories/{food['id']}", headers=auth()).status_code == 204
    assert client.delete(f"/api/categories/{food['id']}", headers=auth()).status_code == 404


def test_list_filters(client: TestClient) -> None:
    today = local_today(get_settings().timezone)
    older = (today - timedelta(days=3)).isoformat()
    post_txn(client, {"amount": "1.00", "type": "credit", "date": older})
    post_txn(client, {"amount": "2.00", "type": "debit"})

    debits = client.get("/api/transactions", params={"type": "debit"}, headers=auth())
    assert [t["amount"] for t in debits.json()] == ["2.00"]

    ranged = client.get(
        "/api/transactions",
        params={"startDate": older, "endDate": older},
        headers=auth(),
    )
    assert [t["date"] for t in ranged.json()] == [older]

    assert (
        client.get("/api/transactions", params={"type": "bogus"}, headers=auth()).status_code
        == 400
    )
    assert (
        client.get(
            "/api/transactions", params={"startDate": "not-a-date"}, headers=auth()
        ).status_code
        == 400
    )
    inverted = client.get(
        "/api/transactions",
        params={"startDate": today.isoformat(), "endDate": older},
        headers=auth(),
    )
    assert inverted.status_code == 400

    todays = client.get("/api/transactions/today", headers=auth()).json()
    assert [t["amount"] for t in todays] == ["2.00"]


def test_update_and_delete_are_owner_scoped(client: TestClient) -> None:
    txn = post_txn(client, {"amount": "10.00", "type": "debit", "notes": "Lunch"})

    updated = client.put(
        f"/api/transactions/{txn['id']}", json={"amount": "12.50"}, headers=auth()
    )
    assert updated.status_code == 200
    assert updated.json()["amount"] == "12.50"
    assert updated.json()["notes"] == "Lunch"

    invalid = client.put(
        f"/api/transactions/{txn['id']}", json={"type": "transfer"}, headers=auth()
    )
    assert invalid.status_code == 400

    foreign = client.put(
        f"/api/transactions/{txn['id']}", json={"amount": "1.00"}, headers=auth("bob")
    )
    assert foreign.status_code == 404
    assert client.delete(f"/api/transactions/{txn['id']}", headers=auth("bob")).status_code == 404
    assert client.get("/api/transactions", headers=auth("bob")).json() == []

    assert client.delete(f"/api/transactions/{txn['id']}", headers=auth()).status_code == 204
    assert client.delete(f"/api/transactions/{txn['id']}", headers=auth()).status_code == 404


def test_dashboard_report_and_delete_scenario(client: TestClient) -> None:
    today = local_today(get_settings().timezone)

    def day(offset: int) -> str:
        return (today - timedelta(days=offset)).isoformat()

    post_txn(client, {"amount": "5000.00", "type": "credit", "date": day(7)})
    post_txn(client, {"amount": "800.00", "type": "credit", "date": day(1)})
    post_txn(client, {"amount": "1200.00", "type": "debit", "date": day(7)})
    post_txn(client, {"amount": "156.75", "type": "debit", "date": day(1)})
    bill = post_txn(client, {"amount": "89.50", "type": "debit", "date": day(0)})

    dashboard = client.get("/api/reports/dashboard", headers=auth()).json()
    assert dashboard == {
        "totalCredit": "5800.00",
        "totalDebit": "1446.25",
        "outstandingBalance": "4353.75",
        "todaySummary": {"credit": "0.00", "debit": "89.50"},
    }

    generated = client.post("/api/reports/generate", json={"date": day(7)}, headers=auth())
    assert generated.status_code == 200
    report = generated.json()
    assert report["reportDate"] == day(7)
    assert (report["totalCredit"], report["totalDebit"], report["netChange"]) == (
        "5000.00",
        "1200.00",
        "3800.00",
    )
    again = client.post("/api/reports/generate", json={"date": day(7)}, headers=auth()).json()
    assert again["id"] == report["id"]
    assert again["netChange"] == report["netChange"]

    daily = client.get("/api/reports/daily", headers=auth()).json()
    assert [r["reportDate"] for r in daily] == [day(7)]

    days = client.get("/api/reports/days", headers=auth()).json()
    assert [d["date"] for d in days] == [day(0), day(1), day(7)]

    assert client.delete(f"/api/transactions/{bill['id']}", headers=auth()).status_code == 204
    after = client.get("/api/reports/dashboard", headers=auth()).json()
    assert after["totalDebit"] == "1356.75"
    assert after["outstandingBalance"] == "4443.25"


def test_generate_rejects_malformed_date(client: TestClient) -> None:
    response = client.post("/api/reports/generate", json={"date": "yesterday"}, headers=auth())
    assert response.status_code == 400
    assert response.json()["field"] == "date"


def test_seed_endpoint(client: TestClient) -> None:
    assert client.post("/api/seed", headers=auth("dora")).json() == {"created": 5}
    assert client.post("/api/seed", headers=auth("dora")).json() == {"created": 0}
    dashboard = client.get("/api/reports/dashboard", headers=auth("dora")).json()
    assert dashboard["outstandingBalance"] == "4353.75"


def test_unexpected_errors_are_opaque(client: TestClient, monkeypatch) -> None:
    def explode(self, filters=None):
        raise RuntimeError("database exploded: secret detail")

    monkeypatch.setattr("services.TransactionService.list", explode)
    quiet = TestClient(app, raise_server_exceptions=False)
    response = quiet.get("/api/transactions", headers=auth())
    assert response.status_code == 500
    assert response.json() == {"message": "Internal server error"}
