import pytest
from fastapi.testclient import TestClient

from aggregation import AggregationError
from auth import issue_token
from database import Base, build_engine, get_db, make_sessionmaker
from main import app
from services import ReportService


def _client_for(engine):
    SessionLocal = make_sessionmaker(engine)

    def override_get_db():
        db = SessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


@pytest.fixture
def client():
    engine = build_engine("sqlite://")
    Base.metadata.create_all(engine)
    with _client_for(engine) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _auth(user_id: int = 1) -> dict[str, str]:
    return {"Authorization": f"Bearer {issue_token(user_id)}"}


def _create(client: TestClient, path: str, payload: dict, user_id: int = 1) -> dict:
    resp = client.post(path, json=payload, headers=_auth(user_id))
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


def test_requests_without_valid_token_are_rejected(client: TestClient) -> None:
    assert client.get("/api/reports/summary?month=2024-03").status_code == 401
    resp = client.get(
        "/api/reports/summary?month=2024-03",
        headers={"Authorization": "Bearer not-a-token"},
    )
    assert resp.status_code == 401


def test_monthly_reports_end_to_end(client: TestClient) -> None:
    groceries = _create(
        client, "/api/categories", {"name": "Groceries", "type": "expense"}
    )
    salary = _create(client, "/api/categories", {"name": "Salary", "type": "income"})
    for txn_type, amount, category, day in [
        ("expense", 50_000, groceries, "2024-03-05"),
        ("expense", 30_000, groceries, "2024-03-20"),
        ("income", 100_000, salary, "2024-03-01"),
    ]:
        _create(
            client,
            "/api/transactions",
            {
                "type": txn_type,
                "amount_cents": amount,
                "category_id": category["id"],
                "date": day,
            },
        )

    summary = client.get("/api/reports/summary?month=2024-03", headers=_auth())
    assert summary.status_code == 200
    assert summary.json() == {
        "success": True,
        "data": {
            "month": "2024-03",
            "income": 100_000,
            "expense": 80_000,
            "net": 20_000,
        },
    }

    breakdown = client.get(
        "/api/reports/category-breakdown?month=2024-03", headers=_auth()
    ).json()["data"]
    assert breakdown["type"] == "expense"
    assert breakdown["total"] == 80_000
    assert breakdown["breakdown"] == [
        {
            "category_id": groceries["id"],
            "name": "Groceries",
            "color": "#6366f1",
            "total": 80_000,
            "count": 2,
            "percentage": 100,
        }
    ]

    daily = client.get(
        "/api/reports/daily-spending?month=2024-03", headers=_auth()
    ).json()["data"]
    assert len(daily) == 31
    assert daily[4] == {"day": 5, "date": "2024-03-05", "income": 0, "expense": 50_000}

    other_user = client.get("/api/reports/summary?month=2024-03", headers=_auth(2))
    assert other_user.json()["data"]["expense"] == 0


def test_budget_status_endpoint(client: TestClient) -> None:
    food = _create(client, "/api/categories", {"name": "Food", "type": "expense"})
    _create(
        client,
        "/api/transactions",
        {
            "type": "expense",
            "amount_cents": 120_000,
            "category_id": food["id"],
            "date": "2024-03-07",
        },
    )
    budget = _create(
        client,
        "/api/budgets",
        {"month": "2024-03", "category_id": food["id"], "limit_cents": 100_000},
    )
    assert budget["category"]["name"] == "Food"

    duplicate = client.post(
        "/api/budgets",
        json={"month": "2024-03", "category_id": food["id"], "limit_cents": 5},
        headers=_auth(),
    )
    assert duplicate.status_code == 400

    body = client.get("/api/budgets?month=2024-03", headers=_auth()).json()
    assert body["count"] == 1
    status = body["data"][0]
    assert status["spent"] == 120_000
    assert status["percentage"] == 100
    assert status["exceeded"] is True
    assert status["category"]["name"] == "Food"

    all_budgets = client.get("/api/budgets", headers=_auth()).json()
    assert all_budgets["data"][0]["limit_cents"] == 100_000


@pytest.mark.parametrize("month", ["2024-3", "24-03", "2024-13", "٢٠٢٤-٠٣"])
def test_bad_month_is_a_client_error_everywhere(client: TestClient, month: str) -> None:
    for path in (
        "/api/reports/summary",
        "/api/reports/category-breakdown",
        "/api/reports/daily-spending",
        "/api/budgets",
    ):
        resp = client.get(path, params={"month": month}, headers=_auth())
        assert resp.status_code == 400, path
        assert resp.json()["success"] is False


def test_missing_month_is_rejected_for_reports(client: TestClient) -> None:
    resp = client.get("/api/reports/summary", headers=_auth())
    assert resp.status_code == 400


def test_category_delete_guard_over_http(client: TestClient) -> None:
    food = _create(client, "/api/categories", {"name": "Food", "type": "expense"})
    txn = _create(
        client,
        "/api/transactions",
        {"type": "expense", "amount_cents": 100, "category_id": food["id"]},
    )

    blocked = client.delete(f"/api/categories/{food['id']}", headers=_auth())
    assert blocked.status_code == 400
    assert "1 transaction" in blocked.json()["detail"]

    assert (
        client.delete(f"/api/transactions/{txn['id']}", headers=_auth()).status_code
        == 200
    )
    assert (
        client.delete(f"/api/categories/{food['id']}", headers=_auth()).status_code
        == 200
    )


def test_seed_default_categories_endpoint(client: TestClient) -> None:
    first = client.post("/api/categories/defaults", headers=_auth())
    assert first.status_code == 201
    assert first.json()["data"]["created"] == 16
    second = client.post("/api/categories/defaults", headers=_auth())
    assert second.status_code == 200
    assert second.json()["data"]["created"] == 0

    listed = client.get("/api/categories?type=income", headers=_auth()).json()
    assert listed["count"] == 6


def test_storage_failure_is_service_unavailable() -> None:
    engine = build_engine("sqlite://")
    with _client_for(engine) as client:
        for path in (
            "/api/reports/summary",
            "/api/reports/category-breakdown",
            "/api/reports/daily-spending",
            "/api/budgets",
        ):
            resp = client.get(path, params={"month": "2024-03"}, headers=_auth())
            assert resp.status_code == 503, path
            assert resp.json()["success"] is False
    app.dependency_overrides.clear()


def test_aggregation_failure_is_server_error(client: TestClient, monkeypatch) -> None:
    def broken(self, month, filters=None):
        raise AggregationError("daily row outside month")

    monkeypatch.setattr(ReportService, "daily_spending", broken)
    resp = client.get(
        "/api/reports/daily-spending", params={"month": "2024-03"}, headers=_auth()
    )
    assert resp.status_code == 500
    assert resp.json() == {"success": False, "message": "daily row outside month"}


def test_budgeted_category_delete_is_blocked_over_http(client: TestClient) -> None:
    food = _create(client, "/api/categories", {"name": "Food", "type": "expense"})
    budget = _create(
        client,
        "/api/budgets",
        {"month": "2024-03", "category_id": food["id"], "limit_cents": 1_000},
    )

    blocked = client.delete(f"/api/categories/{food['id']}", headers=_auth())
    assert blocked.status_code == 400
    assert "1 budget" in blocked.json()["detail"]

    client.delete(f"/api/budgets/{budget['id']}", headers=_auth())
    resp = client.delete(f"/api/categories/{food['id']}", headers=_auth())
    assert resp.status_code == 200
