import pytest
from fastapi.testclient import TestClient

from file_store import JsonFileStore, file_repositories
from main import app, get_repositories


@pytest.fixture
def client(tmp_path):
    repos = file_repositories(JsonFileStore(tmp_path / "store"))
    app.dependency_overrides[get_repositories] = lambda: repos
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def create_category(client, name="Groceries", type_="expense") -> dict:
    response = client.post(
        "/api/categories",
        json={"name": name, "type": type_, "color": "#22AA55", "icon": "cart"},
    )
    assert response.status_code == 201
    return response.json()["data"]


def create_transaction(client, category_id: str, amount: float = 12.5, day: str = "2024-03-01") -> dict:
    response = client.post(
        "/api/transactions",
        json={
            "type": "expense",
            "amount": amount,
            "description": "Coffee",
            "category_id": category_id,
            "date": day,
        },
    )
    assert response.status_code == 201
    return response.json()["data"]


def test_health(client) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["data"]["status"] == "ok"


def test_errors_use_the_envelope(client) -> None:
    create_category(client)

    invalid = client.post(
        "/api/categories", json={"name": "Bad", "type": "expense", "color": "red", "icon": "x"}
    )
    missing = client.get("/api/categories/nope")
    duplicate = client.post(
        "/api/categories",
        json={"name": "groceries", "type": "expense", "color": "#22AA55", "icon": "cart"},
    )

    assert invalid.status_code == 400
    assert invalid.json()["success"] is False
    assert invalid.json()["error"]["code"] == "ValidationError"
    assert invalid.json()["error"]["details"][0]["loc"] == ["body", "color"]
    assert missing.status_code == 404
    assert missing.json()["error"] == {"message": "Category not found", "code": "NotFoundError"}
    assert duplicate.status_code == 409


def test_category_listing_and_seed(client) -> None:
    seeded = client.post("/api/categories/seed")
    income = client.get("/api/categories", params={"type": "income"})
    tree = client.get("/api/categories", params={"hierarchy": "true"})

    assert seeded.status_code == 201
    assert seeded.json()["meta"]["created"] == 16
    assert income.json()["meta"]["count"] == 6
    assert len(tree.json()["data"]) == 16


def test_transaction_routes(client) -> None:
    category = create_category(client)
    first = create_transaction(client, category["id"], 12.5, "2024-03-01")
    create_transaction(client, category["id"], 40, "2024-03-02")

    listing = client.get("/api/transactions", params={"limit": 1, "sort": "amount", "order": "asc"})
    summary = client.get("/api/transactions/summary")
    updated = client.put(f"/api/transactions/{first['id']}", json={"amount": 15})
    deleted = client.request("DELETE", "/api/transactions/bulk", json={"ids": [first["id"]]})

    body = listing.json()
    assert body["data"][0]["amount"] == 12.5
    assert body["data"][0]["category"]["name"] == "Groceries"
    assert body["meta"]["pagination"]["total"] == 2
    assert body["meta"]["pagination"]["has_next"] is True
    assert summary.json()["data"]["total_expenses"] == 52.5
    assert updated.json()["data"]["amount"] == 15.0
    assert deleted.json()["data"] == {"deleted": 1}


def test_budget_routes(client) -> None:
    category = create_category(client)
    payload = {
        "category_id": category["id"],
        "budget_amount": 500,
        "period": "monthly",
        "start_date": "2024-02-01",
    }

    created = client.post("/api/budgets", json=payload)
    clash = client.post("/api/budgets", json={**payload, "start_date": "2024-02-15"})
    progress = client.get(f"/api/budgets/{created.json()['data']['id']}")
    alerts = client.get("/api/budgets/alerts", params={"approaching": 50})
    listing = client.get("/api/budgets", params={"include_progress": "true"})

    assert created.status_code == 201
    assert created.json()["data"]["end_date"] == "2024-02-29"
    assert clash.status_code == 409
    assert progress.json()["data"]["spent_amount"] == 0.0
    assert alerts.json()["data"] == []
    assert listing.json()["data"][0]["remaining_amount"] == 500.0


def test_analytics_overview_period(client) -> None:
    category = create_category(client)
    create_transaction(client, category["id"], 20, "2024-03-05")

    custom = client.get(
        "/api/analytics/overview",
        params={"period": "custom", "start": "2024-03-01", "end": "2024-03-31"},
    )
    broken = client.get("/api/analytics/overview", params={"period": "custom"})

    data = custom.json()["data"]
    assert data["period"] == {"slug": "custom", "start": "2024-03-01", "end": "2024-03-31"}
    assert data["transactions"]["total_expenses"] == 20.0
    assert data["categories"][0]["percentage"] == 100.0
    assert broken.status_code == 400


def test_import_upload(client) -> None:
    create_category(client)
    content = (
        "Type,Amount,Description,Category,Date\n"
        "expense,12.50,Coffee,Groceries,2024-03-01\n"
        "expense,40.00,Weekly shop,Groceries,2024-03-02\n"
        "expense,5.00,Snack,,2024-03-03\n"
    )

    response = client.post(
        "/api/import-export/import",
        files={"file": ("march.csv", content.encode("utf-8"), "text/csv")},
        data={"type": "transactions"},
    )
    rejected = client.post(
        "/api/import-export/import",
        files={"file": ("notes.txt", b"hello", "text/plain")},
    )

    assert response.status_code == 422
    body = response.json()
    assert body["success"] is False
    assert body["data"]["summary"]["imported"] == 2
    assert body["data"]["errors"][0]["error_code"] == "MISSING_REQUIRED_FIELD"
    assert rejected.status_code == 400
    assert rejected.json()["error"]["message"] == "Only CSV and XLSX files are allowed"


def test_export_download(client) -> None:
    category = create_category(client)
    create_transaction(client, category["id"])

    response = client.get(
        "/api/import-export/export", params={"format": "csv", "type": "transactions"}
    )
    full_csv = client.get("/api/import-export/export", params={"format": "csv", "type": "full"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert "transactions_export_" in response.headers["content-disposition"]
    assert response.headers["x-export-records"] == "1"
    assert '"Coffee","Groceries","2024-03-01"' in response.text
    assert full_csv.status_code == 400


def test_template_validate_and_config(client) -> None:
    template = client.get("/api/import-export/template/budgets")
    info = client.get("/api/import-export/template/full/info", params={"format": "xlsx"})
    validated = client.post(
        "/api/import-export/validate",
        files={"file": ("t.csv", b"Type,Amount,Description,Category,Date\n", "text/csv")},
        data={"type": "transactions"},
    )
    config = client.get("/api/import-export/config")

    assert template.status_code == 200
    assert template.text.startswith("# Budgets import template")
    assert info.json()["data"]["file_name"] == "budget_tracker_template.xlsx"
    assert validated.json()["data"]["is_valid"] is True
    assert config.json()["data"]["limits"]["max_rows_xlsx"] == 5000


def test_export_info_counts(client) -> None:
    create_category(client)

    response = client.get("/api/import-export/export/info")

    assert response.json()["data"]["counts"]["categories"] == 1
