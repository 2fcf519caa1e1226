from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from journal_api.app.dependencies import get_store
from journal_api.app.main import app
from journal_api.app.services.ledger_store import InMemoryLedger

HEADERS = {"X-User-Id": "user-1"}


@pytest.fixture
def client():
    ledger = InMemoryLedger()
    app.dependency_overrides[get_store] = lambda: ledger
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _upload(client: TestClient, path: str, csv_path: Path, headers=HEADERS):
    return client.post(path, files={"file": (csv_path.name, csv_path.read_bytes(), "text/csv")}, headers=headers)


def _import(client: TestClient, data_dir: Path) -> dict:
    response = _upload(client, "/api/v1/imports/transactions", data_dir / "tastytrade_transactions.csv")
    assert response.status_code == 200
    return response.json()


def test_health(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_missing_user_is_unauthorized(client: TestClient) -> None:
    response = client.get("/api/v1/trades")

    assert response.status_code == 401
    assert response.json() == {"detail": "Not authenticated"}


def test_import_is_idempotent(client: TestClient, data_dir: Path) -> None:
    first = _import(client, data_dir)
    second = _import(client, data_dir)

    assert first == {"total": 3, "inserted": 3, "duplicates": 0, "failed": 0}
    assert second["duplicates"] == 3
    assert len(client.get("/api/v1/trades", headers=HEADERS).json()) == 3
    assert client.get("/api/v1/trades", headers={"X-User-Id": "user-2"}).json() == []


def test_empty_upload_is_unprocessable(client: TestClient) -> None:
    response = client.post(
        "/api/v1/imports/transactions",
        files={"file": ("empty.csv", b"Symbol,Date,Action\n", "text/csv")},
        headers=HEADERS,
    )

    assert response.status_code == 422
    assert "No valid trades" in response.json()["detail"]


def test_positions_then_dashboard(client: TestClient, data_dir: Path) -> None:
    _import(client, data_dir)

    stats = _upload(client, "/api/v1/imports/positions", data_dir / "positions.csv").json()
    dashboard = client.get("/api/v1/metrics/dashboard", headers=HEADERS).json()

    assert stats["matched"] == 1
    assert stats["updated"] == 1
    assert dashboard["total_pnl"] == pytest.approx(250.0)
    assert dashboard["open_positions"] == 1
    assert dashboard["win_rate"] == 0


def test_put_campaign_without_strategy_is_not_found(client: TestClient, data_dir: Path) -> None:
    _import(client, data_dir)

    response = client.get("/api/v1/metrics/put-campaign", headers=HEADERS)

    assert response.status_code == 404
    assert "Put Camp" in response.json()["detail"]


def test_pair_validation_and_unpair(client: TestClient, data_dir: Path) -> None:
    _import(client, data_dir)
    ids = [t["id"] for t in client.get("/api/v1/trades", headers=HEADERS).json()]

    rejected = client.post("/api/v1/trades/pair", json={"trade_ids": ids[:1]}, headers=HEADERS)
    assert rejected.status_code == 400

    paired = client.post("/api/v1/trades/pair", json={"trade_ids": ids[:2]}, headers=HEADERS).json()
    assert sorted(paired["trade_ids"]) == sorted(ids[:2])
    groups = client.get("/api/v1/trades/groups", headers=HEADERS).json()
    assert len(groups) == 2

    unpaired = client.post("/api/v1/trades/unpair", json={"trade_ids": ids[:2]}, headers=HEADERS).json()
    assert unpaired == {"updated": 2}


def test_patch_trade_sets_manual_mark(client: TestClient, data_dir: Path) -> None:
    _import(client, data_dir)
    trade_id = client.get("/api/v1/trades", headers=HEADERS).json()[0]["id"]

    updated = client.patch(f"/api/v1/trades/{trade_id}", json={"mark_price": 0}, headers=HEADERS).json()
    assert updated["mark_price"] == 0
    cleared = client.patch(f"/api/v1/trades/{trade_id}", json={"mark_price": None}, headers=HEADERS).json()
    assert cleared["mark_price"] is None
    assert client.patch("/api/v1/trades/missing", json={"notes": "x"}, headers=HEADERS).status_code == 404


def test_patch_trade_rejects_null_hidden(client: TestClient, data_dir: Path) -> None:
    _import(client, data_dir)
    trade_id = client.get("/api/v1/trades", headers=HEADERS).json()[0]["id"]

    response = client.patch(f"/api/v1/trades/{trade_id}", json={"hidden": None}, headers=HEADERS)

    assert response.status_code == 422
    assert client.get("/api/v1/trades", headers=HEADERS).json()[0]["hidden"] is False


def test_strategy_lifecycle(client: TestClient, data_dir: Path) -> None:
    _import(client, data_dir)
    created = client.post(
        "/api/v1/strategies", json={"name": "Put Camp", "capital_allocation": 0}, headers=HEADERS
    )
    assert created.status_code == 201
    strategy_id = created.json()["id"]
    ids = [t["id"] for t in client.get("/api/v1/trades", headers=HEADERS).json()]

    assigned = client.post(
        "/api/v1/trades/assign-strategy",
        json={"trade_ids": ids, "strategy_id": strategy_id},
        headers=HEADERS,
    ).json()
    assert assigned == {"updated": 3}

    tag = client.post(f"/api/v1/strategies/{strategy_id}/tags", json={"name": "Earnings"}, headers=HEADERS)
    assert tag.status_code == 201
    assert len(client.get(f"/api/v1/strategies/{strategy_id}/tags", headers=HEADERS).json()) == 1

    (performance,) = client.get("/api/v1/strategies/performance", headers=HEADERS).json()
    assert performance["trade_count"] == 3
    assert performance["roi"] is None

    campaign = client.get("/api/v1/metrics/put-campaign", headers=HEADERS).json()
    assert campaign["metrics"]["total_trades"] == 3
    assert campaign["metrics"]["ror"] is None

    detail = client.get(f"/api/v1/strategies/{strategy_id}/detail", headers=HEADERS).json()
    assert detail["tag_groups"][0]["key"] == "untagged"

    patched = client.patch(f"/api/v1/strategies/{strategy_id}", json={"capital_allocation": 1000}, headers=HEADERS)
    assert patched.json()["capital_allocation"] == 1000
    assert client.patch(f"/api/v1/strategies/{strategy_id}", json={"status": "bogus"}, headers=HEADERS).status_code == 400

    assert client.delete(f"/api/v1/strategies/{strategy_id}", headers=HEADERS).status_code == 204
    assert client.get(f"/api/v1/strategies/{strategy_id}", headers=HEADERS).status_code == 404
    trades = client.get("/api/v1/trades", params={"unassigned": True}, headers=HEADERS).json()
    assert len(trades) == 3


def test_tag_update_and_delete(client: TestClient) -> None:
    strategy_id = client.post("/api/v1/strategies", json={"name": "Wheel"}, headers=HEADERS).json()["id"]
    tag_id = client.post(f"/api/v1/strategies/{strategy_id}/tags", json={"name": "Misc"}, headers=HEADERS).json()["id"]

    renamed = client.patch(f"/api/v1/tags/{tag_id}", json={"show_on_dashboard": False}, headers=HEADERS).json()
    assert renamed["show_on_dashboard"] is False
    assert client.delete(f"/api/v1/tags/{tag_id}", headers=HEADERS).status_code == 204
    assert client.delete(f"/api/v1/tags/{tag_id}", headers=HEADERS).status_code == 404


def test_benchmark_prices(client: TestClient) -> None:
    body = [
        {"ticker": "SPY", "date": "2024-01-02", "price": 470.0},
        {"ticker": "SPY", "date": "2024-01-03", "price": 468.5},
    ]

    assert client.post("/api/v1/benchmarks/SPY", json=body, headers=HEADERS).json() == {"updated": 2}
    prices = client.get("/api/v1/benchmarks/spy", params={"start": "2024-01-03"}, headers=HEADERS).json()
    assert prices == [{"ticker": "SPY", "date": "2024-01-03", "price": 468.5}]
    mismatched = client.post("/api/v1/benchmarks/QQQ", json=body, headers=HEADERS)
    assert mismatched.status_code == 400
