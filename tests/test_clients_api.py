from __future__ import annotations

from decimal import Decimal

from fastapi.testclient import TestClient

from crmdesk.models.entities import User


def _headers(user: User) -> dict[str, str]:
    return {"X-User-Id": str(user.id)}


def test_me_returns_caller(client: TestClient, alice: User) -> None:
    response = client.get("/api/v1/me", headers=_headers(alice))

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["id"] == str(alice.id)
    assert data["email"] == "alice@crm.test"


def test_client_crud(client: TestClient, alice: User) -> None:
    response = client.post(
        "/api/v1/clients",
        headers=_headers(alice),
        json={"company_name": " Acme Corp ", "email": "Ops@Acme.test", "deal_value": "2500.00"},
    )
    assert response.status_code == 201
    created = response.json()["data"]
    assert created["company_name"] == "Acme Corp"
    assert created["email"] == "ops@acme.test"
    assert created["stage"] == "prospect"
    assert created["assigned_to"] == str(alice.id)

    response = client.put(
        f"/api/v1/clients/{created['id']}",
        headers=_headers(alice),
        json={"stage": "proposal"},
    )
    assert response.status_code == 200
    assert response.json()["data"]["stage"] == "proposal"

    response = client.get("/api/v1/clients", headers=_headers(alice), params={"stage": "proposal"})
    assert [row["id"] for row in response.json()["data"]] == [created["id"]]
    response = client.get("/api/v1/clients", headers=_headers(alice), params={"stage": "lost"})
    assert response.json()["data"] == []

    assert client.delete(f"/api/v1/clients/{created['id']}", headers=_headers(alice)).status_code == 204
    assert client.get(f"/api/v1/clients/{created['id']}", headers=_headers(alice)).status_code == 404


def test_client_with_linked_records_cannot_be_deleted(client: TestClient, alice: User) -> None:
    created = client.post("/api/v1/clients", headers=_headers(alice), json={"company_name": "Globex"}).json()["data"]
    response = client.post(
        "/api/v1/financial/payments",
        headers=_headers(alice),
        json={"client_id": created["id"], "amount": "10.00", "payment_date": "2026-01-05"},
    )
    assert response.status_code == 201

    response = client.delete(f"/api/v1/clients/{created['id']}", headers=_headers(alice))

    assert response.status_code == 409
    assert response.json()["success"] is False


def test_client_path_id_must_be_uuid(client: TestClient, alice: User) -> None:
    response = client.get("/api/v1/clients/not-a-uuid", headers=_headers(alice))

    assert response.status_code == 400
    assert response.json()["success"] is False


def test_list_and_get_users(client: TestClient, alice: User, bob: User) -> None:
    response = client.get("/api/v1/users", headers=_headers(alice))

    assert response.status_code == 200
    emails = {row["email"] for row in response.json()["data"]}
    assert emails == {"alice@crm.test", "bob@crm.test"}

    detail = client.get(f"/api/v1/users/{bob.id}", headers=_headers(alice))
    assert detail.status_code == 200
    assert detail.json()["data"]["full_name"] == "Bob Brown"

    missing = client.get("/api/v1/users/00000000-0000-0000-0000-000000000007", headers=_headers(alice))
    assert missing.status_code == 404
    assert missing.json() == {"success": False, "error": "User not found"}
    assert client.get("/api/v1/users/not-a-uuid", headers=_headers(alice)).status_code == 400
    assert client.get("/api/v1/users").status_code == 401


def test_pipeline_stats(client: TestClient, alice: User) -> None:
    for name, stage, deal_value in (
        ("Acme Corp", "prospect", "1000.00"),
        ("Globex", "proposal", "2500.50"),
        ("Initech", "closed", "4000.00"),
        ("Umbrella", "lost", None),
    ):
        body = {"company_name": name, "stage": stage}
        if deal_value is not None:
            body["deal_value"] = deal_value
        assert client.post("/api/v1/clients", headers=_headers(alice), json=body).status_code == 201

    response = client.get("/api/v1/clients/stats", headers=_headers(alice))

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["total_clients"] == 4
    assert data["active_deals"] == 2
    assert data["stage_counts"]["prospect"] == 1
    assert data["stage_counts"]["meeting"] == 0
    assert Decimal(data["total_deal_value"]) == Decimal("7500.50")
    assert Decimal(data["conversion_rate"]) == Decimal("25")


def test_pipeline_stats_with_no_clients(client: TestClient, alice: User) -> None:
    data = client.get("/api/v1/clients/stats", headers=_headers(alice)).json()["data"]

    assert data["total_clients"] == 0
    assert data["active_deals"] == 0
    assert Decimal(data["total_deal_value"]) == Decimal("0")
    assert Decimal(data["conversion_rate"]) == Decimal("0")
