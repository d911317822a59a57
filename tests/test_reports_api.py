from __future__ import annotations

import csv
import io
import json
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from openpyxl import load_workbook

from crmdesk.models.entities import User

WINDOW = {"startDate": "2026-01-01", "endDate": "2026-04-01"}


def _headers(user: User) -> dict[str, str]:
    return {"X-User-Id": str(user.id)}


def _seed(client: TestClient, user: User) -> dict[str, str]:
    headers = _headers(user)
    acme = client.post("/api/v1/clients", headers=headers, json={"company_name": "Acme Corp"}).json()["data"]["id"]
    globex = client.post("/api/v1/clients", headers=headers, json={"company_name": "Globex"}).json()["data"]["id"]
    vendor = client.post("/api/v1/financial/vendors", headers=headers, json={"name": "Paper Supply"}).json()["data"]
    budget = client.post(
        "/api/v1/financial/budgets",
        headers=headers,
        json={"client_id": acme, "name": "Q1", "total_amount": "400.00", "start_date": "2026-01-01"},
    ).json()["data"]
    for client_id, amount, status in (
        (acme, "300.00", "completed"),
        (acme, "50.00", "pending"),
        (globex, "900.00", "completed"),
        (globex, "20.00", "failed"),
    ):
        response = client.post(
            "/api/v1/financial/payments",
            headers=headers,
            json={"client_id": client_id, "amount": amount, "status": status, "payment_date": "2026-02-01"},
        )
        assert response.status_code == 201
    response = client.post(
        "/api/v1/financial/expenses",
        headers=headers,
        json={
            "amount": "100.00",
            "status": "approved",
            "category": "printing",
            "expense_date": "2026-02-03",
            "client_id": acme,
            "budget_id": budget["id"],
            "vendor_id": vendor["id"],
        },
    )
    assert response.status_code == 201
    return {"acme": acme, "globex": globex, "vendor": vendor["id"], "budget": budget["id"]}


def _generate(client: TestClient, user: User, report_type: str, **body: str):
    payload = dict(WINDOW)
    payload.update(body)
    return client.post(f"/api/v1/reports/{report_type}", headers=_headers(user), json=payload)


def test_financial_summary_report(client: TestClient, alice: User) -> None:
    _seed(client, alice)

    response = _generate(client, alice, "financial-summary")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["format"] == "json"
    assert data["downloadUrl"] is None
    report = data["report"]
    assert report["reportType"] == "financial-summary"
    assert report["title"] == "Financial Summary Report"
    assert report["dateRange"] == {"startDate": "2026-01-01", "endDate": "2026-04-01"}
    assert Decimal(report["summary"]["totalRevenue"]) == Decimal("1200")
    assert Decimal(report["summary"]["totalExpenses"]) == Decimal("100")
    assert Decimal(report["summary"]["netProfit"]) == Decimal("1100")
    assert report["summary"]["budgetCount"] == 1
    assert [row["metric"] for row in report["rows"]][0] == "Total Revenue"
    assert report["warnings"] == []


def test_identical_requests_create_two_jobs_with_equal_payloads(client: TestClient, alice: User) -> None:
    _seed(client, alice)

    first = _generate(client, alice, "client-profitability").json()["data"]
    second = _generate(client, alice, "client-profitability").json()["data"]

    assert first["jobId"] != second["jobId"]
    assert first["report"] == second["report"]

    history = client.get("/api/v1/reports/export-history", headers=_headers(alice)).json()
    assert history["total"] == 2


def test_client_profitability_rows_are_ranked_by_profit(client: TestClient, alice: User) -> None:
    _seed(client, alice)

    report = _generate(client, alice, "client-profitability").json()["data"]["report"]

    assert [row["companyName"] for row in report["rows"]] == ["Globex", "Acme Corp"]
    acme = report["rows"][1]
    assert Decimal(acme["profit"]) == Decimal("200")
    assert Decimal(acme["roi"]) == Decimal("200")
    assert acme["budgetCount"] == 1


def test_payment_tracking_counts_every_status(client: TestClient, alice: User) -> None:
    _seed(client, alice)

    summary = _generate(client, alice, "payment-tracking").json()["data"]["report"]["summary"]

    assert summary["totalPayments"] == 4
    assert summary["completedPayments"] == 2
    assert summary["pendingPayments"] == 1
    assert summary["failedPayments"] == 1
    assert Decimal(summary["totalAmount"]) == Decimal("1200")
    assert Decimal(summary["completionRate"]) == Decimal("50")


def test_budget_performance_uses_read_time_spent(client: TestClient, alice: User) -> None:
    _seed(client, alice)

    report = _generate(client, alice, "budget-performance").json()["data"]["report"]

    (row,) = report["rows"]
    assert Decimal(row["spent"]) == Decimal("100")
    assert Decimal(row["remaining"]) == Decimal("300")
    assert Decimal(row["utilizationRate"]) == Decimal("25")
    assert row["clientName"] == "Acme Corp"


@pytest.mark.parametrize("report_type", ["client-overview", "vendor-analysis"])
def test_other_report_types(client: TestClient, alice: User, report_type: str) -> None:
    _seed(client, alice)

    response = _generate(client, alice, report_type)

    assert response.status_code == 200
    assert response.json()["data"]["report"]["reportType"] == report_type


def test_unknown_report_type_is_not_found(client: TestClient, alice: User) -> None:
    response = _generate(client, alice, "horoscope")

    assert response.status_code == 404
    assert response.json() == {"success": False, "error": "Unknown report type: horoscope"}
    assert client.get("/api/v1/reports/export-history", headers=_headers(alice)).json()["total"] == 0


def test_unknown_format_is_rejected(client: TestClient, alice: User) -> None:
    response = _generate(client, alice, "financial-summary", format="docx")

    assert response.status_code == 400


def test_inverted_window_is_rejected(client: TestClient, alice: User) -> None:
    response = client.post(
        "/api/v1/reports/financial-summary",
        headers=_headers(alice),
        json={"startDate": "2026-04-01", "endDate": "2026-01-01"},
    )

    assert response.status_code == 400


def test_missing_window_is_rejected(client: TestClient, alice: User) -> None:
    response = client.post("/api/v1/reports/financial-summary", headers=_headers(alice), json={})

    assert response.status_code == 400


def test_generate_requires_identity(client: TestClient) -> None:
    response = client.post("/api/v1/reports/financial-summary", json=WINDOW)

    assert response.status_code == 401


def test_csv_export(client: TestClient, alice: User) -> None:
    _seed(client, alice)
    data = _generate(client, alice, "payment-tracking", format="csv").json()["data"]
    assert data["downloadUrl"] == f"/api/v1/reports/export/{data['jobId']}/csv"

    response = client.get(data["downloadUrl"], headers=_headers(alice))

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert response.headers["content-disposition"] == (
        'attachment; filename="payment-tracking-2026-01-01-2026-04-01.csv"'
    )
    rows = list(csv.reader(io.StringIO(response.text)))
    assert rows[0] == [
        "Client Name",
        "Amount",
        "Currency",
        "Payment Date",
        "Status",
        "Payment Method",
        "Invoice Number",
        "Description",
    ]
    assert len(rows) == 5


def test_xlsx_export(client: TestClient, alice: User) -> None:
    _seed(client, alice)
    job_id = _generate(client, alice, "budget-performance", format="xlsx").json()["data"]["jobId"]

    response = client.get(f"/api/v1/reports/export/{job_id}/xlsx", headers=_headers(alice))

    assert response.status_code == 200
    workbook = load_workbook(io.BytesIO(response.content))
    assert workbook.sheetnames == ["report", "summary"]
    header = [cell.value for cell in workbook["report"][1]]
    assert header[0] == "Budget Name"
    assert workbook["summary"]["A1"].value == "Budget Performance Report"


def test_stored_job_can_be_exported_in_another_format(client: TestClient, alice: User) -> None:
    _seed(client, alice)
    data = _generate(client, alice, "financial-summary", format="csv").json()["data"]

    response = client.get(f"/api/v1/reports/export/{data['jobId']}/json", headers=_headers(alice))

    assert response.status_code == 200
    assert json.loads(response.content) == data["report"]


def test_pdf_export_renders_or_reports_unavailable(client: TestClient, alice: User) -> None:
    _seed(client, alice)
    job_id = _generate(client, alice, "client-profitability", format="pdf").json()["data"]["jobId"]

    response = client.get(f"/api/v1/reports/export/{job_id}/pdf", headers=_headers(alice))

    assert response.status_code in {200, 503}
    if response.status_code == 200:
        assert response.content.startswith(b"%PDF")
    else:
        assert response.json()["success"] is False


def test_export_unknown_job_or_format(client: TestClient, alice: User) -> None:
    _seed(client, alice)
    job_id = _generate(client, alice, "financial-summary").json()["data"]["jobId"]

    missing = client.get(
        "/api/v1/reports/export/00000000-0000-0000-0000-000000000003/csv",
        headers=_headers(alice),
    )
    assert missing.status_code == 404
    assert client.get(f"/api/v1/reports/export/{job_id}/docx", headers=_headers(alice)).status_code == 400


def test_export_updates_download_tracking(client: TestClient, alice: User) -> None:
    _seed(client, alice)
    job_id = _generate(client, alice, "financial-summary", format="csv").json()["data"]["jobId"]

    detail = client.get(f"/api/v1/reports/export-history/{job_id}", headers=_headers(alice)).json()["data"]
    assert detail["download_count"] == 0
    assert detail["downloaded_at"] is None

    client.get(f"/api/v1/reports/export/{job_id}/csv", headers=_headers(alice))
    client.get(f"/api/v1/reports/export/{job_id}/csv", headers=_headers(alice))

    detail = client.get(f"/api/v1/reports/export-history/{job_id}", headers=_headers(alice)).json()["data"]
    assert detail["download_count"] == 2
    assert detail["downloaded_at"] is not None
    assert detail["payload"]["reportType"] == "financial-summary"


def test_export_history_paging_and_delete(client: TestClient, alice: User) -> None:
    job_ids = [
        _generate(client, alice, report_type).json()["data"]["jobId"]
        for report_type in ("financial-summary", "client-overview", "vendor-analysis")
    ]

    response = client.get("/api/v1/reports/export-history", headers=_headers(alice), params={"limit": 2})
    body = response.json()
    assert response.status_code == 200
    assert body["total"] == 3
    assert len(body["data"]) == 2
    assert "payload" not in body["data"][0]

    response = client.get(
        "/api/v1/reports/export-history",
        headers=_headers(alice),
        params={"limit": 2, "offset": 2},
    )
    assert len(response.json()["data"]) == 1

    assert client.delete(f"/api/v1/reports/export-history/{job_ids[0]}", headers=_headers(alice)).status_code == 204
    assert client.get(f"/api/v1/reports/export-history/{job_ids[0]}", headers=_headers(alice)).status_code == 404
    assert client.get("/api/v1/reports/export-history", headers=_headers(alice)).json()["total"] == 2


def test_export_history_rejects_bad_paging(client: TestClient, alice: User) -> None:
    response = client.get("/api/v1/reports/export-history", headers=_headers(alice), params={"limit": 0})

    assert response.status_code == 400
