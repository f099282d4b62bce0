from __future__ import annotations

import pytest

from amlguard.tests.utils.auth import bearer_headers


@pytest.mark.asyncio
async def test_finding_lifecycle_over_http(client) -> None:
    path = "/api/inspections/if-abc-1/status"
    response = await client.patch(path, json={"status": "InProgress"})
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "InProgress"

    response = await client.patch(path, json={"status": "Open"})
    assert response.status_code == 409

    response = await client.patch(path, json={"status": "Closed"})
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "Closed"

    response = await client.patch(path, json={"status": "Open"})
    assert response.status_code == 409
    assert response.json()["code"] == "CONFLICT"


@pytest.mark.asyncio
async def test_finding_status_rejects_unknown_values(client) -> None:
    response = await client.patch("/api/inspections/if-abc-1/status", json={"status": "Reopened"})
    assert response.status_code == 400
    response = await client.patch("/api/inspections/if-missing/status", json={"status": "Closed"})
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_create_and_list_findings(client) -> None:
    response = await client.post(
        "/api/inspections",
        json={
            "institutionId": "mem-cbz",
            "category": "Compliance",
            "severity": "High",
            "description": "Beneficial owners not verified for corporate accounts",
        },
        headers=bearer_headers("Supervisor"),
    )
    assert response.status_code == 201
    created = response.json()["data"]
    assert created["status"] == "Open"

    response = await client.get("/api/inspections", params={"institutionId": "mem-cbz"})
    assert [item["id"] for item in response.json()["data"]] == [created["id"]]


@pytest.mark.asyncio
async def test_findings_list_requires_institution_id(client) -> None:
    response = await client.get("/api/inspections")
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_create_finding_for_unknown_institution(client) -> None:
    response = await client.post(
        "/api/inspections",
        json={"institutionId": "mem-missing", "category": "Compliance", "severity": "Low", "description": "n/a"},
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_surveillance_logs_are_append_only(client) -> None:
    response = await client.post(
        "/api/surveillance",
        json={
            "institutionId": "mem-cbz",
            "type": "Reporting",
            "severity": "Medium",
            "description": "Structured cash deposits below threshold",
        },
    )
    assert response.status_code == 201
    log_id = response.json()["data"]["id"]

    response = await client.get("/api/surveillance", params={"institutionId": "mem-cbz"})
    assert [item["id"] for item in response.json()["data"]] == [log_id]

    response = await client.delete(f"/api/surveillance/{log_id}")
    assert response.status_code in {404, 405}


@pytest.mark.asyncio
async def test_entity_cannot_record_surveillance(client) -> None:
    response = await client.post(
        "/api/surveillance",
        json={"institutionId": "mem-cbz", "type": "Reporting", "severity": "Low", "description": "Test"},
        headers=bearer_headers("Entity"),
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_risk_profiles_create_and_list(client) -> None:
    response = await client.post(
        "/api/risk-profiles",
        json={"institutionId": "mem-fbc", "overallRiskLevel": "Medium", "overallRiskScore": 61.5},
    )
    assert response.status_code == 201

    response = await client.get("/api/risk-profiles", params={"institutionId": "mem-fbc"})
    scores = [item["overall_risk_score"] for item in response.json()["data"]]
    assert scores == [61.5]


@pytest.mark.asyncio
async def test_risk_assessment_combines_inputs(client) -> None:
    response = await client.post("/api/risk-assessment", json={"institutionId": "mem-cbz"})
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["institution_id"] == "mem-cbz"
    assert data["score"] == 67
    assert data["level"] == "Medium"
    assert data["computed_at"]


@pytest.mark.asyncio
async def test_risk_assessment_requires_institution_id(client) -> None:
    response = await client.post("/api/risk-assessment", json={})
    assert response.status_code == 400
    assert response.json()["code"] == "BAD_REQUEST"

    response = await client.post("/api/risk-assessment", json={"institutionId": "mem-missing"})
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_dashboard_analytics_and_trends(client) -> None:
    response = await client.post("/api/dashboard/analytics")
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["degraded"] is False
    heatmap = {row["level"]: row["count"] for row in data["riskHeatmap"]}
    assert heatmap == {"High": 3, "Medium": 7, "Low": 4}
    assert data["riskRanking"][0] == {"name": "XYZ Capital", "score": 82}

    response = await client.post("/api/dashboard/trends")
    assert response.status_code == 200
    assert response.json()["data"]["degraded"] is False
