from __future__ import annotations

import pytest

from amlguard.tests.utils.auth import bearer_headers


@pytest.mark.asyncio
async def test_list_defaults_to_recently_updated_first(client) -> None:
    response = await client.get("/api/institutions", headers=bearer_headers("Entity"))
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["total"] == 14
    assert data["page"] == 1
    assert data["pageSize"] == 10
    assert data["totalPages"] == 2
    assert len(data["items"]) == 10
    assert data["items"][0]["id"] == "mem-bancabc"


@pytest.mark.asyncio
async def test_list_search_filter_and_sort(client) -> None:
    response = await client.get("/api/institutions", params={"search": "cbz"})
    data = response.json()["data"]
    assert [item["id"] for item in data["items"]] == ["mem-cbz"]

    response = await client.get("/api/institutions", params={"riskLevel": "High", "sort": "name"})
    names = [item["name"] for item in response.json()["data"]["items"]]
    assert names == ["BancABC Zimbabwe", "Steward Bank Limited", "XYZ Capital"]

    response = await client.get("/api/institutions", params={"status": "Suspended"})
    assert [item["id"] for item in response.json()["data"]["items"]] == ["mem-safecustody"]


@pytest.mark.asyncio
async def test_list_rejects_unknown_sort_field(client) -> None:
    response = await client.get("/api/institutions", params={"sort": "password"})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_page_size_is_clamped(client) -> None:
    response = await client.get("/api/institutions", params={"pageSize": 5000})
    data = response.json()["data"]
    assert data["pageSize"] == 200
    assert len(data["items"]) == 14


@pytest.mark.asyncio
async def test_create_derives_level_from_score(client) -> None:
    response = await client.post(
        "/api/institutions",
        json={
            "name": "Mutare Asset Managers",
            "licenseNumber": "ZSE/IM/0042",
            "category": "Investment Manager",
            "riskLevel": "Low",
            "riskScore": 75,
        },
        headers=bearer_headers("Supervisor"),
    )
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["risk_level"] == "High"
    assert data["risk_score"] == 75
    assert data["status"] == "Active"

    fetched = await client.get(f"/api/institutions/{data['id']}")
    assert fetched.json()["data"]["name"] == "Mutare Asset Managers"


@pytest.mark.asyncio
async def test_duplicate_license_number_conflicts(client) -> None:
    response = await client.post(
        "/api/institutions",
        json={"name": "Another CBZ", "licenseNumber": "RBZ/BK/0001"},
    )
    assert response.status_code == 409
    assert response.json()["code"] == "CONFLICT"

    response = await client.put("/api/institutions/mem-fbc", json={"licenseNumber": "RBZ/BK/0001"})
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_update_keeps_omitted_fields(client) -> None:
    response = await client.put("/api/institutions/mem-cbz", json={"name": "CBZ Holdings", "category": None})
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["name"] == "CBZ Holdings"
    assert data["license_number"] == "RBZ/BK/0001"
    assert data["category"] == "Bank"
    assert data["risk_score"] == 68


@pytest.mark.asyncio
async def test_update_missing_institution_is_404(client) -> None:
    response = await client.put("/api/institutions/mem-missing", json={"name": "Ghost"})
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_delete_revokes_instead_of_removing(client) -> None:
    response = await client.delete("/api/institutions/mem-zb", headers=bearer_headers("Supervisor"))
    assert response.status_code == 403

    response = await client.delete("/api/institutions/mem-zb", headers=bearer_headers("Administrator"))
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "Revoked"

    fetched = await client.get("/api/institutions/mem-zb")
    assert fetched.status_code == 200
    assert fetched.json()["data"]["status"] == "Revoked"


@pytest.mark.asyncio
async def test_license_actions_follow_lifecycle(client) -> None:
    response = await client.post(
        "/api/institutions/mem-nmb/license-actions",
        json={"action": "suspend", "reason": "Late STR filings"},
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["institution"]["status"] == "Suspended"
    assert data["action"] == "suspend"

    response = await client.post("/api/institutions/mem-nmb/license-actions", json={"action": "renew"})
    assert response.json()["data"]["institution"]["status"] == "Active"


@pytest.mark.asyncio
async def test_revoked_license_rejects_further_actions(client) -> None:
    response = await client.post("/api/institutions/mem-cbz/license-actions", json={"action": "revoke"})
    assert response.status_code == 200
    response = await client.post("/api/institutions/mem-cbz/license-actions", json={"action": "suspend"})
    assert response.status_code == 409
    assert response.json()["code"] == "CONFLICT"


@pytest.mark.asyncio
async def test_unknown_license_action_is_400(client) -> None:
    response = await client.post("/api/institutions/mem-cbz/license-actions", json={"action": "pause"})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_create_without_score_leaves_institution_unscored(client) -> None:
    response = await client.post(
        "/api/institutions",
        json={"name": "Bulawayo Building Society", "licenseNumber": "RBZ/BS/0077", "riskLevel": "High"},
    )
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["risk_level"] == "High"
    assert data["risk_score"] is None


@pytest.mark.asyncio
async def test_update_level_alone_cannot_contradict_stored_score(client) -> None:
    created = await client.post(
        "/api/institutions",
        json={"name": "Chinhoyi Microfinance", "licenseNumber": "RBZ/MF/0310", "riskScore": 85},
    )
    institution_id = created.json()["data"]["id"]

    response = await client.put(f"/api/institutions/{institution_id}", json={"riskLevel": "Low"})
    assert response.status_code == 400
    assert response.json()["code"] == "BAD_REQUEST"
    fetched = (await client.get(f"/api/institutions/{institution_id}")).json()["data"]
    assert (fetched["risk_level"], fetched["risk_score"]) == ("High", 85)

    # A level that matches the stored score is accepted as-is.
    response = await client.put(f"/api/institutions/{institution_id}", json={"riskLevel": "High"})
    assert response.status_code == 200

    response = await client.put(f"/api/institutions/{institution_id}", json={"riskScore": 20})
    data = response.json()["data"]
    assert (data["risk_level"], data["risk_score"]) == ("Low", 20)


@pytest.mark.asyncio
async def test_update_level_on_unscored_institution(client) -> None:
    created = await client.post(
        "/api/institutions",
        json={"name": "Kwekwe Money Transfer", "licenseNumber": "RBZ/MT/0044", "riskLevel": "Medium"},
    )
    institution_id = created.json()["data"]["id"]
    response = await client.put(f"/api/institutions/{institution_id}", json={"riskLevel": "High"})
    assert response.status_code == 200
    assert response.json()["data"]["risk_level"] == "High"


@pytest.mark.asyncio
async def test_duplicate_license_found_among_many_similar_numbers(client) -> None:
    response = await client.post("/api/institutions", json={"name": "Gokwe Bank", "licenseNumber": "ZW-7"})
    assert response.status_code == 201
    for index in range(55):
        response = await client.post(
            "/api/institutions",
            json={"name": f"Gokwe Branch {index}", "licenseNumber": f"ZW-7{index:03d}"},
        )
        assert response.status_code == 201

    response = await client.post("/api/institutions", json={"name": "Gokwe Bank Again", "licenseNumber": "ZW-7"})
    assert response.status_code == 409
    assert response.json()["code"] == "CONFLICT"
