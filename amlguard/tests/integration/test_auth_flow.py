from __future__ import annotations

import pytest

from amlguard.tests.utils.auth import bearer_headers


DEMO_PASSWORD = "AMLGuard2025!"


async def _login(client, email: str = "samkheliso.dube@seczim.co.zw", **extra) -> dict:
    response = await client.post("/api/auth/login", json={"email": email, "password": DEMO_PASSWORD, **extra})
    assert response.status_code == 200
    return response.json()["data"]


@pytest.mark.asyncio
async def test_login_me_logout_round(client) -> None:
    session = await _login(client)
    assert session["user"]["role"] == "Supervisor"
    assert session["rememberMe"] is False
    headers = {"Authorization": f"Bearer {session['token']}"}

    response = await client.get("/api/auth/me", headers=headers)
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["userId"] == "usr_002"
    assert data["user"]["email"] == "samkheliso.dube@seczim.co.zw"
    assert data["session"]["sessionId"] == session["sessionId"]
    assert data["session"]["expiringSoon"] is False

    response = await client.post("/api/auth/logout", headers=headers)
    assert response.json()["data"] == {"loggedOut": True}

    response = await client.get("/api/auth/me", headers=headers)
    assert response.status_code == 401
    assert response.json()["error"] == "Session expired"


@pytest.mark.asyncio
async def test_login_rejects_bad_password(client) -> None:
    response = await client.post(
        "/api/auth/login",
        json={"email": "samkheliso.dube@seczim.co.zw", "password": "wrong"},
    )
    assert response.status_code == 401
    assert response.json()["code"] == "AUTH_UNAUTHORIZED"


@pytest.mark.asyncio
async def test_login_is_case_insensitive_on_email(client) -> None:
    session = await _login(client, email="Admin@SECZIM.co.zw")
    assert session["user"]["role"] == "Administrator"


@pytest.mark.asyncio
async def test_remember_me_outlives_default_session(client) -> None:
    short = await _login(client)
    long = await _login(client, rememberMe=True)
    assert long["rememberMe"] is True
    assert long["timeRemainingMs"] > short["timeRemainingMs"]


@pytest.mark.asyncio
async def test_extend_session(client) -> None:
    session = await _login(client)
    headers = {"Authorization": f"Bearer {session['token']}"}
    response = await client.post("/api/auth/extend", json={"hours": 24}, headers=headers)
    assert response.status_code == 200
    extended = response.json()["data"]
    assert extended["timeRemainingMs"] > session["timeRemainingMs"]
    assert extended["token"] != session["token"]


@pytest.mark.asyncio
async def test_extend_requires_a_session_token(client) -> None:
    response = await client.post("/api/auth/extend", json={}, headers=bearer_headers("Supervisor"))
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_login_token_carries_role(client) -> None:
    session = await _login(client)
    headers = {"Authorization": f"Bearer {session['token']}"}
    response = await client.get("/api/audit-logs", headers=headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_dev_principal_without_token(client) -> None:
    response = await client.get("/api/auth/me")
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["userId"] == "dev-user"
    assert data["role"] == "Supervisor"
    assert data["authMethod"] == "dev"
    assert data["session"] is None
