"""Request helpers shared by the API tests."""

from __future__ import annotations

from typing import Any

from fastapi.testclient import TestClient


def register_user(
    client: TestClient,
    username: str,
    password: str = "secret-pass",
    display_name: str | None = None,
) -> dict[str, Any]:
    response = client.post(
        "/api/auth/register",
        json={
            "username": username,
            "email": f"{username}@example.com",
            "password": password,
            "display_name": display_name or username.capitalize(),
        },
    )
    assert response.status_code == 201, response.text
    return response.json()


def login_user(client: TestClient, identifier: str, password: str = "secret-pass") -> str:
    response = client.post(
        "/api/auth/login",
        json={"identifier": identifier, "password": password},
    )
    assert response.status_code == 200, response.text
    return response.json()["access_token"]


def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def create_account(client: TestClient, username: str) -> tuple[dict[str, Any], dict[str, str]]:
    """Register and log in a user, returning the profile and auth headers."""

    user = register_user(client, username)
    return user, auth_headers(login_user(client, username))


def befriend(
    client: TestClient,
    requester_headers: dict[str, str],
    addressee_headers: dict[str, str],
    addressee_id: int,
) -> int:
    """Create an accepted friendship and return the id of the chat it opens."""

    response = client.post(
        "/api/friends/requests", json={"user_id": addressee_id}, headers=requester_headers
    )
    assert response.status_code == 201, response.text
    request_id = response.json()["id"]

    response = client.post(
        f"/api/friends/requests/{request_id}/respond",
        json={"accept": True},
        headers=addressee_headers,
    )
    assert response.status_code == 200, response.text

    response = client.post("/api/chats", json={"friend_id": addressee_id}, headers=requester_headers)
    assert response.status_code == 200, response.text
    return response.json()["id"]
