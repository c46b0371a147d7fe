"""Registration, login, token refresh and account removal."""

from __future__ import annotations

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

from app.api.deps import get_user_from_token
from app.core.security import create_access_token, get_password_hash
from app.models import User

from helpers import auth_headers, befriend, create_account, login_user, register_user


def test_register_and_login_flow(client: TestClient) -> None:
    """End-to-end flow for registering and logging in a user."""

    data = register_user(client, "alice")
    assert data["username"] == "alice"
    assert data["email"] == "alice@example.com"
    assert data["is_online"] is True

    response = client.post(
        "/api/auth/login", json={"identifier": "alice@example.com", "password": "secret-pass"}
    )
    assert response.status_code == 200, response.text
    token_data = response.json()
    assert token_data["token_type"] == "bearer"
    assert isinstance(token_data["access_token"], str)
    assert token_data["refresh_token"]

    by_username = login_user(client, "ALICE")
    me = client.get("/api/profile/me", headers=auth_headers(by_username))
    assert me.status_code == 200
    assert me.json()["id"] == data["id"]


def test_register_rejects_taken_username_and_email(client: TestClient) -> None:
    register_user(client, "alice")

    response = client.post(
        "/api/auth/register",
        json={"username": "Alice", "email": "other@example.com", "password": "secret-pass"},
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Username is already taken"

    response = client.post(
        "/api/auth/register",
        json={"username": "alicia", "email": "ALICE@example.com", "password": "secret-pass"},
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Email is already registered"


def test_register_validates_payload(client: TestClient) -> None:
    response = client.post(
        "/api/auth/register",
        json={"username": "bob", "email": "not-an-email", "password": "secret-pass"},
    )
    assert response.status_code == 422

    response = client.post(
        "/api/auth/register",
        json={"username": "bob", "email": "bob@example.com", "password": "123"},
    )
    assert response.status_code == 422


def test_login_rejects_wrong_password(client: TestClient) -> None:
    register_user(client, "alice")

    response = client.post("/api/auth/login", json={"identifier": "alice", "password": "nope-nope"})
    assert response.status_code == 401


def test_refresh_rotates_tokens(client: TestClient) -> None:
    register_user(client, "alice")
    response = client.post(
        "/api/auth/login",
        json={"identifier": "alice", "password": "secret-pass", "remember_me": True},
    )
    first_refresh = response.json()["refresh_token"]

    response = client.post("/api/auth/refresh", json={"refresh_token": first_refresh})
    assert response.status_code == 200, response.text
    rotated = response.json()["refresh_token"]
    assert rotated and rotated != first_refresh

    reused = client.post("/api/auth/refresh", json={"refresh_token": first_refresh})
    assert reused.status_code == 401


def test_logout_marks_user_offline_and_revokes_refresh_token(client: TestClient) -> None:
    register_user(client, "alice")
    response = client.post("/api/auth/login", json={"identifier": "alice", "password": "secret-pass"})
    tokens = response.json()
    headers = auth_headers(tokens["access_token"])

    response = client.post(
        "/api/auth/logout", json={"refresh_token": tokens["refresh_token"]}, headers=headers
    )
    assert response.status_code == 204

    me = client.get("/api/profile/me", headers=headers).json()
    assert me["is_online"] is False
    assert me["last_seen"] is not None

    response = client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert response.status_code == 401


def test_delete_account_removes_owned_rows(client: TestClient) -> None:
    alice, alice_headers = create_account(client, "alice")
    bob, bob_headers = create_account(client, "bob")
    chat_id = befriend(client, alice_headers, bob_headers, bob["id"])

    client.post(f"/api/chats/{chat_id}/messages", json={"content": "hi"}, headers=alice_headers)
    post = client.post("/api/posts", data={"caption": "hello"}, headers=alice_headers).json()
    client.post(f"/api/posts/{post['id']}/like", headers=bob_headers)
    client.post(f"/api/posts/{post['id']}/comments", json={"content": "nice"}, headers=bob_headers)
    client.post(f"/api/follows/{bob['id']}", headers=alice_headers)

    response = client.delete("/api/auth/account", headers=alice_headers)
    assert response.status_code == 204

    assert client.get("/api/friends", headers=bob_headers).json() == []
    assert client.get("/api/chats", headers=bob_headers).json() == []
    assert client.get("/api/posts", headers=bob_headers).json() == []
    counts = client.get(f"/api/follows/{bob['id']}/counts", headers=bob_headers).json()
    assert counts["followers"] == 0

    response = client.post("/api/auth/login", json={"identifier": "alice", "password": "secret-pass"})
    assert response.status_code == 401


def test_get_user_from_token(db_session) -> None:
    """Tokens should resolve to existing users."""

    user = User(
        username="tester",
        email="tester@example.com",
        hashed_password=get_password_hash("supersecret"),
    )
    db_session.add(user)
    db_session.commit()

    token = create_access_token({"sub": str(user.id)})
    resolved = get_user_from_token(token, db_session)

    assert resolved.id == user.id
    assert resolved.username == "tester"


def test_get_user_from_token_invalid_payload(db_session) -> None:
    """Invalid tokens must result in a 401 error."""

    with pytest.raises(HTTPException) as exc:
        get_user_from_token("invalid-token", db_session)

    assert exc.value.status_code == 401
    assert "Could not validate credentials" in exc.value.detail
