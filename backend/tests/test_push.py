"""Push relay endpoint, device registration and message push delivery."""

from __future__ import annotations

import json

import httpx
import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.services import push as push_service
from app.services.push import OneSignalClient, get_push_client

from helpers import befriend, create_account

API_URL = "https://onesignal.test/api/v1/notifications"


class ProviderStub:
    """Records requests sent to the push provider and answers with a fixed reply."""

    def __init__(self, status_code: int = 200, body: dict | None = None) -> None:
        self.status_code = status_code
        self.body = body if body is not None else {"id": "notification-1", "recipients": 1}
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json=self.body)

    def client(self) -> OneSignalClient:
        return OneSignalClient(
            "app-id", "rest-key", api_url=API_URL, transport=httpx.MockTransport(self)
        )


@pytest.fixture()
def provider(client: TestClient) -> ProviderStub:
    stub = ProviderStub()
    app.dependency_overrides[get_push_client] = stub.client
    return stub


def _sync(client: TestClient, headers: dict[str, str], **payload):
    return client.post("/api/push/profile", json=payload, headers=headers)


def _send(client: TestClient, headers: dict[str, str], **payload):
    return client.post("/api/push/send", json=payload, headers=headers)


def test_send_push_without_credentials_fails(client: TestClient) -> None:
    bob, bob_headers = create_account(client, "bob")
    app.dependency_overrides[get_push_client] = lambda: None

    response = _send(client, bob_headers, recipient_user_id=bob["id"], title="Hi", body="There")
    assert response.status_code == 500


def test_send_push_validates_request(client: TestClient, provider: ProviderStub) -> None:
    _, headers = create_account(client, "alice")

    assert _send(client, headers, title="Hi", body="There").status_code == 400
    assert _send(client, headers, recipient_user_id=1, body="There").status_code == 400
    assert _send(client, headers, recipient_user_id=9999, title="Hi", body="There").status_code == 404
    assert provider.requests == []


def test_send_push_reports_unreachable_recipients(client: TestClient, provider: ProviderStub) -> None:
    _, alice_headers = create_account(client, "alice")
    bob, bob_headers = create_account(client, "bob")

    response = _send(client, alice_headers, recipient_user_id=bob["id"], title="Hi", body="There")
    assert response.json() == {"success": False, "reason": "no_player_id"}

    assert _sync(client, bob_headers, push_enabled=False, onesignal_player_id="player-1").json() == {
        "success": True
    }
    response = _send(client, alice_headers, recipient_user_id=bob["id"], title="Hi", body="There")
    assert response.json() == {"success": False, "reason": "push_disabled"}
    assert provider.requests == []


def test_send_push_posts_to_provider(client: TestClient, provider: ProviderStub) -> None:
    _, alice_headers = create_account(client, "alice")
    bob, bob_headers = create_account(client, "bob")
    _sync(client, bob_headers, push_enabled=True, onesignal_player_id="player-1", device_platform="web")

    response = _send(
        client,
        alice_headers,
        recipient_user_id=bob["id"],
        title="Alice",
        body="Are you there?",
        data={"chat_id": "1"},
    )
    assert response.status_code == 200, response.text
    assert response.json() == {"success": True, "result": provider.body}

    [request] = provider.requests
    assert str(request.url) == API_URL
    assert request.headers["Authorization"] == "Basic rest-key"
    assert json.loads(request.content) == {
        "app_id": "app-id",
        "include_player_ids": ["player-1"],
        "headings": {"en": "Alice"},
        "contents": {"en": "Are you there?"},
        "data": {"chat_id": "1"},
    }


def test_send_push_maps_provider_errors(client: TestClient) -> None:
    stub = ProviderStub(status_code=400, body={"errors": ["Invalid player ids"]})
    app.dependency_overrides[get_push_client] = stub.client
    _, alice_headers = create_account(client, "alice")
    bob, bob_headers = create_account(client, "bob")
    _sync(client, bob_headers, push_enabled=True, onesignal_player_id="player-1")

    response = _send(client, alice_headers, recipient_user_id=bob["id"], title="Hi", body="There")
    assert response.status_code == 502
    assert response.json()["detail"] == {
        "error": "Failed to send push notification",
        "details": {"errors": ["Invalid player ids"]},
    }


def test_sync_push_profile_keeps_omitted_fields(client: TestClient, provider: ProviderStub) -> None:
    _, alice_headers = create_account(client, "alice")
    bob, bob_headers = create_account(client, "bob")

    assert _sync(client, bob_headers, onesignal_player_id="player-1").status_code == 400

    _sync(client, bob_headers, push_enabled=False, onesignal_player_id="player-1")
    _sync(client, bob_headers, push_enabled=True)
    assert client.get("/api/profile/me", headers=bob_headers).json()["push_enabled"] is True

    response = _send(client, alice_headers, recipient_user_id=bob["id"], title="Hi", body="There")
    assert response.json()["success"] is True
    assert json.loads(provider.requests[0].content)["include_player_ids"] == ["player-1"]


def test_new_message_triggers_push(client: TestClient, monkeypatch) -> None:
    stub = ProviderStub()
    monkeypatch.setattr(push_service, "get_push_client", stub.client)
    _, alice_headers = create_account(client, "alice")
    bob, bob_headers = create_account(client, "bob")
    chat_id = befriend(client, alice_headers, bob_headers, bob["id"])
    _sync(client, bob_headers, push_enabled=True, onesignal_player_id="player-1")

    response = client.post(
        f"/api/chats/{chat_id}/messages", json={"content": "Ping from Alice"}, headers=alice_headers
    )
    assert response.status_code == 201

    [request] = stub.requests
    sent = json.loads(request.content)
    assert sent["headings"] == {"en": "Alice"}
    assert sent["contents"] == {"en": "Ping from Alice"}
    assert sent["data"]["chat_id"] == str(chat_id)


def test_message_push_failures_are_not_raised(client: TestClient, monkeypatch) -> None:
    stub = ProviderStub(status_code=500, body={"errors": ["boom"]})
    monkeypatch.setattr(push_service, "get_push_client", stub.client)
    _, alice_headers = create_account(client, "alice")
    bob, bob_headers = create_account(client, "bob")
    chat_id = befriend(client, alice_headers, bob_headers, bob["id"])
    _sync(client, bob_headers, push_enabled=True, onesignal_player_id="player-1")

    response = client.post(f"/api/chats/{chat_id}/messages", json={"content": "hi"}, headers=alice_headers)
    assert response.status_code == 201
    assert len(stub.requests) == 1
