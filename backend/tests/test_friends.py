"""Friend requests, friendships and opening chats."""

from __future__ import annotations

from fastapi.testclient import TestClient

from helpers import befriend, create_account


def _send_request(client: TestClient, headers: dict[str, str], user_id: int):
    return client.post("/api/friends/requests", json={"user_id": user_id}, headers=headers)


def test_friend_request_accept_flow(client: TestClient) -> None:
    alice, alice_headers = create_account(client, "alice")
    bob, bob_headers = create_account(client, "bob")

    response = _send_request(client, alice_headers, bob["id"])
    assert response.status_code == 201, response.text
    request = response.json()
    assert request["status"] == "pending"
    assert request["requester"]["id"] == alice["id"]

    incoming = client.get("/api/friends/requests", headers=bob_headers).json()
    assert [entry["id"] for entry in incoming["incoming"]] == [request["id"]]
    assert incoming["outgoing"] == []
    outgoing = client.get("/api/friends/requests", headers=alice_headers).json()
    assert [entry["id"] for entry in outgoing["outgoing"]] == [request["id"]]

    response = client.post(
        f"/api/friends/requests/{request['id']}/respond",
        json={"accept": True},
        headers=alice_headers,
    )
    assert response.status_code == 403

    response = client.post(
        f"/api/friends/requests/{request['id']}/respond",
        json={"accept": True},
        headers=bob_headers,
    )
    assert response.status_code == 200
    assert response.json()["status"] == "accepted"

    again = client.post(
        f"/api/friends/requests/{request['id']}/respond",
        json={"accept": True},
        headers=bob_headers,
    )
    assert again.status_code == 200
    assert again.json()["status"] == "accepted"

    friends = client.get("/api/friends", headers=alice_headers).json()
    assert [friend["id"] for friend in friends] == [bob["id"]]
    assert friends[0]["is_online"] is True

    chats = client.get("/api/chats", headers=bob_headers).json()
    assert len(chats) == 1
    assert chats[0]["other_user"]["id"] == alice["id"]


def test_friend_request_rules(client: TestClient) -> None:
    alice, alice_headers = create_account(client, "alice")
    bob, bob_headers = create_account(client, "bob")

    assert _send_request(client, alice_headers, alice["id"]).status_code == 400
    assert _send_request(client, alice_headers, 9999).status_code == 404

    assert _send_request(client, alice_headers, bob["id"]).status_code == 201
    duplicate = _send_request(client, alice_headers, bob["id"])
    assert duplicate.status_code == 400
    assert duplicate.json()["detail"] == "Friend request already sent"

    reverse = _send_request(client, bob_headers, alice["id"])
    assert reverse.status_code == 400
    assert reverse.json()["detail"] == "This user has already sent you a request"


def test_declined_request_can_be_reopened(client: TestClient) -> None:
    alice, alice_headers = create_account(client, "alice")
    bob, bob_headers = create_account(client, "bob")

    request_id = _send_request(client, alice_headers, bob["id"]).json()["id"]
    response = client.post(
        f"/api/friends/requests/{request_id}/respond",
        json={"accept": False},
        headers=bob_headers,
    )
    assert response.status_code == 200
    assert response.json()["status"] == "declined"
    assert client.get("/api/friends/requests", headers=bob_headers).json()["incoming"] == []

    response = _send_request(client, bob_headers, alice["id"])
    assert response.status_code == 201
    reopened = response.json()
    assert reopened["id"] == request_id
    assert reopened["status"] == "pending"
    assert reopened["requester"]["id"] == bob["id"]
    assert reopened["addressee"]["id"] == alice["id"]


def test_friends_sorted_by_display_name(client: TestClient) -> None:
    _, alice_headers = create_account(client, "alice")
    zed, zed_headers = create_account(client, "zed")
    bob, bob_headers = create_account(client, "bob")

    befriend(client, alice_headers, zed_headers, zed["id"])
    befriend(client, alice_headers, bob_headers, bob["id"])

    friends = client.get("/api/friends", headers=alice_headers).json()
    assert [friend["username"] for friend in friends] == ["bob", "zed"]


def test_remove_friend(client: TestClient) -> None:
    alice, alice_headers = create_account(client, "alice")
    bob, bob_headers = create_account(client, "bob")
    befriend(client, alice_headers, bob_headers, bob["id"])

    response = client.delete(f"/api/friends/{bob['id']}", headers=alice_headers)
    assert response.status_code == 204
    assert client.get("/api/friends", headers=bob_headers).json() == []
    assert client.delete(f"/api/friends/{alice['id']}", headers=bob_headers).status_code == 404


def test_open_chat_requires_friendship(client: TestClient) -> None:
    _, alice_headers = create_account(client, "alice")
    bob, bob_headers = create_account(client, "bob")

    response = client.post("/api/chats", json={"friend_id": bob["id"]}, headers=alice_headers)
    assert response.status_code == 403

    chat_id = befriend(client, alice_headers, bob_headers, bob["id"])
    reopened = client.post("/api/chats", json={"friend_id": bob["id"]}, headers=alice_headers)
    assert reopened.json()["id"] == chat_id


def test_removed_friend_cannot_write_to_old_chat(client: TestClient) -> None:
    alice, alice_headers = create_account(client, "alice")
    bob, bob_headers = create_account(client, "bob")
    chat_id = befriend(client, alice_headers, bob_headers, bob["id"])

    sent = client.post(
        f"/api/chats/{chat_id}/messages", json={"content": "before"}, headers=alice_headers
    )
    assert sent.status_code == 201
    message_id = sent.json()["id"]

    assert client.delete(f"/api/friends/{alice['id']}", headers=bob_headers).status_code == 204

    response = client.post(
        f"/api/chats/{chat_id}/messages", json={"content": "after"}, headers=alice_headers
    )
    assert response.status_code == 403
    response = client.post(
        "/api/calls", json={"chat_id": chat_id, "offer": {"sdp": "v=0"}}, headers=alice_headers
    )
    assert response.status_code == 403
    response = client.post(
        f"/api/chats/messages/{message_id}/reactions", json={"emoji": "👍"}, headers=bob_headers
    )
    assert response.status_code == 403

    history = client.get(f"/api/chats/{chat_id}/messages", headers=bob_headers)
    assert [message["content"] for message in history.json()] == ["before"]
    assert client.get(f"/api/chats/{chat_id}", headers=bob_headers).json()["unread_count"] == 0
    assert client.get("/api/chats/unread", headers=bob_headers).json()["total"] == 0
