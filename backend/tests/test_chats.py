"""Chat messages, read receipts, unread counters, reactions and themes."""

from __future__ import annotations

from fastapi.testclient import TestClient

from app.config import get_settings

from helpers import befriend, create_account


def _setup_chat(client: TestClient):
    alice, alice_headers = create_account(client, "alice")
    bob, bob_headers = create_account(client, "bob")
    chat_id = befriend(client, alice_headers, bob_headers, bob["id"])
    return alice, alice_headers, bob, bob_headers, chat_id


def _send(client: TestClient, chat_id: int, headers: dict[str, str], content: str, **extra):
    response = client.post(
        f"/api/chats/{chat_id}/messages", json={"content": content, **extra}, headers=headers
    )
    assert response.status_code == 201, response.text
    return response.json()


def test_send_and_list_messages(client: TestClient) -> None:
    alice, alice_headers, bob, bob_headers, chat_id = _setup_chat(client)

    first = _send(client, chat_id, alice_headers, "  Hello Bob  ")
    assert first["content"] == "Hello Bob"
    assert first["sender_id"] == alice["id"]
    assert first["recipient_id"] == bob["id"]
    reply = _send(client, chat_id, bob_headers, "Hi!", reply_to_id=first["id"])
    assert reply["reply_to"] == {"id": first["id"], "sender_id": alice["id"], "content": "Hello Bob"}

    history = client.get(f"/api/chats/{chat_id}/messages", headers=bob_headers).json()
    assert [message["id"] for message in history] == [first["id"], reply["id"]]

    page = client.get(
        f"/api/chats/{chat_id}/messages", params={"before_id": reply["id"]}, headers=bob_headers
    ).json()
    assert [message["id"] for message in page] == [first["id"]]


def test_send_message_validation(client: TestClient, monkeypatch) -> None:
    _, alice_headers, _, _, chat_id = _setup_chat(client)
    _, carol_headers = create_account(client, "carol")

    response = client.post(f"/api/chats/{chat_id}/messages", json={"content": "   "}, headers=alice_headers)
    assert response.status_code == 400

    monkeypatch.setattr(get_settings(), "chat_message_max_length", 5)
    response = client.post(
        f"/api/chats/{chat_id}/messages", json={"content": "too long"}, headers=alice_headers
    )
    assert response.status_code == 400

    response = client.post(f"/api/chats/{chat_id}/messages", json={"content": "hi"}, headers=carol_headers)
    assert response.status_code == 403

    response = client.post(
        f"/api/chats/{chat_id}/messages",
        json={"content": "hi", "reply_to_id": 9999},
        headers=alice_headers,
    )
    assert response.status_code == 400


def test_chat_list_reports_last_message_and_unread(client: TestClient) -> None:
    alice, alice_headers, bob, bob_headers, chat_id = _setup_chat(client)
    _send(client, chat_id, alice_headers, "one")
    last = _send(client, chat_id, alice_headers, "two")

    chats = client.get("/api/chats", headers=bob_headers).json()
    assert chats[0]["id"] == chat_id
    assert chats[0]["last_message"]["id"] == last["id"]
    assert chats[0]["unread_count"] == 2

    unread = client.get("/api/chats/unread", headers=bob_headers).json()
    assert unread == {"counts": {str(alice["id"]): 2}, "total": 2}
    assert client.get("/api/chats/unread", headers=alice_headers).json() == {"counts": {}, "total": 0}

    receipt = client.post(f"/api/chats/{chat_id}/read", headers=bob_headers).json()
    assert receipt["updated"] == 2
    assert client.get("/api/chats/unread", headers=bob_headers).json()["total"] == 0

    history = client.get(f"/api/chats/{chat_id}/messages", headers=alice_headers).json()
    assert all(message["read_at"] is not None for message in history)


def test_chat_list_orders_by_recent_activity(client: TestClient) -> None:
    _, alice_headers, _, _, bob_chat = _setup_chat(client)
    carol, carol_headers = create_account(client, "carol")
    carol_chat = befriend(client, alice_headers, carol_headers, carol["id"])

    _send(client, carol_chat, alice_headers, "first")
    _send(client, bob_chat, alice_headers, "second")

    chats = client.get("/api/chats", headers=alice_headers).json()
    assert [chat["id"] for chat in chats] == [bob_chat, carol_chat]


def test_edit_message(client: TestClient) -> None:
    _, alice_headers, _, bob_headers, chat_id = _setup_chat(client)
    message = _send(client, chat_id, alice_headers, "helo")

    assert client.patch(
        f"/api/chats/messages/{message['id']}", json={"content": "nope"}, headers=bob_headers
    ).status_code == 403

    response = client.patch(
        f"/api/chats/messages/{message['id']}", json={"content": "hello"}, headers=alice_headers
    )
    assert response.status_code == 200
    body = response.json()
    assert body["content"] == "hello"
    assert body["is_edited"] is True
    assert body["edited_at"] is not None


def test_delete_message_for_me_and_for_everyone(client: TestClient) -> None:
    _, alice_headers, _, bob_headers, chat_id = _setup_chat(client)
    first = _send(client, chat_id, alice_headers, "first")
    second = _send(client, chat_id, alice_headers, "second")

    for _ in range(2):
        response = client.delete(f"/api/chats/messages/{first['id']}", headers=bob_headers)
        assert response.status_code == 204
    bob_view = client.get(f"/api/chats/{chat_id}/messages", headers=bob_headers).json()
    assert [message["id"] for message in bob_view] == [second["id"]]
    alice_view = client.get(f"/api/chats/{chat_id}/messages", headers=alice_headers).json()
    assert len(alice_view) == 2

    response = client.delete(
        f"/api/chats/messages/{second['id']}", params={"for_everyone": True}, headers=bob_headers
    )
    assert response.status_code == 403

    response = client.delete(
        f"/api/chats/messages/{second['id']}", params={"for_everyone": True}, headers=alice_headers
    )
    assert response.status_code == 204
    alice_view = client.get(f"/api/chats/{chat_id}/messages", headers=alice_headers).json()
    assert [message["id"] for message in alice_view] == [first["id"]]


def test_hidden_messages_do_not_count_as_unread(client: TestClient) -> None:
    _, alice_headers, _, bob_headers, chat_id = _setup_chat(client)
    message = _send(client, chat_id, alice_headers, "secret")

    client.delete(f"/api/chats/messages/{message['id']}", headers=bob_headers)
    assert client.get("/api/chats/unread", headers=bob_headers).json()["total"] == 0


def test_clear_chat(client: TestClient) -> None:
    _, alice_headers, _, bob_headers, chat_id = _setup_chat(client)
    _send(client, chat_id, alice_headers, "one")
    _send(client, chat_id, bob_headers, "two")

    response = client.delete(f"/api/chats/{chat_id}/messages", headers=bob_headers)
    assert response.status_code == 204
    assert client.get(f"/api/chats/{chat_id}/messages", headers=alice_headers).json() == []
    chat = client.get(f"/api/chats/{chat_id}", headers=alice_headers).json()
    assert chat["last_message"] is None


def test_voice_and_image_messages(client: TestClient) -> None:
    _, alice_headers, _, bob_headers, chat_id = _setup_chat(client)

    response = client.post(
        f"/api/chats/{chat_id}/voice",
        files={"audio": ("note.webm", b"voice-bytes", "audio/webm")},
        headers=alice_headers,
    )
    assert response.status_code == 201, response.text
    voice = response.json()
    assert voice["content"] == "🎤 Voice message"
    assert voice["audio_url"].startswith("/api/media/voice/")

    media = client.get(voice["audio_url"])
    assert media.status_code == 200
    assert media.content == b"voice-bytes"

    response = client.post(
        f"/api/chats/{chat_id}/images",
        files={"image": ("pic.png", b"image-bytes", "image/png")},
        headers=bob_headers,
    )
    assert response.status_code == 201, response.text
    assert response.json()["content"] == "📷 Photo"
    assert response.json()["image_url"].startswith("/api/media/images/")

    response = client.post(
        f"/api/chats/{chat_id}/images",
        data={"caption": "Look!"},
        files={"image": ("pic.png", b"image-bytes", "image/png")},
        headers=bob_headers,
    )
    assert response.json()["content"] == "Look!"

    response = client.post(
        f"/api/chats/{chat_id}/images",
        files={"image": ("doc.pdf", b"%PDF", "application/pdf")},
        headers=bob_headers,
    )
    assert response.status_code == 400


def test_reactions(client: TestClient) -> None:
    alice, alice_headers, bob, bob_headers, chat_id = _setup_chat(client)
    _, carol_headers = create_account(client, "carol")
    message = _send(client, chat_id, alice_headers, "react to me")
    url = f"/api/chats/messages/{message['id']}/reactions"

    first = client.post(url, json={"emoji": "👍"}, headers=alice_headers).json()
    assert first["changed"] is True and first["added"] is True

    duplicate = client.post(url, json={"emoji": "👍"}, headers=alice_headers).json()
    assert duplicate["changed"] is False and duplicate["added"] is False

    client.post(url, json={"emoji": "❤️"}, headers=alice_headers)
    client.post(url, json={"emoji": "❤️"}, headers=bob_headers)

    summary = client.get(url, headers=bob_headers).json()
    assert [(entry["emoji"], entry["count"]) for entry in summary] == [("❤️", 2), ("👍", 1)]
    assert summary[0]["reacted"] is True
    assert summary[1]["reacted"] is False
    assert summary[0]["user_ids"] == [alice["id"], bob["id"]]

    assert client.post(url, json={"emoji": "👍"}, headers=carol_headers).status_code == 403

    toggled = client.post(f"{url}/toggle", json={"emoji": "❤️"}, headers=bob_headers).json()
    assert toggled["added"] is False
    toggled = client.post(f"{url}/toggle", json={"emoji": "🔥"}, headers=bob_headers).json()
    assert toggled["added"] is True

    removed = client.delete(url, params={"emoji": "👍"}, headers=alice_headers).json()
    assert removed["changed"] is True
    assert {entry["emoji"] for entry in removed["reactions"]} == {"❤️", "🔥"}

    per_chat = client.get(f"/api/chats/{chat_id}/reactions", headers=alice_headers).json()
    assert set(per_chat) == {str(message["id"])}


def test_reaction_ties_keep_first_reaction_order(client: TestClient) -> None:
    _, alice_headers, _, _, chat_id = _setup_chat(client)
    message = _send(client, chat_id, alice_headers, "ties")
    url = f"/api/chats/messages/{message['id']}/reactions"

    for emoji in ("😂", "👍", "🎉"):
        client.post(url, json={"emoji": emoji}, headers=alice_headers)

    summary = client.get(url, headers=alice_headers).json()
    assert [entry["emoji"] for entry in summary] == ["😂", "👍", "🎉"]


def test_chat_themes(client: TestClient) -> None:
    _, alice_headers, _, bob_headers, chat_id = _setup_chat(client)

    catalog = client.get("/api/chats/themes").json()
    keys = [option["key"] for option in catalog]
    assert len(keys) == 12
    assert keys[0] == "default"
    assert "galaxy" in keys

    assert client.get(f"/api/chats/{chat_id}/theme", headers=alice_headers).json()["theme_key"] == "default"

    response = client.put(f"/api/chats/{chat_id}/theme", json={"theme_key": "ocean"}, headers=alice_headers)
    assert response.status_code == 200
    assert response.json() == {"chat_id": chat_id, "theme_key": "ocean"}
    client.put(f"/api/chats/{chat_id}/theme", json={"theme_key": "neon"}, headers=alice_headers)

    assert client.get(f"/api/chats/{chat_id}/theme", headers=alice_headers).json()["theme_key"] == "neon"
    assert client.get(f"/api/chats/{chat_id}/theme", headers=bob_headers).json()["theme_key"] == "default"

    response = client.put(f"/api/chats/{chat_id}/theme", json={"theme_key": "plaid"}, headers=alice_headers)
    assert response.status_code == 400
