"""Posts, likes, comments, follows and stories."""

from __future__ import annotations

from datetime import timedelta

from fastapi.testclient import TestClient

from app.core.clock import utcnow
from app.models import Story

from helpers import create_account


def _create_post(client: TestClient, headers: dict[str, str], caption: str | None = None, image: bool = False):
    files = {"image": ("photo.jpg", b"jpeg-bytes", "image/jpeg")} if image else None
    data = {"caption": caption} if caption is not None else None
    response = client.post("/api/posts", data=data, files=files, headers=headers)
    return response


def test_create_and_list_posts(client: TestClient) -> None:
    alice, alice_headers = create_account(client, "alice")
    _, bob_headers = create_account(client, "bob")

    first = _create_post(client, alice_headers, caption="First!").json()
    second = _create_post(client, bob_headers, image=True)
    assert second.status_code == 201, second.text
    second = second.json()
    assert second["caption"] is None
    assert second["image_url"].startswith("/api/media/posts/")

    feed = client.get("/api/posts", headers=alice_headers).json()
    assert [post["id"] for post in feed] == [second["id"], first["id"]]
    assert feed[1]["author"]["id"] == alice["id"]

    mine = client.get(f"/api/posts/user/{alice['id']}", headers=bob_headers).json()
    assert [post["id"] for post in mine] == [first["id"]]


def test_post_requires_caption_or_image(client: TestClient) -> None:
    _, headers = create_account(client, "alice")

    assert _create_post(client, headers).status_code == 400
    assert _create_post(client, headers, caption="   ").status_code == 400


def test_update_and_delete_post_owner_only(client: TestClient) -> None:
    _, alice_headers = create_account(client, "alice")
    _, bob_headers = create_account(client, "bob")
    post = _create_post(client, alice_headers, caption="draft").json()

    assert client.patch(f"/api/posts/{post['id']}", json={"caption": "x"}, headers=bob_headers).status_code == 403
    response = client.patch(f"/api/posts/{post['id']}", json={"caption": "final"}, headers=alice_headers)
    assert response.status_code == 200
    assert response.json()["caption"] == "final"

    assert client.delete(f"/api/posts/{post['id']}", headers=bob_headers).status_code == 403
    assert client.delete(f"/api/posts/{post['id']}", headers=alice_headers).status_code == 204
    assert client.get("/api/posts", headers=alice_headers).json() == []
    assert client.delete(f"/api/posts/{post['id']}", headers=alice_headers).status_code == 404


def test_likes_are_unique_per_user(client: TestClient) -> None:
    _, alice_headers = create_account(client, "alice")
    _, bob_headers = create_account(client, "bob")
    post = _create_post(client, alice_headers, caption="like me").json()

    for _ in range(2):
        result = client.post(f"/api/posts/{post['id']}/like", headers=bob_headers).json()
        assert result == {"post_id": post["id"], "is_liked": True, "likes_count": 1}

    feed = client.get("/api/posts", headers=bob_headers).json()
    assert feed[0]["likes_count"] == 1
    assert feed[0]["is_liked"] is True
    assert client.get("/api/posts", headers=alice_headers).json()[0]["is_liked"] is False

    result = client.delete(f"/api/posts/{post['id']}/like", headers=bob_headers).json()
    assert result["likes_count"] == 0
    assert result["is_liked"] is False


def test_comments(client: TestClient) -> None:
    _, alice_headers = create_account(client, "alice")
    bob, bob_headers = create_account(client, "bob")
    post = _create_post(client, alice_headers, caption="discuss").json()

    assert client.post(
        f"/api/posts/{post['id']}/comments", json={"content": "  "}, headers=bob_headers
    ).status_code == 400

    first = client.post(f"/api/posts/{post['id']}/comments", json={"content": "one"}, headers=bob_headers)
    assert first.status_code == 201
    assert first.json()["author"]["id"] == bob["id"]
    client.post(f"/api/posts/{post['id']}/comments", json={"content": "two"}, headers=alice_headers)

    comments = client.get(f"/api/posts/{post['id']}/comments", headers=alice_headers).json()
    assert [comment["content"] for comment in comments] == ["one", "two"]
    assert client.get("/api/posts", headers=alice_headers).json()[0]["comments_count"] == 2


def test_follows(client: TestClient) -> None:
    alice, alice_headers = create_account(client, "alice")
    bob, bob_headers = create_account(client, "bob")

    assert client.post(f"/api/follows/{alice['id']}", headers=alice_headers).status_code == 400

    for _ in range(2):
        response = client.post(f"/api/follows/{bob['id']}", headers=alice_headers)
        assert response.json() == {"user_id": bob["id"], "is_following": True}

    assert client.get(f"/api/follows/{bob['id']}", headers=alice_headers).json()["is_following"] is True
    assert client.get(f"/api/follows/{alice['id']}", headers=bob_headers).json()["is_following"] is False

    counts = client.get(f"/api/follows/{bob['id']}/counts", headers=alice_headers).json()
    assert counts == {"user_id": bob["id"], "followers": 1, "following": 0}
    counts = client.get(f"/api/follows/{alice['id']}/counts", headers=alice_headers).json()
    assert counts == {"user_id": alice["id"], "followers": 0, "following": 1}

    client.delete(f"/api/follows/{bob['id']}", headers=alice_headers)
    assert client.get(f"/api/follows/{bob['id']}", headers=alice_headers).json()["is_following"] is False


def _create_story(client: TestClient, headers: dict[str, str], media_type: str = "image"):
    content_type = "image/png" if media_type == "image" else "video/mp4"
    return client.post(
        "/api/stories",
        data={"media_type": media_type},
        files={"media": ("story.bin", b"story-bytes", content_type)},
        headers=headers,
    )


def test_stories_grouped_by_author(client: TestClient) -> None:
    alice, alice_headers = create_account(client, "alice")
    bob, bob_headers = create_account(client, "bob")

    response = _create_story(client, alice_headers)
    assert response.status_code == 201, response.text
    alice_first = response.json()
    assert alice_first["media_type"] == "image"
    bob_story = _create_story(client, bob_headers, "video").json()
    alice_second = _create_story(client, alice_headers).json()

    groups = client.get("/api/stories", headers=bob_headers).json()
    assert [group["author"]["id"] for group in groups] == [alice["id"], bob["id"]]
    assert [story["id"] for story in groups[0]["stories"]] == [alice_second["id"], alice_first["id"]]
    assert [story["id"] for story in groups[1]["stories"]] == [bob_story["id"]]

    mine = client.get(f"/api/stories/user/{alice['id']}", headers=bob_headers).json()
    assert [story["id"] for story in mine] == [alice_first["id"], alice_second["id"]]


def test_story_media_type_must_match_upload(client: TestClient) -> None:
    _, headers = create_account(client, "alice")

    response = client.post(
        "/api/stories",
        data={"media_type": "video"},
        files={"media": ("story.png", b"png", "image/png")},
        headers=headers,
    )
    assert response.status_code == 400


def test_expired_stories_are_hidden(client: TestClient, session_factory) -> None:
    alice, headers = create_account(client, "alice")
    story = _create_story(client, headers).json()

    with session_factory() as session:
        row = session.get(Story, story["id"])
        row.expires_at = utcnow() - timedelta(minutes=1)
        session.commit()

    assert client.get("/api/stories", headers=headers).json() == []
    assert client.get(f"/api/stories/user/{alice['id']}", headers=headers).json() == []


def test_delete_story_owner_only(client: TestClient) -> None:
    _, alice_headers = create_account(client, "alice")
    _, bob_headers = create_account(client, "bob")
    story = _create_story(client, alice_headers).json()

    assert client.delete(f"/api/stories/{story['id']}", headers=bob_headers).status_code == 403
    assert client.delete(f"/api/stories/{story['id']}", headers=alice_headers).status_code == 204
    assert client.delete(f"/api/stories/{story['id']}", headers=alice_headers).status_code == 404
