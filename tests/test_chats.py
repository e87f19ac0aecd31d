"""
Tests for chats.

Tests cover:
- Creating private, group and channel chats
- Listing order, archived and soft-deleted chats
- Membership checks and member management
- Pinning
"""

import pytest


@pytest.fixture
def pair(login):
    """Two signed-in users: (alice, alice_headers, bob, bob_headers)."""
    alice, alice_headers = login("+79990000001", "Alice")
    bob, bob_headers = login("+79990000002", "Bob")
    return alice, alice_headers, bob, bob_headers


def create_chat(client, headers, chat_type, member_ids, name=None):
    response = client.post("/chats", json={"type": chat_type, "member_ids": member_ids, "name": name}, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


class TestCreateChat:
    def test_private_chat_visible_to_both(self, client, pair):
        alice, alice_headers, bob, bob_headers = pair

        chat = create_chat(client, alice_headers, "private", [bob["id"]])

        assert chat["type"] == "private"
        assert [c["id"] for c in client.get("/chats", headers=bob_headers).json()] == [chat["id"]]

    def test_private_chat_is_reused(self, client, pair):
        alice, alice_headers, bob, bob_headers = pair

        first = create_chat(client, alice_headers, "private", [bob["id"]])
        second = create_chat(client, bob_headers, "private", [alice["id"]])

        assert first["id"] == second["id"]

    def test_private_chat_needs_exactly_two_members(self, client, pair, login):
        alice, alice_headers, bob, _ = pair
        carol, _ = login("+79990000003")

        response = client.post(
            "/chats", json={"type": "private", "member_ids": [bob["id"], carol["id"]]}, headers=alice_headers
        )
        assert response.status_code == 400

    def test_unknown_member_is_404(self, client, pair):
        _, alice_headers, _, _ = pair

        response = client.post("/chats", json={"type": "group", "member_ids": ["nope"]}, headers=alice_headers)
        assert response.status_code == 404

    def test_unknown_type_is_422(self, client, pair):
        _, alice_headers, bob, _ = pair

        response = client.post("/chats", json={"type": "secret", "member_ids": [bob["id"]]}, headers=alice_headers)
        assert response.status_code == 422


class TestListChats:
    def test_private_chat_carries_other_online_status(self, client, pair):
        alice, alice_headers, bob, bob_headers = pair
        create_chat(client, alice_headers, "private", [bob["id"]])
        client.put("/me/online", json={"online_status": "offline"}, headers=bob_headers)

        chats = client.get("/chats", headers=alice_headers).json()

        assert chats[0]["other_user_online_status"] == "offline"

    def test_newest_activity_first(self, client, pair):
        alice, alice_headers, bob, _ = pair
        older = create_chat(client, alice_headers, "group", [bob["id"]], name="Older")
        newer = create_chat(client, alice_headers, "group", [bob["id"]], name="Newer")

        assert [c["id"] for c in client.get("/chats", headers=alice_headers).json()] == [newer["id"], older["id"]]

        client.post(f"/chats/{older['id']}/messages", json={"content": "bump"}, headers=alice_headers)

        chats = client.get("/chats", headers=alice_headers).json()
        assert [c["id"] for c in chats] == [older["id"], newer["id"]]
        assert chats[0]["last_message"] == "bump"

    def test_archived_hidden_unless_requested(self, client, pair):
        alice, alice_headers, bob, _ = pair
        chat = create_chat(client, alice_headers, "group", [bob["id"]], name="Team")

        client.post(f"/chats/{chat['id']}/archive", headers=alice_headers)

        assert client.get("/chats", headers=alice_headers).json() == []
        archived = client.get("/chats", params={"include_archived": True}, headers=alice_headers).json()
        assert archived[0]["is_archived"] is True

        client.post(f"/chats/{chat['id']}/unarchive", headers=alice_headers)
        assert len(client.get("/chats", headers=alice_headers).json()) == 1

    def test_deleted_chat_never_listed(self, client, pair):
        alice, alice_headers, bob, bob_headers = pair
        chat = create_chat(client, alice_headers, "group", [bob["id"]], name="Team")

        assert client.delete(f"/chats/{chat['id']}", headers=alice_headers).status_code == 200

        assert client.get("/chats", params={"include_archived": True}, headers=bob_headers).json() == []
        assert client.get(f"/chats/{chat['id']}", headers=alice_headers).status_code == 404

    def test_only_owner_deletes_group(self, client, pair):
        alice, alice_headers, bob, bob_headers = pair
        chat = create_chat(client, alice_headers, "group", [bob["id"]], name="Team")

        assert client.delete(f"/chats/{chat['id']}", headers=bob_headers).status_code == 403


class TestMembership:
    def test_non_member_cannot_read_or_write(self, client, pair, login):
        alice, alice_headers, bob, _ = pair
        _, carol_headers = login("+79990000003")
        chat = create_chat(client, alice_headers, "private", [bob["id"]])

        assert client.get(f"/chats/{chat['id']}/messages", headers=carol_headers).status_code == 403
        response = client.post(f"/chats/{chat['id']}/messages", json={"content": "hi"}, headers=carol_headers)
        assert response.status_code == 403

    def test_owner_adds_and_removes_members(self, client, pair, login):
        alice, alice_headers, bob, _ = pair
        carol, carol_headers = login("+79990000003")
        chat = create_chat(client, alice_headers, "group", [bob["id"]], name="Team")

        response = client.post(f"/chats/{chat['id']}/members", json={"user_id": carol["id"]}, headers=alice_headers)
        assert response.status_code == 201
        assert client.get(f"/chats/{chat['id']}", headers=carol_headers).status_code == 200

        duplicate = client.post(f"/chats/{chat['id']}/members", json={"user_id": carol["id"]}, headers=alice_headers)
        assert duplicate.status_code == 409

        client.delete(f"/chats/{chat['id']}/members/{carol['id']}", headers=alice_headers)
        assert client.get(f"/chats/{chat['id']}", headers=carol_headers).status_code == 403

    def test_plain_member_cannot_add_members(self, client, pair, login):
        alice, alice_headers, bob, bob_headers = pair
        carol, _ = login("+79990000003")
        chat = create_chat(client, alice_headers, "group", [bob["id"]], name="Team")

        response = client.post(f"/chats/{chat['id']}/members", json={"user_id": carol["id"]}, headers=bob_headers)
        assert response.status_code == 403

    def test_member_may_leave(self, client, pair):
        alice, alice_headers, bob, bob_headers = pair
        chat = create_chat(client, alice_headers, "group", [bob["id"]], name="Team")

        assert client.delete(f"/chats/{chat['id']}/members/{bob['id']}", headers=bob_headers).status_code == 200
        assert client.get("/chats", headers=bob_headers).json() == []

    def test_only_admins_post_in_channels(self, client, pair):
        alice, alice_headers, bob, bob_headers = pair
        channel = create_chat(client, alice_headers, "channel", [bob["id"]], name="News")

        ok = client.post(f"/chats/{channel['id']}/messages", json={"content": "news"}, headers=alice_headers)
        denied = client.post(f"/chats/{channel['id']}/messages", json={"content": "hey"}, headers=bob_headers)

        assert ok.status_code == 201
        assert denied.status_code == 403


class TestPins:
    def test_pinned_chats_listed_first(self, client, pair):
        alice, alice_headers, bob, _ = pair
        first = create_chat(client, alice_headers, "group", [bob["id"]], name="First")
        create_chat(client, alice_headers, "group", [bob["id"]], name="Second")

        client.post(f"/chats/{first['id']}/pin", headers=alice_headers)

        chats = client.get("/chats", headers=alice_headers).json()
        assert chats[0]["id"] == first["id"]
        assert chats[0]["is_pinned"] is True
        assert chats[1]["is_pinned"] is False

    def test_pin_is_idempotent_and_orders_increase(self, client, pair):
        alice, alice_headers, bob, _ = pair
        a = create_chat(client, alice_headers, "group", [bob["id"]], name="A")
        b = create_chat(client, alice_headers, "group", [bob["id"]], name="B")

        first = client.post(f"/chats/{a['id']}/pin", headers=alice_headers).json()
        again = client.post(f"/chats/{a['id']}/pin", headers=alice_headers).json()
        second = client.post(f"/chats/{b['id']}/pin", headers=alice_headers).json()

        assert first == again
        assert second["order"] == first["order"] + 1
        assert [p["chat_id"] for p in client.get("/chats/pinned", headers=alice_headers).json()] == [b["id"], a["id"]]

        client.delete(f"/chats/{b['id']}/pin", headers=alice_headers)
        assert [p["chat_id"] for p in client.get("/chats/pinned", headers=alice_headers).json()] == [a["id"]]
