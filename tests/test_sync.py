"""
Tests for client state sync under /me/sync.

Tests cover:
- Message snapshots per chat, edits that keep identity fields
- Favorites snapshot with duplicate guard and toggle
- Anna conversations, modes and the active conversation
- Snapshots count towards /me/data/cache and are per user
"""


class TestMessageSnapshots:
    def test_replace_and_read(self, client, login):
        _, headers = login("+79990000001")
        snapshot = [{"id": "m1", "content": "hi"}, {"id": "m2", "content": "there"}]

        response = client.put("/me/sync/messages/c1", json=snapshot, headers=headers)

        assert response.status_code == 200
        cached = client.get("/me/sync/messages/c1", headers=headers).json()
        assert [m["id"] for m in cached] == ["m1", "m2"]
        assert all(m["chat_id"] == "c1" for m in cached)
        assert client.get("/me/sync/messages/other", headers=headers).json() == []

    def test_append_and_edit_keeps_identity(self, client, login):
        _, headers = login("+79990000001")
        client.post("/me/sync/messages/c1", json={"id": "m1", "content": "draft", "created_at": "t0"}, headers=headers)

        response = client.patch(
            "/me/sync/messages/c1/m1",
            json={"content": "final", "id": "hijack", "created_at": "t1"},
            headers=headers,
        )

        assert response.json() == {"id": "m1", "content": "final", "created_at": "t0", "chat_id": "c1"}

    def test_edit_or_remove_unknown_is_404(self, client, login):
        _, headers = login("+79990000001")

        assert client.patch("/me/sync/messages/c1/nope", json={"content": "x"}, headers=headers).status_code == 404
        assert client.delete("/me/sync/messages/c1/nope", headers=headers).status_code == 404

    def test_clear_one_chat(self, client, login):
        _, headers = login("+79990000001")
        client.put("/me/sync/messages/c1", json=[{"id": "m1"}], headers=headers)
        client.put("/me/sync/messages/c2", json=[{"id": "m2"}], headers=headers)

        client.delete("/me/sync/messages", params={"chat_id": "c1"}, headers=headers)

        assert client.get("/me/sync/messages/c1", headers=headers).json() == []
        assert len(client.get("/me/sync/messages/c2", headers=headers).json()) == 1


class TestFavoritesSnapshot:
    def test_same_message_added_once(self, client, login):
        _, headers = login("+79990000001")
        body = {"message_id": "m1", "content": "keep"}

        first = client.post("/me/sync/favorites", json=body, headers=headers).json()
        second = client.post("/me/sync/favorites", json=body, headers=headers).json()

        assert first["id"] == second["id"]
        assert len(client.get("/me/sync/favorites", headers=headers).json()) == 1

    def test_toggle_and_filter(self, client, login):
        _, headers = login("+79990000001")
        client.post("/me/sync/favorites", json={"type": "link", "content": "https://example.org"}, headers=headers)

        on = client.post("/me/sync/favorites/toggle", json={"message": {"id": "m1", "content": "x"}}, headers=headers)
        assert on.json() == {"is_favorite": True}
        assert len(client.get("/me/sync/favorites", params={"type": "message"}, headers=headers).json()) == 1

        off = client.post("/me/sync/favorites/toggle", json={"message": {"id": "m1"}}, headers=headers)
        assert off.json() == {"is_favorite": False}
        assert [f["type"] for f in client.get("/me/sync/favorites", headers=headers).json()] == ["link"]


class TestAnnaSnapshot:
    def test_conversation_mode_and_active(self, client, login):
        _, headers = login("+79990000001")
        client.put(
            "/me/sync/anna/conv-1",
            json={"mode": "tech", "turns": [{"role": "user", "content": "Q"}]},
            headers=headers,
        )
        client.post("/me/sync/anna/conv-1/turns", json={"role": "model", "content": "A"}, headers=headers)

        state = client.put("/me/sync/anna/active", json={"conversation_id": "conv-1"}, headers=headers).json()

        assert state["modes"] == {"conv-1": "tech"}
        assert [t["content"] for t in state["conversations"]["conv-1"]] == ["Q", "A"]
        assert state["active_conversation_id"] == "conv-1"

    def test_clear(self, client, login):
        _, headers = login("+79990000001")
        client.put("/me/sync/anna/conv-1", json={"turns": []}, headers=headers)

        client.delete("/me/sync/anna", headers=headers)

        assert client.get("/me/sync/anna", headers=headers).json() == {
            "conversations": {}, "modes": {}, "active_conversation_id": None,
        }


class TestCacheAccounting:
    def test_snapshots_count_towards_cache_size(self, client, login):
        _, headers = login("+79990000001")
        client.put("/me/sync/messages/c1", json=[{"id": "m1", "content": "hello"}], headers=headers)
        client.post("/me/sync/favorites", json={"message_id": "m1"}, headers=headers)

        info = client.get("/me/data/cache", headers=headers).json()
        assert info["entries"] == 2
        assert info["size_bytes"] > 0

        client.delete("/me/data/cache", headers=headers)
        assert client.get("/me/sync/messages/c1", headers=headers).json() == []

    def test_snapshots_are_per_user(self, client, login):
        _, alice = login("+79990000001")
        _, bob = login("+79990000002")
        client.put("/me/sync/messages/c1", json=[{"id": "m1"}], headers=alice)

        assert client.get("/me/sync/messages/c1", headers=bob).json() == []
        assert client.get("/me/data/cache", headers=bob).json() == {"entries": 0, "size_bytes": 0}
