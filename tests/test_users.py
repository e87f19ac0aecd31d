"""
Tests for the /me endpoints: profile, consents, stats, biometric flag and cache.
"""


class TestProfile:
    def test_read_profile(self, client, login):
        user, headers = login("+79990000001", "Boris")

        response = client.get("/me", headers=headers)

        assert response.status_code == 200
        assert response.json()["id"] == user["id"]
        assert response.json()["name"] == "Boris"

    def test_partial_update_keeps_other_fields(self, client, login):
        _, headers = login("+79990000001", "Boris")

        response = client.patch("/me", json={"status": "На связи"}, headers=headers)

        assert response.status_code == 200
        assert response.json()["status"] == "На связи"
        assert response.json()["name"] == "Boris"

    def test_consent_stamps_date(self, client, login):
        _, headers = login("+79990000001")

        data = client.patch("/me", json={"gdpr_consent": True, "fz152_consent": True}, headers=headers).json()

        assert data["gdpr_consent"] is True
        assert data["gdpr_consent_date"] is not None
        assert data["fz152_consent_date"] is not None
        assert data["marketing_consent"] is False

    def test_online_status(self, client, login):
        _, headers = login("+79990000001")

        response = client.put("/me/online", json={"online_status": "recently"}, headers=headers)
        assert response.json()["online_status"] == "recently"

        response = client.put("/me/online", json={"online_status": "away"}, headers=headers)
        assert response.status_code == 422


class TestStats:
    def test_counts_chats_messages_media_and_favorites(self, client, login):
        me, headers = login("+79990000001")
        other, _ = login("+79990000002")
        chat = client.post("/chats", json={"type": "private", "member_ids": [other["id"]]}, headers=headers).json()

        text = client.post(f"/chats/{chat['id']}/messages", json={"content": "hi"}, headers=headers).json()
        client.post(f"/chats/{chat['id']}/messages", json={"content": "img.png", "type": "image"}, headers=headers)
        client.post(f"/messages/{text['id']}/favorite", headers=headers)

        stats = client.get("/me/stats", headers=headers).json()

        assert stats == {"chats_count": 1, "messages_count": 2, "media_count": 1, "favorites_count": 1}


class TestSecurityAndCache:
    def test_biometric_flag_defaults_off(self, client, login):
        _, headers = login("+79990000001")

        assert client.get("/me/security/biometric", headers=headers).json() == {"enabled": False}

        client.put("/me/security/biometric", json={"enabled": True}, headers=headers)
        assert client.get("/me/security/biometric", headers=headers).json() == {"enabled": True}

    def test_cache_size_and_clear(self, client, login):
        _, headers = login("+79990000001")
        assert client.get("/me/data/cache", headers=headers).json() == {"entries": 0, "size_bytes": 0}

        client.post("/me/sync/favorites", json={"message_id": "m1", "content": "saved"}, headers=headers)

        info = client.get("/me/data/cache", headers=headers).json()
        assert info["entries"] == 1
        assert info["size_bytes"] > 0

        cleared = client.delete("/me/data/cache", headers=headers).json()
        assert cleared == {"entries": 0, "size_bytes": 0}

    def test_clearing_cache_keeps_biometric_flag(self, client, login):
        _, headers = login("+79990000001")
        client.put("/me/security/biometric", json={"enabled": True}, headers=headers)

        client.delete("/me/data/cache", headers=headers)

        assert client.get("/me/security/biometric", headers=headers).json() == {"enabled": True}
