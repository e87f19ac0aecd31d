"""
Tests for stories: visibility, expiry, views and replies.
"""

from datetime import timedelta

import pytest

from messenger.crud.stories import create_story, get_active_stories
from messenger.crud.users import create_user
from messenger.crud.chats import create_chat
from messenger.crud.social import add_contact
from messenger.utils import utcnow


@pytest.fixture
def friends(client, login):
    """Alice and Bob share a private chat; Carol knows nobody."""
    alice, alice_headers = login("+79990000001", "Alice")
    bob, bob_headers = login("+79990000002", "Bob")
    carol, carol_headers = login("+79990000003", "Carol")
    client.post("/chats", json={"type": "private", "member_ids": [bob["id"]]}, headers=alice_headers)
    return {
        "alice": alice, "alice_headers": alice_headers,
        "bob": bob, "bob_headers": bob_headers,
        "carol": carol, "carol_headers": carol_headers,
    }


def publish(client, headers, **body):
    payload = {"media_uri": "file:///story.jpg", "media_type": "image", **body}
    response = client.post("/stories", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


class TestVisibility:
    def test_public_story_seen_by_chat_partner_only(self, client, friends):
        story = publish(client, friends["alice_headers"])

        assert [s["id"] for s in client.get("/stories", headers=friends["bob_headers"]).json()] == [story["id"]]
        assert client.get("/stories", headers=friends["carol_headers"]).json() == []

    def test_own_stories_always_visible(self, client, friends):
        story = publish(client, friends["carol_headers"], privacy="custom")

        assert [s["id"] for s in client.get("/stories", headers=friends["carol_headers"]).json()] == [story["id"]]

    def test_contacts_privacy_requires_contact(self, client, friends):
        publish(client, friends["alice_headers"], privacy="contacts")
        assert client.get("/stories", headers=friends["bob_headers"]).json() == []

        client.post("/contacts", json={"contact_user_id": friends["alice"]["id"]}, headers=friends["bob_headers"])
        assert len(client.get("/stories", headers=friends["bob_headers"]).json()) == 1

    def test_custom_privacy_uses_allowed_list(self, client, friends):
        publish(client, friends["alice_headers"], privacy="custom", allowed_user_ids=[friends["bob"]["id"]])
        publish(client, friends["bob_headers"], privacy="custom", allowed_user_ids=[])

        assert len(client.get("/stories", headers=friends["bob_headers"]).json()) == 2
        alice_sees = client.get("/stories", headers=friends["alice_headers"]).json()
        assert all(s["user_id"] == friends["alice"]["id"] for s in alice_sees)


class TestExpiry:
    def test_story_expires_after_a_day(self, db):
        alice = create_user(db, "+79990000001")
        bob = create_user(db, "+79990000002")
        create_chat(db, "private", [alice.id, bob.id], owner_id=alice.id)
        published = utcnow() - timedelta(hours=25)
        create_story(db, alice.id, "file:///old.jpg", "image", now=published)
        fresh = create_story(db, alice.id, "file:///new.jpg", "image")

        visible = get_active_stories(db, bob.id)

        assert [s.id for s in visible] == [fresh.id]
        assert fresh.expires_at - fresh.created_at == timedelta(hours=24)

    def test_close_friends_follow_contacts(self, db):
        alice = create_user(db, "+79990000001")
        bob = create_user(db, "+79990000002")
        create_chat(db, "private", [alice.id, bob.id], owner_id=alice.id)
        create_story(db, alice.id, "file:///cf.jpg", "image", privacy="close_friends")

        assert get_active_stories(db, bob.id) == []
        add_contact(db, bob.id, contact_user_id=alice.id)
        assert len(get_active_stories(db, bob.id)) == 1


class TestViewsAndReplies:
    def test_each_viewer_counted_once(self, client, friends):
        story = publish(client, friends["alice_headers"])

        client.post(f"/stories/{story['id']}/view", headers=friends["bob_headers"])
        client.post(f"/stories/{story['id']}/view", headers=friends["bob_headers"])

        mine = client.get("/stories", headers=friends["alice_headers"]).json()
        assert mine[0]["views_count"] == 1

    def test_reply_lands_in_private_chat(self, client, friends):
        story = publish(client, friends["carol_headers"])

        response = client.post(
            f"/stories/{story['id']}/reply", json={"text": "Красиво!"}, headers=friends["bob_headers"]
        )

        assert response.status_code == 201
        reply = response.json()
        assert reply["metadata"] == {"story_id": story["id"], "story_reply": True}
        carol_chats = client.get("/chats", headers=friends["carol_headers"]).json()
        assert [c["id"] for c in carol_chats] == [reply["chat_id"]]
        assert carol_chats[0]["last_message"] == "Красиво!"

    def test_cannot_reply_to_own_story(self, client, friends):
        story = publish(client, friends["alice_headers"])

        response = client.post(f"/stories/{story['id']}/reply", json={"text": "me"}, headers=friends["alice_headers"])
        assert response.status_code == 400

    def test_unknown_story_is_404(self, client, friends):
        assert client.post("/stories/nope/view", headers=friends["bob_headers"]).status_code == 404

    def test_hidden_story_cannot_be_viewed_or_answered(self, client, friends):
        story = publish(client, friends["alice_headers"], privacy="custom", allowed_user_ids=[friends["bob"]["id"]])
        carol = friends["carol_headers"]

        assert client.post(f"/stories/{story['id']}/view", headers=carol).status_code == 404
        assert client.post(f"/stories/{story['id']}/reply", json={"text": "hi"}, headers=carol).status_code == 404
        assert client.get("/chats", headers=carol).json() == []
        assert client.post(f"/stories/{story['id']}/view", headers=friends["bob_headers"]).status_code == 200

    def test_expired_story_cannot_be_viewed_or_answered(self, client, friends, db):
        story = create_story(
            db, friends["alice"]["id"], "file:///old.jpg", "image", now=utcnow() - timedelta(hours=25)
        )
        bob = friends["bob_headers"]

        assert client.post(f"/stories/{story.id}/view", headers=bob).status_code == 404
        assert client.post(f"/stories/{story.id}/reply", json={"text": "hi"}, headers=bob).status_code == 404

    def test_refused_reply_leaves_no_chat(self, client, friends):
        story = publish(client, friends["alice_headers"])
        client.post("/blocks", json={"user_id": friends["carol"]["id"]}, headers=friends["alice_headers"])

        response = client.post(
            f"/stories/{story['id']}/reply", json={"text": "hi"}, headers=friends["carol_headers"]
        )

        assert response.status_code == 403
        assert client.get("/chats", headers=friends["carol_headers"]).json() == []
