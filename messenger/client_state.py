"""
Client-side state stores.

In-memory, last-write-wins caches of messages, favorites and Anna
conversations. Each store can be persisted as one JSON blob through a
KeyValueStore under the owning user's cache prefix.
"""

import logging
import uuid
from typing import Any, Optional

from messenger.kvstore import KeyValueStore, user_cache_prefix
from messenger.utils import utcnow

logger = logging.getLogger(__name__)

IMMUTABLE_MESSAGE_FIELDS = ("id", "chat_id", "created_at")


class _PersistedStore:
    name = ""

    def __init__(self, kv: KeyValueStore, user_id: str):
        self.kv = kv
        self.user_id = user_id

    @property
    def key(self) -> str:
        return user_cache_prefix(self.user_id) + self.name

    def dump(self) -> Any:
        raise NotImplementedError

    def restore(self, data: Any) -> None:
        raise NotImplementedError

    def persist(self) -> None:
        self.kv.set(self.key, self.dump())

    def load(self) -> None:
        data = self.kv.get(self.key)
        if data is not None:
            self.restore(data)
            logger.debug(f"Loaded {self.name} cache for {self.user_id}")


class MessageCache(_PersistedStore):
    """Messages per chat, in insertion order."""

    name = "messages"

    def __init__(self, kv: KeyValueStore, user_id: str):
        super().__init__(kv, user_id)
        self.chats: dict[str, list[dict]] = {}

    def get(self, chat_id: str) -> list[dict]:
        return list(self.chats.get(chat_id, []))

    def set(self, chat_id: str, messages: list[dict]) -> None:
        self.chats[chat_id] = [dict(m) for m in messages]

    def add(self, chat_id: str, message: dict) -> None:
        self.chats.setdefault(chat_id, []).append(dict(message, chat_id=chat_id))

    def update(self, chat_id: str, message_id: str, changes: dict) -> Optional[dict]:
        """Merge ``changes`` into a cached message; identity fields are never overwritten."""
        for message in self.chats.get(chat_id, []):
            if message.get("id") == message_id:
                message.update(
                    {k: v for k, v in changes.items() if k not in IMMUTABLE_MESSAGE_FIELDS}
                )
                return message
        return None

    def remove(self, chat_id: str, message_id: str) -> bool:
        messages = self.chats.get(chat_id, [])
        kept = [m for m in messages if m.get("id") != message_id]
        self.chats[chat_id] = kept
        return len(kept) != len(messages)

    def clear(self, chat_id: Optional[str] = None) -> None:
        if chat_id is None:
            self.chats = {}
        else:
            self.chats.pop(chat_id, None)

    def dump(self) -> Any:
        return self.chats

    def restore(self, data: Any) -> None:
        self.chats = {chat_id: list(messages) for chat_id, messages in data.items()}


class FavoritesCache(_PersistedStore):
    name = "favorites"

    def __init__(self, kv: KeyValueStore, user_id: str):
        super().__init__(kv, user_id)
        self.items: list[dict] = []

    def __len__(self) -> int:
        return len(self.items)

    def find(self, message_id: str) -> Optional[dict]:
        return next((f for f in self.items if f.get("message_id") == message_id), None)

    def add(self, item: dict) -> dict:
        """
        Add a favorite, newest first.

        When ``item`` names a message that is already a favorite, the
        existing entry is returned and nothing is added.
        """
        message_id = item.get("message_id")
        if message_id:
            existing = self.find(message_id)
            if existing is not None:
                return existing
        entry = dict(item)
        entry.setdefault("id", str(uuid.uuid4()))
        entry.setdefault("type", "message")
        entry.setdefault("created_at", utcnow().isoformat() + "Z")
        self.items.insert(0, entry)
        return entry

    def remove(self, favorite_id: str) -> bool:
        before = len(self.items)
        self.items = [f for f in self.items if f.get("id") != favorite_id]
        return len(self.items) != before

    def by_type(self, favorite_type: str) -> list[dict]:
        return [f for f in self.items if f.get("type") == favorite_type]

    def is_favorite(self, message_id: str) -> bool:
        return self.find(message_id) is not None

    def toggle(self, message: dict) -> bool:
        """Flip a message's favorite state; returns True if it is now a favorite."""
        existing = self.find(message["id"])
        if existing is not None:
            self.remove(existing["id"])
            return False
        self.add({
            "type": "message",
            "message_id": message["id"],
            "chat_id": message.get("chat_id"),
            "content": message.get("content"),
        })
        return True

    def dump(self) -> Any:
        return self.items

    def restore(self, data: Any) -> None:
        self.items = list(data)


class AnnaCache(_PersistedStore):
    name = "anna"

    def __init__(self, kv: KeyValueStore, user_id: str):
        super().__init__(kv, user_id)
        self.conversations: dict[str, list[dict]] = {}
        self.modes: dict[str, str] = {}
        self.active_conversation_id: Optional[str] = None

    def set_conversation(self, conversation_id: str, turns: list[dict], mode: str = "normal") -> None:
        self.conversations[conversation_id] = [dict(t) for t in turns]
        self.modes[conversation_id] = mode

    def add_turn(self, conversation_id: str, turn: dict) -> None:
        self.conversations.setdefault(conversation_id, []).append(dict(turn))

    def get_turns(self, conversation_id: str) -> list[dict]:
        return list(self.conversations.get(conversation_id, []))

    def set_mode(self, conversation_id: str, mode: str) -> None:
        self.modes[conversation_id] = mode

    def get_mode(self, conversation_id: str) -> str:
        return self.modes.get(conversation_id, "normal")

    def set_active(self, conversation_id: Optional[str]) -> None:
        self.active_conversation_id = conversation_id

    def clear(self) -> None:
        self.conversations = {}
        self.modes = {}
        self.active_conversation_id = None

    def dump(self) -> Any:
        return {
            "conversations": self.conversations,
            "modes": self.modes,
            "active_conversation_id": self.active_conversation_id,
        }

    def restore(self, data: Any) -> None:
        self.conversations = dict(data.get("conversations") or {})
        self.modes = dict(data.get("modes") or {})
        self.active_conversation_id = data.get("active_conversation_id")
