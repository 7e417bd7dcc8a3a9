"""
Chat Repositories.

Storage contracts for chats, messages and typing indicators, plus the
in-memory backends used for local runs and tests. The Cosmos DB backends
live in ``cosmos_store.py``.
"""

import logging
import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import replace
from typing import Dict, List, Optional

from shared.roles import ActorRole
from use_cases.messaging.domain import (
    ChatError,
    ChatErrorKind,
    ChatMessage,
    ChatSummary,
    TypingIndicator,
)

logger = logging.getLogger(__name__)


def _copy(chat: ChatSummary) -> ChatSummary:
    return replace(chat, unread_counts=dict(chat.unread_counts))


class ChatStore(ABC):
    """Chats and their messages, partitioned by chat id."""

    @abstractmethod
    def get_chat(self, chat_id: str) -> Optional[ChatSummary]:
        pass

    @abstractmethod
    def create_chat(self, chat: ChatSummary) -> ChatSummary:
        """Store a new chat, or return the stored one if the id exists."""
        pass

    @abstractmethod
    def chats_for(self, user_id: str) -> List[ChatSummary]:
        """Chats the user takes part in, most recently updated first."""
        pass

    @abstractmethod
    def append_message(self, message: ChatMessage, recipient_id: str) -> ChatMessage:
        """
        Store a message and bump the recipient's unread count by one.

        Both changes land together; the count is incremented in place,
        never read and written back.

        Raises:
            ChatError: chat_not_found, or a store failure kind
        """
        pass

    @abstractmethod
    def get_message(self, chat_id: str, message_id: str) -> Optional[ChatMessage]:
        """The stored message with this id, or None."""
        pass

    @abstractmethod
    def messages(self, chat_id: str, limit: int = 50) -> List[ChatMessage]:
        """The latest ``limit`` messages, oldest first."""
        pass

    @abstractmethod
    def mark_read(self, chat_id: str, reader_id: str, reader_role: ActorRole) -> int:
        """
        Set the reader's read flag on every message and zero their unread count.

        Returns:
            Number of messages whose flag changed
        """
        pass


class TypingStore(ABC):
    """Typing indicators, one per (chat, user)."""

    @abstractmethod
    def put(self, chat_id: str, indicator: TypingIndicator) -> None:
        pass

    @abstractmethod
    def remove(self, chat_id: str, user_id: str) -> bool:
        pass

    @abstractmethod
    def list(self, chat_id: str) -> List[TypingIndicator]:
        pass


# =============================================================================
# IN-MEMORY BACKENDS
# =============================================================================

class InMemoryChatStore(ChatStore):
    """Process-local chat store. Unread increments happen under the lock."""

    def __init__(self):
        self._lock = threading.Lock()
        self._chats: Dict[str, ChatSummary] = {}
        self._messages: Dict[str, List[ChatMessage]] = defaultdict(list)

    def get_chat(self, chat_id: str) -> Optional[ChatSummary]:
        with self._lock:
            chat = self._chats.get(chat_id)
            return _copy(chat) if chat else None

    def create_chat(self, chat: ChatSummary) -> ChatSummary:
        with self._lock:
            existing = self._chats.get(chat.chat_id)
            if existing is not None:
                return _copy(existing)
            self._chats[chat.chat_id] = _copy(chat)
        logger.info(f"Created chat {chat.chat_id}")
        return chat

    def chats_for(self, user_id: str) -> List[ChatSummary]:
        with self._lock:
            chats = [_copy(c) for c in self._chats.values() if c.is_participant(user_id)]
        return sorted(chats, key=lambda c: c.updated_at or c.created_at, reverse=True)

    def append_message(self, message: ChatMessage, recipient_id: str) -> ChatMessage:
        with self._lock:
            chat = self._chats.get(message.chat_id)
            if chat is None:
                raise ChatError(ChatErrorKind.CHAT_NOT_FOUND)
            self._messages[message.chat_id].append(message)
            chat.unread_counts[recipient_id] = chat.unread_counts.get(recipient_id, 0) + 1
            chat.last_message_text = message.display_text
            chat.last_message_timestamp = message.timestamp
            chat.last_message_sender_id = message.sender_id
            chat.updated_at = message.timestamp
        return message

    def get_message(self, chat_id: str, message_id: str) -> Optional[ChatMessage]:
        with self._lock:
            for message in self._messages.get(chat_id, []):
                if message.id == message_id:
                    return message
        return None

    def messages(self, chat_id: str, limit: int = 50) -> List[ChatMessage]:
        with self._lock:
            items = sorted(self._messages.get(chat_id, []), key=lambda m: m.timestamp)
        return items[-limit:] if limit > 0 else []

    def mark_read(self, chat_id: str, reader_id: str, reader_role: ActorRole) -> int:
        changed = 0
        with self._lock:
            chat = self._chats.get(chat_id)
            if chat is None:
                raise ChatError(ChatErrorKind.CHAT_NOT_FOUND)
            stored = self._messages.get(chat_id, [])
            for index, message in enumerate(stored):
                if not message.is_read_by(reader_role):
                    stored[index] = message.mark_read_by(reader_role)
                    changed += 1
            chat.unread_counts[reader_id] = 0
        return changed


class InMemoryTypingStore(TypingStore):

    def __init__(self):
        self._lock = threading.Lock()
        self._indicators: Dict[str, Dict[str, TypingIndicator]] = defaultdict(dict)

    def put(self, chat_id: str, indicator: TypingIndicator) -> None:
        with self._lock:
            self._indicators[chat_id][indicator.user_id] = indicator

    def remove(self, chat_id: str, user_id: str) -> bool:
        with self._lock:
            return self._indicators[chat_id].pop(user_id, None) is not None

    def list(self, chat_id: str) -> List[TypingIndicator]:
        with self._lock:
            return list(self._indicators[chat_id].values())
