"""
Client/Dietitian Messaging Use Case.

Two-party chats with allow-listed message persistence, unread counters,
read receipts and typing indicators.

Components:
- domain: ChatSummary, ChatMessage, MessageDraft, TypingIndicator, errors
- data: ChatStore / TypingStore with in-memory and Cosmos DB backends
- ChatService: orchestration over the stores

Usage:
    from use_cases.messaging import ChatService, InMemoryChatStore, InMemoryTypingStore

    service = ChatService(InMemoryChatStore(), InMemoryTypingStore())
    chat = service.open_chat(client, dietitian).unwrap()
"""

from use_cases.messaging.data import (
    ChatStore,
    CosmosChatStore,
    CosmosTypingStore,
    InMemoryChatStore,
    InMemoryTypingStore,
    TypingStore,
)
from use_cases.messaging.service import ChatService

__all__ = [
    "ChatService",
    "ChatStore",
    "TypingStore",
    "InMemoryChatStore",
    "InMemoryTypingStore",
    "CosmosChatStore",
    "CosmosTypingStore",
]
