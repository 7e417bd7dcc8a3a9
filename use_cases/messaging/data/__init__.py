"""
Messaging Data Layer.

Chat, message and typing-indicator persistence.
"""

from .cosmos_store import CosmosChatStore, CosmosTypingStore
from .repositories import ChatStore, InMemoryChatStore, InMemoryTypingStore, TypingStore

__all__ = [
    "ChatStore",
    "TypingStore",
    "InMemoryChatStore",
    "InMemoryTypingStore",
    "CosmosChatStore",
    "CosmosTypingStore",
]
