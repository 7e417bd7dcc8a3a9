"""
Azure Cosmos DB-based chat and typing stores.

Chat summaries and their messages share the ``Coaching_Chats`` container,
partitioned by ``/chatId``, so a message insert and the unread-count patch
on its chat run as one transactional batch. Typing indicators live in
``Coaching_TypingIndicators`` with a per-item ``ttl``.

Cosmos and transport exceptions are translated to ``ChatError`` here.
"""

import logging
from contextlib import contextmanager
from datetime import timedelta
from typing import Any, Dict, Iterator, List, Optional

from azure.core.exceptions import ServiceRequestError, ServiceResponseError
from azure.cosmos.exceptions import (
    CosmosBatchOperationError,
    CosmosHttpResponseError,
    CosmosResourceExistsError,
    CosmosResourceNotFoundError,
)

from core.domain import parse_date, to_iso, utc_now
from shared.cosmos_client import batch_status
from shared.cosmos_config import DOC_TYPE_CHAT, DOC_TYPE_MESSAGE
from shared.roles import ActorRole
from use_cases.messaging.domain import (
    TYPING_INDICATOR_TTL,
    ChatError,
    ChatErrorKind,
    ChatMessage,
    ChatSummary,
    TypingIndicator,
    error_kind_for_status,
)
from use_cases.messaging.domain.policies import READ_FLAG_FIELDS

from .repositories import ChatStore, TypingStore

logger = logging.getLogger(__name__)

# Transactional batches are capped at 100 operations
MAX_BATCH_OPERATIONS = 100

# Storage bookkeeping stripped before a message record is read back
BOOKKEEPING_FIELDS = ("id", "chatId", "type")


@contextmanager
def cosmos_errors(operation: str) -> Iterator[None]:
    """Translate Cosmos DB and transport failures into ChatError."""
    try:
        yield
    except CosmosBatchOperationError as e:
        kind = error_kind_for_status(batch_status(e))
        logger.error(f"Cosmos batch failed during {operation}: {kind.value}")
        raise ChatError(kind) from e
    except CosmosHttpResponseError as e:
        kind = error_kind_for_status(e.status_code)
        logger.error(f"Cosmos request failed during {operation}: {e.status_code}")
        raise ChatError(kind) from e
    except (ServiceRequestError, ServiceResponseError) as e:
        logger.error(f"Cosmos unreachable during {operation}: {e}")
        raise ChatError(ChatErrorKind.NETWORK_ERROR) from e


def message_document(message: ChatMessage) -> Dict[str, Any]:
    """Allow-listed record plus storage bookkeeping."""
    doc = message.to_record()
    doc["id"] = message.id
    doc["chatId"] = message.chat_id
    doc["type"] = DOC_TYPE_MESSAGE
    return doc


def message_from_document(doc: Dict[str, Any]) -> ChatMessage:
    record = {k: v for k, v in doc.items() if k not in BOOKKEEPING_FIELDS}
    return ChatMessage.from_record(doc["id"], doc["chatId"], record)


class CosmosChatStore(ChatStore):
    """Chat store backed by a Cosmos DB container client."""

    def __init__(self, container):
        """
        Args:
            container: ``ContainerProxy`` for the chats container
        """
        self._container = container

    # =========================================================================
    # CHATS
    # =========================================================================

    def get_chat(self, chat_id: str) -> Optional[ChatSummary]:
        try:
            with cosmos_errors("get_chat"):
                doc = self._container.read_item(item=chat_id, partition_key=chat_id)
        except ChatError as e:
            if e.kind == ChatErrorKind.CHAT_NOT_FOUND:
                return None
            raise
        return ChatSummary.from_document(doc)

    def create_chat(self, chat: ChatSummary) -> ChatSummary:
        with cosmos_errors("create_chat"):
            try:
                self._container.create_item(chat.to_document())
            except CosmosResourceExistsError:
                doc = self._container.read_item(item=chat.chat_id, partition_key=chat.chat_id)
                return ChatSummary.from_document(doc)
        logger.info(f"Created chat {chat.chat_id}")
        return chat

    def chats_for(self, user_id: str) -> List[ChatSummary]:
        query = (
            "SELECT * FROM c WHERE c.type = @type "
            "AND ARRAY_CONTAINS(c.participantIds, @userId) "
            "ORDER BY c.updatedAt DESC"
        )
        params = [
            {"name": "@type", "value": DOC_TYPE_CHAT},
            {"name": "@userId", "value": user_id},
        ]
        with cosmos_errors("chats_for"):
            docs = list(self._container.query_items(query, parameters=params, enable_cross_partition_query=True))
        return [ChatSummary.from_document(doc) for doc in docs]

    # =========================================================================
    # MESSAGES
    # =========================================================================

    def append_message(self, message: ChatMessage, recipient_id: str) -> ChatMessage:
        timestamp = to_iso(message.timestamp)
        chat_patch = [
            {"op": "incr", "path": f"/unreadCounts/{recipient_id}", "value": 1},
            {"op": "set", "path": "/lastMessageText", "value": message.display_text},
            {"op": "set", "path": "/lastMessageTimestamp", "value": timestamp},
            {"op": "set", "path": "/lastMessageSenderId", "value": message.sender_id},
            {"op": "set", "path": "/updatedAt", "value": timestamp},
        ]
        with cosmos_errors("append_message"):
            self._container.execute_item_batch(
                batch_operations=[
                    ("create", (message_document(message),)),
                    ("patch", (message.chat_id, chat_patch)),
                ],
                partition_key=message.chat_id,
            )
        logger.info(f"Stored message {message.id} in chat {message.chat_id}")
        return message

    def get_message(self, chat_id: str, message_id: str) -> Optional[ChatMessage]:
        try:
            with cosmos_errors("get_message"):
                doc = self._container.read_item(item=message_id, partition_key=chat_id)
        except ChatError as e:
            if e.kind == ChatErrorKind.CHAT_NOT_FOUND:
                return None
            raise
        if doc.get("type") != DOC_TYPE_MESSAGE:
            return None
        return message_from_document(doc)

    def messages(self, chat_id: str, limit: int = 50) -> List[ChatMessage]:
        query = (
            "SELECT * FROM c WHERE c.type = @type "
            "ORDER BY c.timestamp DESC OFFSET 0 LIMIT @limit"
        )
        params = [
            {"name": "@type", "value": DOC_TYPE_MESSAGE},
            {"name": "@limit", "value": limit},
        ]
        with cosmos_errors("messages"):
            docs = list(self._container.query_items(query, parameters=params, partition_key=chat_id))
        return [message_from_document(doc) for doc in reversed(docs)]

    def mark_read(self, chat_id: str, reader_id: str, reader_role: ActorRole) -> int:
        flag = READ_FLAG_FIELDS[reader_role]
        query = f"SELECT c.id FROM c WHERE c.type = @type AND c.{flag} = false"
        params = [{"name": "@type", "value": DOC_TYPE_MESSAGE}]

        with cosmos_errors("mark_read"):
            unread = [doc["id"] for doc in self._container.query_items(
                query, parameters=params, partition_key=chat_id
            )]
            reset = ("patch", (chat_id, [{"op": "set", "path": f"/unreadCounts/{reader_id}", "value": 0}]))
            flag_ops = [
                ("patch", (message_id, [{"op": "set", "path": f"/{flag}", "value": True}]))
                for message_id in unread
            ]
            # The counter reset rides in the last batch so it lands with the final flags
            chunk = MAX_BATCH_OPERATIONS - 1
            batches = [flag_ops[i:i + chunk] for i in range(0, len(flag_ops), chunk)] or [[]]
            batches[-1] = batches[-1] + [reset]
            for operations in batches:
                self._container.execute_item_batch(batch_operations=operations, partition_key=chat_id)

        logger.info(f"Marked {len(unread)} messages read in chat {chat_id} for {reader_id}")
        return len(unread)


class CosmosTypingStore(TypingStore):
    """Typing indicators with a per-document ttl so the container purges them."""

    def __init__(self, container, ttl: timedelta = TYPING_INDICATOR_TTL):
        self._container = container
        self._ttl_seconds = max(1, int(ttl.total_seconds()))

    def put(self, chat_id: str, indicator: TypingIndicator) -> None:
        doc = {
            "id": indicator.user_id,
            "chatId": chat_id,
            "userId": indicator.user_id,
            "userName": indicator.user_name,
            "createdAt": to_iso(indicator.created_at),
            "ttl": self._ttl_seconds,
        }
        with cosmos_errors("put_typing"):
            self._container.upsert_item(doc)

    def remove(self, chat_id: str, user_id: str) -> bool:
        with cosmos_errors("remove_typing"):
            try:
                self._container.delete_item(item=user_id, partition_key=chat_id)
            except CosmosResourceNotFoundError:
                return False
        return True

    def list(self, chat_id: str) -> List[TypingIndicator]:
        with cosmos_errors("list_typing"):
            docs = list(self._container.query_items("SELECT * FROM c", partition_key=chat_id))
        return [
            TypingIndicator(
                user_id=doc["userId"],
                user_name=doc.get("userName") or "",
                created_at=parse_date(doc.get("createdAt")) or utc_now(),
            )
            for doc in docs
        ]
