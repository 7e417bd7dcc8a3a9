"""
Chat Service.

Wires the messaging domain to a ChatStore and a TypingStore: opening
chats, sending messages with unread bookkeeping, read receipts and
throttled typing indicators.
"""

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple

from core.domain import OperationResult, utc_now
from use_cases.messaging.data import ChatStore, TypingStore
from use_cases.messaging.domain import (
    ChatError,
    ChatErrorKind,
    ChatMessage,
    ChatSummary,
    MessageComposer,
    MessageDraft,
    ParticipantInfo,
    SendPolicy,
    TypingIndicator,
)

logger = logging.getLogger(__name__)


class ChatService:
    """Chat operations for the HTTP surface."""

    def __init__(
        self,
        chats: ChatStore,
        typing: TypingStore,
        clock: Callable[[], datetime] = utc_now,
        send_attempts: int = 3,
        typing_throttle: timedelta = timedelta(seconds=1),
        composer: Optional[MessageComposer] = None,
    ):
        self.chats = chats
        self.typing = typing
        self.clock = clock
        self.send_attempts = max(1, send_attempts)
        self.typing_throttle = typing_throttle
        self.composer = composer or MessageComposer()
        self.send_policy = SendPolicy()
        self._typing_lock = threading.Lock()
        self._last_typing_write: Dict[Tuple[str, str], datetime] = {}

    # =========================================================================
    # CHATS
    # =========================================================================

    def open_chat(self, client: ParticipantInfo, dietitian: ParticipantInfo) -> OperationResult[ChatSummary]:
        """Get the chat between the two participants, creating it on first contact."""
        if client.id == dietitian.id:
            return OperationResult.failure(
                ChatError(ChatErrorKind.INVALID_REQUEST, "A chat needs two different participants")
            )
        chat_id = ChatSummary.chat_id_for(client.id, dietitian.id)
        try:
            chat = self.chats.get_chat(chat_id)
            if chat is None:
                chat = self.chats.create_chat(ChatSummary.create(client, dietitian, now=self.clock()))
        except ChatError as e:
            return OperationResult.failure(e)

        # Distinct pairs can join to the same id, e.g. ("a_b", "c") and ("a", "b_c")
        if chat.client.id != client.id or chat.dietitian.id != dietitian.id:
            logger.warning(
                f"Chat {chat_id} belongs to {chat.client.id}/{chat.dietitian.id}, "
                f"not {client.id}/{dietitian.id}"
            )
            return OperationResult.failure(
                ChatError(ChatErrorKind.INVALID_REQUEST, "Chat id is taken by another pair of participants")
            )
        return OperationResult.success(chat)

    def chats_for(self, user_id: str) -> OperationResult[List[ChatSummary]]:
        try:
            return OperationResult.success(self.chats.chats_for(user_id))
        except ChatError as e:
            return OperationResult.failure(e)

    def _load_chat(self, chat_id: str) -> ChatSummary:
        chat = self.chats.get_chat(chat_id)
        if chat is None:
            raise ChatError(ChatErrorKind.CHAT_NOT_FOUND)
        return chat

    def _require_participant(self, chat_id: str, user_id: str) -> ChatSummary:
        chat = self._load_chat(chat_id)
        if not chat.is_participant(user_id):
            raise ChatError(ChatErrorKind.UNAUTHORIZED)
        return chat

    # =========================================================================
    # MESSAGES
    # =========================================================================

    def send(self, draft: MessageDraft) -> OperationResult[ChatMessage]:
        """
        Append a message and bump the recipient's unread count.

        Retryable store failures are retried up to ``send_attempts`` times
        with the same message id. When a retry is rejected after an earlier
        attempt failed without a clear answer, the message is looked up by
        id: if the earlier attempt landed, the send succeeded.
        """
        try:
            chat = self._load_chat(draft.chat_id)
        except ChatError as e:
            return OperationResult.failure(e)

        decision = self.send_policy.evaluate({"chat": chat, "draft": draft})
        if decision.is_denied:
            kind = ChatErrorKind(decision.metadata.get("error", ChatErrorKind.INVALID_REQUEST.value))
            return OperationResult.failure(ChatError(kind))

        sender_role = chat.role_of(draft.sender_id)
        recipient = chat.other_participant(draft.sender_id)
        message = self.composer.compose(draft, sender_role, now=self.clock())

        last_error: Optional[ChatError] = None
        for attempt in range(1, self.send_attempts + 1):
            try:
                stored = self.chats.append_message(message, recipient.id)
                return OperationResult.success(stored)
            except ChatError as e:
                if not e.retryable and last_error is not None:
                    landed = self._stored_message(message)
                    if landed is not None:
                        logger.info(f"Message {message.id} was stored by an earlier attempt")
                        return OperationResult.success(landed)
                last_error = e
                if not e.retryable:
                    break
                logger.warning(
                    f"Sending message {message.id} failed with {e.code} "
                    f"(attempt {attempt}/{self.send_attempts})"
                )
        return OperationResult.failure(last_error)

    def _stored_message(self, message: ChatMessage) -> Optional[ChatMessage]:
        try:
            return self.chats.get_message(message.chat_id, message.id)
        except ChatError as e:
            logger.warning(f"Could not look up message {message.id}: {e.code}")
            return None

    def messages(
        self,
        chat_id: str,
        limit: int = 50,
        reader_id: Optional[str] = None,
    ) -> OperationResult[List[ChatMessage]]:
        """Latest messages of a chat, oldest first. A given reader must be a participant."""
        try:
            chat = self._load_chat(chat_id)
            if reader_id is not None and not chat.is_participant(reader_id):
                raise ChatError(ChatErrorKind.UNAUTHORIZED)
            return OperationResult.success(self.chats.messages(chat_id, limit))
        except ChatError as e:
            return OperationResult.failure(e)

    def mark_read(self, chat_id: str, reader_id: str) -> OperationResult[int]:
        """Mark every message read for ``reader_id`` and zero their unread count."""
        try:
            chat = self._load_chat(chat_id)
            role = chat.role_of(reader_id)
            if role is None:
                raise ChatError(ChatErrorKind.UNAUTHORIZED)
            return OperationResult.success(self.chats.mark_read(chat_id, reader_id, role))
        except ChatError as e:
            return OperationResult.failure(e)

    # =========================================================================
    # TYPING
    # =========================================================================

    def _forget_stale_writes(self, now: datetime) -> None:
        """Drop throttle entries that can no longer hold back a write. Caller holds the lock."""
        stale = [key for key, at in self._last_typing_write.items() if now - at >= self.typing_throttle]
        for key in stale:
            del self._last_typing_write[key]

    def publish_typing(self, chat_id: str, user_id: str, user_name: str) -> OperationResult[bool]:
        """
        Record that the user is typing.

        Only participants of the chat may publish. Returns False in the
        result when the write was skipped because the previous one for this
        user is younger than ``typing_throttle``.
        """
        try:
            self._require_participant(chat_id, user_id)
        except ChatError as e:
            return OperationResult.failure(e)

        now = self.clock()
        key = (chat_id, user_id)
        with self._typing_lock:
            self._forget_stale_writes(now)
            if key in self._last_typing_write:
                return OperationResult.success(False)
            self._last_typing_write[key] = now
        try:
            self.typing.put(chat_id, TypingIndicator(user_id=user_id, user_name=user_name, created_at=now))
        except ChatError as e:
            with self._typing_lock:
                self._last_typing_write.pop(key, None)
            return OperationResult.failure(e)
        return OperationResult.success(True)

    def clear_typing(self, chat_id: str, user_id: str) -> OperationResult[bool]:
        try:
            self._require_participant(chat_id, user_id)
        except ChatError as e:
            return OperationResult.failure(e)
        with self._typing_lock:
            self._last_typing_write.pop((chat_id, user_id), None)
        try:
            return OperationResult.success(self.typing.remove(chat_id, user_id))
        except ChatError as e:
            return OperationResult.failure(e)

    def typing_users(
        self,
        chat_id: str,
        exclude_user_id: Optional[str] = None,
        reader_id: Optional[str] = None,
    ) -> OperationResult[List[TypingIndicator]]:
        """
        Active indicators of a chat; expired ones are deleted on the way.

        A given reader must be a participant.
        """
        now = self.clock()
        try:
            if reader_id is not None:
                self._require_participant(chat_id, reader_id)
            active = []
            for indicator in self.typing.list(chat_id):
                if not self.is_typing(indicator, now):
                    self.typing.remove(chat_id, indicator.user_id)
                elif indicator.user_id != exclude_user_id:
                    active.append(indicator)
            return OperationResult.success(active)
        except ChatError as e:
            return OperationResult.failure(e)

    @staticmethod
    def is_typing(indicator: TypingIndicator, now: Optional[datetime] = None) -> bool:
        return indicator.is_active(now)
