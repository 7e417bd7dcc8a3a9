"""
Tests for chats, messages, unread counts and the message allow-list.
"""

from unittest.mock import MagicMock

import pytest

from use_cases.messaging import ChatService
from use_cases.messaging.domain import (
    ATTACHMENT_FIELDS,
    MESSAGE_ALLOWED_FIELDS,
    AttachmentType,
    ChatError,
    ChatErrorKind,
    ChatMessage,
    ChatSummary,
    MessageDraft,
    ParticipantInfo,
    project_message_fields,
)

from conftest import CLIENT_ID, DIETITIAN_ID, NOW


def draft(sender_id=CLIENT_ID, text="Hello", **extra):
    return MessageDraft(
        chat_id=ChatSummary.chat_id_for(CLIENT_ID, DIETITIAN_ID),
        sender_id=sender_id,
        sender_name="Someone",
        text=text,
        **extra,
    )


class TestOpenChat:

    def test_chat_id_is_order_independent(self):
        assert ChatSummary.chat_id_for("b", "a") == ChatSummary.chat_id_for("a", "b") == "chat_a_b"

    def test_new_chat_starts_with_zero_unread(self, open_chat):
        assert open_chat.unread_counts == {CLIENT_ID: 0, DIETITIAN_ID: 0}
        assert open_chat.last_message_text == "Chat started."
        assert open_chat.participant_ids == sorted([CLIENT_ID, DIETITIAN_ID])

    def test_open_is_idempotent(self, chat_service, open_chat, client_info, dietitian_info):
        chat_service.send(draft()).unwrap()
        again = chat_service.open_chat(client_info, dietitian_info).unwrap()
        assert again.chat_id == open_chat.chat_id
        assert again.unread_for(DIETITIAN_ID) == 1

    def test_colliding_chat_id_is_rejected(self, chat_service):
        first = chat_service.open_chat(ParticipantInfo("a_b", "Ab"), ParticipantInfo("c", "Cy")).unwrap()
        assert ChatSummary.chat_id_for("a", "b_c") == first.chat_id

        result = chat_service.open_chat(ParticipantInfo("a", "Al"), ParticipantInfo("b_c", "Bc"))
        assert result.error.kind == ChatErrorKind.INVALID_REQUEST
        assert chat_service.open_chat(ParticipantInfo("a_b", "Ab"), ParticipantInfo("c", "Cy")).ok

    def test_chats_for_lists_most_recent_first(self, chat_service, clock, client_info, dietitian_info):
        first = chat_service.open_chat(client_info, dietitian_info).unwrap()
        clock.advance(minutes=5)
        second = chat_service.open_chat(ParticipantInfo("client-zoe", "Zoe"), dietitian_info).unwrap()
        chats = chat_service.chats_for(DIETITIAN_ID).unwrap()
        assert [c.chat_id for c in chats] == [second.chat_id, first.chat_id]
        assert [c.chat_id for c in chat_service.chats_for(CLIENT_ID).unwrap()] == [first.chat_id]


class TestSend:

    def test_sender_read_flags(self, chat_service, open_chat):
        from_client = chat_service.send(draft()).unwrap()
        assert from_client.is_read_by_client and not from_client.is_read_by_dietitian
        from_dietitian = chat_service.send(draft(sender_id=DIETITIAN_ID)).unwrap()
        assert from_dietitian.is_read_by_dietitian and not from_dietitian.is_read_by_client

    def test_only_recipient_unread_count_increments(self, chat_service, chat_store, open_chat):
        for _ in range(3):
            chat_service.send(draft()).unwrap()
        chat = chat_store.get_chat(open_chat.chat_id)
        assert chat.unread_counts == {CLIENT_ID: 0, DIETITIAN_ID: 3}
        assert chat.last_message_sender_id == CLIENT_ID

    def test_attachment_only_message_uses_placeholder(self, chat_service, chat_store, open_chat):
        sent = chat_service.send(draft(text="", video_url="https://cdn/v.mp4")).unwrap()
        assert sent.attachment_type == AttachmentType.VIDEO
        assert chat_store.get_chat(open_chat.chat_id).last_message_text == "🎥 Video"

    def test_non_participant_is_unauthorized(self, chat_service, open_chat):
        result = chat_service.send(draft(sender_id="intruder"))
        assert result.error.kind == ChatErrorKind.UNAUTHORIZED

    def test_empty_message_is_invalid(self, chat_service, open_chat):
        result = chat_service.send(draft(text="   "))
        assert result.error.kind == ChatErrorKind.INVALID_REQUEST

    def test_unknown_chat(self, chat_service):
        result = chat_service.send(draft())
        assert result.error.kind == ChatErrorKind.CHAT_NOT_FOUND

    def test_retryable_failures_are_retried(self, open_chat, typing_store, clock):
        store = MagicMock()
        store.get_chat.return_value = open_chat
        store.append_message.side_effect = [
            ChatError(ChatErrorKind.TIMEOUT),
            ChatError(ChatErrorKind.SERVER_ERROR),
            "stored",
        ]
        service = ChatService(store, typing_store, clock=clock, send_attempts=3)
        assert service.send(draft()).value == "stored"
        assert store.append_message.call_count == 3
        ids = {call.args[0].id for call in store.append_message.call_args_list}
        assert len(ids) == 1

    def test_non_retryable_failure_is_not_retried(self, open_chat, typing_store, clock):
        store = MagicMock()
        store.get_chat.return_value = open_chat
        store.append_message.side_effect = ChatError(ChatErrorKind.INVALID_REQUEST)
        service = ChatService(store, typing_store, clock=clock, send_attempts=3)
        result = service.send(draft())
        assert result.error.kind == ChatErrorKind.INVALID_REQUEST
        assert store.append_message.call_count == 1

    def test_retries_exhausted(self, open_chat, typing_store, clock):
        store = MagicMock()
        store.get_chat.return_value = open_chat
        store.append_message.side_effect = ChatError(ChatErrorKind.RATE_LIMIT_EXCEEDED)
        service = ChatService(store, typing_store, clock=clock, send_attempts=2)
        result = service.send(draft())
        assert result.error.retryable
        assert store.append_message.call_count == 2

    def test_rejected_retry_of_a_landed_message_succeeds(self, open_chat, typing_store, clock):
        store = MagicMock()
        store.get_chat.return_value = open_chat
        store.append_message.side_effect = [
            ChatError(ChatErrorKind.NETWORK_ERROR),
            ChatError(ChatErrorKind.INVALID_REQUEST),
        ]
        store.get_message.side_effect = lambda chat_id, message_id: f"stored {message_id}"
        service = ChatService(store, typing_store, clock=clock, send_attempts=3)
        result = service.send(draft())
        sent_id = store.append_message.call_args.args[0].id
        assert result.value == f"stored {sent_id}"
        assert store.append_message.call_count == 2

    def test_rejected_retry_of_a_lost_message_fails(self, open_chat, typing_store, clock):
        store = MagicMock()
        store.get_chat.return_value = open_chat
        store.append_message.side_effect = [
            ChatError(ChatErrorKind.NETWORK_ERROR),
            ChatError(ChatErrorKind.INVALID_REQUEST),
        ]
        store.get_message.return_value = None
        service = ChatService(store, typing_store, clock=clock, send_attempts=3)
        assert service.send(draft()).error.kind == ChatErrorKind.INVALID_REQUEST

    def test_first_attempt_rejection_is_not_looked_up(self, open_chat, typing_store, clock):
        store = MagicMock()
        store.get_chat.return_value = open_chat
        store.append_message.side_effect = ChatError(ChatErrorKind.INVALID_REQUEST)
        service = ChatService(store, typing_store, clock=clock)
        assert not service.send(draft()).ok
        store.get_message.assert_not_called()


class TestReadState:

    def test_mark_read_resets_only_reader(self, chat_service, chat_store, open_chat):
        chat_service.send(draft()).unwrap()
        chat_service.send(draft()).unwrap()
        chat_service.send(draft(sender_id=DIETITIAN_ID)).unwrap()

        assert chat_service.mark_read(open_chat.chat_id, DIETITIAN_ID).unwrap() == 2
        chat = chat_store.get_chat(open_chat.chat_id)
        assert chat.unread_counts == {CLIENT_ID: 1, DIETITIAN_ID: 0}
        messages = chat_service.messages(open_chat.chat_id).unwrap()
        assert all(m.is_read_by_dietitian for m in messages)
        assert not messages[2].is_read_by_client

    def test_mark_read_twice_changes_nothing(self, chat_service, open_chat):
        chat_service.send(draft()).unwrap()
        chat_service.mark_read(open_chat.chat_id, DIETITIAN_ID).unwrap()
        assert chat_service.mark_read(open_chat.chat_id, DIETITIAN_ID).unwrap() == 0

    def test_outsider_cannot_mark_read(self, chat_service, open_chat):
        result = chat_service.mark_read(open_chat.chat_id, "intruder")
        assert result.error.kind == ChatErrorKind.UNAUTHORIZED

    def test_messages_are_oldest_first_and_limited(self, chat_service, clock, open_chat):
        for text in ("one", "two", "three"):
            chat_service.send(draft(text=text)).unwrap()
            clock.advance(seconds=1)
        assert [m.text for m in chat_service.messages(open_chat.chat_id).unwrap()] == ["one", "two", "three"]
        assert [m.text for m in chat_service.messages(open_chat.chat_id, limit=2).unwrap()] == ["two", "three"]

    def test_outsider_cannot_read_messages(self, chat_service, open_chat):
        result = chat_service.messages(open_chat.chat_id, reader_id="intruder")
        assert result.error.kind == ChatErrorKind.UNAUTHORIZED


class TestAllowList:

    def test_record_contains_only_allowed_keys(self):
        message = ChatMessage(
            id="m1",
            chat_id="chat_a_b",
            text="hi",
            sender_id="a",
            sender_name="A",
            timestamp=NOW,
            image_url="https://cdn/i.png",
        )
        record = project_message_fields(message)
        assert set(record) == set(MESSAGE_ALLOWED_FIELDS) | {"imageURL"}
        assert set(record) <= set(MESSAGE_ALLOWED_FIELDS) | set(ATTACHMENT_FIELDS)
        assert record["timestamp"] == "2025-01-06T09:00:00.000000Z"

    def test_from_payload_drops_unknown_keys(self, caplog):
        payload = {
            "chatId": "chat_a_b",
            "senderId": "a",
            "senderName": "A",
            "text": "hi",
            "isAdmin": True,
            "unreadCounts": {"b": 0},
        }
        built = MessageDraft.from_payload(payload)
        assert built == MessageDraft(chat_id="chat_a_b", sender_id="a", sender_name="A", text="hi")
        assert "isAdmin" in caplog.text

    def test_from_payload_requires_sender(self):
        with pytest.raises(KeyError):
            MessageDraft.from_payload({"chat_id": "chat_a_b", "text": "hi"})

    @pytest.mark.parametrize("urls,expected", [
        ({"image_url": "i", "video_url": "v"}, "📸 Image"),
        ({"video_url": "v", "file_url": "f"}, "🎥 Video"),
        ({"file_url": "f"}, "📄 File"),
        ({}, ""),
    ])
    def test_display_text_placeholders(self, urls, expected):
        message = ChatMessage(
            id="m1", chat_id="c", text="", sender_id="a", sender_name="A", timestamp=NOW, **urls
        )
        assert message.display_text == expected
        assert message.has_attachment == bool(urls)
