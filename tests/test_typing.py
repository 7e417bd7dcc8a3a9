"""
Tests for typing indicators and publish throttling.
"""

from datetime import timedelta

import pytest

from use_cases.messaging.domain import ChatErrorKind, ParticipantInfo, TypingIndicator, is_typing

from conftest import CLIENT_ID, DIETITIAN_ID, NOW


class TestTypingIndicator:

    def test_active_for_five_seconds(self):
        indicator = TypingIndicator(user_id="a", user_name="A", created_at=NOW)
        assert indicator.is_active(NOW + timedelta(seconds=4.9))
        assert not indicator.is_active(NOW + timedelta(seconds=5))
        assert is_typing(indicator, NOW)


class TestTypingService:

    @pytest.fixture
    def chat_id(self, open_chat):
        return open_chat.chat_id

    def test_publish_then_visible_to_other_user(self, chat_service, chat_id):
        assert chat_service.publish_typing(chat_id, CLIENT_ID, "Ana").unwrap() is True
        seen_by_dietitian = chat_service.typing_users(chat_id, exclude_user_id=DIETITIAN_ID).unwrap()
        assert [i.user_id for i in seen_by_dietitian] == [CLIENT_ID]
        assert chat_service.typing_users(chat_id, exclude_user_id=CLIENT_ID).unwrap() == []

    def test_publishes_are_throttled(self, chat_service, typing_store, clock, chat_id):
        chat_service.publish_typing(chat_id, CLIENT_ID, "Ana").unwrap()
        clock.advance(seconds=0.5)
        assert chat_service.publish_typing(chat_id, CLIENT_ID, "Ana").unwrap() is False
        assert typing_store.list(chat_id)[0].created_at == NOW
        clock.advance(seconds=0.5)
        assert chat_service.publish_typing(chat_id, CLIENT_ID, "Ana").unwrap() is True
        assert typing_store.list(chat_id)[0].created_at == NOW + timedelta(seconds=1)

    def test_throttle_is_per_user(self, chat_service, chat_id):
        chat_service.publish_typing(chat_id, CLIENT_ID, "Ana").unwrap()
        assert chat_service.publish_typing(chat_id, DIETITIAN_ID, "Ben").unwrap() is True

    def test_old_throttle_entries_are_forgotten(self, chat_service, clock, dietitian_info):
        chats = [
            chat_service.open_chat(ParticipantInfo(f"client-{n}", f"Client {n}"), dietitian_info).unwrap()
            for n in range(3)
        ]
        for chat in chats:
            chat_service.publish_typing(chat.chat_id, DIETITIAN_ID, "Ben").unwrap()
        assert len(chat_service._last_typing_write) == 3

        clock.advance(seconds=2)
        chat_service.publish_typing(chats[0].chat_id, chats[0].client.id, "Client 0").unwrap()
        assert list(chat_service._last_typing_write) == [(chats[0].chat_id, chats[0].client.id)]

    def test_expired_indicators_are_deleted_on_read(self, chat_service, typing_store, clock, chat_id):
        chat_service.publish_typing(chat_id, CLIENT_ID, "Ana").unwrap()
        clock.advance(seconds=6)
        assert chat_service.typing_users(chat_id).unwrap() == []
        assert typing_store.list(chat_id) == []

    def test_clear_removes_and_resets_throttle(self, chat_service, typing_store, chat_id):
        chat_service.publish_typing(chat_id, CLIENT_ID, "Ana").unwrap()
        assert chat_service.clear_typing(chat_id, CLIENT_ID).unwrap() is True
        assert typing_store.list(chat_id) == []
        assert chat_service.publish_typing(chat_id, CLIENT_ID, "Ana").unwrap() is True
        chat_service.clear_typing(chat_id, CLIENT_ID).unwrap()
        assert chat_service.clear_typing(chat_id, CLIENT_ID).unwrap() is False


class TestTypingAccess:

    def test_outsider_cannot_publish(self, chat_service, typing_store, open_chat):
        result = chat_service.publish_typing(open_chat.chat_id, "stranger", "Mallory")
        assert result.error.kind == ChatErrorKind.UNAUTHORIZED
        assert typing_store.list(open_chat.chat_id) == []

    def test_outsider_cannot_see_who_is_typing(self, chat_service, open_chat):
        chat_service.publish_typing(open_chat.chat_id, CLIENT_ID, "Ana").unwrap()
        result = chat_service.typing_users(open_chat.chat_id, exclude_user_id="stranger", reader_id="stranger")
        assert result.error.kind == ChatErrorKind.UNAUTHORIZED

    def test_participant_reader_is_allowed(self, chat_service, open_chat):
        chat_service.publish_typing(open_chat.chat_id, CLIENT_ID, "Ana").unwrap()
        result = chat_service.typing_users(open_chat.chat_id, exclude_user_id=DIETITIAN_ID, reader_id=DIETITIAN_ID)
        assert [i.user_id for i in result.unwrap()] == [CLIENT_ID]

    def test_outsider_cannot_clear(self, chat_service, open_chat):
        result = chat_service.clear_typing(open_chat.chat_id, "stranger")
        assert result.error.kind == ChatErrorKind.UNAUTHORIZED

    def test_unknown_chat(self, chat_service):
        result = chat_service.publish_typing("chat_nobody", CLIENT_ID, "Ana")
        assert result.error.kind == ChatErrorKind.CHAT_NOT_FOUND
