"""
Messaging Domain Services.

Chat, message and typing-indicator value types plus the composer that
turns a draft into a stored message. No I/O.
"""

import logging
import uuid
from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from core.domain import parse_date, to_iso, utc_now
from shared.cosmos_config import DOC_TYPE_CHAT
from shared.roles import ActorRole

from .policies import (
    ATTACHMENT_FIELDS,
    ATTACHMENT_PLACEHOLDERS,
    CHAT_STARTED_TEXT,
    MESSAGE_ALLOWED_FIELDS,
    TYPING_INDICATOR_TTL,
    read_flags_for_sender,
)

logger = logging.getLogger(__name__)


# =============================================================================
# CHATS
# =============================================================================

@dataclass(frozen=True)
class ParticipantInfo:
    id: str
    full_name: str
    photo_url: Optional[str] = None

    def to_document(self) -> Dict[str, Any]:
        doc = {"id": self.id, "fullName": self.full_name}
        if self.photo_url:
            doc["photoURL"] = self.photo_url
        return doc

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "ParticipantInfo":
        return cls(id=doc["id"], full_name=doc.get("fullName") or "", photo_url=doc.get("photoURL"))


@dataclass
class ChatSummary:
    """Overview of a two-party chat with per-participant unread counts."""
    chat_id: str
    client: ParticipantInfo
    dietitian: ParticipantInfo
    unread_counts: Dict[str, int] = field(default_factory=dict)
    last_message_text: Optional[str] = None
    last_message_timestamp: Optional[datetime] = None
    last_message_sender_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @staticmethod
    def chat_id_for(first_id: str, second_id: str) -> str:
        """Same id for a pair regardless of argument order."""
        return "chat_" + "_".join(sorted([first_id, second_id]))

    @classmethod
    def create(
        cls,
        client: ParticipantInfo,
        dietitian: ParticipantInfo,
        now: Optional[datetime] = None,
    ) -> "ChatSummary":
        now = now or utc_now()
        return cls(
            chat_id=cls.chat_id_for(client.id, dietitian.id),
            client=client,
            dietitian=dietitian,
            unread_counts={client.id: 0, dietitian.id: 0},
            last_message_text=CHAT_STARTED_TEXT,
            last_message_timestamp=now,
            created_at=now,
            updated_at=now,
        )

    @property
    def participant_ids(self) -> List[str]:
        return sorted([self.client.id, self.dietitian.id])

    def is_participant(self, user_id: str) -> bool:
        return user_id in (self.client.id, self.dietitian.id)

    def role_of(self, user_id: str) -> Optional[ActorRole]:
        if user_id == self.client.id:
            return ActorRole.CLIENT
        if user_id == self.dietitian.id:
            return ActorRole.DIETITIAN
        return None

    def other_participant(self, user_id: str) -> Optional[ParticipantInfo]:
        if user_id == self.client.id:
            return self.dietitian
        if user_id == self.dietitian.id:
            return self.client
        return None

    def unread_for(self, user_id: str) -> int:
        return self.unread_counts.get(user_id, 0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chat_id": self.chat_id,
            "participant_ids": self.participant_ids,
            "client": {"id": self.client.id, "full_name": self.client.full_name, "photo_url": self.client.photo_url},
            "dietitian": {
                "id": self.dietitian.id,
                "full_name": self.dietitian.full_name,
                "photo_url": self.dietitian.photo_url,
            },
            "unread_counts": dict(self.unread_counts),
            "last_message_text": self.last_message_text,
            "last_message_timestamp": to_iso(self.last_message_timestamp) if self.last_message_timestamp else None,
            "last_message_sender_id": self.last_message_sender_id,
            "updated_at": to_iso(self.updated_at) if self.updated_at else None,
        }

    def to_document(self) -> Dict[str, Any]:
        """Convert to a Cosmos DB document."""
        doc = {
            "id": self.chat_id,
            "chatId": self.chat_id,
            "type": DOC_TYPE_CHAT,
            "participantIds": self.participant_ids,
            "participantDetails": {
                "client": self.client.to_document(),
                "dietitian": self.dietitian.to_document(),
            },
            "unreadCounts": dict(self.unread_counts),
            "lastMessageText": self.last_message_text,
            "lastMessageSenderId": self.last_message_sender_id,
        }
        for key, value in (
            ("lastMessageTimestamp", self.last_message_timestamp),
            ("createdAt", self.created_at),
            ("updatedAt", self.updated_at),
        ):
            if value is not None:
                doc[key] = to_iso(value)
        return doc

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "ChatSummary":
        details = doc.get("participantDetails") or {}
        return cls(
            chat_id=doc.get("chatId") or doc["id"],
            client=ParticipantInfo.from_document(details["client"]),
            dietitian=ParticipantInfo.from_document(details["dietitian"]),
            unread_counts={k: int(v) for k, v in (doc.get("unreadCounts") or {}).items()},
            last_message_text=doc.get("lastMessageText"),
            last_message_timestamp=parse_date(doc.get("lastMessageTimestamp")),
            last_message_sender_id=doc.get("lastMessageSenderId"),
            created_at=parse_date(doc.get("createdAt")),
            updated_at=parse_date(doc.get("updatedAt")),
        )


# =============================================================================
# MESSAGES
# =============================================================================

class AttachmentType(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    FILE = "file"


def _attachment_type(image_url, video_url, file_url) -> Optional[AttachmentType]:
    if image_url:
        return AttachmentType.IMAGE
    if video_url:
        return AttachmentType.VIDEO
    if file_url:
        return AttachmentType.FILE
    return None


@dataclass
class ChatMessage:
    id: str
    chat_id: str
    text: str
    sender_id: str
    sender_name: str
    timestamp: datetime
    is_read_by_client: bool = False
    is_read_by_dietitian: bool = False
    sender_avatar_url: Optional[str] = None
    image_url: Optional[str] = None
    video_url: Optional[str] = None
    file_url: Optional[str] = None

    @property
    def attachment_type(self) -> Optional[AttachmentType]:
        return _attachment_type(self.image_url, self.video_url, self.file_url)

    @property
    def has_attachment(self) -> bool:
        return self.attachment_type is not None

    @property
    def display_text(self) -> str:
        """Text for previews; attachment placeholder when there is no text."""
        if self.text:
            return self.text
        kind = self.attachment_type
        if kind is not None:
            return ATTACHMENT_PLACEHOLDERS[kind.value]
        return ""

    def is_read_by(self, role: ActorRole) -> bool:
        if role == ActorRole.CLIENT:
            return self.is_read_by_client
        return self.is_read_by_dietitian

    def mark_read_by(self, role: ActorRole) -> "ChatMessage":
        if role == ActorRole.CLIENT:
            return replace(self, is_read_by_client=True)
        return replace(self, is_read_by_dietitian=True)

    def to_record(self) -> Dict[str, Any]:
        """The persisted form: allow-listed keys only."""
        return project_message_fields(self)

    @classmethod
    def from_record(cls, message_id: str, chat_id: str, record: Mapping[str, Any]) -> "ChatMessage":
        """Rebuild a message from a stored record, ignoring any other keys."""
        return cls(
            id=message_id,
            chat_id=chat_id,
            text=record.get("text") or "",
            sender_id=record["senderId"],
            sender_name=record.get("senderName") or "",
            timestamp=parse_date(record.get("timestamp")) or utc_now(),
            is_read_by_client=bool(record.get("isReadByClient", False)),
            is_read_by_dietitian=bool(record.get("isReadByDietitian", False)),
            sender_avatar_url=record.get("senderAvatarURL"),
            image_url=record.get("imageURL"),
            video_url=record.get("videoURL"),
            file_url=record.get("fileURL"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "chat_id": self.chat_id,
            "text": self.text,
            "display_text": self.display_text,
            "sender_id": self.sender_id,
            "sender_name": self.sender_name,
            "sender_avatar_url": self.sender_avatar_url,
            "timestamp": to_iso(self.timestamp),
            "is_read_by_client": self.is_read_by_client,
            "is_read_by_dietitian": self.is_read_by_dietitian,
            "attachment_type": self.attachment_type.value if self.attachment_type else None,
            "image_url": self.image_url,
            "video_url": self.video_url,
            "file_url": self.file_url,
        }


def project_message_fields(message: ChatMessage) -> Dict[str, Any]:
    """
    Build the stored record for a message one allow-listed field at a time.

    Nothing outside MESSAGE_ALLOWED_FIELDS and ATTACHMENT_FIELDS can reach
    the record; attachment keys appear only when set.
    """
    values = {
        "text": message.text,
        "senderId": message.sender_id,
        "senderName": message.sender_name,
        "senderAvatarURL": message.sender_avatar_url,
        "timestamp": to_iso(message.timestamp),
        "isReadByClient": message.is_read_by_client,
        "isReadByDietitian": message.is_read_by_dietitian,
    }
    record = {key: values[key] for key in MESSAGE_ALLOWED_FIELDS}
    attachments = {
        "imageURL": message.image_url,
        "videoURL": message.video_url,
        "fileURL": message.file_url,
    }
    for key in ATTACHMENT_FIELDS:
        if attachments[key]:
            record[key] = attachments[key]
    return record


# Stored-record spellings accepted by MessageDraft.from_payload
PAYLOAD_ALIASES = {
    "chatId": "chat_id",
    "senderId": "sender_id",
    "senderName": "sender_name",
    "senderAvatarURL": "sender_avatar_url",
    "imageURL": "image_url",
    "videoURL": "video_url",
    "fileURL": "file_url",
}


@dataclass
class MessageDraft:
    """A message a participant wants to send; becomes a ChatMessage on send."""
    chat_id: str
    sender_id: str
    sender_name: str
    text: str = ""
    sender_avatar_url: Optional[str] = None
    image_url: Optional[str] = None
    video_url: Optional[str] = None
    file_url: Optional[str] = None

    @property
    def has_attachment(self) -> bool:
        return _attachment_type(self.image_url, self.video_url, self.file_url) is not None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "MessageDraft":
        """
        Copy the known keys of an untyped payload into a draft.

        Entry point for callers holding a plain mapping, such as a decoded
        request body.

        Unknown keys are dropped and logged. Raises KeyError when chat_id,
        sender_id or sender_name is missing.
        """
        known = {f.name for f in fields(cls)}
        values: Dict[str, Any] = {}
        dropped = []
        for key, value in payload.items():
            name = PAYLOAD_ALIASES.get(key, key)
            if name in known:
                values[name] = value
            else:
                dropped.append(key)
        if dropped:
            logger.warning(f"Dropped unexpected message fields: {sorted(dropped)}")
        for required in ("chat_id", "sender_id", "sender_name"):
            if required not in values:
                raise KeyError(required)
        return cls(**values)


class MessageComposer:
    """Turns a draft into the message that will be stored."""

    def compose(
        self,
        draft: MessageDraft,
        sender_role: ActorRole,
        now: Optional[datetime] = None,
        message_id: Optional[str] = None,
    ) -> ChatMessage:
        return ChatMessage(
            id=message_id or uuid.uuid4().hex,
            chat_id=draft.chat_id,
            text=draft.text or "",
            sender_id=draft.sender_id,
            sender_name=draft.sender_name,
            timestamp=now or utc_now(),
            sender_avatar_url=draft.sender_avatar_url,
            image_url=draft.image_url,
            video_url=draft.video_url,
            file_url=draft.file_url,
            **read_flags_for_sender(sender_role),
        )


# =============================================================================
# TYPING
# =============================================================================

@dataclass(frozen=True)
class TypingIndicator:
    user_id: str
    user_name: str
    created_at: datetime

    def is_active(self, now: Optional[datetime] = None) -> bool:
        return (now or utc_now()) - self.created_at < TYPING_INDICATOR_TTL

    def to_dict(self) -> Dict[str, Any]:
        return {"user_id": self.user_id, "user_name": self.user_name, "created_at": to_iso(self.created_at)}


def is_typing(indicator: TypingIndicator, now: Optional[datetime] = None) -> bool:
    return indicator.is_active(now)
