"""
Messaging Domain Layer.

Contains pure business logic for client/dietitian chats.
No database access or I/O - just business rules.
"""

from .errors import ChatError, ChatErrorKind, RETRYABLE_KINDS, error_kind_for_status
from .policies import (
    ATTACHMENT_FIELDS,
    MESSAGE_ALLOWED_FIELDS,
    TYPING_INDICATOR_TTL,
    SendPolicy,
)
from .services import (
    AttachmentType,
    ChatMessage,
    ChatSummary,
    MessageComposer,
    MessageDraft,
    ParticipantInfo,
    TypingIndicator,
    is_typing,
    project_message_fields,
)

__all__ = [
    "ChatError",
    "ChatErrorKind",
    "RETRYABLE_KINDS",
    "error_kind_for_status",
    "ATTACHMENT_FIELDS",
    "MESSAGE_ALLOWED_FIELDS",
    "TYPING_INDICATOR_TTL",
    "SendPolicy",
    "AttachmentType",
    "ChatMessage",
    "ChatSummary",
    "MessageComposer",
    "MessageDraft",
    "ParticipantInfo",
    "TypingIndicator",
    "is_typing",
    "project_message_fields",
]
