"""
Messaging Errors.

Chat failures are one error type carrying a ``ChatErrorKind``. Whether an
operation may be retried depends only on the kind.
"""

from enum import Enum
from typing import Dict, FrozenSet, Optional

from core.domain import DomainError


class ChatErrorKind(str, Enum):
    NETWORK_ERROR = "network_error"
    TIMEOUT = "timeout"
    SERVER_ERROR = "server_error"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    INVALID_IMAGE_DATA = "invalid_image_data"
    UNAUTHORIZED = "unauthorized"
    INVALID_REQUEST = "invalid_request"
    CHAT_NOT_FOUND = "chat_not_found"

    @property
    def is_retryable(self) -> bool:
        return self in RETRYABLE_KINDS


RETRYABLE_KINDS: FrozenSet[ChatErrorKind] = frozenset({
    ChatErrorKind.NETWORK_ERROR,
    ChatErrorKind.TIMEOUT,
    ChatErrorKind.SERVER_ERROR,
    ChatErrorKind.RATE_LIMIT_EXCEEDED,
})

ERROR_MESSAGES: Dict[ChatErrorKind, str] = {
    ChatErrorKind.NETWORK_ERROR: "Network error. Please check your internet connection",
    ChatErrorKind.TIMEOUT: "Request timed out. Please check your connection",
    ChatErrorKind.SERVER_ERROR: "Server error occurred",
    ChatErrorKind.RATE_LIMIT_EXCEEDED: "Rate limit exceeded. Please try again later",
    ChatErrorKind.INVALID_IMAGE_DATA: "Invalid image data provided",
    ChatErrorKind.UNAUTHORIZED: "You are not a participant of this chat",
    ChatErrorKind.INVALID_REQUEST: "Invalid request format",
    ChatErrorKind.CHAT_NOT_FOUND: "Chat not found",
}


class ChatError(DomainError):
    """A failed chat operation."""

    def __init__(self, kind: ChatErrorKind, message: Optional[str] = None):
        self.kind = kind
        self.code = kind.value
        self.retryable = kind.is_retryable
        super().__init__(message or ERROR_MESSAGES[kind])


def error_kind_for_status(status_code: Optional[int]) -> ChatErrorKind:
    """
    Map a document store HTTP status to an error kind.

    A missing status means the request never got a response.
    """
    if status_code is None:
        return ChatErrorKind.NETWORK_ERROR
    if status_code == 408:
        return ChatErrorKind.TIMEOUT
    if status_code == 429:
        return ChatErrorKind.RATE_LIMIT_EXCEEDED
    if status_code in (401, 403):
        return ChatErrorKind.UNAUTHORIZED
    if status_code == 404:
        return ChatErrorKind.CHAT_NOT_FOUND
    if status_code >= 500:
        return ChatErrorKind.SERVER_ERROR
    return ChatErrorKind.INVALID_REQUEST
