"""
Messaging Domain Policies.

Rules for who may write to a chat, what a stored message may contain,
and how long a typing indicator stays visible.
"""

from datetime import timedelta
from typing import Dict, List, Tuple

from core.domain import PolicyDecision, PolicyEngine, PolicyResult
from shared.roles import ActorRole


# =============================================================================
# CONSTANTS
# =============================================================================

# The only keys a stored message record may carry
MESSAGE_ALLOWED_FIELDS: Tuple[str, ...] = (
    "text",
    "senderId",
    "senderName",
    "senderAvatarURL",
    "timestamp",
    "isReadByClient",
    "isReadByDietitian",
)

# Optional attachment keys, stored only when present
ATTACHMENT_FIELDS: Tuple[str, ...] = ("imageURL", "videoURL", "fileURL")

TYPING_INDICATOR_TTL = timedelta(seconds=5)

ATTACHMENT_PLACEHOLDERS: Dict[str, str] = {
    "image": "📸 Image",
    "video": "🎥 Video",
    "file": "📄 File",
}

CHAT_STARTED_TEXT = "Chat started."

# Read-flag key owned by each role
READ_FLAG_FIELDS: Dict[ActorRole, str] = {
    ActorRole.CLIENT: "isReadByClient",
    ActorRole.DIETITIAN: "isReadByDietitian",
}


def read_flags_for_sender(role: ActorRole) -> Dict[str, bool]:
    """A new message is read by its sender and unread by the other side."""
    return {
        "is_read_by_client": role == ActorRole.CLIENT,
        "is_read_by_dietitian": role == ActorRole.DIETITIAN,
    }


# =============================================================================
# POLICY ENGINES
# =============================================================================

class SendPolicy(PolicyEngine):
    """
    Whether a draft may be appended to a chat.

    Evaluates:
    - The sender takes part in the chat
    - The message has text or an attachment
    """

    def get_policies(self) -> List[str]:
        return ["sender_is_participant", "message_not_empty"]

    def evaluate(self, context: Dict) -> PolicyDecision:
        """
        Context should include:
        - chat: ChatSummary the message goes to
        - draft: MessageDraft being sent
        """
        chat = context["chat"]
        draft = context["draft"]

        if not chat.is_participant(draft.sender_id):
            return PolicyDecision(
                result=PolicyResult.DENIED,
                reason=f"User {draft.sender_id} is not a participant of {chat.chat_id}",
                metadata={"error": "unauthorized"},
            )

        if not draft.text.strip() and not draft.has_attachment:
            return PolicyDecision(
                result=PolicyResult.DENIED,
                reason="A message needs text or an attachment",
                metadata={"error": "invalid_request"},
            )

        return PolicyDecision(
            result=PolicyResult.APPROVED,
            reason="Message accepted",
            metadata={"policies_checked": self.get_policies()},
        )
