"""
Request models for the HTTP surface.

The acting user never comes from a body: it is read from the
``X-Actor-Id`` / ``X-Actor-Role`` headers.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from use_cases.messaging.domain import ParticipantInfo
from use_cases.scheduling.domain import AppointmentStatus


# =============================================================================
# APPOINTMENTS
# =============================================================================

class ProposeAppointmentRequest(BaseModel):
    """New appointment between a dietitian and a client."""
    dietitian_id: str
    client_id: str
    client_name: str
    start_time: datetime
    end_time: datetime
    notes: Optional[str] = None
    initial_status: AppointmentStatus = AppointmentStatus.PENDING


class StatusChangeRequest(BaseModel):
    status: AppointmentStatus


class RescheduleRequest(BaseModel):
    start_time: datetime
    end_time: datetime
    notes: Optional[str] = None


# =============================================================================
# CHATS
# =============================================================================

class ParticipantModel(BaseModel):
    id: str
    full_name: str
    photo_url: Optional[str] = None

    def to_domain(self) -> ParticipantInfo:
        return ParticipantInfo(id=self.id, full_name=self.full_name, photo_url=self.photo_url)


class OpenChatRequest(BaseModel):
    client: ParticipantModel
    dietitian: ParticipantModel


class SendMessageRequest(BaseModel):
    """
    Outgoing chat message.

    Unknown fields are rejected so nothing beyond these keys can reach
    the stored record.
    """
    model_config = ConfigDict(extra="forbid")

    sender_name: str
    text: str = ""
    sender_avatar_url: Optional[str] = None
    image_url: Optional[str] = None
    video_url: Optional[str] = None
    file_url: Optional[str] = None


class TypingRequest(BaseModel):
    user_name: str = Field(min_length=1)
