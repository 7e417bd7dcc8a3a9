"""
Shared fixtures: a controllable clock, actors, in-memory stores and services.
"""

from datetime import datetime, timedelta, timezone

import pytest
from azure.cosmos.exceptions import CosmosBatchOperationError

from shared.roles import Actor, ActorRole
from use_cases.messaging import ChatService, InMemoryChatStore, InMemoryTypingStore
from use_cases.messaging.domain import ParticipantInfo
from use_cases.scheduling import AppointmentService, InMemoryAppointmentStore
from use_cases.scheduling.domain import AppointmentDraft

# Monday morning
NOW = datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)

CLIENT_ID = "client-ana"
DIETITIAN_ID = "dietitian-ben"


def batch_error(status: int) -> CosmosBatchOperationError:
    """A transactional batch failure whose first operation got ``status``."""
    return CosmosBatchOperationError(
        error_index=0,
        headers={},
        status_code=status,
        message="batch failed",
        operation_responses=[{"statusCode": status}],
    )


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = NOW):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float = 0, minutes: float = 0, hours: float = 0):
        self.current += timedelta(seconds=seconds, minutes=minutes, hours=hours)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def client_actor():
    return Actor(id=CLIENT_ID, role=ActorRole.CLIENT)


@pytest.fixture
def dietitian_actor():
    return Actor(id=DIETITIAN_ID, role=ActorRole.DIETITIAN)


@pytest.fixture
def client_info():
    return ParticipantInfo(id=CLIENT_ID, full_name="Ana Client", photo_url="https://img.example/ana.png")


@pytest.fixture
def dietitian_info():
    return ParticipantInfo(id=DIETITIAN_ID, full_name="Ben Dietitian")


@pytest.fixture
def make_draft():
    """Factory for appointment drafts relative to NOW."""
    def _make(start_offset_hours: float = 1, duration_minutes: int = 60, **overrides):
        start = NOW + timedelta(hours=start_offset_hours)
        values = dict(
            dietitian_id=DIETITIAN_ID,
            client_id=CLIENT_ID,
            client_name="Ana Client",
            start=start,
            end=start + timedelta(minutes=duration_minutes),
        )
        values.update(overrides)
        return AppointmentDraft(**values)
    return _make


@pytest.fixture
def appointment_store():
    return InMemoryAppointmentStore()


@pytest.fixture
def appointment_service(appointment_store, clock):
    return AppointmentService(appointment_store, clock=clock)


@pytest.fixture
def chat_store():
    return InMemoryChatStore()


@pytest.fixture
def typing_store():
    return InMemoryTypingStore()


@pytest.fixture
def chat_service(chat_store, typing_store, clock):
    return ChatService(chat_store, typing_store, clock=clock)


@pytest.fixture
def open_chat(chat_service, client_info, dietitian_info):
    return chat_service.open_chat(client_info, dietitian_info).unwrap()
