"""
Participant roles shared by scheduling and messaging.
"""

from dataclasses import dataclass
from enum import Enum


class ActorRole(str, Enum):
    """The two kinds of users on the platform."""
    CLIENT = "client"
    DIETITIAN = "dietitian"


@dataclass(frozen=True)
class Actor:
    """The user performing an operation."""
    id: str
    role: ActorRole

    @property
    def is_client(self) -> bool:
        return self.role == ActorRole.CLIENT

    @property
    def is_dietitian(self) -> bool:
        return self.role == ActorRole.DIETITIAN
