"""
Scheduling Data Layer.

Appointment persistence behind the ``AppointmentStore`` contract.
"""

from .cosmos_store import CosmosAppointmentStore
from .repositories import AppointmentStore, InMemoryAppointmentStore

__all__ = [
    "AppointmentStore",
    "InMemoryAppointmentStore",
    "CosmosAppointmentStore",
]
