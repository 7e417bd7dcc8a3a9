"""
Appointment Scheduling Use Case.

Dietitian appointments with a status lifecycle and conflict detection.

Components:
- domain: TimeRange, Appointment, lifecycle policies, conflict checking
- data: AppointmentStore with in-memory and Cosmos DB backends
- AppointmentService: compare-and-commit orchestration over a store

Usage:
    from use_cases.scheduling import AppointmentService, InMemoryAppointmentStore

    service = AppointmentService(InMemoryAppointmentStore())
    result = service.propose(draft, actor)
"""

from use_cases.scheduling.data import (
    AppointmentStore,
    CosmosAppointmentStore,
    InMemoryAppointmentStore,
)
from use_cases.scheduling.service import AppointmentService, parse_window

__all__ = [
    "AppointmentService",
    "AppointmentStore",
    "CosmosAppointmentStore",
    "InMemoryAppointmentStore",
    "parse_window",
]
