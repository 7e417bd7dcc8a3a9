"""
Scheduling Domain Layer.

Contains pure business logic for appointment scheduling.
No database access or I/O - just business rules.
"""

from .errors import (
    AppointmentError,
    AppointmentNotFound,
    InvalidTimeRange,
    InvalidTransition,
    ScheduleContention,
    StoreUnavailable,
    TimeSlotUnavailable,
    Unauthorized,
)
from .policies import (
    AppointmentStatus,
    BookingPolicy,
    TransitionContext,
    TransitionPolicy,
)
from .services import (
    Appointment,
    AppointmentDraft,
    AppointmentScheduler,
    ConflictChecker,
    TimeRange,
    conflicts_with_any,
    overlaps,
)

__all__ = [
    "AppointmentError",
    "AppointmentNotFound",
    "InvalidTimeRange",
    "InvalidTransition",
    "ScheduleContention",
    "StoreUnavailable",
    "TimeSlotUnavailable",
    "Unauthorized",
    "AppointmentStatus",
    "BookingPolicy",
    "TransitionContext",
    "TransitionPolicy",
    "Appointment",
    "AppointmentDraft",
    "AppointmentScheduler",
    "ConflictChecker",
    "TimeRange",
    "conflicts_with_any",
    "overlaps",
]
