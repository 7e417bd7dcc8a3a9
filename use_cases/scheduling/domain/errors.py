"""
Scheduling Errors.

Every failure an appointment operation can report. Each carries a stable
``code`` for the HTTP layer and a ``retryable`` flag.
"""

from typing import Any, Dict, List, Optional

from core.domain import DomainError


class AppointmentError(DomainError):
    """Base class for scheduling failures."""
    code = "appointment_error"


class InvalidTimeRange(AppointmentError):
    """End time is not after start time."""
    code = "invalid_time_range"
    default_message = "Invalid time range. End time must be after start time"


class TimeSlotUnavailable(AppointmentError):
    """The requested range overlaps existing appointments."""
    code = "time_slot_unavailable"

    def __init__(self, conflicts: List[Any]):
        self.conflicts = list(conflicts)
        if len(self.conflicts) == 1:
            message = "Time slot unavailable. Another appointment is scheduled during this time."
        else:
            message = (
                f"Time slot unavailable. {len(self.conflicts)} appointments "
                f"are scheduled during this time."
            )
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["conflicts"] = [
            c.to_dict() if hasattr(c, "to_dict") else str(c) for c in self.conflicts
        ]
        return data


class AppointmentNotFound(AppointmentError):
    code = "appointment_not_found"
    default_message = "Appointment not found"


class Unauthorized(AppointmentError):
    code = "unauthorized"
    default_message = "You don't have permission to modify this appointment"


class InvalidTransition(AppointmentError):
    """The status change is not in the lifecycle table."""
    code = "invalid_transition"

    def __init__(self, from_status: Any, to_status: Any, reason: Optional[str] = None):
        self.from_status = from_status
        self.to_status = to_status
        from_value = getattr(from_status, "value", from_status)
        to_value = getattr(to_status, "value", to_status)
        super().__init__(reason or f"Cannot change appointment from {from_value} to {to_value}")


class ScheduleContention(AppointmentError):
    """The dietitian's schedule kept changing while we tried to commit."""
    code = "schedule_contention"
    retryable = True
    default_message = "The schedule changed while saving. Please try again"


# Store statuses worth repeating the request for, besides any 5xx
RETRYABLE_STORE_STATUSES = (408, 429)


class StoreUnavailable(AppointmentError):
    """The appointment store failed or could not be reached."""
    code = "store_unavailable"
    default_message = "The schedule could not be reached. Please try again"

    def __init__(self, status_code: Optional[int] = None, message: Optional[str] = None):
        self.status_code = status_code
        # No status means the request never got a response
        self.retryable = (
            status_code is None
            or status_code in RETRYABLE_STORE_STATUSES
            or status_code >= 500
        )
        super().__init__(message)
