"""
Scheduling Domain Services.

Value types and services for appointment scheduling.
These have NO I/O dependencies - pure calculations and transformations.
"""

import uuid
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Any, Dict, Iterable, List, Optional, Sequence

from core.domain import OperationResult, ensure_utc, parse_date, to_iso, utc_now
from shared.cosmos_config import DOC_TYPE_APPOINTMENT
from shared.roles import Actor

from .errors import (
    AppointmentError,
    InvalidTimeRange,
    InvalidTransition,
    TimeSlotUnavailable,
    Unauthorized,
)
from .policies import (
    NON_BLOCKING_STATUSES,
    AppointmentStatus,
    BookingPolicy,
    TransitionContext,
    TransitionPolicy,
)


# =============================================================================
# VALUE TYPES
# =============================================================================

@dataclass(frozen=True)
class TimeRange:
    """
    Half-open interval [start, end).

    Naive datetimes are taken as UTC. Construction with ``start >= end``
    raises InvalidTimeRange.
    """
    start: datetime
    end: datetime

    def __post_init__(self):
        start = ensure_utc(self.start)
        end = ensure_utc(self.end)
        if start >= end:
            raise InvalidTimeRange()
        object.__setattr__(self, "start", start)
        object.__setattr__(self, "end", end)

    @classmethod
    def from_epoch(cls, start_seconds: float, end_seconds: float) -> "TimeRange":
        return cls(
            datetime.fromtimestamp(start_seconds, tz=timezone.utc),
            datetime.fromtimestamp(end_seconds, tz=timezone.utc),
        )

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def overlaps(self, other: "TimeRange") -> bool:
        return self.start < other.end and other.start < self.end

    def to_dict(self) -> Dict[str, str]:
        return {"start": to_iso(self.start), "end": to_iso(self.end)}


def overlaps(a: TimeRange, b: TimeRange) -> bool:
    """True when the two half-open ranges share at least one instant."""
    return a.start < b.end and b.start < a.end


def _range_of(entry: Any) -> TimeRange:
    if isinstance(entry, TimeRange):
        return entry
    return entry.time_range


def conflicts_with_any(candidate: TimeRange, existing: Iterable[Any]) -> List[Any]:
    """
    Every entry of ``existing`` whose range overlaps ``candidate``.

    Entries may be TimeRange values or anything with a ``time_range``
    attribute; input order is preserved. An empty list means bookable.
    """
    return [entry for entry in existing if overlaps(candidate, _range_of(entry))]


# =============================================================================
# TIME FORMATTING
# =============================================================================

def _localize(value: datetime, tz: Optional[tzinfo]) -> datetime:
    return value.astimezone(tz) if tz is not None else value


def _clock(value: datetime) -> str:
    """``9:05 AM`` style, without a leading zero on the hour."""
    hour = value.hour % 12 or 12
    suffix = "AM" if value.hour < 12 else "PM"
    return f"{hour}:{value.minute:02d} {suffix}"


def format_duration(duration: timedelta) -> str:
    minutes = int(duration.total_seconds() // 60)
    hours, remaining = divmod(minutes, 60)
    if hours > 0:
        return f"{hours}h {remaining}m" if remaining > 0 else f"{hours}h"
    return f"{minutes}m"


# =============================================================================
# ENTITIES
# =============================================================================

@dataclass
class Appointment:
    """A booked session between a dietitian and a client."""
    id: str
    dietitian_id: str
    client_id: str
    client_name: str
    time_range: TimeRange
    status: AppointmentStatus = AppointmentStatus.PENDING
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    @property
    def start(self) -> datetime:
        return self.time_range.start

    @property
    def end(self) -> datetime:
        return self.time_range.end

    @property
    def is_blocking(self) -> bool:
        """Whether this appointment still occupies its slot."""
        return self.status not in NON_BLOCKING_STATUSES

    @property
    def duration_string(self) -> str:
        return format_duration(self.time_range.duration)

    def short_time_string(self, tz: Optional[tzinfo] = None) -> str:
        return _clock(_localize(self.start, tz))

    def time_string(self, tz: Optional[tzinfo] = None) -> str:
        start = _localize(self.start, tz)
        return f"{start.strftime('%b')} {start.day}, {_clock(start)}"

    def time_range_string(self, tz: Optional[tzinfo] = None) -> str:
        return f"{_clock(_localize(self.start, tz))} - {_clock(_localize(self.end, tz))}"

    def is_upcoming(self, now: Optional[datetime] = None) -> bool:
        return self.start > (now or utc_now())

    def is_on_day(self, day: date, tz: Optional[tzinfo] = None) -> bool:
        return _localize(self.start, tz).date() == day

    def overlaps(self, other: "Appointment") -> bool:
        return overlaps(self.time_range, other.time_range)

    def with_status(self, status: AppointmentStatus, at: datetime) -> "Appointment":
        """Copy with the new status and its matching timestamp stamped."""
        stamps: Dict[str, Any] = {"status": status, "updated_at": at}
        if status == AppointmentStatus.CONFIRMED:
            stamps["confirmed_at"] = at
        elif status == AppointmentStatus.COMPLETED:
            stamps["completed_at"] = at
        elif status == AppointmentStatus.CANCELLED:
            stamps["cancelled_at"] = at
        return replace(self, **stamps)

    def to_dict(self, tz: Optional[tzinfo] = None) -> Dict[str, Any]:
        return {
            "id": self.id,
            "dietitian_id": self.dietitian_id,
            "client_id": self.client_id,
            "client_name": self.client_name,
            "start_time": to_iso(self.start),
            "end_time": to_iso(self.end),
            "time": self.time_string(tz),
            "time_range": self.time_range_string(tz),
            "duration": self.duration_string,
            "status": self.status.value,
            "status_display": self.status.display_name,
            "status_color": self.status.severity,
            "notes": self.notes,
        }

    def to_document(self) -> Dict[str, Any]:
        """Convert to a Cosmos DB document."""
        doc = {
            "id": self.id,
            "type": DOC_TYPE_APPOINTMENT,
            "dietitianId": self.dietitian_id,
            "clientId": self.client_id,
            "clientName": self.client_name,
            "startTime": to_iso(self.start),
            "endTime": to_iso(self.end),
            "status": self.status.value,
            "notes": self.notes,
        }
        for key, value in (
            ("createdAt", self.created_at),
            ("updatedAt", self.updated_at),
            ("confirmedAt", self.confirmed_at),
            ("completedAt", self.completed_at),
            ("cancelledAt", self.cancelled_at),
        ):
            if value is not None:
                doc[key] = to_iso(value)
        return doc

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Appointment":
        return cls(
            id=doc["id"],
            dietitian_id=doc["dietitianId"],
            client_id=doc["clientId"],
            client_name=doc.get("clientName") or "",
            time_range=TimeRange(parse_date(doc["startTime"]), parse_date(doc["endTime"])),
            status=AppointmentStatus(doc.get("status", AppointmentStatus.PENDING.value)),
            notes=doc.get("notes"),
            created_at=parse_date(doc.get("createdAt")),
            updated_at=parse_date(doc.get("updatedAt")),
            confirmed_at=parse_date(doc.get("confirmedAt")),
            completed_at=parse_date(doc.get("completedAt")),
            cancelled_at=parse_date(doc.get("cancelledAt")),
        )


@dataclass
class AppointmentDraft:
    """Request to create an appointment. Times are validated on propose."""
    dietitian_id: str
    client_id: str
    client_name: str
    start: datetime
    end: datetime
    notes: Optional[str] = None
    initial_status: AppointmentStatus = AppointmentStatus.PENDING


# =============================================================================
# DOMAIN SERVICES
# =============================================================================

class ConflictChecker:
    """
    Checks for appointment conflicts.

    Used to validate that a new or moved appointment doesn't overlap
    with the blocking appointments of the same dietitian.
    """

    def blocking(self, appointments: Iterable[Appointment]) -> List[Appointment]:
        return [a for a in appointments if a.is_blocking]

    def find_conflicts(
        self,
        candidate: TimeRange,
        appointments: Iterable[Appointment],
        excluding_id: Optional[str] = None,
    ) -> List[Appointment]:
        """Blocking appointments overlapping ``candidate``, minus ``excluding_id``."""
        pool = [a for a in self.blocking(appointments) if a.id != excluding_id]
        return conflicts_with_any(candidate, pool)


class AppointmentScheduler:
    """
    Proposes, transitions and reschedules appointments.

    Pure logic - takes the dietitian's existing appointments and the
    current time as input, returns an OperationResult.
    """

    def __init__(self, checker: Optional[ConflictChecker] = None):
        self.checker = checker or ConflictChecker()
        self.booking_policy = BookingPolicy()
        self.transition_policy = TransitionPolicy()

    def propose(
        self,
        draft: AppointmentDraft,
        existing_for_dietitian: Sequence[Appointment],
        actor: Optional[Actor] = None,
        now: Optional[datetime] = None,
    ) -> OperationResult[Appointment]:
        """
        Validate a draft against the schedule and build the new appointment.

        Without an actor only pending appointments can be proposed.
        """
        try:
            time_range = TimeRange(draft.start, draft.end)
        except InvalidTimeRange as e:
            return OperationResult.failure(e)

        if actor is not None:
            decision = self.booking_policy.evaluate({
                "actor": actor,
                "client_id": draft.client_id,
                "dietitian_id": draft.dietitian_id,
                "initial_status": draft.initial_status,
            })
            if decision.is_denied:
                return OperationResult.failure(Unauthorized())
        elif draft.initial_status != AppointmentStatus.PENDING:
            return OperationResult.failure(Unauthorized())

        conflicts = self.checker.find_conflicts(time_range, existing_for_dietitian)
        if conflicts:
            return OperationResult.failure(TimeSlotUnavailable(conflicts))

        created_at = now or utc_now()
        appointment = Appointment(
            id=f"APPT-{uuid.uuid4().hex[:12].upper()}",
            dietitian_id=draft.dietitian_id,
            client_id=draft.client_id,
            client_name=draft.client_name,
            time_range=time_range,
            status=AppointmentStatus.PENDING,
            notes=draft.notes,
            created_at=created_at,
            updated_at=created_at,
        )
        if draft.initial_status != AppointmentStatus.PENDING:
            appointment = appointment.with_status(draft.initial_status, created_at)
        return OperationResult.success(appointment)

    def transition(
        self,
        appointment: Appointment,
        to: AppointmentStatus,
        actor: Actor,
        now: Optional[datetime] = None,
    ) -> OperationResult[Appointment]:
        current_time = now or utc_now()
        decision = self.transition_policy.evaluate(TransitionContext(
            actor=actor,
            current_status=appointment.status,
            target_status=to,
            client_id=appointment.client_id,
            dietitian_id=appointment.dietitian_id,
            starts_at=appointment.start,
            current_datetime=current_time,
        ))
        if decision.is_denied:
            return OperationResult.failure(self._error_for(decision.metadata, appointment.status, to, decision.reason))
        return OperationResult.success(appointment.with_status(to, current_time))

    def reschedule(
        self,
        appointment: Appointment,
        new_start: datetime,
        new_end: datetime,
        existing_for_dietitian: Sequence[Appointment],
        actor: Actor,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> OperationResult[Appointment]:
        """Move an appointment, checking conflicts against everything but itself."""
        try:
            time_range = TimeRange(new_start, new_end)
        except InvalidTimeRange as e:
            return OperationResult.failure(e)

        if not actor.is_dietitian or actor.id != appointment.dietitian_id:
            return OperationResult.failure(Unauthorized())

        if appointment.status.is_terminal:
            return OperationResult.failure(InvalidTransition(
                appointment.status,
                appointment.status,
                f"A {appointment.status.value} appointment cannot be rescheduled",
            ))

        conflicts = self.checker.find_conflicts(
            time_range, existing_for_dietitian, excluding_id=appointment.id
        )
        if conflicts:
            return OperationResult.failure(TimeSlotUnavailable(conflicts))

        changes: Dict[str, Any] = {"time_range": time_range, "updated_at": now or utc_now()}
        if notes is not None:
            changes["notes"] = notes
        return OperationResult.success(replace(appointment, **changes))

    def _error_for(
        self,
        metadata: Dict[str, Any],
        current: AppointmentStatus,
        target: AppointmentStatus,
        reason: str,
    ) -> AppointmentError:
        if metadata.get("error") == "unauthorized":
            return Unauthorized()
        return InvalidTransition(current, target, reason)
