"""
Appointment Service.

Wires the scheduling domain to an AppointmentStore. Every write runs as a
compare-and-commit against the dietitian's schedule snapshot: read the
schedule, decide with the pure scheduler, commit with the snapshot version,
and start over when another writer got there first.
"""

import logging
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Callable, List, Optional

from core.data import ConcurrencyConflict, QueryOptions, Snapshot
from core.domain import OperationResult, utc_now
from shared.roles import Actor
from use_cases.scheduling.data import AppointmentStore
from use_cases.scheduling.domain import (
    Appointment,
    AppointmentDraft,
    AppointmentNotFound,
    AppointmentScheduler,
    AppointmentStatus,
    InvalidTimeRange,
    ScheduleContention,
    StoreUnavailable,
    TimeRange,
)

logger = logging.getLogger(__name__)

Decision = Callable[[Snapshot[Appointment]], OperationResult[Appointment]]


class AppointmentService:
    """Appointment operations for the HTTP surface and background jobs."""

    def __init__(
        self,
        store: AppointmentStore,
        clock: Callable[[], datetime] = utc_now,
        commit_attempts: int = 3,
        display_tz: tzinfo = timezone.utc,
        scheduler: Optional[AppointmentScheduler] = None,
    ):
        self.store = store
        self.clock = clock
        self.commit_attempts = max(1, commit_attempts)
        self.display_tz = display_tz
        self.scheduler = scheduler or AppointmentScheduler()

    # =========================================================================
    # WRITES
    # =========================================================================

    def _commit(self, dietitian_id: str, decide: Decision) -> OperationResult[Appointment]:
        """
        Run ``decide`` against a fresh snapshot and commit its result.

        A failed decision is returned as-is. A stale commit re-reads the
        schedule and decides again, up to ``commit_attempts`` times. A store
        failure ends the attempt with ``StoreUnavailable``.
        """
        for attempt in range(1, self.commit_attempts + 1):
            try:
                snapshot = self.store.snapshot(dietitian_id)
            except StoreUnavailable as e:
                return OperationResult.failure(e)
            result = decide(snapshot)
            if not result.ok:
                return result
            try:
                self.store.save(result.value, expected_version=snapshot.version)
                return result
            except StoreUnavailable as e:
                return OperationResult.failure(e)
            except ConcurrencyConflict:
                logger.warning(
                    f"Schedule for dietitian {dietitian_id} changed during commit "
                    f"(attempt {attempt}/{self.commit_attempts})"
                )
        return OperationResult.failure(ScheduleContention())

    def propose(self, draft: AppointmentDraft, actor: Optional[Actor] = None) -> OperationResult[Appointment]:
        """Book a new appointment if the dietitian's slot is free."""
        result = self._commit(
            draft.dietitian_id,
            lambda snapshot: self.scheduler.propose(draft, snapshot.items, actor, now=self.clock()),
        )
        if result.ok:
            logger.info(f"Booked appointment {result.value.id} for dietitian {draft.dietitian_id}")
        return result

    def transition(
        self,
        dietitian_id: str,
        appointment_id: str,
        to: AppointmentStatus,
        actor: Actor,
    ) -> OperationResult[Appointment]:
        def decide(snapshot: Snapshot[Appointment]) -> OperationResult[Appointment]:
            appointment = _find(snapshot.items, appointment_id)
            if appointment is None:
                return OperationResult.failure(AppointmentNotFound())
            return self.scheduler.transition(appointment, to, actor, now=self.clock())

        result = self._commit(dietitian_id, decide)
        if result.ok:
            logger.info(f"Appointment {appointment_id} is now {to.value}")
        return result

    def reschedule(
        self,
        dietitian_id: str,
        appointment_id: str,
        new_range: TimeRange,
        actor: Actor,
        notes: Optional[str] = None,
    ) -> OperationResult[Appointment]:
        def decide(snapshot: Snapshot[Appointment]) -> OperationResult[Appointment]:
            appointment = _find(snapshot.items, appointment_id)
            if appointment is None:
                return OperationResult.failure(AppointmentNotFound())
            return self.scheduler.reschedule(
                appointment,
                new_range.start,
                new_range.end,
                snapshot.items,
                actor,
                notes=notes,
                now=self.clock(),
            )

        return self._commit(dietitian_id, decide)

    # =========================================================================
    # READS
    # =========================================================================

    def get(self, dietitian_id: str, appointment_id: str) -> OperationResult[Appointment]:
        try:
            appointment = self.store.get(dietitian_id, appointment_id)
        except StoreUnavailable as e:
            return OperationResult.failure(e)
        if appointment is None:
            return OperationResult.failure(AppointmentNotFound())
        return OperationResult.success(appointment)

    def appointments_between(
        self,
        dietitian_id: str,
        window: TimeRange,
        status: Optional[AppointmentStatus] = None,
    ) -> List[Appointment]:
        """Appointments starting inside ``window``, ordered by start."""
        options = QueryOptions(limit=10_000, window_start=window.start, window_end=window.end)
        if status is not None:
            options.filters["status"] = status
        return self.store.find(dietitian_id, options).data

    def count_between(self, dietitian_id: str, window: TimeRange) -> int:
        options = QueryOptions(window_start=window.start, window_end=window.end)
        return self.store.count(dietitian_id, options)

    def day_window(self, day: Optional[date] = None) -> TimeRange:
        """Midnight-to-midnight of ``day`` in the display timezone."""
        if day is None:
            day = self.clock().astimezone(self.display_tz).date()
        start = datetime.combine(day, time.min, tzinfo=self.display_tz)
        return TimeRange(start, start + timedelta(days=1))

    def todays_appointments(self, dietitian_id: str) -> List[Appointment]:
        return self.appointments_between(dietitian_id, self.day_window())


def _find(appointments: List[Appointment], appointment_id: str) -> Optional[Appointment]:
    for appointment in appointments:
        if appointment.id == appointment_id:
            return appointment
    return None


def parse_window(start: datetime, end: datetime) -> OperationResult[TimeRange]:
    """TimeRange for query windows given as raw datetimes."""
    try:
        return OperationResult.success(TimeRange(start, end))
    except InvalidTimeRange as e:
        return OperationResult.failure(e)
