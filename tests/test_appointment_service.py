"""
Tests for the appointment service: compare-and-commit, lookups and windows.
"""

from datetime import timedelta

import pytest

from core.data import ConcurrencyConflict, QueryOptions
from use_cases.scheduling import AppointmentService, InMemoryAppointmentStore
from use_cases.scheduling.domain import (
    AppointmentNotFound,
    AppointmentStatus,
    ScheduleContention,
    TimeRange,
    TimeSlotUnavailable,
)

from conftest import DIETITIAN_ID, NOW


class FlakyStore(InMemoryAppointmentStore):
    """Lets another writer slip in before the first ``stale_commits`` saves."""

    def __init__(self, stale_commits: int, intruder=None):
        super().__init__()
        self.stale_commits = stale_commits
        self.intruder = intruder
        self.attempts = 0

    def save(self, entity, expected_version=None):
        self.attempts += 1
        if self.attempts <= self.stale_commits:
            if self.intruder is not None:
                super().save(self.intruder)
                self.intruder = None
            raise ConcurrencyConflict(entity.dietitian_id, expected_version)
        return super().save(entity, expected_version)


class TestPropose:

    def test_booked_appointment_is_stored(self, appointment_service, appointment_store, make_draft, client_actor):
        appointment = appointment_service.propose(make_draft(), client_actor).unwrap()
        assert appointment_store.get(DIETITIAN_ID, appointment.id) == appointment

    def test_second_overlapping_booking_fails(self, appointment_service, make_draft, client_actor):
        first = appointment_service.propose(make_draft(), client_actor).unwrap()
        result = appointment_service.propose(make_draft(start_offset_hours=1.5), client_actor)
        assert isinstance(result.error, TimeSlotUnavailable)
        assert [c.id for c in result.error.conflicts] == [first.id]

    def test_cancelled_slot_can_be_rebooked(self, appointment_service, make_draft, client_actor):
        first = appointment_service.propose(make_draft(), client_actor).unwrap()
        appointment_service.transition(DIETITIAN_ID, first.id, AppointmentStatus.CANCELLED, client_actor).unwrap()
        assert appointment_service.propose(make_draft(), client_actor).ok

    def test_stale_commit_is_rechecked(self, clock, make_draft, client_actor):
        store = FlakyStore(stale_commits=1)
        service = AppointmentService(store, clock=clock, commit_attempts=3)
        assert service.propose(make_draft(), client_actor).ok
        assert store.attempts == 2

    def test_recheck_sees_the_concurrent_booking(self, clock, make_draft, client_actor):
        rival = AppointmentService(InMemoryAppointmentStore(), clock=clock)
        intruder = rival.scheduler.propose(make_draft(start_offset_hours=1.5), [], client_actor).unwrap()
        store = FlakyStore(stale_commits=1, intruder=intruder)
        service = AppointmentService(store, clock=clock)
        result = service.propose(make_draft(), client_actor)
        assert isinstance(result.error, TimeSlotUnavailable)
        assert result.error.conflicts == [intruder]

    def test_persistent_contention_is_retryable(self, clock, make_draft, client_actor):
        store = FlakyStore(stale_commits=10)
        service = AppointmentService(store, clock=clock, commit_attempts=3)
        result = service.propose(make_draft(), client_actor)
        assert isinstance(result.error, ScheduleContention)
        assert result.error.retryable
        assert store.attempts == 3


class TestTransitionAndReschedule:

    def test_missing_appointment(self, appointment_service, dietitian_actor):
        result = appointment_service.transition(DIETITIAN_ID, "nope", AppointmentStatus.CONFIRMED, dietitian_actor)
        assert isinstance(result.error, AppointmentNotFound)
        assert result.error.message == "Appointment not found"

    def test_confirm_persists(self, appointment_service, appointment_store, make_draft, client_actor, dietitian_actor):
        booked = appointment_service.propose(make_draft(), client_actor).unwrap()
        appointment_service.transition(DIETITIAN_ID, booked.id, AppointmentStatus.CONFIRMED, dietitian_actor).unwrap()
        assert appointment_store.get(DIETITIAN_ID, booked.id).status == AppointmentStatus.CONFIRMED

    def test_reschedule_persists_new_range(self, appointment_service, make_draft, client_actor, dietitian_actor):
        booked = appointment_service.propose(make_draft(), client_actor).unwrap()
        new_range = TimeRange(NOW + timedelta(hours=4), NOW + timedelta(hours=5))
        moved = appointment_service.reschedule(
            DIETITIAN_ID, booked.id, new_range, dietitian_actor, notes="Moved"
        ).unwrap()
        stored = appointment_service.get(DIETITIAN_ID, booked.id).unwrap()
        assert stored.time_range == new_range
        assert moved.notes == "Moved"


class TestQueries:

    def test_between_is_ordered_by_start(self, appointment_service, make_draft, client_actor):
        late = appointment_service.propose(make_draft(start_offset_hours=5), client_actor).unwrap()
        early = appointment_service.propose(make_draft(start_offset_hours=1), client_actor).unwrap()
        window = TimeRange(NOW, NOW + timedelta(hours=10))
        assert [a.id for a in appointment_service.appointments_between(DIETITIAN_ID, window)] == [early.id, late.id]
        assert appointment_service.count_between(DIETITIAN_ID, window) == 2

    def test_window_is_half_open(self, appointment_service, make_draft, client_actor):
        appointment_service.propose(make_draft(start_offset_hours=1), client_actor).unwrap()
        window = TimeRange(NOW, NOW + timedelta(hours=1))
        assert appointment_service.appointments_between(DIETITIAN_ID, window) == []

    def test_todays_appointments(self, appointment_service, make_draft, client_actor):
        today = appointment_service.propose(make_draft(start_offset_hours=2), client_actor).unwrap()
        appointment_service.propose(make_draft(start_offset_hours=24), client_actor).unwrap()
        assert [a.id for a in appointment_service.todays_appointments(DIETITIAN_ID)] == [today.id]

    def test_status_filter(self, appointment_service, make_draft, client_actor, dietitian_actor):
        booked = appointment_service.propose(make_draft(), client_actor).unwrap()
        appointment_service.propose(make_draft(start_offset_hours=3), client_actor).unwrap()
        appointment_service.transition(DIETITIAN_ID, booked.id, AppointmentStatus.CONFIRMED, dietitian_actor)
        confirmed = appointment_service.appointments_between(
            DIETITIAN_ID, appointment_service.day_window(), status=AppointmentStatus.CONFIRMED
        )
        assert [a.id for a in confirmed] == [booked.id]


class TestInMemoryStore:

    def test_writes_bump_the_schedule_version(self, appointment_service, appointment_store, make_draft, client_actor):
        before = appointment_store.snapshot(DIETITIAN_ID).version
        booked = appointment_service.propose(make_draft(), client_actor).unwrap()
        after_save = appointment_store.snapshot(DIETITIAN_ID).version
        assert after_save != before

        assert appointment_store.delete(DIETITIAN_ID, booked.id) is True
        assert appointment_store.snapshot(DIETITIAN_ID).version != after_save
        assert appointment_store.delete(DIETITIAN_ID, booked.id) is False

    def test_stale_version_is_rejected(self, appointment_store, make_draft, client_actor, appointment_service):
        stale = appointment_store.snapshot(DIETITIAN_ID).version
        booked = appointment_service.propose(make_draft(), client_actor).unwrap()
        with pytest.raises(ConcurrencyConflict):
            appointment_store.save(booked, expected_version=stale)

    def test_find_paginates(self, appointment_service, appointment_store, make_draft, client_actor):
        for offset in (1, 3, 5):
            appointment_service.propose(make_draft(start_offset_hours=offset), client_actor).unwrap()
        page = appointment_store.find(DIETITIAN_ID, QueryOptions(limit=2, order_desc=True))
        assert [a.start for a in page.data] == [NOW + timedelta(hours=5), NOW + timedelta(hours=3)]
        assert page.has_more and page.next_offset == 2 and page.total_count == 3
