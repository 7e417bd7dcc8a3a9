"""
Scheduling Domain Policies.

Pure business rules for the appointment lifecycle.
These classes have NO I/O dependencies - they can be unit tested in isolation.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from core.domain import PolicyDecision, PolicyEngine, PolicyResult
from shared.roles import Actor, ActorRole


# =============================================================================
# STATUS
# =============================================================================

class AppointmentStatus(str, Enum):
    """Lifecycle states of an appointment."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"

    @property
    def display_name(self) -> str:
        return STATUS_DISPLAY_NAMES[self]

    @property
    def severity(self) -> str:
        """Colour tag used by clients when rendering the status."""
        return STATUS_SEVERITY[self]

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


STATUS_DISPLAY_NAMES = {
    AppointmentStatus.PENDING: "Pending",
    AppointmentStatus.CONFIRMED: "Confirmed",
    AppointmentStatus.SCHEDULED: "Scheduled",
    AppointmentStatus.COMPLETED: "Completed",
    AppointmentStatus.CANCELLED: "Cancelled",
    AppointmentStatus.NO_SHOW: "No Show",
}

STATUS_SEVERITY = {
    AppointmentStatus.PENDING: "orange",
    AppointmentStatus.CONFIRMED: "green",
    AppointmentStatus.SCHEDULED: "indigo",
    AppointmentStatus.COMPLETED: "purple",
    AppointmentStatus.CANCELLED: "red",
    AppointmentStatus.NO_SHOW: "gray",
}


def display_name(status: str) -> str:
    """Display name for a raw status value, e.g. ``"cancelled"``."""
    return AppointmentStatus(status).display_name


# =============================================================================
# CONSTANTS
# =============================================================================

TERMINAL_STATUSES: FrozenSet[AppointmentStatus] = frozenset({
    AppointmentStatus.COMPLETED,
    AppointmentStatus.CANCELLED,
    AppointmentStatus.NO_SHOW,
})

# Only cancelled appointments free their slot
NON_BLOCKING_STATUSES: FrozenSet[AppointmentStatus] = frozenset({
    AppointmentStatus.CANCELLED,
})

ALLOWED_TRANSITIONS: Dict[AppointmentStatus, FrozenSet[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset({
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.SCHEDULED,
        AppointmentStatus.CANCELLED,
    }),
    AppointmentStatus.CONFIRMED: frozenset({
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
    }),
    AppointmentStatus.SCHEDULED: frozenset({
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
    }),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
    AppointmentStatus.NO_SHOW: frozenset(),
}

# Target statuses each role may move an appointment into
ROLE_PERMISSIONS: Dict[ActorRole, FrozenSet[AppointmentStatus]] = {
    ActorRole.CLIENT: frozenset({
        AppointmentStatus.CANCELLED,
    }),
    ActorRole.DIETITIAN: frozenset({
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.SCHEDULED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.COMPLETED,
        AppointmentStatus.NO_SHOW,
    }),
}

# Statuses a new appointment may start in, per booking role
INITIAL_STATUSES: Dict[ActorRole, FrozenSet[AppointmentStatus]] = {
    ActorRole.CLIENT: frozenset({AppointmentStatus.PENDING}),
    ActorRole.DIETITIAN: frozenset({AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED}),
}


# =============================================================================
# POLICY ENGINES
# =============================================================================

@dataclass
class TransitionContext:
    """Context for transition policy evaluation."""
    actor: Actor
    current_status: AppointmentStatus
    target_status: AppointmentStatus
    client_id: str
    dietitian_id: str
    starts_at: datetime
    current_datetime: datetime


class TransitionPolicy(PolicyEngine):
    """
    Rules for moving an appointment between statuses.

    Evaluates:
    - Role permission for the target status
    - Ownership of the appointment
    - The lifecycle table
    - No-show timing
    """

    def get_policies(self) -> List[str]:
        return [
            "role_permission",
            "ownership",
            "lifecycle_table",
            "no_show_after_start",
        ]

    def evaluate(self, context: TransitionContext) -> PolicyDecision:
        permission = self._check_permission(context)
        if permission.is_denied:
            return permission

        table = self._check_lifecycle(context)
        if table.is_denied:
            return table

        timing = self._check_no_show_timing(context)
        if timing.is_denied:
            return timing

        return PolicyDecision(
            result=PolicyResult.APPROVED,
            reason="Transition allowed",
            metadata={"policies_checked": self.get_policies()},
        )

    def _check_permission(self, context: TransitionContext) -> PolicyDecision:
        """Role must be allowed to set the target status and must own the appointment."""
        allowed = ROLE_PERMISSIONS.get(context.actor.role, frozenset())
        if context.target_status not in allowed:
            return PolicyDecision(
                result=PolicyResult.DENIED,
                reason=f"{context.actor.role.value.title()}s cannot set status {context.target_status.value}",
                metadata={"error": "unauthorized"},
            )

        owner_id = context.client_id if context.actor.is_client else context.dietitian_id
        if context.actor.id != owner_id:
            return PolicyDecision(
                result=PolicyResult.DENIED,
                reason="Actor is not a participant of this appointment",
                metadata={"error": "unauthorized"},
            )

        return PolicyDecision(result=PolicyResult.APPROVED, reason="Permitted")

    def _check_lifecycle(self, context: TransitionContext) -> PolicyDecision:
        allowed = ALLOWED_TRANSITIONS.get(context.current_status, frozenset())
        if context.target_status not in allowed:
            return PolicyDecision(
                result=PolicyResult.DENIED,
                reason=(
                    f"Cannot change appointment from {context.current_status.value} "
                    f"to {context.target_status.value}"
                ),
                metadata={"error": "invalid_transition"},
            )
        return PolicyDecision(result=PolicyResult.APPROVED, reason="Allowed by lifecycle")

    def _check_no_show_timing(self, context: TransitionContext) -> PolicyDecision:
        if context.target_status != AppointmentStatus.NO_SHOW:
            return PolicyDecision(result=PolicyResult.APPROVED, reason="Not a no-show")
        if context.current_datetime < context.starts_at:
            return PolicyDecision(
                result=PolicyResult.DENIED,
                reason="An appointment can only be marked as a no-show after it has started",
                metadata={"error": "invalid_transition"},
            )
        return PolicyDecision(result=PolicyResult.APPROVED, reason="Start time has elapsed")


class BookingPolicy(PolicyEngine):
    """
    Who may create an appointment in which initial status.

    Clients request (pending); dietitians may also book directly (confirmed).
    """

    def get_policies(self) -> List[str]:
        return ["booking_participant", "initial_status_by_role"]

    def evaluate(self, context: Dict) -> PolicyDecision:
        """
        Context should include:
        - actor: the booking Actor
        - client_id / dietitian_id: participants of the new appointment
        - initial_status: requested AppointmentStatus (default pending)
        """
        actor: Optional[Actor] = context.get("actor")
        status: AppointmentStatus = context.get("initial_status", AppointmentStatus.PENDING)

        if actor is None:
            return PolicyDecision(
                result=PolicyResult.DENIED,
                reason="No user given for the booking",
                metadata={"error": "unauthorized"},
            )

        owner_id = context.get("client_id") if actor.is_client else context.get("dietitian_id")
        if actor.id != owner_id:
            return PolicyDecision(
                result=PolicyResult.DENIED,
                reason="Users can only book appointments they take part in",
                metadata={"error": "unauthorized"},
            )

        allowed = INITIAL_STATUSES.get(actor.role, frozenset())
        if status not in allowed:
            return PolicyDecision(
                result=PolicyResult.DENIED,
                reason=f"Appointments cannot be created as {status.value} by this user",
                metadata={"error": "unauthorized"},
            )
        return PolicyDecision(result=PolicyResult.APPROVED, reason="Booking allowed")
