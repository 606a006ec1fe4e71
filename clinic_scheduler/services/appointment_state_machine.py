"""Appointment status state machine.

Pure functions: each takes the current record and returns the next one, or
raises. Persistence is the caller's job.

State machine:
- scheduled -> awaiting_confirmation, confirmed, cancelled
- awaiting_confirmation -> confirmed, cancelled
- confirmed -> completed, no_show, cancelled
- completed, no_show, cancelled -> (final states)

A cancelled appointment can additionally be handed to a waitlisted patient
through reassign(); that is the only way out of a final state.
"""

from datetime import datetime, timedelta
from uuid import UUID

from clinic_scheduler.core.exceptions import (
    AlreadyTerminalException,
    InvalidIntervalException,
    InvalidTransitionException,
)
from clinic_scheduler.schemas.actors import Actor, ActorClass
from clinic_scheduler.schemas.appointments import (
    Appointment,
    AppointmentStatus,
    CancellationInfo,
    ConfirmationMethod,
    HistoryEvent,
    StatusHistoryEntry,
)

ALLOWED_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.SCHEDULED: frozenset(
        {
            AppointmentStatus.AWAITING_CONFIRMATION,
            AppointmentStatus.CONFIRMED,
            AppointmentStatus.CANCELLED,
        }
    ),
    AppointmentStatus.AWAITING_CONFIRMATION: frozenset(
        {AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED}
    ),
    AppointmentStatus.CONFIRMED: frozenset(
        {
            AppointmentStatus.COMPLETED,
            AppointmentStatus.NO_SHOW,
            AppointmentStatus.CANCELLED,
        }
    ),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.NO_SHOW: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
}


def can_transition(current: AppointmentStatus, requested: AppointmentStatus) -> bool:
    """Check whether requested is reachable from current in one step."""
    return requested in ALLOWED_TRANSITIONS[current]


def slot_end(start_at: datetime, duration_minutes: int) -> datetime:
    """Compute the end of a slot, rejecting empty or negative durations."""
    if duration_minutes <= 0:
        raise InvalidIntervalException("Duration must be a positive number of minutes")
    end_at = start_at + timedelta(minutes=duration_minutes)
    if end_at <= start_at:
        raise InvalidIntervalException()
    return end_at


def initial_history(actor: Actor, now: datetime) -> tuple[StatusHistoryEntry, ...]:
    """History seed for a freshly booked appointment."""
    return (
        StatusHistoryEntry(
            status=AppointmentStatus.SCHEDULED,
            changed_at=now,
            changed_by=actor.id,
        ),
    )


def _ensure_open(current: Appointment) -> None:
    if current.status.is_terminal:
        raise AlreadyTerminalException(
            f"Appointment is already {current.status.value} and cannot change"
        )


def transition(
    current: Appointment,
    requested: AppointmentStatus,
    actor: Actor,
    now: datetime,
    reason: str | None = None,
) -> Appointment:
    """
    Apply a status transition.

    Args:
        current: Record as last read
        requested: Target status
        actor: Who requests the change
        now: Transition instant
        reason: Optional free-text reason, kept in history

    Returns:
        The next record with history appended and version incremented

    Raises:
        AlreadyTerminalException: Current status is final
        InvalidTransitionException: Target not reachable from current status
    """
    _ensure_open(current)
    if not can_transition(current.status, requested):
        raise InvalidTransitionException(
            f"Cannot move appointment from {current.status.value} to {requested.value}"
        )

    entry = StatusHistoryEntry(
        status=requested,
        changed_at=now,
        changed_by=actor.id,
        reason=reason,
    )
    update: dict = {
        "status": requested,
        "status_history": (*current.status_history, entry),
        "updated_at": now,
        "version": current.version + 1,
    }

    if requested == AppointmentStatus.CONFIRMED:
        update["confirmed_at"] = now
        update["confirmation_method"] = (
            ConfirmationMethod.PATIENT_RESPONSE
            if actor.actor_class == ActorClass.PATIENT
            else ConfirmationMethod.SYSTEM
        )
    elif requested == AppointmentStatus.CANCELLED:
        update["cancellation"] = CancellationInfo(
            cancelled_at=now,
            cancelled_by=actor.id,
            actor_class=actor.actor_class,
            reason=reason,
        )

    return current.model_copy(update=update)


def reschedule(
    current: Appointment,
    start_at: datetime,
    duration_minutes: int,
    actor: Actor,
    now: datetime,
    reason: str | None = None,
) -> Appointment:
    """Move an open appointment to a new interval; status is unchanged."""
    _ensure_open(current)
    end_at = slot_end(start_at, duration_minutes)
    entry = StatusHistoryEntry(
        status=current.status,
        changed_at=now,
        changed_by=actor.id,
        reason=reason or "Rescheduled",
        event=HistoryEvent.RESCHEDULE,
    )
    return current.model_copy(
        update={
            "start_at": start_at,
            "end_at": end_at,
            "duration_minutes": duration_minutes,
            "status_history": (*current.status_history, entry),
            "updated_at": now,
            "version": current.version + 1,
        }
    )


def reassign(
    current: Appointment,
    patient_id: UUID,
    actor: Actor,
    now: datetime,
    reason: str | None = None,
) -> Appointment:
    """Give a cancelled slot to another patient as a confirmed appointment."""
    if current.status != AppointmentStatus.CANCELLED:
        raise InvalidTransitionException(
            f"Only cancelled appointments can be reassigned, this one is {current.status.value}"
        )
    entry = StatusHistoryEntry(
        status=AppointmentStatus.CONFIRMED,
        changed_at=now,
        changed_by=actor.id,
        reason=reason or "Reassigned from waitlist",
        event=HistoryEvent.REASSIGNMENT,
    )
    return current.model_copy(
        update={
            "patient_id": patient_id,
            "status": AppointmentStatus.CONFIRMED,
            "status_history": (*current.status_history, entry),
            "cancellation": None,
            "confirmed_at": now,
            "confirmation_method": ConfirmationMethod.WAITLIST,
            "confirmation_requested_at": None,
            "updated_at": now,
            "version": current.version + 1,
        }
    )


def stamp_confirmation_request(current: Appointment, now: datetime) -> Appointment:
    """Record that the patient was asked to confirm."""
    if current.status != AppointmentStatus.SCHEDULED:
        raise InvalidTransitionException(
            f"Confirmation can only be requested for scheduled appointments, "
            f"this one is {current.status.value}"
        )
    return current.model_copy(
        update={
            "confirmation_requested_at": now,
            "updated_at": now,
            "version": current.version + 1,
        }
    )
