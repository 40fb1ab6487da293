"""
Appointment status state machine.

Pure rules (which status may follow which, who may move an appointment
there, what the customer-facing core status is) plus ``apply_status``, the
only place that mutates ``Appointment.status``.
"""

import logging
from typing import Dict, FrozenSet, Optional

from evcenter.models.appointment import Appointment, AppointmentStatus, CoreStatus
from evcenter.models.base import utcnow
from evcenter.models.user import User, UserRole
from evcenter.services.errors import InvalidTransitionError, PermissionDeniedError

logger = logging.getLogger(__name__)

S = AppointmentStatus

ALLOWED_TRANSITIONS: Dict[AppointmentStatus, FrozenSet[AppointmentStatus]] = {
    S.PENDING: frozenset({S.CONFIRMED, S.CANCELLED, S.NO_SHOW}),
    S.CONFIRMED: frozenset({S.CUSTOMER_ARRIVED, S.CANCELLED, S.RESCHEDULED, S.NO_SHOW}),
    S.CUSTOMER_ARRIVED: frozenset({S.RECEPTION_CREATED, S.CANCELLED}),
    S.RECEPTION_CREATED: frozenset({S.RECEPTION_APPROVED, S.PARTS_INSUFFICIENT, S.CANCELLED}),
    S.RECEPTION_APPROVED: frozenset({S.IN_PROGRESS, S.CANCELLED, S.INVOICED}),
    S.PARTS_INSUFFICIENT: frozenset(
        {S.WAITING_FOR_PARTS, S.IN_PROGRESS, S.RESCHEDULED, S.CANCELLED}
    ),
    S.WAITING_FOR_PARTS: frozenset(
        {S.RECEPTION_APPROVED, S.IN_PROGRESS, S.PARTS_INSUFFICIENT, S.CANCELLED, S.RESCHEDULED}
    ),
    S.RESCHEDULED: frozenset({S.CONFIRMED}),
    S.IN_PROGRESS: frozenset({S.PARTS_REQUESTED, S.PARTS_INSUFFICIENT, S.COMPLETED, S.CANCELLED}),
    S.PARTS_REQUESTED: frozenset(
        {S.IN_PROGRESS, S.PARTS_INSUFFICIENT, S.WAITING_FOR_PARTS, S.CANCELLED}
    ),
    S.COMPLETED: frozenset({S.INVOICED}),
    S.INVOICED: frozenset(),
    S.CANCELLED: frozenset(),
    S.NO_SHOW: frozenset(),
}

# Targets a technician may set only on appointments assigned to them
TECHNICIAN_ASSIGNED_TARGETS = frozenset({S.RECEPTION_CREATED, S.IN_PROGRESS, S.PARTS_REQUESTED})
TECHNICIAN_FREE_TARGETS = frozenset({S.PARTS_INSUFFICIENT, S.COMPLETED})

STAFF_TARGETS = frozenset(
    {
        S.CONFIRMED,
        S.CUSTOMER_ARRIVED,
        S.RECEPTION_APPROVED,
        S.IN_PROGRESS,
        S.PARTS_INSUFFICIENT,
        S.WAITING_FOR_PARTS,
        S.PARTS_REQUESTED,
        S.COMPLETED,
        S.CANCELLED,
        S.RESCHEDULED,
        S.NO_SHOW,
        S.INVOICED,
    }
)

CORE_STATUS_MAP: Dict[AppointmentStatus, CoreStatus] = {
    S.PENDING: CoreStatus.SCHEDULED,
    S.CONFIRMED: CoreStatus.SCHEDULED,
    S.CUSTOMER_ARRIVED: CoreStatus.CHECKED_IN,
    S.RECEPTION_CREATED: CoreStatus.CHECKED_IN,
    S.RECEPTION_APPROVED: CoreStatus.IN_SERVICE,
    S.IN_PROGRESS: CoreStatus.IN_SERVICE,
    S.PARTS_INSUFFICIENT: CoreStatus.ON_HOLD,
    S.WAITING_FOR_PARTS: CoreStatus.ON_HOLD,
    S.PARTS_REQUESTED: CoreStatus.ON_HOLD,
    S.COMPLETED: CoreStatus.READY_FOR_PICKUP,
    S.INVOICED: CoreStatus.READY_FOR_PICKUP,
    S.CANCELLED: CoreStatus.CLOSED,
    S.NO_SHOW: CoreStatus.CLOSED,
    S.RESCHEDULED: CoreStatus.CLOSED,
}


def core_status_for(status) -> CoreStatus:
    """Customer-facing status of a detailed status; Scheduled when unknown."""
    try:
        return CORE_STATUS_MAP.get(AppointmentStatus(status), CoreStatus.SCHEDULED)
    except ValueError:
        return CoreStatus.SCHEDULED


def reason_code_for(status) -> Optional[str]:
    status = AppointmentStatus(status)
    core = core_status_for(status)
    if core == CoreStatus.ON_HOLD:
        return "insufficient_parts"
    if status == S.COMPLETED:
        return "completed"
    if core == CoreStatus.CLOSED:
        return status.value
    return None


def can_transition(current, target) -> bool:
    return AppointmentStatus(target) in ALLOWED_TRANSITIONS.get(AppointmentStatus(current), frozenset())


def can_role_set_status(appointment: Appointment, actor: User, target) -> bool:
    """Whether ``actor`` may move ``appointment`` to ``target``."""
    target = AppointmentStatus(target)
    role = UserRole(actor.role)

    if role == UserRole.CUSTOMER:
        return target == S.CANCELLED and appointment.customer_id == actor.id

    if role == UserRole.TECHNICIAN:
        if target in TECHNICIAN_ASSIGNED_TARGETS:
            return appointment.assigned_technician_id == actor.id
        return target in TECHNICIAN_FREE_TARGETS

    return target in STAFF_TARGETS


def validate_transition_requirements(appointment: Appointment, target) -> None:
    target = AppointmentStatus(target)

    if target == S.CUSTOMER_ARRIVED and appointment.status != S.CONFIRMED:
        raise InvalidTransitionError(
            "Customer can only be marked arrived on a confirmed appointment"
        )

    if target == S.RECEPTION_CREATED and not appointment.assigned_technician_id:
        raise InvalidTransitionError(
            "A technician must be assigned before creating a service reception"
        )


def apply_status(
    appointment: Appointment,
    new_status,
    changed_by: Optional[int] = None,
    reason: Optional[str] = None,
    notes: Optional[str] = None,
) -> Appointment:
    """Record the current status in history and move to ``new_status``.

    Does not check permissions or transition rules; callers that act on
    behalf of a user go through :func:`transition` instead.
    """
    new_status = AppointmentStatus(new_status)
    previous = appointment.status

    if appointment.workflow_history is None:
        appointment.workflow_history = []
    appointment.workflow_history.append(
        {
            "status": getattr(previous, "value", previous),
            "changed_by": changed_by,
            "changed_at": utcnow().isoformat(),
            "reason": reason or f"Status changed to {new_status.value}",
            "notes": notes,
        }
    )

    appointment.status = new_status
    appointment.core_status = core_status_for(new_status)
    appointment.reason_code = reason_code_for(new_status)
    if new_status == S.COMPLETED:
        appointment.completed_at = utcnow()

    logger.info(
        f"Appointment {appointment.appointment_number}: "
        f"{getattr(previous, 'value', previous)} -> {new_status.value}"
    )
    return appointment


def transition(
    appointment: Appointment,
    new_status,
    actor: User,
    reason: Optional[str] = None,
    notes: Optional[str] = None,
) -> Appointment:
    """Checked status change on behalf of ``actor``.

    Raises:
        InvalidTransitionError: target not reachable from the current status
            or its preconditions are unmet
        PermissionDeniedError: the actor's role may not set this target
    """
    try:
        target = AppointmentStatus(new_status)
    except ValueError:
        raise InvalidTransitionError(f"Unknown appointment status: {new_status}")

    current = AppointmentStatus(appointment.status)
    if not can_transition(current, target):
        raise InvalidTransitionError(
            f"Cannot change appointment status from {current.value} to {target.value}"
        )

    if not can_role_set_status(appointment, actor, target):
        raise PermissionDeniedError(
            f"Role {UserRole(actor.role).value} cannot set appointment status to {target.value}"
        )

    validate_transition_requirements(appointment, target)
    return apply_status(appointment, target, changed_by=actor.id, reason=reason, notes=notes)
