"""
Unit tests for the appointment status state machine.
"""

import pytest
from evcenter.models import Appointment, User
from evcenter.models.appointment import AppointmentStatus, CoreStatus
from evcenter.models.user import UserRole
from evcenter.services.appointment_workflow import (
    apply_status,
    can_transition,
    core_status_for,
    reason_code_for,
    transition,
    validate_transition_requirements,
)
from evcenter.services.errors import InvalidTransitionError, PermissionDeniedError

S = AppointmentStatus


def make_appointment(status=S.PENDING, customer_id=1, technician_id=None):
    return Appointment(
        id=10,
        appointment_number="APT241218001",
        customer_id=customer_id,
        vehicle_id=1,
        status=status,
        assigned_technician_id=technician_id,
        workflow_history=[],
    )


def make_user(user_id, role):
    return User(id=user_id, role=role, first_name="Test", last_name="User")


def test_allowed_transitions():
    assert can_transition(S.PENDING, S.CONFIRMED)
    assert can_transition("confirmed", "customer_arrived")
    assert can_transition(S.PARTS_INSUFFICIENT, S.IN_PROGRESS)
    assert not can_transition(S.PENDING, S.IN_PROGRESS)
    assert not can_transition(S.COMPLETED, S.CANCELLED)


@pytest.mark.parametrize("terminal", [S.INVOICED, S.CANCELLED, S.NO_SHOW])
def test_terminal_statuses_have_no_exit(terminal):
    assert not any(can_transition(terminal, target) for target in AppointmentStatus)


def test_core_status_mapping():
    assert core_status_for(S.PENDING) == CoreStatus.SCHEDULED
    assert core_status_for(S.RECEPTION_CREATED) == CoreStatus.CHECKED_IN
    assert core_status_for("parts_requested") == CoreStatus.ON_HOLD
    assert core_status_for(S.INVOICED) == CoreStatus.READY_FOR_PICKUP
    assert core_status_for("bogus") == CoreStatus.SCHEDULED


def test_reason_codes():
    assert reason_code_for(S.WAITING_FOR_PARTS) == "insufficient_parts"
    assert reason_code_for(S.COMPLETED) == "completed"
    assert reason_code_for(S.NO_SHOW) == "no_show"
    assert reason_code_for(S.CONFIRMED) is None


def test_apply_status_records_history():
    appointment = make_appointment(S.IN_PROGRESS)
    apply_status(appointment, S.COMPLETED, changed_by=7, reason="Done")

    assert appointment.status == S.COMPLETED
    assert appointment.core_status == CoreStatus.READY_FOR_PICKUP
    assert appointment.reason_code == "completed"
    assert appointment.completed_at is not None
    entry = appointment.workflow_history[-1]
    assert entry["status"] == "in_progress"
    assert entry["changed_by"] == 7
    assert entry["reason"] == "Done"


def test_staff_confirms():
    appointment = make_appointment()
    transition(appointment, S.CONFIRMED, make_user(2, UserRole.STAFF))
    assert appointment.status == S.CONFIRMED
    assert appointment.workflow_history[-1]["reason"] == "Status changed to confirmed"


def test_customer_may_only_cancel_own():
    owner = make_user(1, UserRole.CUSTOMER)
    stranger = make_user(99, UserRole.CUSTOMER)

    with pytest.raises(PermissionDeniedError):
        transition(make_appointment(), S.CANCELLED, stranger)
    with pytest.raises(PermissionDeniedError):
        transition(make_appointment(), S.CONFIRMED, owner)

    appointment = make_appointment()
    transition(appointment, S.CANCELLED, owner)
    assert appointment.core_status == CoreStatus.CLOSED


def test_technician_needs_assignment_to_start_work():
    tech = make_user(5, UserRole.TECHNICIAN)

    with pytest.raises(PermissionDeniedError):
        transition(make_appointment(S.RECEPTION_APPROVED, technician_id=6), S.IN_PROGRESS, tech)

    appointment = make_appointment(S.RECEPTION_APPROVED, technician_id=5)
    transition(appointment, S.IN_PROGRESS, tech)
    assert appointment.status == S.IN_PROGRESS


def test_invalid_transition_rejected():
    with pytest.raises(InvalidTransitionError):
        transition(make_appointment(), S.COMPLETED, make_user(2, UserRole.ADMIN))


def test_unknown_status_rejected():
    with pytest.raises(InvalidTransitionError):
        transition(make_appointment(), "teleported", make_user(2, UserRole.ADMIN))


def test_reception_requires_assigned_technician():
    with pytest.raises(InvalidTransitionError):
        validate_transition_requirements(make_appointment(S.CUSTOMER_ARRIVED), S.RECEPTION_CREATED)
    validate_transition_requirements(
        make_appointment(S.CUSTOMER_ARRIVED, technician_id=5), S.RECEPTION_CREATED
    )


def test_arrival_requires_confirmation():
    with pytest.raises(InvalidTransitionError):
        validate_transition_requirements(make_appointment(S.PENDING), S.CUSTOMER_ARRIVED)
