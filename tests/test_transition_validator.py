from datetime import datetime, timezone

import pytest

from evdesk.security.permissions import Role
from evdesk.tickets.errors import IllegalTransition, PermissionDenied, ValidationError
from evdesk.tickets.state import TicketStatus
from evdesk.tickets.transitions import StatusTransitionValidator


NOW = datetime(2024, 5, 2, 10, 0, tzinfo=timezone.utc)
EARLIER = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def validator() -> StatusTransitionValidator:
    return StatusTransitionValidator()


def test_same_status_is_rejected(validator, make_ticket):
    ticket = make_ticket(status=TicketStatus.IN_PROGRESS, assigned_to="tech-1")
    with pytest.raises(IllegalTransition) as exc:
        validator.validate(ticket, TicketStatus.IN_PROGRESS, role=Role.ADMIN, actor_id="admin-1", now=NOW)
    assert exc.value.current is TicketStatus.IN_PROGRESS


def test_missing_edge_reports_allowed_targets(validator, make_ticket):
    ticket = make_ticket(status=TicketStatus.COMPLETED)
    with pytest.raises(IllegalTransition) as exc:
        validator.validate(ticket, TicketStatus.IN_PROGRESS, role=Role.ADMIN, actor_id="admin-1", now=NOW)

    payload = exc.value.to_payload()
    assert payload["error_kind"] == "illegal_transition"
    assert payload["allowed"] == ["closed", "delivered"]


def test_triage_edge_is_not_a_generic_transition(validator, make_ticket):
    ticket = make_ticket()
    with pytest.raises(IllegalTransition) as exc:
        validator.validate(ticket, TicketStatus.TRIAGED, role=Role.ADMIN, actor_id="admin-1", now=NOW)
    assert "triage" in exc.value.message


def test_illegal_edge_checked_before_permission(validator, make_ticket):
    ticket = make_ticket(status=TicketStatus.CLOSED)
    with pytest.raises(IllegalTransition):
        validator.validate(ticket, TicketStatus.IN_PROGRESS, role="janitor", actor_id="x", now=NOW)


def test_assignment_requires_assign_permission(validator, make_ticket):
    ticket = make_ticket(status=TicketStatus.TRIAGED)
    with pytest.raises(PermissionDenied):
        validator.validate(
            ticket,
            TicketStatus.ASSIGNED,
            role=Role.TECHNICIAN,
            actor_id="tech-1",
            payload={"technician_id": "tech-1"},
            now=NOW,
        )


def test_assignment_requires_technician_id(validator, make_ticket):
    ticket = make_ticket(status=TicketStatus.TRIAGED)
    with pytest.raises(ValidationError):
        validator.validate(
            ticket, TicketStatus.ASSIGNED, role=Role.FLOOR_MANAGER, actor_id="floor-1", payload={}, now=NOW
        )


def test_assignment_records_assignee_and_due_date(validator, make_ticket):
    ticket = make_ticket(status=TicketStatus.TRIAGED)
    due = datetime(2024, 5, 9, tzinfo=timezone.utc)
    plan = validator.validate(
        ticket,
        TicketStatus.ASSIGNED,
        role=Role.FLOOR_MANAGER,
        actor_id="floor-1",
        payload={"technician_id": " tech-7 ", "due_date": due},
        now=NOW,
    )

    assert plan.changes["status"] is TicketStatus.ASSIGNED
    assert plan.changes["assigned_to"] == "tech-7"
    assert plan.changes["assigned_by"] == "floor-1"
    assert plan.changes["assigned_at"] == NOW
    assert plan.changes["due_date"] == due
    assert plan.changes["updated_by"] == "floor-1"


def test_assignment_rejects_non_datetime_due_date(validator, make_ticket):
    ticket = make_ticket(status=TicketStatus.TRIAGED)
    with pytest.raises(ValidationError):
        validator.validate(
            ticket,
            TicketStatus.ASSIGNED,
            role=Role.FLOOR_MANAGER,
            actor_id="floor-1",
            payload={"technician_id": "tech-7", "due_date": "tomorrow"},
            now=NOW,
        )


def test_technician_may_only_move_own_tickets(validator, make_ticket):
    ticket = make_ticket(status=TicketStatus.ASSIGNED, assigned_to="tech-2")
    with pytest.raises(PermissionDenied):
        validator.validate(ticket, TicketStatus.IN_PROGRESS, role=Role.TECHNICIAN, actor_id="tech-1", now=NOW)

    plan = validator.validate(ticket, TicketStatus.IN_PROGRESS, role=Role.TECHNICIAN, actor_id="tech-2", now=NOW)
    assert plan.to_status is TicketStatus.IN_PROGRESS


def test_completion_stamps_completed_at(validator, make_ticket):
    ticket = make_ticket(status=TicketStatus.IN_PROGRESS, assigned_to="tech-1")
    plan = validator.validate(ticket, TicketStatus.COMPLETED, role=Role.TECHNICIAN, actor_id="tech-1", now=NOW)
    assert plan.changes["completed_at"] == NOW
    assert "delivered_at" not in plan.changes


def test_existing_milestone_timestamp_is_kept(validator, make_ticket):
    ticket = make_ticket(status=TicketStatus.COMPLETED, completed_at=EARLIER)
    plan = validator.validate(ticket, TicketStatus.DELIVERED, role=Role.ADMIN, actor_id="admin-1", now=NOW)
    assert plan.changes["delivered_at"] == NOW
    assert "completed_at" not in plan.changes


def test_closing_from_completed_stamps_closed_only(validator, make_ticket):
    ticket = make_ticket(status=TicketStatus.COMPLETED, completed_at=EARLIER)
    plan = validator.validate(ticket, TicketStatus.CLOSED, role=Role.ADMIN, actor_id="admin-1", now=NOW)
    assert plan.changes["closed_at"] == NOW
    assert "completed_at" not in plan.changes
    assert "delivered_at" not in plan.changes


def test_reopening_clears_stale_milestones(validator, make_ticket):
    ticket = make_ticket(status=TicketStatus.ON_HOLD, completed_at=EARLIER)
    plan = validator.validate(ticket, TicketStatus.IN_PROGRESS, role=Role.ADMIN, actor_id="admin-1", now=NOW)
    assert plan.changes["completed_at"] is None


def test_cancellation_leaves_milestones_untouched(validator, make_ticket):
    ticket = make_ticket(status=TicketStatus.ON_HOLD, completed_at=EARLIER)
    plan = validator.validate(ticket, TicketStatus.CANCELLED, role=Role.ADMIN, actor_id="admin-1", now=NOW)
    assert "completed_at" not in plan.changes
    assert plan.changes["status"] is TicketStatus.CANCELLED
