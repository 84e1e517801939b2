"""Status transition validation for service tickets.

The validator is pure: it inspects a ticket snapshot and a requested target status and
either raises a :class:`~evdesk.tickets.errors.WorkflowError` or returns a
:class:`TransitionPlan` listing the fields the caller must write. It never touches
storage, so a rejected request cannot leave a partial write behind.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping

from evdesk.security.permissions import Permission, Role, has_permission, is_technician

from .errors import IllegalTransition, PermissionDenied, ValidationError
from .models import ServiceTicket
from .state import TicketStateMachine, TicketStatus

# Milestones in the order a ticket reaches them, with the field each one stamps.
_MILESTONES: tuple[tuple[TicketStatus, str], ...] = (
    (TicketStatus.COMPLETED, "completed_at"),
    (TicketStatus.DELIVERED, "delivered_at"),
    (TicketStatus.CLOSED, "closed_at"),
)

# Statuses that still lie before any milestone; entering one reopens the ticket.
_PRE_MILESTONE: frozenset[TicketStatus] = frozenset(
    {
        TicketStatus.REPORTED,
        TicketStatus.TRIAGED,
        TicketStatus.ASSIGNED,
        TicketStatus.IN_PROGRESS,
        TicketStatus.ON_HOLD,
        TicketStatus.WAITING_APPROVAL,
    }
)


@dataclass(slots=True)
class TransitionPlan:
    """Validated status change and the field updates it implies."""

    from_status: TicketStatus
    to_status: TicketStatus
    changes: dict[str, Any] = field(default_factory=dict)


class StatusTransitionValidator:
    """Decide whether a ticket may move to a target status and compute side effects."""

    def __init__(self, state_machine: type[TicketStateMachine] = TicketStateMachine) -> None:
        self._state_machine = state_machine

    def allowed_targets(self, current: TicketStatus) -> frozenset[TicketStatus]:
        return self._state_machine.allowed_targets(current)

    def is_terminal(self, status: TicketStatus) -> bool:
        return self._state_machine.is_terminal(status)

    def validate(
        self,
        ticket: ServiceTicket,
        target: TicketStatus,
        *,
        role: Role | str | None,
        actor_id: str,
        payload: Mapping[str, Any] | None = None,
        now: datetime,
    ) -> TransitionPlan:
        current = ticket.status
        payload = payload or {}

        if current == target:
            raise IllegalTransition(
                current,
                target,
                self.allowed_targets(current),
                message=f"Ticket is already {current.value}; use a status update for narrative notes",
            )

        if not self._state_machine.can_transition(current, target):
            raise IllegalTransition(current, target, self.allowed_targets(current))

        reserved = self._state_machine.reserved_operation(current, target)
        if reserved is not None:
            raise IllegalTransition(
                current,
                target,
                self.allowed_targets(current),
                message=f"{current.value} -> {target.value} is only reachable through {reserved}",
            )

        self._check_permissions(ticket, current, target, role=role, actor_id=actor_id)

        changes: dict[str, Any] = {
            "status": target,
            "updated_at": now,
            "updated_by": actor_id,
        }

        if current is TicketStatus.TRIAGED and target is TicketStatus.ASSIGNED:
            changes.update(self._assignment_changes(payload, actor_id=actor_id, now=now))

        changes.update(self._milestone_changes(ticket, target, now=now))
        return TransitionPlan(from_status=current, to_status=target, changes=changes)

    def _check_permissions(
        self,
        ticket: ServiceTicket,
        current: TicketStatus,
        target: TicketStatus,
        *,
        role: Role | str | None,
        actor_id: str,
    ) -> None:
        if not has_permission(role, Permission.UPDATE_TICKET_STATUS):
            raise PermissionDenied(f"Role {role!s} may not change ticket status")

        if current is TicketStatus.TRIAGED and target is TicketStatus.ASSIGNED:
            if not has_permission(role, Permission.ASSIGN_TECHNICIANS):
                raise PermissionDenied(f"Role {role!s} may not assign technicians")

        if is_technician(role) and ticket.assigned_to != actor_id:
            raise PermissionDenied("Technicians may only transition tickets assigned to them")

    @staticmethod
    def _assignment_changes(
        payload: Mapping[str, Any], *, actor_id: str, now: datetime
    ) -> dict[str, Any]:
        technician_id = payload.get("technician_id")
        if not isinstance(technician_id, str) or not technician_id.strip():
            raise ValidationError("technician_id is required to assign a ticket")

        changes: dict[str, Any] = {
            "assigned_to": technician_id.strip(),
            "assigned_by": actor_id,
            "assigned_at": now,
        }
        due_date = payload.get("due_date")
        if due_date is not None:
            if not isinstance(due_date, datetime):
                raise ValidationError("due_date must be a datetime")
            changes["due_date"] = due_date
        return changes

    @staticmethod
    def _milestone_changes(
        ticket: ServiceTicket, target: TicketStatus, *, now: datetime
    ) -> dict[str, Any]:
        changes: dict[str, Any] = {}
        if target is TicketStatus.CANCELLED:
            return changes

        preceding = True
        for milestone, field_name in _MILESTONES:
            if target is milestone:
                if getattr(ticket, field_name) is None:
                    changes[field_name] = now
                preceding = False
                continue
            if target in _PRE_MILESTONE or not preceding:
                if getattr(ticket, field_name) is not None:
                    changes[field_name] = None
        return changes
