from __future__ import annotations

import asyncio
import logging
import uuid
from collections import Counter
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Iterator, Mapping, Sequence

from opentelemetry import trace

from evdesk.security.permissions import (
    Permission,
    Role,
    can_bypass_location_filter,
    has_any_permission,
    has_permission,
)

from .errors import Conflict, IllegalTransition, NotFound, PermissionDenied, ValidationError, WorkflowError
from .models import ServiceCase, ServiceTicket, StatusUpdateEntry, WorkflowResult
from .notifications import NotificationDispatcher
from .repository import TicketRepository
from .state import CustomerBringing, Priority, TicketStateMachine, TicketStatus
from .transitions import StatusTransitionValidator
from .triage import TriageRouter
from .updates import StatusUpdateLog

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

_REASSIGNABLE: frozenset[TicketStatus] = frozenset(
    {
        TicketStatus.ASSIGNED,
        TicketStatus.IN_PROGRESS,
        TicketStatus.ON_HOLD,
        TicketStatus.WAITING_APPROVAL,
    }
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_status(value: TicketStatus | str, *, field_name: str = "status") -> TicketStatus:
    if isinstance(value, TicketStatus):
        return value
    try:
        return TicketStatus(value)
    except ValueError as exc:
        raise ValidationError(f"Unknown {field_name} '{value}'") from exc


def _parse_priority(value: Priority | int | None) -> Priority:
    if value is None:
        return Priority.LOW
    try:
        return Priority(value)
    except ValueError as exc:
        raise ValidationError("priority must be 1 (high), 2 (medium) or 3 (low)") from exc


_EDITABLE_FIELDS: frozenset[str] = frozenset(
    {
        "complaint",
        "description",
        "vehicle_make",
        "vehicle_model",
        "vehicle_reg_no",
        "vehicle_year",
        "priority",
        "due_date",
    }
)


def _clean_edits(changes: Mapping[str, Any]) -> dict[str, Any]:
    values = dict(changes)
    if "complaint" in values:
        text = (values["complaint"] or "").strip()
        if not text:
            raise ValidationError("Complaint must not be empty")
        values["complaint"] = text
    if "priority" in values:
        if values["priority"] is None:
            raise ValidationError("priority cannot be cleared")
        values["priority"] = _parse_priority(values["priority"])
    if values.get("due_date") is not None and not isinstance(values["due_date"], datetime):
        raise ValidationError("due_date must be a datetime")
    year = values.get("vehicle_year")
    if year is not None and (isinstance(year, bool) or not isinstance(year, int)):
        raise ValidationError("vehicle_year must be an integer")
    return values


def _require(role: Role | str | None, permission: Permission, action: str) -> None:
    if not has_permission(role, permission):
        raise PermissionDenied(f"Role {role!s} may not {action}")


class WorkflowFacade:
    """Single entry point for ticket lifecycle, triage and status updates.

    Every mutating operation checks permissions and state before writing, writes the
    ticket conditionally on the version it read, then appends exactly one status
    update entry. A rejected request writes nothing.
    """

    def __init__(
        self,
        repository: TicketRepository,
        *,
        notifier: NotificationDispatcher | None = None,
        validator: StatusTransitionValidator | None = None,
        update_log: StatusUpdateLog | None = None,
        router: TriageRouter | None = None,
        ticket_number_prefix: str = "EVW",
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._repository = repository
        self._notifier = notifier
        self._validator = validator or StatusTransitionValidator()
        self._update_log = update_log or StatusUpdateLog(repository)
        self._router = router or TriageRouter(repository, self._update_log)
        self._ticket_number_prefix = ticket_number_prefix
        self._clock = clock
        self._notifications: set[asyncio.Task[None]] = set()

    @contextmanager
    def _operation(self, name: str, *, actor_id: str, ticket_id: str | None = None) -> Iterator[None]:
        with tracer.start_as_current_span(f"workflow.{name}") as span:
            span.set_attribute("evdesk.actor_id", actor_id)
            if ticket_id is not None:
                span.set_attribute("evdesk.ticket_id", ticket_id)
            try:
                yield
            except WorkflowError as exc:
                span.set_attribute("evdesk.error_kind", exc.kind)
                logger.info("Rejected %s on %s by %s: %s (%s)", name, ticket_id, actor_id, exc.message, exc.kind)
                raise

    async def open_ticket(
        self,
        *,
        actor_role: Role | str | None,
        actor_id: str,
        customer_id: str,
        complaint: str,
        description: str | None = None,
        vehicle_make: str | None = None,
        vehicle_model: str | None = None,
        vehicle_reg_no: str | None = None,
        vehicle_year: int | None = None,
        priority: Priority | int | None = None,
        location_id: str | None = None,
        due_date: datetime | None = None,
    ) -> WorkflowResult:
        with self._operation("open_ticket", actor_id=actor_id):
            _require(actor_role, Permission.CREATE_TICKETS, "create tickets")
            if not customer_id or not customer_id.strip():
                raise ValidationError("customer_id is required")
            text = (complaint or "").strip()
            if not text:
                raise ValidationError("Complaint must not be empty")

            now = self._clock()
            sequence = await self._repository.next_ticket_sequence(location_id)
            ticket = ServiceTicket(
                id=str(uuid.uuid4()),
                ticket_number=f"{self._ticket_number_prefix}-{sequence:05d}",
                customer_id=customer_id.strip(),
                complaint=text,
                description=description,
                status=TicketStateMachine.initial_state(),
                vehicle_make=vehicle_make,
                vehicle_model=vehicle_model,
                vehicle_reg_no=vehicle_reg_no,
                vehicle_year=vehicle_year,
                priority=_parse_priority(priority),
                location_id=location_id,
                due_date=due_date,
                created_by=actor_id,
                updated_by=actor_id,
                created_at=now,
                updated_at=now,
            )
            entry = self._update_log.build_entry(
                ticket.id,
                author=actor_id,
                status=ticket.status,
                message="Customer complaint received and logged",
                now=now,
                system=True,
            )
            created = await self._repository.create_ticket(ticket)
            entry = await self._repository.append_status_update(entry)
            logger.info("Ticket %s reported by %s", created.ticket_number, actor_id)

        self._notify_reported(created)
        return WorkflowResult(ticket=created, cases=[], entry=entry)

    async def request_transition(
        self,
        ticket_id: str,
        actor_role: Role | str | None,
        actor_id: str,
        to_status: TicketStatus | str,
        payload: Mapping[str, Any] | None = None,
        *,
        expected_version: int | None = None,
    ) -> WorkflowResult:
        with self._operation("request_transition", actor_id=actor_id, ticket_id=ticket_id):
            target = _parse_status(to_status)
            _require(actor_role, Permission.UPDATE_TICKET_STATUS, "change ticket status")
            ticket = await self._load(ticket_id, expected_version=expected_version)

            now = self._clock()
            plan = self._validator.validate(
                ticket, target, role=actor_role, actor_id=actor_id, payload=payload, now=now
            )
            note = (payload or {}).get("note")
            entry = self._update_log.build_entry(
                ticket.id,
                author=actor_id,
                status=target,
                message=self._update_log.transition_message(plan.from_status, plan.to_status, note),
                now=now,
                system=True,
            )

            updated = await self._repository.update(ticket.id, plan.changes, expected_version=ticket.version)
            entry = await self._repository.append_status_update(entry)
            logger.info(
                "Ticket %s moved %s -> %s by %s",
                updated.ticket_number,
                plan.from_status.value,
                plan.to_status.value,
                actor_id,
            )
            return WorkflowResult(ticket=updated, cases=await self._linked_cases(updated), entry=entry)

    async def request_triage(
        self,
        ticket_id: str,
        actor_role: Role | str | None,
        actor_id: str,
        route_to: CustomerBringing | str,
        note: str | None = None,
        *,
        expected_version: int | None = None,
    ) -> WorkflowResult:
        with self._operation("request_triage", actor_id=actor_id, ticket_id=ticket_id):
            ticket = await self._load(ticket_id, expected_version=expected_version)
            outcome = await self._router.route(
                ticket,
                role=actor_role,
                actor_id=actor_id,
                route_to=route_to,
                note=note,
                now=self._clock(),
            )
            return WorkflowResult(ticket=outcome.ticket, cases=list(outcome.cases), entry=outcome.entry)

    async def append_update(
        self,
        ticket_id: str,
        actor_role: Role | str | None,
        actor_id: str,
        status_seen: TicketStatus | str,
        message: str,
    ) -> WorkflowResult:
        with self._operation("append_update", actor_id=actor_id, ticket_id=ticket_id):
            _require(actor_role, Permission.ADD_NOTES, "add status updates")
            status = _parse_status(status_seen)
            ticket = await self._load(ticket_id)
            self._require_visible(ticket, actor_role, actor_id)
            entry = await self._update_log.append(
                ticket.id, author=actor_id, status=status, message=message, now=self._clock()
            )
            return WorkflowResult(ticket=ticket, cases=await self._linked_cases(ticket), entry=entry)

    async def reassign(
        self,
        ticket_id: str,
        actor_role: Role | str | None,
        actor_id: str,
        technician_id: str,
        *,
        expected_version: int | None = None,
    ) -> WorkflowResult:
        with self._operation("reassign", actor_id=actor_id, ticket_id=ticket_id):
            if not has_any_permission(actor_role, (Permission.ASSIGN_TECHNICIANS, Permission.REASSIGN_TICKETS)):
                raise PermissionDenied(f"Role {actor_role!s} may not reassign tickets")
            ticket = await self._load(ticket_id, expected_version=expected_version)
            if ticket.status not in _REASSIGNABLE:
                raise IllegalTransition(
                    ticket.status,
                    ticket.status,
                    self._validator.allowed_targets(ticket.status),
                    message=f"Ticket {ticket.ticket_number} cannot be reassigned while {ticket.status.value}",
                )
            if not technician_id or not technician_id.strip():
                raise ValidationError("technician_id is required to reassign a ticket")
            technician_id = technician_id.strip()
            if technician_id == ticket.assigned_to:
                raise ValidationError(f"Ticket {ticket.ticket_number} is already assigned to {technician_id}")

            now = self._clock()
            entry = self._update_log.build_entry(
                ticket.id,
                author=actor_id,
                status=ticket.status,
                message=f"Reassigned from {ticket.assigned_to or 'nobody'} to {technician_id}",
                now=now,
                system=True,
            )
            updated = await self._repository.update(
                ticket.id,
                {
                    "assigned_to": technician_id,
                    "assigned_by": actor_id,
                    "assigned_at": now,
                    "updated_at": now,
                    "updated_by": actor_id,
                },
                expected_version=ticket.version,
            )
            entry = await self._repository.append_status_update(entry)
            logger.info("Ticket %s reassigned to %s by %s", updated.ticket_number, technician_id, actor_id)
            return WorkflowResult(ticket=updated, cases=await self._linked_cases(updated), entry=entry)

    async def update_ticket(
        self,
        ticket_id: str,
        actor_role: Role | str | None,
        actor_id: str,
        changes: Mapping[str, Any],
        *,
        expected_version: int | None = None,
    ) -> WorkflowResult:
        """Edit intake details of a ticket.

        Only the fields in ``_EDITABLE_FIELDS`` may change; status, triage, assignment
        and case links have their own operations.
        """

        with self._operation("update_ticket", actor_id=actor_id, ticket_id=ticket_id):
            _require(actor_role, Permission.EDIT_TICKETS, "edit tickets")
            if not changes:
                raise ValidationError("No fields provided for update")
            rejected = sorted(set(changes) - _EDITABLE_FIELDS)
            if rejected:
                raise ValidationError(f"Fields cannot be edited: {', '.join(rejected)}")
            values = _clean_edits(changes)

            ticket = await self._load(ticket_id, expected_version=expected_version)
            if self._validator.is_terminal(ticket.status):
                raise ValidationError(
                    f"Ticket {ticket.ticket_number} is {ticket.status.value} and can no longer be edited"
                )
            values = {key: value for key, value in values.items() if getattr(ticket, key) != value}
            if not values:
                raise ValidationError("Update does not change any field")

            now = self._clock()
            entry = self._update_log.build_entry(
                ticket.id,
                author=actor_id,
                status=ticket.status,
                message=f"Ticket details updated: {', '.join(sorted(values))}",
                now=now,
                system=True,
            )
            updated = await self._repository.update(
                ticket.id,
                {**values, "updated_at": now, "updated_by": actor_id},
                expected_version=ticket.version,
            )
            entry = await self._repository.append_status_update(entry)
            logger.info("Ticket %s edited by %s (%s)", updated.ticket_number, actor_id, ", ".join(sorted(values)))
            return WorkflowResult(ticket=updated, cases=await self._linked_cases(updated), entry=entry)

    async def team_workload(
        self, actor_role: Role | str | None, actor_id: str, *, location_id: str | None = None
    ) -> dict[str, int]:
        """Count in-progress tickets per assigned technician."""

        with self._operation("team_workload", actor_id=actor_id):
            _require(actor_role, Permission.VIEW_TECHNICIAN_WORKLOAD, "view technician workload")
            tickets = await self._repository.list_tickets(status=TicketStatus.IN_PROGRESS, location_id=location_id)
            return dict(Counter(ticket.assigned_to for ticket in tickets if ticket.assigned_to))

    async def drain_notifications(self) -> None:
        """Wait for scheduled notifications; used on shutdown and in tests."""

        if self._notifications:
            await asyncio.gather(*self._notifications)

    async def get_ticket(self, ticket_id: str, actor_role: Role | str | None, actor_id: str) -> WorkflowResult:
        with self._operation("get_ticket", actor_id=actor_id, ticket_id=ticket_id):
            ticket = await self._load(ticket_id)
            self._require_visible(ticket, actor_role, actor_id)
            return WorkflowResult(ticket=ticket, cases=await self._linked_cases(ticket))

    async def get_updates(
        self, ticket_id: str, actor_role: Role | str | None, actor_id: str
    ) -> Sequence[StatusUpdateEntry]:
        with self._operation("get_updates", actor_id=actor_id, ticket_id=ticket_id):
            ticket = await self._load(ticket_id)
            self._require_visible(ticket, actor_role, actor_id)
            return await self._update_log.history(ticket.id)

    async def list_tickets(
        self,
        actor_role: Role | str | None,
        actor_id: str,
        *,
        location_id: str | None = None,
        status: TicketStatus | str | None = None,
    ) -> Sequence[ServiceTicket]:
        status_filter = None if status is None else _parse_status(status)
        if has_permission(actor_role, Permission.VIEW_ALL_TICKETS):
            if location_id is None and not can_bypass_location_filter(actor_role):
                raise ValidationError(f"Role {actor_role!s} must list tickets for a single location")
            return await self._repository.list_tickets(status=status_filter, location_id=location_id)
        if has_permission(actor_role, Permission.VIEW_ASSIGNED_TICKETS):
            return await self._repository.list_tickets(
                status=status_filter, location_id=location_id, assigned_to=actor_id
            )
        raise PermissionDenied(f"Role {actor_role!s} may not view tickets")

    async def _load(self, ticket_id: str, *, expected_version: int | None = None) -> ServiceTicket:
        ticket = await self._repository.get(ticket_id)
        if ticket is None:
            raise NotFound(f"Ticket {ticket_id} not found")
        if expected_version is not None and ticket.version != expected_version:
            raise Conflict(
                f"Ticket {ticket.ticket_number} is at version {ticket.version}, not {expected_version}; re-read and retry"
            )
        return ticket

    @staticmethod
    def _require_visible(ticket: ServiceTicket, actor_role: Role | str | None, actor_id: str) -> None:
        if has_permission(actor_role, Permission.VIEW_ALL_TICKETS):
            return
        if has_permission(actor_role, Permission.VIEW_ASSIGNED_TICKETS) and ticket.assigned_to == actor_id:
            return
        raise PermissionDenied(f"Ticket {ticket.ticket_number} is not visible to {actor_id}")

    async def _linked_cases(self, ticket: ServiceTicket) -> list[ServiceCase]:
        cases: list[ServiceCase] = []
        if ticket.vehicle_case_id is not None:
            vehicle_case = await self._repository.get_vehicle_case(ticket.vehicle_case_id)
            if vehicle_case is not None:
                cases.append(vehicle_case)
        if ticket.battery_case_id is not None:
            battery_case = await self._repository.get_battery_case(ticket.battery_case_id)
            if battery_case is not None:
                cases.append(battery_case)
        return cases

    def _notify_reported(self, ticket: ServiceTicket) -> None:
        if self._notifier is None:
            return
        task = asyncio.create_task(self._deliver_reported(self._notifier, ticket))
        self._notifications.add(task)
        task.add_done_callback(self._notifications.discard)

    @staticmethod
    async def _deliver_reported(notifier: NotificationDispatcher, ticket: ServiceTicket) -> None:
        try:
            await notifier.ticket_reported(ticket)
        except Exception:
            logger.warning("Failed to notify floor managers about %s", ticket.ticket_number, exc_info=True)
