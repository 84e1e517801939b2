"""Triage: the one-time routing of a reported ticket into specialized cases."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime

from evdesk.security.permissions import Permission, Role, has_permission

from .errors import Conflict, IllegalTransition, NotFound, PermissionDenied, ValidationError
from .models import BatteryCase, ServiceCase, ServiceTicket, StatusUpdateEntry, VehicleCase
from .repository import TicketRepository
from .state import CaseStatus, CustomerBringing, TicketStateMachine, TicketStatus
from .updates import StatusUpdateLog

logger = logging.getLogger(__name__)

_PENDING_DIAGNOSIS = "Pending initial diagnosis"


@dataclass(slots=True)
class TriageOutcome:
    ticket: ServiceTicket
    cases: list[ServiceCase] = field(default_factory=list)
    entry: StatusUpdateEntry | None = None


def parse_route(route_to: CustomerBringing | str) -> CustomerBringing:
    if isinstance(route_to, CustomerBringing):
        return route_to
    try:
        return CustomerBringing(route_to)
    except ValueError as exc:
        allowed = ", ".join(option.value for option in CustomerBringing)
        raise ValidationError(f"route_to must be one of: {allowed}") from exc


class TriageRouter:
    """Convert a ``reported`` ticket into a vehicle case, a battery case, or both.

    Case creation is resumable: a case already linked for a selected variant is reused,
    so re-running triage after a partial ``both`` failure only creates the missing case.
    """

    def __init__(self, repository: TicketRepository, update_log: StatusUpdateLog) -> None:
        self._repository = repository
        self._update_log = update_log

    def check(
        self,
        ticket: ServiceTicket,
        *,
        role: Role | str | None,
        route_to: CustomerBringing,
    ) -> None:
        """Raise if ``ticket`` cannot be triaged to ``route_to`` by ``role``."""

        if ticket.status is not TicketStatus.REPORTED:
            raise IllegalTransition(
                ticket.status,
                TicketStatus.TRIAGED,
                TicketStateMachine.allowed_targets(ticket.status),
                message=f"Ticket {ticket.ticket_number} is {ticket.status.value}; only reported tickets can be triaged",
            )
        if not has_permission(role, Permission.UPDATE_TICKET_STATUS):
            raise PermissionDenied(f"Role {role!s} may not triage tickets")

        if ticket.vehicle_case_id is not None and not route_to.needs_vehicle_case:
            raise ValidationError(
                f"Ticket {ticket.ticket_number} already holds a vehicle case; route to vehicle or both"
            )
        if ticket.battery_case_id is not None and not route_to.needs_battery_case:
            raise ValidationError(
                f"Ticket {ticket.ticket_number} already holds a battery case; route to battery or both"
            )

    async def route(
        self,
        ticket: ServiceTicket,
        *,
        role: Role | str | None,
        actor_id: str,
        route_to: CustomerBringing | str,
        note: str | None = None,
        now: datetime,
    ) -> TriageOutcome:
        route = parse_route(route_to)
        self.check(ticket, role=role, route_to=route)
        note = note.strip() if note and note.strip() else None
        # Validate the summary entry up front so a bad author cannot strand created cases.
        summary = self._update_log.triage_message(route, note)
        self._update_log.build_entry(
            ticket.id, author=actor_id, status=TicketStatus.TRIAGED, message=summary, now=now
        )

        cases: list[ServiceCase] = []
        if route.needs_vehicle_case:
            cases.append(await self._ensure_vehicle_case(ticket, actor_id=actor_id, note=note, now=now))
        if route.needs_battery_case:
            cases.append(await self._ensure_battery_case(ticket, actor_id=actor_id, note=note, now=now))

        current = await self._repository.get(ticket.id)
        if current is None:
            raise NotFound(f"Ticket {ticket.id} not found")
        if current.status is not TicketStatus.REPORTED:
            raise Conflict(f"Ticket {ticket.ticket_number} left reported while being triaged")

        updated = await self._repository.update(
            ticket.id,
            {
                "status": TicketStatus.TRIAGED,
                "customer_bringing": route,
                "triaged_at": now,
                "triaged_by": actor_id,
                "triage_notes": note or f"Triaged to: {route.value}",
                "updated_at": now,
                "updated_by": actor_id,
            },
            expected_version=current.version,
        )
        entry = await self._update_log.append(
            ticket.id,
            author=actor_id,
            status=TicketStatus.TRIAGED,
            message=summary,
            now=now,
            system=True,
        )
        logger.info(
            "Ticket %s triaged to %s by %s (%d case(s))",
            updated.ticket_number,
            route.value,
            actor_id,
            len(cases),
        )
        return TriageOutcome(ticket=updated, cases=cases, entry=entry)

    async def _ensure_vehicle_case(
        self, ticket: ServiceTicket, *, actor_id: str, note: str | None, now: datetime
    ) -> VehicleCase:
        if ticket.vehicle_case_id is not None:
            existing = await self._repository.get_vehicle_case(ticket.vehicle_case_id)
            if existing is None:
                raise NotFound(f"Vehicle case {ticket.vehicle_case_id} not found")
            logger.info("Reusing vehicle case %s for ticket %s", existing.id, ticket.ticket_number)
            return existing

        case = VehicleCase(
            id=str(uuid.uuid4()),
            ticket_id=ticket.id,
            status=CaseStatus.RECEIVED,
            vehicle_make=ticket.vehicle_make,
            vehicle_model=ticket.vehicle_model,
            vehicle_reg_no=ticket.vehicle_reg_no,
            vehicle_year=ticket.vehicle_year,
            initial_diagnosis=note or _PENDING_DIAGNOSIS,
            created_by=actor_id,
            created_at=now,
            updated_at=now,
        )
        return await self._repository.create_vehicle_case(ticket.id, case)

    async def _ensure_battery_case(
        self, ticket: ServiceTicket, *, actor_id: str, note: str | None, now: datetime
    ) -> BatteryCase:
        if ticket.battery_case_id is not None:
            existing = await self._repository.get_battery_case(ticket.battery_case_id)
            if existing is None:
                raise NotFound(f"Battery case {ticket.battery_case_id} not found")
            logger.info("Reusing battery case %s for ticket %s", existing.id, ticket.ticket_number)
            return existing

        case = BatteryCase(
            id=str(uuid.uuid4()),
            ticket_id=ticket.id,
            status=CaseStatus.RECEIVED,
            initial_diagnosis=note or _PENDING_DIAGNOSIS,
            created_by=actor_id,
            created_at=now,
            updated_at=now,
        )
        return await self._repository.create_battery_case(ticket.id, case)
