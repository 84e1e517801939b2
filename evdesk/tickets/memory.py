from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import Any, Mapping, Sequence

from .errors import Conflict, NotFound
from .models import BatteryCase, ServiceTicket, StatusUpdateEntry, VehicleCase
from .state import TicketStatus


class InMemoryTicketRepository:
    """Process-local ticket store with the same conditional-write contract as the SQL one."""

    def __init__(self) -> None:
        self._tickets: dict[str, ServiceTicket] = {}
        self._vehicle_cases: dict[str, VehicleCase] = {}
        self._battery_cases: dict[str, BatteryCase] = {}
        self._updates: list[StatusUpdateEntry] = []
        self._lock = asyncio.Lock()

    async def get(self, ticket_id: str) -> ServiceTicket | None:
        ticket = self._tickets.get(ticket_id)
        return None if ticket is None else replace(ticket)

    async def update(
        self, ticket_id: str, changes: Mapping[str, Any], *, expected_version: int
    ) -> ServiceTicket:
        async with self._lock:
            current = self._require(ticket_id)
            if current.version != expected_version:
                raise Conflict(f"Ticket {ticket_id} was modified concurrently; re-read and retry")
            updated = replace(current, **dict(changes), version=current.version + 1)
            self._tickets[ticket_id] = updated
            return replace(updated)

    async def create_ticket(self, ticket: ServiceTicket) -> ServiceTicket:
        async with self._lock:
            if ticket.id in self._tickets:
                raise Conflict(f"Ticket {ticket.id} already exists")
            self._tickets[ticket.id] = replace(ticket)
        return ticket

    async def next_ticket_sequence(self, location_id: str | None) -> int:
        return sum(1 for ticket in self._tickets.values() if ticket.location_id == location_id) + 1

    async def create_vehicle_case(self, ticket_id: str, case: VehicleCase) -> VehicleCase:
        async with self._lock:
            ticket = self._require_linkable(ticket_id, ticket_field="vehicle_case_id")
            self._tickets[ticket_id] = replace(
                ticket, vehicle_case_id=case.id, updated_at=case.created_at, version=ticket.version + 1
            )
            self._vehicle_cases[case.id] = replace(case)
        return case

    async def create_battery_case(self, ticket_id: str, case: BatteryCase) -> BatteryCase:
        async with self._lock:
            ticket = self._require_linkable(ticket_id, ticket_field="battery_case_id")
            self._tickets[ticket_id] = replace(
                ticket, battery_case_id=case.id, updated_at=case.created_at, version=ticket.version + 1
            )
            self._battery_cases[case.id] = replace(case)
        return case

    async def get_vehicle_case(self, case_id: str) -> VehicleCase | None:
        case = self._vehicle_cases.get(case_id)
        return None if case is None else replace(case)

    async def get_battery_case(self, case_id: str) -> BatteryCase | None:
        case = self._battery_cases.get(case_id)
        return None if case is None else replace(case)

    async def append_status_update(self, entry: StatusUpdateEntry) -> StatusUpdateEntry:
        self._updates.append(replace(entry))
        return entry

    async def list_status_updates(self, ticket_id: str) -> Sequence[StatusUpdateEntry]:
        return [replace(entry) for entry in self._updates if entry.ticket_id == ticket_id]

    async def list_tickets(
        self,
        *,
        status: TicketStatus | None = None,
        location_id: str | None = None,
        assigned_to: str | None = None,
    ) -> Sequence[ServiceTicket]:
        tickets = [
            ticket
            for ticket in self._tickets.values()
            if (status is None or ticket.status == status)
            and (location_id is None or ticket.location_id == location_id)
            and (assigned_to is None or ticket.assigned_to == assigned_to)
        ]
        tickets.sort(key=lambda ticket: ticket.created_at, reverse=True)
        return [replace(ticket) for ticket in tickets]

    def _require(self, ticket_id: str) -> ServiceTicket:
        ticket = self._tickets.get(ticket_id)
        if ticket is None:
            raise NotFound(f"Ticket {ticket_id} not found")
        return ticket

    def _require_linkable(self, ticket_id: str, *, ticket_field: str) -> ServiceTicket:
        ticket = self._require(ticket_id)
        if ticket.status is not TicketStatus.REPORTED or getattr(ticket, ticket_field) is not None:
            raise Conflict(f"Ticket {ticket_id} was modified concurrently; re-read and retry")
        return ticket
