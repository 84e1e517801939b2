from datetime import datetime, timezone

import pytest

from evdesk.tickets.errors import Conflict, NotFound
from evdesk.tickets.memory import InMemoryTicketRepository
from evdesk.tickets.models import VehicleCase
from evdesk.tickets.state import CaseStatus, TicketStatus

NOW = datetime(2024, 5, 2, 10, 0, tzinfo=timezone.utc)


def _vehicle_case(ticket_id: str, case_id: str = "case-v") -> VehicleCase:
    return VehicleCase(
        id=case_id,
        ticket_id=ticket_id,
        status=CaseStatus.RECEIVED,
        created_by="desk-1",
        created_at=NOW,
        updated_at=NOW,
    )


@pytest.mark.asyncio
async def test_update_is_compare_and_swap(make_ticket):
    repository = InMemoryTicketRepository()
    ticket = await repository.create_ticket(make_ticket())

    updated = await repository.update(ticket.id, {"status": TicketStatus.TRIAGED}, expected_version=1)
    assert updated.version == 2

    with pytest.raises(Conflict):
        await repository.update(ticket.id, {"status": TicketStatus.ASSIGNED}, expected_version=1)
    assert (await repository.get(ticket.id)).status is TicketStatus.TRIAGED


@pytest.mark.asyncio
async def test_update_missing_ticket_is_not_found():
    repository = InMemoryTicketRepository()
    with pytest.raises(NotFound):
        await repository.update("missing", {}, expected_version=1)


@pytest.mark.asyncio
async def test_returned_tickets_are_copies(make_ticket):
    repository = InMemoryTicketRepository()
    ticket = await repository.create_ticket(make_ticket())

    snapshot = await repository.get(ticket.id)
    snapshot.status = TicketStatus.CLOSED

    assert (await repository.get(ticket.id)).status is TicketStatus.REPORTED


@pytest.mark.asyncio
async def test_case_creation_links_once(make_ticket):
    repository = InMemoryTicketRepository()
    ticket = await repository.create_ticket(make_ticket())

    await repository.create_vehicle_case(ticket.id, _vehicle_case(ticket.id))
    linked = await repository.get(ticket.id)
    assert linked.vehicle_case_id == "case-v"
    assert linked.version == 2

    with pytest.raises(Conflict):
        await repository.create_vehicle_case(ticket.id, _vehicle_case(ticket.id, "case-v2"))
    assert await repository.get_vehicle_case("case-v2") is None


@pytest.mark.asyncio
async def test_sequence_counts_per_location(make_ticket):
    repository = InMemoryTicketRepository()
    await repository.create_ticket(make_ticket(id="a", location_id="loc-1"))
    await repository.create_ticket(make_ticket(id="b", location_id="loc-2"))

    assert await repository.next_ticket_sequence("loc-1") == 2
    assert await repository.next_ticket_sequence("loc-3") == 1
