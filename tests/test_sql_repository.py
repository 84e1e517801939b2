from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from evdesk.tickets.errors import Conflict, NotFound
from evdesk.tickets.models import BatteryCase, StatusUpdateEntry, VehicleCase
from evdesk.tickets.repository import SqlTicketRepository
from evdesk.tickets.state import CaseStatus, CustomerBringing, Priority, TicketStatus

NOW = datetime(2024, 5, 2, 10, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def sql_repository():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    session_factory = async_sessionmaker(engine, expire_on_commit=False)
    repository = SqlTicketRepository(session_factory, engine=engine)
    await repository.ensure_schema()
    try:
        yield repository
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_ticket_round_trip_keeps_enums_and_timezones(sql_repository, make_ticket):
    ticket = make_ticket(priority=Priority.HIGH, due_date=NOW)
    await sql_repository.create_ticket(ticket)

    loaded = await sql_repository.get(ticket.id)

    assert loaded.status is TicketStatus.REPORTED
    assert loaded.priority is Priority.HIGH
    assert loaded.due_date == NOW
    assert loaded.created_at.tzinfo is not None
    assert loaded.version == 1
    assert await sql_repository.get("missing") is None


@pytest.mark.asyncio
async def test_update_is_compare_and_swap(sql_repository, make_ticket):
    ticket = make_ticket()
    await sql_repository.create_ticket(ticket)

    updated = await sql_repository.update(
        ticket.id,
        {"status": TicketStatus.TRIAGED, "customer_bringing": CustomerBringing.BOTH, "triaged_at": NOW},
        expected_version=1,
    )

    assert updated.status is TicketStatus.TRIAGED
    assert updated.customer_bringing is CustomerBringing.BOTH
    assert updated.version == 2
    with pytest.raises(Conflict):
        await sql_repository.update(ticket.id, {"status": TicketStatus.ASSIGNED}, expected_version=1)
    with pytest.raises(NotFound):
        await sql_repository.update("missing", {"status": TicketStatus.ASSIGNED}, expected_version=1)


@pytest.mark.asyncio
async def test_case_creation_links_ticket_atomically(sql_repository, make_ticket):
    ticket = make_ticket()
    await sql_repository.create_ticket(ticket)
    vehicle = VehicleCase(
        id="case-v",
        ticket_id=ticket.id,
        status=CaseStatus.RECEIVED,
        vehicle_reg_no=ticket.vehicle_reg_no,
        initial_diagnosis="Pending initial diagnosis",
        created_by="desk-1",
        created_at=NOW,
        updated_at=NOW,
    )
    battery = BatteryCase(
        id="case-b",
        ticket_id=ticket.id,
        status=CaseStatus.RECEIVED,
        created_by="desk-1",
        created_at=NOW,
        updated_at=NOW,
    )

    await sql_repository.create_vehicle_case(ticket.id, vehicle)
    await sql_repository.create_battery_case(ticket.id, battery)

    linked = await sql_repository.get(ticket.id)
    assert linked.vehicle_case_id == "case-v"
    assert linked.battery_case_id == "case-b"
    assert linked.version == 3
    stored = await sql_repository.get_vehicle_case("case-v")
    assert stored.vehicle_reg_no == "KA01AB1234"
    assert (await sql_repository.get_battery_case("case-b")).status is CaseStatus.RECEIVED


@pytest.mark.asyncio
async def test_second_case_of_same_kind_is_conflict(sql_repository, make_ticket):
    ticket = make_ticket()
    await sql_repository.create_ticket(ticket)
    first = BatteryCase(
        id="case-b1", ticket_id=ticket.id, status=CaseStatus.RECEIVED, created_by="x", created_at=NOW, updated_at=NOW
    )
    second = BatteryCase(
        id="case-b2", ticket_id=ticket.id, status=CaseStatus.RECEIVED, created_by="x", created_at=NOW, updated_at=NOW
    )

    await sql_repository.create_battery_case(ticket.id, first)
    with pytest.raises(Conflict):
        await sql_repository.create_battery_case(ticket.id, second)
    assert await sql_repository.get_battery_case("case-b2") is None


@pytest.mark.asyncio
async def test_case_for_triaged_ticket_is_conflict(sql_repository, make_ticket):
    ticket = make_ticket(status=TicketStatus.TRIAGED)
    await sql_repository.create_ticket(ticket)
    case = VehicleCase(
        id="case-v", ticket_id=ticket.id, status=CaseStatus.RECEIVED, created_by="x", created_at=NOW, updated_at=NOW
    )

    with pytest.raises(Conflict):
        await sql_repository.create_vehicle_case(ticket.id, case)


@pytest.mark.asyncio
async def test_status_updates_are_ordered(sql_repository, make_ticket):
    ticket = make_ticket()
    await sql_repository.create_ticket(ticket)
    for offset, message in enumerate(["first", "second"]):
        await sql_repository.append_status_update(
            StatusUpdateEntry(
                id=f"update-{offset}",
                ticket_id=ticket.id,
                status=TicketStatus.REPORTED,
                message=message,
                author="desk-1",
                created_at=NOW + timedelta(minutes=offset),
            )
        )

    history = await sql_repository.list_status_updates(ticket.id)
    assert [entry.message for entry in history] == ["first", "second"]


@pytest.mark.asyncio
async def test_list_and_sequence_filters(sql_repository, make_ticket):
    await sql_repository.create_ticket(make_ticket(id="a", ticket_number="EVW-00001", location_id="loc-1"))
    await sql_repository.create_ticket(
        make_ticket(id="b", ticket_number="EVW-00001", location_id="loc-2", assigned_to="tech-1")
    )

    assert await sql_repository.next_ticket_sequence("loc-1") == 2
    assert await sql_repository.next_ticket_sequence(None) == 1
    assert [t.id for t in await sql_repository.list_tickets(location_id="loc-2")] == ["b"]
    assert [t.id for t in await sql_repository.list_tickets(assigned_to="tech-1")] == ["b"]
    assert await sql_repository.list_tickets(status=TicketStatus.CLOSED) == []
