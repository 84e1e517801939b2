from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Protocol, Sequence

from sqlalchemy import func, update
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlmodel import SQLModel, select

from evdesk.db.models import BatteryCaseTable, ServiceTicketTable, TicketStatusUpdateTable, VehicleCaseTable

from .errors import Conflict, NotFound
from .models import BatteryCase, ServiceTicket, StatusUpdateEntry, VehicleCase
from .state import CaseStatus, CustomerBringing, Priority, TicketStatus


class TicketRepository(Protocol):
    """Record store the workflow engine reads from and writes to.

    Every call is atomic on its own; calls are not composable into a transaction.
    ``update`` is a compare-and-swap on ``version`` and raises :class:`Conflict` when the
    stored version differs from ``expected_version``. Case creation links the new case
    to its ticket in the same write and raises :class:`Conflict` when the ticket already
    holds a case of that kind or has left ``reported``.
    """

    async def get(self, ticket_id: str) -> ServiceTicket | None:
        ...

    async def update(
        self, ticket_id: str, changes: Mapping[str, Any], *, expected_version: int
    ) -> ServiceTicket:
        ...

    async def create_ticket(self, ticket: ServiceTicket) -> ServiceTicket:
        ...

    async def next_ticket_sequence(self, location_id: str | None) -> int:
        ...

    async def create_vehicle_case(self, ticket_id: str, case: VehicleCase) -> VehicleCase:
        ...

    async def create_battery_case(self, ticket_id: str, case: BatteryCase) -> BatteryCase:
        ...

    async def get_vehicle_case(self, case_id: str) -> VehicleCase | None:
        ...

    async def get_battery_case(self, case_id: str) -> BatteryCase | None:
        ...

    async def append_status_update(self, entry: StatusUpdateEntry) -> StatusUpdateEntry:
        ...

    async def list_status_updates(self, ticket_id: str) -> Sequence[StatusUpdateEntry]:
        ...

    async def list_tickets(
        self,
        *,
        status: TicketStatus | None = None,
        location_id: str | None = None,
        assigned_to: str | None = None,
    ) -> Sequence[ServiceTicket]:
        ...


class SqlTicketRepository:
    """SQLAlchemy backed persistence for tickets, cases and status updates."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        engine: AsyncEngine | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._engine: AsyncEngine | None = engine

    async def ensure_schema(self) -> None:
        if self._engine is None:
            raise RuntimeError("Session factory is not bound to an async engine")
        async with self._engine.begin() as connection:
            await connection.run_sync(SQLModel.metadata.create_all)

    async def get(self, ticket_id: str) -> ServiceTicket | None:
        async with self._session_factory() as session:
            row = await session.get(ServiceTicketTable, ticket_id)
            if row is None:
                return None
            return self._table_to_ticket(row)

    async def update(
        self, ticket_id: str, changes: Mapping[str, Any], *, expected_version: int
    ) -> ServiceTicket:
        values = {key: _to_column_value(value) for key, value in changes.items()}
        values["version"] = expected_version + 1
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(ServiceTicketTable)
                    .where(
                        ServiceTicketTable.id == ticket_id,
                        ServiceTicketTable.version == expected_version,
                    )
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    await self._raise_missing_or_conflict(session, ticket_id)
                row = await self._load_ticket_row(session, ticket_id)
                return self._table_to_ticket(row)

    async def create_ticket(self, ticket: ServiceTicket) -> ServiceTicket:
        async with self._session_factory() as session:
            async with session.begin():
                session.add(self._ticket_to_table(ticket))
        return ticket

    async def next_ticket_sequence(self, location_id: str | None) -> int:
        statement = select(func.count()).select_from(ServiceTicketTable)
        if location_id is None:
            statement = statement.where(ServiceTicketTable.location_id.is_(None))
        else:
            statement = statement.where(ServiceTicketTable.location_id == location_id)
        async with self._session_factory() as session:
            result = await session.execute(statement)
            return int(result.scalar_one()) + 1

    async def create_vehicle_case(self, ticket_id: str, case: VehicleCase) -> VehicleCase:
        async with self._session_factory() as session:
            async with session.begin():
                await self._link_case(session, ticket_id, ServiceTicketTable.vehicle_case_id, case.id, case.created_at)
                session.add(
                    VehicleCaseTable(
                        id=case.id,
                        ticket_id=ticket_id,
                        status=case.status.value,
                        vehicle_make=case.vehicle_make,
                        vehicle_model=case.vehicle_model,
                        vehicle_reg_no=case.vehicle_reg_no,
                        vehicle_year=case.vehicle_year,
                        initial_diagnosis=case.initial_diagnosis,
                        diagnostic_notes=case.diagnostic_notes,
                        technician_notes=case.technician_notes,
                        assigned_technician=case.assigned_technician,
                        estimated_cost=case.estimated_cost,
                        created_by=case.created_by,
                        created_at=case.created_at,
                        updated_at=case.updated_at,
                    )
                )
        return case

    async def create_battery_case(self, ticket_id: str, case: BatteryCase) -> BatteryCase:
        async with self._session_factory() as session:
            async with session.begin():
                await self._link_case(session, ticket_id, ServiceTicketTable.battery_case_id, case.id, case.created_at)
                session.add(
                    BatteryCaseTable(
                        id=case.id,
                        ticket_id=ticket_id,
                        status=case.status.value,
                        serial_number=case.serial_number,
                        battery_type=case.battery_type,
                        initial_diagnosis=case.initial_diagnosis,
                        diagnostic_notes=case.diagnostic_notes,
                        technician_notes=case.technician_notes,
                        assigned_technician=case.assigned_technician,
                        estimated_cost=case.estimated_cost,
                        created_by=case.created_by,
                        created_at=case.created_at,
                        updated_at=case.updated_at,
                    )
                )
        return case

    async def get_vehicle_case(self, case_id: str) -> VehicleCase | None:
        async with self._session_factory() as session:
            row = await session.get(VehicleCaseTable, case_id)
            if row is None:
                return None
            return self._table_to_vehicle_case(row)

    async def get_battery_case(self, case_id: str) -> BatteryCase | None:
        async with self._session_factory() as session:
            row = await session.get(BatteryCaseTable, case_id)
            if row is None:
                return None
            return self._table_to_battery_case(row)

    async def append_status_update(self, entry: StatusUpdateEntry) -> StatusUpdateEntry:
        async with self._session_factory() as session:
            async with session.begin():
                session.add(
                    TicketStatusUpdateTable(
                        id=entry.id,
                        ticket_id=entry.ticket_id,
                        status=entry.status.value,
                        message=entry.message,
                        author=entry.author,
                        is_system_update=entry.is_system_update,
                        created_at=entry.created_at,
                    )
                )
        return entry

    async def list_status_updates(self, ticket_id: str) -> Sequence[StatusUpdateEntry]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(TicketStatusUpdateTable)
                .where(TicketStatusUpdateTable.ticket_id == ticket_id)
                .order_by(TicketStatusUpdateTable.created_at.asc())
            )
            return [self._table_to_update(row) for row in result.scalars().all()]

    async def list_tickets(
        self,
        *,
        status: TicketStatus | None = None,
        location_id: str | None = None,
        assigned_to: str | None = None,
    ) -> Sequence[ServiceTicket]:
        statement = select(ServiceTicketTable)
        if status is not None:
            statement = statement.where(ServiceTicketTable.status == status.value)
        if location_id is not None:
            statement = statement.where(ServiceTicketTable.location_id == location_id)
        if assigned_to is not None:
            statement = statement.where(ServiceTicketTable.assigned_to == assigned_to)
        statement = statement.order_by(ServiceTicketTable.created_at.desc())
        async with self._session_factory() as session:
            result = await session.execute(statement)
            return [self._table_to_ticket(row) for row in result.scalars().all()]

    async def _link_case(
        self,
        session: AsyncSession,
        ticket_id: str,
        column: Any,
        case_id: str,
        linked_at: datetime,
    ) -> None:
        result = await session.execute(
            update(ServiceTicketTable)
            .where(
                ServiceTicketTable.id == ticket_id,
                ServiceTicketTable.status == TicketStatus.REPORTED.value,
                column.is_(None),
            )
            .values(
                {
                    column: case_id,
                    ServiceTicketTable.updated_at: linked_at,
                    ServiceTicketTable.version: ServiceTicketTable.version + 1,
                }
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await self._raise_missing_or_conflict(session, ticket_id)

    @staticmethod
    async def _load_ticket_row(session: AsyncSession, ticket_id: str) -> ServiceTicketTable:
        result = await session.execute(
            select(ServiceTicketTable)
            .where(ServiceTicketTable.id == ticket_id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().one()

    @staticmethod
    async def _raise_missing_or_conflict(session: AsyncSession, ticket_id: str) -> None:
        result = await session.execute(
            select(ServiceTicketTable.id).where(ServiceTicketTable.id == ticket_id)
        )
        if result.first() is None:
            raise NotFound(f"Ticket {ticket_id} not found")
        raise Conflict(f"Ticket {ticket_id} was modified concurrently; re-read and retry")

    @staticmethod
    def _ticket_to_table(ticket: ServiceTicket) -> ServiceTicketTable:
        return ServiceTicketTable(
            id=ticket.id,
            ticket_number=ticket.ticket_number,
            customer_id=ticket.customer_id,
            complaint=ticket.complaint,
            description=ticket.description,
            status=ticket.status.value,
            priority=None if ticket.priority is None else int(ticket.priority),
            location_id=ticket.location_id,
            due_date=ticket.due_date,
            vehicle_make=ticket.vehicle_make,
            vehicle_model=ticket.vehicle_model,
            vehicle_reg_no=ticket.vehicle_reg_no,
            vehicle_year=ticket.vehicle_year,
            customer_bringing=None if ticket.customer_bringing is None else ticket.customer_bringing.value,
            triaged_at=ticket.triaged_at,
            triaged_by=ticket.triaged_by,
            triage_notes=ticket.triage_notes,
            vehicle_case_id=ticket.vehicle_case_id,
            battery_case_id=ticket.battery_case_id,
            assigned_to=ticket.assigned_to,
            assigned_by=ticket.assigned_by,
            assigned_at=ticket.assigned_at,
            completed_at=ticket.completed_at,
            delivered_at=ticket.delivered_at,
            closed_at=ticket.closed_at,
            created_by=ticket.created_by,
            updated_by=ticket.updated_by,
            created_at=ticket.created_at,
            updated_at=ticket.updated_at,
            version=ticket.version,
        )

    @staticmethod
    def _table_to_ticket(row: ServiceTicketTable) -> ServiceTicket:
        return ServiceTicket(
            id=row.id,
            ticket_number=row.ticket_number,
            customer_id=row.customer_id,
            complaint=row.complaint,
            description=row.description,
            status=TicketStatus(row.status),
            priority=None if row.priority is None else Priority(row.priority),
            location_id=row.location_id,
            due_date=_optional_datetime(row.due_date),
            vehicle_make=row.vehicle_make,
            vehicle_model=row.vehicle_model,
            vehicle_reg_no=row.vehicle_reg_no,
            vehicle_year=row.vehicle_year,
            customer_bringing=CustomerBringing(row.customer_bringing) if row.customer_bringing else None,
            triaged_at=_optional_datetime(row.triaged_at),
            triaged_by=row.triaged_by,
            triage_notes=row.triage_notes,
            vehicle_case_id=row.vehicle_case_id,
            battery_case_id=row.battery_case_id,
            assigned_to=row.assigned_to,
            assigned_by=row.assigned_by,
            assigned_at=_optional_datetime(row.assigned_at),
            completed_at=_optional_datetime(row.completed_at),
            delivered_at=_optional_datetime(row.delivered_at),
            closed_at=_optional_datetime(row.closed_at),
            created_by=row.created_by,
            updated_by=row.updated_by,
            created_at=_ensure_datetime(row.created_at),
            updated_at=_ensure_datetime(row.updated_at),
            version=row.version,
        )

    @staticmethod
    def _table_to_vehicle_case(row: VehicleCaseTable) -> VehicleCase:
        return VehicleCase(
            id=row.id,
            ticket_id=row.ticket_id,
            status=CaseStatus(row.status),
            vehicle_make=row.vehicle_make,
            vehicle_model=row.vehicle_model,
            vehicle_reg_no=row.vehicle_reg_no,
            vehicle_year=row.vehicle_year,
            initial_diagnosis=row.initial_diagnosis,
            diagnostic_notes=row.diagnostic_notes,
            technician_notes=row.technician_notes,
            assigned_technician=row.assigned_technician,
            estimated_cost=row.estimated_cost,
            created_by=row.created_by,
            created_at=_ensure_datetime(row.created_at),
            updated_at=_ensure_datetime(row.updated_at),
        )

    @staticmethod
    def _table_to_battery_case(row: BatteryCaseTable) -> BatteryCase:
        return BatteryCase(
            id=row.id,
            ticket_id=row.ticket_id,
            status=CaseStatus(row.status),
            serial_number=row.serial_number,
            battery_type=row.battery_type,
            initial_diagnosis=row.initial_diagnosis,
            diagnostic_notes=row.diagnostic_notes,
            technician_notes=row.technician_notes,
            assigned_technician=row.assigned_technician,
            estimated_cost=row.estimated_cost,
            created_by=row.created_by,
            created_at=_ensure_datetime(row.created_at),
            updated_at=_ensure_datetime(row.updated_at),
        )

    @staticmethod
    def _table_to_update(row: TicketStatusUpdateTable) -> StatusUpdateEntry:
        return StatusUpdateEntry(
            id=row.id,
            ticket_id=row.ticket_id,
            status=TicketStatus(row.status),
            message=row.message,
            author=row.author,
            is_system_update=bool(row.is_system_update),
            created_at=_ensure_datetime(row.created_at),
        )


def _to_column_value(value: Any) -> Any:
    if isinstance(value, Priority):
        return int(value)
    if isinstance(value, Enum):
        return value.value
    return value


def _ensure_datetime(value: datetime | None) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    raise TypeError("Expected datetime value from database")


def _optional_datetime(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    return _ensure_datetime(value)
