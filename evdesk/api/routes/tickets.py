from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, ConfigDict, Field

from evdesk.dependencies.auth import CurrentActor
from evdesk.dependencies.tickets import WorkflowDep
from evdesk.tickets.models import ServiceCase, StatusUpdateEntry, WorkflowResult
from evdesk.tickets.state import CaseStatus, CustomerBringing, Priority, TicketStatus

router = APIRouter(prefix="/tickets", tags=["tickets"])


class CaseModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    kind: Literal["vehicle", "battery"]
    id: str
    ticket_id: str
    status: CaseStatus
    initial_diagnosis: str | None = None
    assigned_technician: str | None = None
    created_by: str
    created_at: datetime
    updated_at: datetime


class TicketModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    ticket_number: str
    customer_id: str
    complaint: str
    description: str | None = None
    status: TicketStatus
    priority: Priority | None = None
    location_id: str | None = None
    due_date: datetime | None = None
    vehicle_make: str | None = None
    vehicle_model: str | None = None
    vehicle_reg_no: str | None = None
    vehicle_year: int | None = None
    customer_bringing: CustomerBringing | None = None
    triaged_at: datetime | None = None
    triaged_by: str | None = None
    triage_notes: str | None = None
    vehicle_case_id: str | None = None
    battery_case_id: str | None = None
    assigned_to: str | None = None
    assigned_by: str | None = None
    assigned_at: datetime | None = None
    completed_at: datetime | None = None
    delivered_at: datetime | None = None
    closed_at: datetime | None = None
    created_by: str
    updated_by: str
    created_at: datetime
    updated_at: datetime
    version: int


class StatusUpdateModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    ticket_id: str
    status: TicketStatus
    message: str
    author: str
    is_system_update: bool
    created_at: datetime


class WorkflowResponse(BaseModel):
    ok: bool = True
    ticket: TicketModel
    cases: list[CaseModel] = Field(default_factory=list)
    entry: StatusUpdateModel | None = None

    @classmethod
    def from_result(cls, result: WorkflowResult) -> "WorkflowResponse":
        return cls(
            ticket=TicketModel.model_validate(result.ticket),
            cases=[_case_to_model(case) for case in result.cases],
            entry=None if result.entry is None else StatusUpdateModel.model_validate(result.entry),
        )


class TicketCreateRequest(BaseModel):
    customer_id: str = Field(..., min_length=1)
    complaint: str = Field(..., min_length=1)
    description: str | None = None
    vehicle_make: str | None = None
    vehicle_model: str | None = None
    vehicle_reg_no: str | None = None
    vehicle_year: int | None = None
    priority: Priority | None = None
    location_id: str | None = None
    due_date: datetime | None = None


class TransitionRequest(BaseModel):
    status: TicketStatus
    technician_id: str | None = None
    due_date: datetime | None = None
    note: str | None = Field(default=None, max_length=500)
    expected_version: int | None = None

    def payload(self) -> dict[str, Any]:
        values = {"technician_id": self.technician_id, "due_date": self.due_date, "note": self.note}
        return {key: value for key, value in values.items() if value is not None}


class TriageRequest(BaseModel):
    route_to: CustomerBringing
    note: str | None = Field(default=None, max_length=500)
    expected_version: int | None = None


class StatusUpdateRequest(BaseModel):
    status: TicketStatus
    message: str


class TicketUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    complaint: str | None = None
    description: str | None = None
    vehicle_make: str | None = None
    vehicle_model: str | None = None
    vehicle_reg_no: str | None = None
    vehicle_year: int | None = None
    priority: Priority | None = None
    due_date: datetime | None = None
    expected_version: int | None = None

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True, exclude={"expected_version"})


class ReassignRequest(BaseModel):
    technician_id: str = Field(..., min_length=1)
    expected_version: int | None = None


def _case_to_model(case: ServiceCase) -> CaseModel:
    return CaseModel.model_validate(case)


def _update_to_model(entry: StatusUpdateEntry) -> StatusUpdateModel:
    return StatusUpdateModel.model_validate(entry)


@router.post("", response_model=WorkflowResponse, status_code=status.HTTP_201_CREATED)
async def open_ticket(payload: TicketCreateRequest, workflow: WorkflowDep, actor: CurrentActor) -> WorkflowResponse:
    result = await workflow.open_ticket(
        actor_role=actor.role,
        actor_id=actor.actor_id,
        **payload.model_dump(),
    )
    return WorkflowResponse.from_result(result)


@router.get("", response_model=list[TicketModel], summary="List tickets visible to the caller")
async def list_tickets(
    workflow: WorkflowDep,
    actor: CurrentActor,
    location_id: str | None = Query(default=None),
    status_filter: TicketStatus | None = Query(default=None, alias="status"),
) -> list[TicketModel]:
    tickets = await workflow.list_tickets(
        actor.role, actor.actor_id, location_id=location_id, status=status_filter
    )
    return [TicketModel.model_validate(ticket) for ticket in tickets]


@router.get("/workload", response_model=dict[str, int], summary="In-progress tickets per technician")
async def team_workload(
    workflow: WorkflowDep,
    actor: CurrentActor,
    location_id: str | None = Query(default=None),
) -> dict[str, int]:
    return await workflow.team_workload(actor.role, actor.actor_id, location_id=location_id)


@router.get("/{ticket_id}", response_model=WorkflowResponse)
async def get_ticket(ticket_id: str, workflow: WorkflowDep, actor: CurrentActor) -> WorkflowResponse:
    result = await workflow.get_ticket(ticket_id, actor.role, actor.actor_id)
    return WorkflowResponse.from_result(result)


@router.patch("/{ticket_id}", response_model=WorkflowResponse)
async def update_ticket(
    ticket_id: str,
    payload: TicketUpdateRequest,
    workflow: WorkflowDep,
    actor: CurrentActor,
) -> WorkflowResponse:
    result = await workflow.update_ticket(
        ticket_id,
        actor.role,
        actor.actor_id,
        payload.changes(),
        expected_version=payload.expected_version,
    )
    return WorkflowResponse.from_result(result)


@router.post("/{ticket_id}/transitions", response_model=WorkflowResponse)
async def request_transition(
    ticket_id: str,
    payload: TransitionRequest,
    workflow: WorkflowDep,
    actor: CurrentActor,
) -> WorkflowResponse:
    result = await workflow.request_transition(
        ticket_id,
        actor.role,
        actor.actor_id,
        payload.status,
        payload.payload(),
        expected_version=payload.expected_version,
    )
    return WorkflowResponse.from_result(result)


@router.post("/{ticket_id}/triage", response_model=WorkflowResponse)
async def request_triage(
    ticket_id: str,
    payload: TriageRequest,
    workflow: WorkflowDep,
    actor: CurrentActor,
) -> WorkflowResponse:
    result = await workflow.request_triage(
        ticket_id,
        actor.role,
        actor.actor_id,
        payload.route_to,
        payload.note,
        expected_version=payload.expected_version,
    )
    return WorkflowResponse.from_result(result)


@router.post("/{ticket_id}/assignee", response_model=WorkflowResponse)
async def reassign_ticket(
    ticket_id: str,
    payload: ReassignRequest,
    workflow: WorkflowDep,
    actor: CurrentActor,
) -> WorkflowResponse:
    result = await workflow.reassign(
        ticket_id,
        actor.role,
        actor.actor_id,
        payload.technician_id,
        expected_version=payload.expected_version,
    )
    return WorkflowResponse.from_result(result)


@router.get("/{ticket_id}/updates", response_model=list[StatusUpdateModel])
async def list_status_updates(ticket_id: str, workflow: WorkflowDep, actor: CurrentActor) -> list[StatusUpdateModel]:
    entries = await workflow.get_updates(ticket_id, actor.role, actor.actor_id)
    return [_update_to_model(entry) for entry in entries]


@router.post("/{ticket_id}/updates", response_model=WorkflowResponse, status_code=status.HTTP_201_CREATED)
async def append_status_update(
    ticket_id: str,
    payload: StatusUpdateRequest,
    workflow: WorkflowDep,
    actor: CurrentActor,
) -> WorkflowResponse:
    result = await workflow.append_update(
        ticket_id,
        actor.role,
        actor.actor_id,
        payload.status,
        payload.message,
    )
    return WorkflowResponse.from_result(result)
