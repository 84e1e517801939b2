"""Service ticket lifecycle, triage and status update workflow."""

from .errors import Conflict, IllegalTransition, NotFound, PermissionDenied, ValidationError, WorkflowError
from .memory import InMemoryTicketRepository
from .models import BatteryCase, ServiceTicket, StatusUpdateEntry, VehicleCase, WorkflowResult
from .repository import SqlTicketRepository, TicketRepository
from .state import CaseStatus, CustomerBringing, Priority, TicketStateMachine, TicketStatus
from .transitions import StatusTransitionValidator, TransitionPlan
from .triage import TriageOutcome, TriageRouter
from .updates import StatusUpdateLog
from .workflow import WorkflowFacade

__all__ = [
    "BatteryCase",
    "CaseStatus",
    "Conflict",
    "CustomerBringing",
    "IllegalTransition",
    "InMemoryTicketRepository",
    "NotFound",
    "PermissionDenied",
    "Priority",
    "ServiceTicket",
    "SqlTicketRepository",
    "StatusTransitionValidator",
    "StatusUpdateEntry",
    "StatusUpdateLog",
    "TicketRepository",
    "TicketStateMachine",
    "TicketStatus",
    "TransitionPlan",
    "TriageOutcome",
    "TriageRouter",
    "ValidationError",
    "VehicleCase",
    "WorkflowError",
    "WorkflowFacade",
    "WorkflowResult",
]
