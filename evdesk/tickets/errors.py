from __future__ import annotations

from typing import Iterable

from .state import TicketStatus


class WorkflowError(RuntimeError):
    """Base error for workflow engine failures."""

    kind = "workflow_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict[str, object]:
        return {"ok": False, "error_kind": self.kind, "message": self.message}


class PermissionDenied(WorkflowError):
    """Raised when the acting role lacks the capability for an action."""

    kind = "permission_denied"


class IllegalTransition(WorkflowError):
    """Raised when the requested edge does not exist in the lifecycle graph."""

    kind = "illegal_transition"

    def __init__(
        self,
        current: TicketStatus,
        target: TicketStatus,
        allowed: Iterable[TicketStatus] = (),
        *,
        message: str | None = None,
    ) -> None:
        self.current = current
        self.target = target
        self.allowed = tuple(sorted(allowed, key=lambda status: status.value))
        super().__init__(message or f"Cannot transition {current.value} -> {target.value}")

    def to_payload(self) -> dict[str, object]:
        payload = super().to_payload()
        payload["current"] = self.current.value
        payload["target"] = self.target.value
        payload["allowed"] = [status.value for status in self.allowed]
        return payload


class ValidationError(WorkflowError):
    """Raised when a payload field is missing or invalid."""

    kind = "validation_error"


class NotFound(WorkflowError):
    """Raised when a ticket or case id does not resolve."""

    kind = "not_found"


class Conflict(WorkflowError):
    """Raised when a conditional write lost against a concurrent change."""

    kind = "conflict"
