from __future__ import annotations

import uuid
from datetime import datetime
from typing import Sequence

from .errors import ValidationError
from .models import StatusUpdateEntry
from .repository import TicketRepository
from .state import CustomerBringing, TicketStatus

DEFAULT_MAX_LENGTH = 500


class StatusUpdateLog:
    """Append-only narrative trail attached to tickets.

    The status stored with an entry is whatever the author saw when writing it; it is
    not checked against the ticket's current status.
    """

    def __init__(self, repository: TicketRepository, *, max_length: int = DEFAULT_MAX_LENGTH) -> None:
        self._repository = repository
        self._max_length = max_length

    @property
    def max_length(self) -> int:
        return self._max_length

    def build_entry(
        self,
        ticket_id: str,
        *,
        author: str | None,
        status: TicketStatus,
        message: str | None,
        now: datetime,
        system: bool = False,
    ) -> StatusUpdateEntry:
        """Validate an entry without persisting it."""

        text = (message or "").strip()
        if not text:
            raise ValidationError("Update message must not be empty")
        if len(text) > self._max_length:
            raise ValidationError(f"Update message exceeds {self._max_length} characters")
        if author is None or not author.strip():
            raise ValidationError("Update author is required")

        return StatusUpdateEntry(
            id=str(uuid.uuid4()),
            ticket_id=ticket_id,
            status=status,
            message=text,
            author=author.strip(),
            is_system_update=system,
            created_at=now,
        )

    async def append(
        self,
        ticket_id: str,
        *,
        author: str | None,
        status: TicketStatus,
        message: str | None,
        now: datetime,
        system: bool = False,
    ) -> StatusUpdateEntry:
        entry = self.build_entry(
            ticket_id, author=author, status=status, message=message, now=now, system=system
        )
        return await self._repository.append_status_update(entry)

    async def history(self, ticket_id: str) -> Sequence[StatusUpdateEntry]:
        return await self._repository.list_status_updates(ticket_id)

    def transition_message(
        self, from_status: TicketStatus, to_status: TicketStatus, note: str | None = None
    ) -> str:
        message = f"Status changed from {from_status.value} to {to_status.value}"
        return self._with_note(message, note)

    def triage_message(self, route_to: CustomerBringing, note: str | None = None) -> str:
        targets = {
            CustomerBringing.VEHICLE: "vehicle case",
            CustomerBringing.BATTERY: "battery case",
            CustomerBringing.BOTH: "vehicle and battery cases",
        }
        return self._with_note(f"Triaged to {targets[route_to]}", note)

    def _with_note(self, message: str, note: str | None) -> str:
        if note and note.strip():
            message = f"{message}: {note.strip()}"
        if len(message) > self._max_length:
            message = message[: self._max_length - 3].rstrip() + "..."
        return message
