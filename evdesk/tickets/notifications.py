from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol, Sequence

import httpx

from .models import ServiceTicket

logger = logging.getLogger(__name__)


class NotificationError(RuntimeError):
    """Raised when a push provider rejects a notification request."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NotificationDispatcher(Protocol):
    async def ticket_reported(self, ticket: ServiceTicket) -> None:
        ...


class LoggingNotificationDispatcher:
    """Dispatcher used when push delivery is disabled."""

    async def ticket_reported(self, ticket: ServiceTicket) -> None:
        logger.info("New job card %s reported for customer %s", ticket.ticket_number, ticket.customer_id)


@dataclass(slots=True)
class PushNotificationDispatcher:
    """Send Expo-style push messages to floor managers when a ticket is reported."""

    endpoint: str
    tokens: Sequence[str] = field(default_factory=tuple)
    timeout: float = 10.0
    client: httpx.AsyncClient | None = None

    def build_messages(self, ticket: ServiceTicket) -> list[dict[str, Any]]:
        return [
            {
                "to": token,
                "sound": "default",
                "title": "New Job Card Created",
                "body": f"Job Card #{ticket.ticket_number} has been created.",
                "data": {"ticketId": ticket.id, "ticketNumber": ticket.ticket_number},
            }
            for token in self.tokens
            if token
        ]

    async def ticket_reported(self, ticket: ServiceTicket) -> None:
        messages = self.build_messages(ticket)
        if not messages:
            return

        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if self.client is not None:
            response = await self.client.post(self.endpoint, json=messages, headers=headers, timeout=self.timeout)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.endpoint, json=messages, headers=headers)

        if response.status_code >= 400:
            raise NotificationError(
                f"Push provider rejected notification: {response.text or response.status_code}",
                status_code=response.status_code,
            )
        logger.info("Notified %d floor manager device(s) about %s", len(messages), ticket.ticket_number)
