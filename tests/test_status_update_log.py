from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from evdesk.tickets.errors import ValidationError
from evdesk.tickets.state import CustomerBringing, TicketStatus
from evdesk.tickets.updates import StatusUpdateLog

NOW = datetime(2024, 5, 2, 10, 0, tzinfo=timezone.utc)


class DummyRepository:
    def __init__(self):
        self.append_status_update = AsyncMock(side_effect=lambda entry: entry)
        self.list_status_updates = AsyncMock(return_value=[])


@pytest.mark.asyncio
async def test_append_persists_trimmed_message():
    repository = DummyRepository()
    log = StatusUpdateLog(repository)

    entry = await log.append(
        "ticket-1", author="tech-1", status=TicketStatus.IN_PROGRESS, message="  Replaced fuse  ", now=NOW
    )

    assert entry.message == "Replaced fuse"
    assert entry.status is TicketStatus.IN_PROGRESS
    assert entry.is_system_update is False
    repository.append_status_update.assert_awaited_once()


@pytest.mark.asyncio
@pytest.mark.parametrize("message", ["", "   ", None])
async def test_append_rejects_empty_messages(message):
    repository = DummyRepository()
    log = StatusUpdateLog(repository)

    with pytest.raises(ValidationError):
        await log.append("ticket-1", author="tech-1", status=TicketStatus.ASSIGNED, message=message, now=NOW)
    repository.append_status_update.assert_not_awaited()


@pytest.mark.asyncio
async def test_append_enforces_length_bound():
    repository = DummyRepository()
    log = StatusUpdateLog(repository, max_length=500)

    await log.append("ticket-1", author="tech-1", status=TicketStatus.ASSIGNED, message="x" * 500, now=NOW)
    with pytest.raises(ValidationError):
        await log.append("ticket-1", author="tech-1", status=TicketStatus.ASSIGNED, message="x" * 501, now=NOW)
    assert repository.append_status_update.await_count == 1


def test_build_entry_requires_author():
    log = StatusUpdateLog(DummyRepository())
    with pytest.raises(ValidationError):
        log.build_entry("ticket-1", author=" ", status=TicketStatus.REPORTED, message="hello", now=NOW)


def test_status_seen_is_not_checked_against_ticket():
    log = StatusUpdateLog(DummyRepository())
    entry = log.build_entry("ticket-1", author="tech-1", status=TicketStatus.CLOSED, message="late note", now=NOW)
    assert entry.status is TicketStatus.CLOSED


def test_generated_messages():
    log = StatusUpdateLog(DummyRepository())

    assert log.transition_message(TicketStatus.ASSIGNED, TicketStatus.IN_PROGRESS) == (
        "Status changed from assigned to in_progress"
    )
    assert log.triage_message(CustomerBringing.BOTH) == "Triaged to vehicle and battery cases"
    assert log.triage_message(CustomerBringing.BATTERY, " swollen pack ") == "Triaged to battery case: swollen pack"


def test_generated_messages_are_truncated_to_bound():
    log = StatusUpdateLog(DummyRepository(), max_length=40)

    message = log.transition_message(TicketStatus.ASSIGNED, TicketStatus.IN_PROGRESS, "x" * 50)

    assert len(message) <= 40
    assert message.endswith("...")


@pytest.mark.asyncio
async def test_history_reads_from_repository():
    repository = DummyRepository()
    log = StatusUpdateLog(repository)

    assert await log.history("ticket-1") == []
    repository.list_status_updates.assert_awaited_with("ticket-1")
