import pytest

from evdesk.tickets.state import CustomerBringing, TicketStateMachine, TicketStatus


def test_ticket_state_machine_allows_expected_transitions():
    assert TicketStateMachine.can_transition(TicketStatus.REPORTED, TicketStatus.TRIAGED)
    assert TicketStateMachine.can_transition(TicketStatus.TRIAGED, TicketStatus.ASSIGNED)
    assert TicketStateMachine.can_transition(TicketStatus.ASSIGNED, TicketStatus.IN_PROGRESS)
    assert TicketStateMachine.can_transition(TicketStatus.IN_PROGRESS, TicketStatus.WAITING_APPROVAL)
    assert TicketStateMachine.can_transition(TicketStatus.WAITING_APPROVAL, TicketStatus.IN_PROGRESS)
    assert TicketStateMachine.can_transition(TicketStatus.COMPLETED, TicketStatus.CLOSED)
    assert TicketStateMachine.can_transition(TicketStatus.DELIVERED, TicketStatus.CLOSED)


def test_ticket_state_machine_blocks_invalid_transitions():
    assert not TicketStateMachine.can_transition(TicketStatus.REPORTED, TicketStatus.ASSIGNED)
    assert not TicketStateMachine.can_transition(TicketStatus.TRIAGED, TicketStatus.CANCELLED)
    assert not TicketStateMachine.can_transition(TicketStatus.COMPLETED, TicketStatus.IN_PROGRESS)
    assert not TicketStateMachine.can_transition(TicketStatus.CLOSED, TicketStatus.REPORTED)


@pytest.mark.parametrize("status", [TicketStatus.CLOSED, TicketStatus.CANCELLED])
def test_terminal_statuses_have_no_exits(status):
    assert TicketStateMachine.is_terminal(status)
    assert TicketStateMachine.allowed_targets(status) == frozenset()


def test_triage_edge_is_reserved():
    assert TicketStateMachine.reserved_operation(TicketStatus.REPORTED, TicketStatus.TRIAGED) == "triage"
    assert TicketStateMachine.reserved_operation(TicketStatus.TRIAGED, TicketStatus.ASSIGNED) is None
    assert TicketStateMachine.initial_state() is TicketStatus.REPORTED


def test_customer_bringing_case_requirements():
    assert CustomerBringing.BOTH.needs_vehicle_case and CustomerBringing.BOTH.needs_battery_case
    assert CustomerBringing.VEHICLE.needs_vehicle_case and not CustomerBringing.VEHICLE.needs_battery_case
    assert CustomerBringing.BATTERY.needs_battery_case and not CustomerBringing.BATTERY.needs_vehicle_case
