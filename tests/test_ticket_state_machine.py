import pytest

from triage.tickets.state import (
    TicketStatus,
    TransferState,
    TransferStateMachine,
    priority_rank,
)


def test_transfer_state_machine_allows_expected_transitions():
    assert TransferStateMachine.initial_state() == TransferState.IDLE
    assert TransferStateMachine.can_transition(TransferState.IDLE, TransferState.PENDING)
    assert TransferStateMachine.can_transition(TransferState.PENDING, TransferState.COMMITTED)
    assert TransferStateMachine.can_transition(TransferState.PENDING, TransferState.ROLLED_BACK)


def test_transfer_state_machine_blocks_invalid_transitions():
    assert not TransferStateMachine.can_transition(TransferState.IDLE, TransferState.COMMITTED)
    assert not TransferStateMachine.can_transition(TransferState.COMMITTED, TransferState.ROLLED_BACK)
    with pytest.raises(ValueError):
        TransferStateMachine.assert_transition(TransferState.ROLLED_BACK, TransferState.PENDING)


def test_settled_states_are_terminal():
    assert TransferStateMachine.is_settled(TransferState.COMMITTED)
    assert TransferStateMachine.is_settled(TransferState.ROLLED_BACK)
    assert not TransferStateMachine.is_settled(TransferState.PENDING)


def test_terminal_ticket_statuses_and_priority_rank():
    assert TicketStatus.CANCELLED.is_terminal
    assert not TicketStatus.WAITING_CUSTOMER.is_terminal
    assert priority_rank("urgent") < priority_rank("high") < priority_rank("normal") < priority_rank("low")
    assert priority_rank(None) == priority_rank("unheard-of") == 4
