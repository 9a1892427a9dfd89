"""Tests for the transaction lifecycle state machine"""

import pytest
from copilot.constants import (
    LifecycleEvent,
    TransactionStatus,
    ENRICHMENT_FAILURE_NOTE,
    MANUAL_CONFIRMATION_NOTE,
    USER_REJECTION_NOTE,
)
from copilot.orchestrator.lifecycle import TRANSITIONS, apply_event, is_terminal, next_status
from copilot.utils.errors import InvalidTransitionError

S = TransactionStatus
E = LifecycleEvent


@pytest.mark.parametrize("current,event,expected", [
    (S.PENDING, E.NOT_ANOMALOUS, S.VERIFIED),
    (S.PENDING, E.ANOMALOUS, S.ANALYZING),
    (S.ANALYZING, E.ENRICHMENT_SUCCEEDED, S.REQUIRES_VERIFICATION),
    (S.ANALYZING, E.ENRICHMENT_FAILED, S.ERROR),
    (S.REQUIRES_VERIFICATION, E.USER_CONFIRMED, S.VERIFIED),
    (S.REQUIRES_VERIFICATION, E.USER_REJECTED, S.ERROR),
])
def test_allowed_transitions(current, event, expected):
    assert next_status(current, event) == expected


def test_transition_table_is_complete():
    assert len(TRANSITIONS) == 6


@pytest.mark.parametrize("terminal", [S.VERIFIED, S.ERROR])
@pytest.mark.parametrize("event", list(E))
def test_terminal_states_have_no_exits(terminal, event):
    assert is_terminal(terminal)
    with pytest.raises(InvalidTransitionError):
        next_status(terminal, event)


def test_states_cannot_be_skipped():
    with pytest.raises(InvalidTransitionError):
        next_status(S.PENDING, E.ENRICHMENT_SUCCEEDED)
    with pytest.raises(InvalidTransitionError):
        next_status(S.ANALYZING, E.USER_CONFIRMED)
    with pytest.raises(InvalidTransitionError):
        next_status(S.PENDING, E.USER_REJECTED)


def test_non_terminal_states():
    assert not is_terminal(S.PENDING)
    assert not is_terminal(S.ANALYZING)
    assert not is_terminal(S.REQUIRES_VERIFICATION)


def test_apply_event_updates():
    assert apply_event(S.PENDING, E.NOT_ANOMALOUS) == {'status': 'verified'}
    assert apply_event(S.PENDING, E.ANOMALOUS, "too high") == {'status': 'analyzing', 'anomaly_reason': "too high"}
    assert apply_event(S.ANALYZING, E.ENRICHMENT_SUCCEEDED, "insight") == {
        'status': 'requires_verification', 'ai_insight': "insight"
    }
    assert apply_event(S.ANALYZING, E.ENRICHMENT_FAILED)['ai_insight'] == ENRICHMENT_FAILURE_NOTE
    assert apply_event(S.REQUIRES_VERIFICATION, E.USER_CONFIRMED)['ai_insight'] == MANUAL_CONFIRMATION_NOTE
    assert apply_event(S.REQUIRES_VERIFICATION, E.USER_REJECTED)['ai_insight'] == USER_REJECTION_NOTE


def test_accepts_raw_status_strings():
    assert next_status("pending", "anomalous") == S.ANALYZING


def test_invalid_transition_message():
    with pytest.raises(InvalidTransitionError, match="user_confirmed.*verified"):
        apply_event(S.VERIFIED, E.USER_CONFIRMED)
