"""Transaction lifecycle state machine"""

from typing import Any, Dict, Optional
from copilot.constants import (
    LifecycleEvent,
    TransactionStatus,
    ENRICHMENT_FAILURE_NOTE,
    MANUAL_CONFIRMATION_NOTE,
    USER_REJECTION_NOTE,
)
from copilot.utils.errors import InvalidTransitionError

S = TransactionStatus
E = LifecycleEvent

# (from, event) -> to
TRANSITIONS = {
    (S.PENDING, E.NOT_ANOMALOUS): S.VERIFIED,
    (S.PENDING, E.ANOMALOUS): S.ANALYZING,
    (S.ANALYZING, E.ENRICHMENT_SUCCEEDED): S.REQUIRES_VERIFICATION,
    (S.ANALYZING, E.ENRICHMENT_FAILED): S.ERROR,
    (S.REQUIRES_VERIFICATION, E.USER_CONFIRMED): S.VERIFIED,
    (S.REQUIRES_VERIFICATION, E.USER_REJECTED): S.ERROR,
}

TERMINAL_STATES = frozenset({S.VERIFIED, S.ERROR})


def is_terminal(status: TransactionStatus) -> bool:
    return TransactionStatus(status) in TERMINAL_STATES


def next_status(current: TransactionStatus, event: LifecycleEvent) -> TransactionStatus:
    """
    Look up the target status for an event.

    Raises:
        InvalidTransitionError: If the event is not allowed from current
    """
    try:
        return TRANSITIONS[(TransactionStatus(current), LifecycleEvent(event))]
    except KeyError:
        raise InvalidTransitionError(current, event)


def apply_event(
    current: TransactionStatus,
    event: LifecycleEvent,
    detail: Optional[str] = None
) -> Dict[str, Any]:
    """
    Build the partial document update for a transition.

    Args:
        current: Status the transaction is in now
        event: Event being applied
        detail: Anomaly reason (ANOMALOUS) or generated insight (ENRICHMENT_SUCCEEDED)

    Returns:
        Field update containing the new status and its dependent field
    """
    target = next_status(current, event)
    update: Dict[str, Any] = {'status': target.value}

    if event == E.ANOMALOUS:
        update['anomaly_reason'] = detail
    elif event == E.ENRICHMENT_SUCCEEDED:
        update['ai_insight'] = detail
    elif event == E.ENRICHMENT_FAILED:
        update['ai_insight'] = ENRICHMENT_FAILURE_NOTE
    elif event == E.USER_CONFIRMED:
        update['ai_insight'] = MANUAL_CONFIRMATION_NOTE
    elif event == E.USER_REJECTED:
        update['ai_insight'] = USER_REJECTION_NOTE

    return update
