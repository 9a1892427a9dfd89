"""Rule-based anomaly checks for incoming transactions"""

from datetime import datetime, time
from typing import Optional
from copilot.constants import TRAVEL_CATEGORY
from copilot.models import Itinerary, Transaction, Verdict
from copilot.utils.config_loader import RuleSettings

DEFAULT_RULES = RuleSettings()

NOT_ANOMALOUS = Verdict(is_anomalous=False, reason=None)


def evaluate(
    tx: Transaction,
    itinerary: Optional[Itinerary],
    settings: RuleSettings = DEFAULT_RULES,
    now: Optional[datetime] = None
) -> Verdict:
    """
    Decide whether a transaction is anomalous.

    Rules run in fixed priority and the first match wins:
    1. amount above the threshold
    2. location differs from the itinerary while inside its date window
    3. merchant name contains the known fraud token

    Args:
        tx: Transaction to check
        itinerary: Active itinerary, or None when the user is not travelling
        settings: Rule thresholds
        now: Reference time for transactions the store has not stamped yet

    Returns:
        Verdict with the reason of the first rule that fired
    """
    if tx.amount > settings.amount_threshold:
        return Verdict(is_anomalous=True, reason="Transaction amount is unusually high.")

    if itinerary is not None and (tx.category == TRAVEL_CATEGORY or tx.location):
        tx_place = extract_place_token(tx.location)
        itinerary_place = extract_place_token(itinerary.location)

        if tx_place and itinerary_place and tx_place != itinerary_place:
            occurred_at = tx.occurred_at or now or datetime.now()
            if within_itinerary_window(occurred_at, itinerary):
                return Verdict(
                    is_anomalous=True,
                    reason=(
                        f'Transaction location "{tx.location}" does not match your active '
                        f'travel itinerary for "{itinerary.location}".'
                    )
                )

    if settings.fraud_token.lower() in tx.merchant_name.lower():
        return Verdict(is_anomalous=True, reason="Transaction merchant is on a known fraud list.")

    return NOT_ANOMALOUS


def extract_place_token(location: Optional[str]) -> Optional[str]:
    """
    Reduce 'City, Country' to a lowercase city token.

    >>> extract_place_token("Tokyo, JP")
    'tokyo'
    """
    if not location:
        return None
    token = location.split(",", 1)[0].strip().lower()
    return token or None


def within_itinerary_window(occurred_at: datetime, itinerary: Itinerary) -> bool:
    """Inclusive check against [start_date 00:00:00, end_date 23:59:59.999999] local time"""
    if occurred_at.tzinfo is not None:
        occurred_at = occurred_at.astimezone().replace(tzinfo=None)

    window_start = datetime.combine(itinerary.start_date, time.min)
    window_end = datetime.combine(itinerary.end_date, time.max)
    return window_start <= occurred_at <= window_end
