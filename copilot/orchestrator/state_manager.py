"""In-flight bookkeeping for transactions under analysis."""

import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, Iterator
from copilot.utils.logging import get_logger
from copilot.utils.metrics import analyses_in_flight

logger = get_logger(__name__)


class InFlightRegistry:
    """
    Per-transaction claim markers owned by the analysis orchestrator.

    A transaction id is claimed when analysis starts and released when it
    ends, whatever the outcome. Claims are never cached across processes;
    the store remains the source of truth for status.
    """

    def __init__(self):
        self._claims: Dict[str, datetime] = {}
        self._lock = threading.Lock()

    def try_acquire(self, txn_id: str) -> bool:
        """Claim txn_id; False if it is already claimed"""
        with self._lock:
            if txn_id in self._claims:
                return False
            self._claims[txn_id] = datetime.now()
            analyses_in_flight.inc()
            return True

    def release(self, txn_id: str) -> None:
        with self._lock:
            if self._claims.pop(txn_id, None) is not None:
                analyses_in_flight.dec()

    @contextmanager
    def claim(self, txn_id: str) -> Iterator[bool]:
        """
        Scoped claim. Yields True when acquired; the claim is released on
        every exit path. Yields False (and releases nothing) when another
        analysis already holds txn_id.
        """
        acquired = self.try_acquire(txn_id)
        if not acquired:
            logger.debug("Transaction already in flight, skipping", txn_id=txn_id)
        try:
            yield acquired
        finally:
            if acquired:
                self.release(txn_id)

    def is_in_flight(self, txn_id: str) -> bool:
        with self._lock:
            return txn_id in self._claims

    def claimed_since(self, txn_id: str):
        with self._lock:
            return self._claims.get(txn_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._claims)
