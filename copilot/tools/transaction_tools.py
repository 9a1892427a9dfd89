"""User-facing actions: itinerary, new transactions and manual verification"""

import random
from datetime import date, datetime
from typing import Optional
from copilot.constants import ITINERARY_DOC_ID, LifecycleEvent, NotificationReason, TransactionStatus
from copilot.demo.mock_data import TEST_ANOMALY, random_mock_transaction
from copilot.models import Itinerary, NewTransaction, Transaction
from copilot.orchestrator.lifecycle import apply_event
from copilot.tools.document_store import DocumentStore, itinerary_path, transactions_path
from copilot.tools.notification_tools import (
    NotificationEnqueuer,
    build_fraud_report,
    build_security_alert
)
from copilot.utils.config_loader import CopilotConfig
from copilot.utils.errors import DocumentNotFoundError, InvalidTransitionError, PreconditionFailedError
from copilot.utils.logging import get_logger
from copilot.utils.metrics import lifecycle_transitions

logger = get_logger(__name__)


class TransactionActions:
    """Actions one user can take; each writes straight to the store"""

    def __init__(self, config: CopilotConfig, store: DocumentStore,
                 enqueuer: NotificationEnqueuer, user_id: str):
        self.config = config
        self.store = store
        self.enqueuer = enqueuer
        self.user_id = user_id
        self.log = logger.bind(user_id=user_id)
        self.transactions_collection = transactions_path(config.app.app_id, user_id)
        self.itinerary_collection = itinerary_path(config.app.app_id, user_id)

    # Itinerary

    async def save_itinerary(self, location: str, start_date: date, end_date: date) -> Itinerary:
        """
        Create or overwrite the user's itinerary.

        Raises:
            pydantic.ValidationError: If location is empty or end_date precedes start_date
            StoreError: If the write fails
        """
        itinerary = Itinerary(location=location, start_date=start_date, end_date=end_date)
        await self.store.set(self.itinerary_collection, ITINERARY_DOC_ID, itinerary.model_dump(mode="json"))
        self.log.info("Itinerary saved", location=itinerary.location,
                      start_date=str(itinerary.start_date), end_date=str(itinerary.end_date))
        return itinerary

    async def get_itinerary(self) -> Optional[Itinerary]:
        doc = await self.store.get(self.itinerary_collection, ITINERARY_DOC_ID)
        return Itinerary.model_validate(doc) if doc else None

    async def clear_itinerary(self) -> None:
        await self.store.delete(self.itinerary_collection, ITINERARY_DOC_ID)
        self.log.info("Itinerary cleared")

    # Transactions

    async def create_transaction(self, merchant_name: str, amount: float, category: str,
                                 location: Optional[str] = None) -> str:
        """Add a transaction in 'pending'; returns its id"""
        new_tx = NewTransaction(merchant_name=merchant_name, amount=amount,
                                category=category, location=location)
        return await self._insert(new_tx)

    async def add_mock_transaction(self, rng: Optional[random.Random] = None) -> str:
        return await self._insert(random_mock_transaction(rng))

    async def _insert(self, new_tx: NewTransaction) -> str:
        record = {
            **new_tx.model_dump(mode="json"),
            'occurred_at': datetime.now().isoformat(),
            'status': TransactionStatus.PENDING.value,
            'anomaly_reason': None,
            'ai_insight': None
        }
        txn_id = await self.store.create(self.transactions_collection, record)
        self.log.info("Transaction created", txn_id=txn_id, merchant=new_tx.merchant_name,
                      amount=new_tx.amount)
        return txn_id

    async def get_transaction(self, txn_id: str) -> Transaction:
        doc = await self.store.get(self.transactions_collection, txn_id)
        if doc is None:
            raise DocumentNotFoundError(f"Transaction {txn_id} not found")
        return Transaction.from_document(doc)

    async def verify_transaction(self, txn_id: str, accepted: bool) -> Transaction:
        """
        Resolve a flagged transaction with the user's decision.

        Rejection also queues one fraud report; a failed enqueue is logged
        and does not undo the status change.

        Returns:
            Transaction as written

        Raises:
            DocumentNotFoundError: If txn_id does not exist
            InvalidTransitionError: If the transaction is not awaiting verification,
                including when a concurrent verification resolved it first
            StoreError: If the status update did not persist
        """
        tx = await self.get_transaction(txn_id)
        event = LifecycleEvent.USER_CONFIRMED if accepted else LifecycleEvent.USER_REJECTED
        update = apply_event(tx.status, event)

        try:
            await self.store.update(self.transactions_collection, txn_id, update,
                                    expected={'status': tx.status.value})
        except PreconditionFailedError as e:
            # Another verification resolved it between our read and write
            self.log.warning(f"Verification lost a concurrent update: {e}", txn_id=txn_id, accepted=accepted)
            raise InvalidTransitionError(e.actual, event)
        except Exception as e:
            self.log.error(f"Verification not saved: {e}", txn_id=txn_id, accepted=accepted)
            raise

        lifecycle_transitions.labels(to_status=update['status']).inc()
        self.log.info("Transaction verified by user", txn_id=txn_id, accepted=accepted,
                      to_status=update['status'])
        resolved = tx.model_copy(update={**update, 'status': TransactionStatus(update['status'])})

        if not accepted:
            self.enqueuer.enqueue_in_background(
                build_fraud_report(self.enqueuer.recipient, self.user_id, resolved),
                NotificationReason.USER_REJECTED
            )
        return resolved

    async def inject_test_anomaly(self) -> str:
        """
        Add a transaction that is always flagged and queue a security alert for it.

        Raises:
            ValueError: If no itinerary is set
        """
        if await self.get_itinerary() is None:
            raise ValueError("Please set an itinerary first.")

        txn_id = await self._insert(TEST_ANOMALY)
        tx = await self.get_transaction(txn_id)
        self.enqueuer.enqueue_in_background(
            build_security_alert(self.enqueuer.recipient, self.user_id, tx),
            NotificationReason.TEST_ANOMALY
        )
        return txn_id
