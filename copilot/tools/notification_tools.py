"""Outbound notification queue (fire-and-forget from the caller's point of view)"""

import asyncio
import json
from typing import Optional, Set
from copilot.constants import NotificationReason
from copilot.models import NotificationRecord, Transaction
from copilot.tools.document_store import DocumentStore, mail_queue_path
from copilot.utils.config_loader import CopilotConfig
from copilot.utils.logging import get_logger
from copilot.utils.metrics import notifications_enqueued, notification_enqueue_failures

logger = get_logger(__name__)

FRAUD_REPORT_SUBJECT = "⚠️ FRAUD ALERT: User Reported a Suspicious Transaction"
SECURITY_ALERT_SUBJECT = "SECURITY ALERT: Potential Fraud Detected"


def build_fraud_report(recipient: str, user_id: str, tx: Transaction) -> NotificationRecord:
    """Record sent when the user rejects a flagged transaction"""
    occurred = tx.occurred_at.strftime("%Y-%m-%d %H:%M:%S") if tx.occurred_at else "N/A"
    body = "\n".join([
        "A user has flagged a transaction as fraudulent.",
        "",
        f"User ID: {user_id}",
        f"Transaction ID: {tx.id}",
        f"Merchant: {tx.merchant_name}",
        f"Amount: ${tx.amount:.2f}",
        f"Category: {tx.category}",
        f"Location: {tx.location or 'N/A'}",
        f"Timestamp: {occurred}",
        "",
        "Please review this transaction immediately.",
    ])
    return NotificationRecord(
        recipient=recipient,
        subject=FRAUD_REPORT_SUBJECT,
        body=body,
        related_transaction_id=tx.id,
        related_user_id=user_id
    )


def build_security_alert(recipient: str, user_id: str, tx: Transaction) -> NotificationRecord:
    """Record sent alongside the synthetic test anomaly"""
    return NotificationRecord(
        recipient=recipient,
        subject=SECURITY_ALERT_SUBJECT,
        body=f"A suspicious transaction was detected and needs your review: {json.dumps(tx.prompt_payload())}",
        related_transaction_id=tx.id,
        related_user_id=user_id
    )


class NotificationEnqueuer:
    """Appends NotificationRecords to the shared mail queue collection"""

    def __init__(self, config: CopilotConfig, store: DocumentStore):
        self.config = config
        self.store = store
        self.collection = mail_queue_path(config.app.app_id)
        self._background: Set[asyncio.Task] = set()

    @property
    def recipient(self) -> str:
        return self.config.notifications.recipient

    async def enqueue(self, record: NotificationRecord,
                      reason: NotificationReason = NotificationReason.USER_REJECTED) -> Optional[str]:
        """
        Append a record to the outbound queue.

        Failures are logged and counted, never raised.

        Returns:
            New record id, or None if disabled or the write failed
        """
        if not self.config.notifications.enabled:
            logger.info("Notifications disabled, record dropped",
                        txn_id=record.related_transaction_id, subject=record.subject)
            return None

        try:
            record_id = await self.store.create(self.collection, record.model_dump(mode="json"))
        except Exception as e:
            notification_enqueue_failures.inc()
            logger.error(f"Failed to enqueue notification: {e}",
                         txn_id=record.related_transaction_id)
            return None

        notifications_enqueued.labels(reason=NotificationReason(reason).value).inc()
        logger.info("Notification queued", record_id=record_id,
                    txn_id=record.related_transaction_id, recipient=record.recipient)
        return record_id

    def enqueue_in_background(self, record: NotificationRecord,
                              reason: NotificationReason = NotificationReason.USER_REJECTED) -> asyncio.Task:
        """Schedule enqueue without waiting for it"""
        task = asyncio.create_task(self.enqueue(record, reason))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def drain(self) -> None:
        """Wait for background enqueues started so far"""
        if self._background:
            await asyncio.gather(*list(self._background))
