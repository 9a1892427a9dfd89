"""Analysis Orchestrator - runs each newly observed transaction through the pipeline"""

import asyncio
import json
from typing import Any, Dict, Iterable, List, Optional
from pydantic import ValidationError
from copilot.constants import ITINERARY_DOC_ID, LifecycleEvent, TransactionStatus
from copilot.models import Itinerary, Transaction
from copilot.orchestrator.lifecycle import apply_event
from copilot.orchestrator.state_manager import InFlightRegistry
from copilot.tools.anomaly_tools import evaluate
from copilot.tools.document_store import DocumentStore, itinerary_path, transactions_path
from copilot.tools.llm_client import LLMClient
from copilot.utils.config_loader import CopilotConfig
from copilot.utils.errors import StoreError
from copilot.utils.logging import get_logger
from copilot.utils.metrics import enrichment_failures, lifecycle_transitions, transactions_analyzed

logger = get_logger(__name__)

RESUBSCRIBE_BASE_DELAY = 1
RESUBSCRIBE_MAX_DELAY = 30


def build_enrichment_prompt(reason: str, tx: Transaction, itinerary: Optional[Itinerary]) -> str:
    """Prompt asking for a single friendly paragraph about the flag"""
    itinerary_json = json.dumps(itinerary.model_dump(mode="json")) if itinerary else "null"
    return f"""
You are a bank's fraud detection AI.
A transaction was flagged as an anomaly.
Reason: "{reason}"
Transaction: {json.dumps(tx.prompt_payload())}
User Itinerary: {itinerary_json}

Write a brief, single-paragraph security alert for the user. Be friendly, explain the *exact* reason it was flagged (e.g., "it's in Tokyo but your itinerary..."), and ask them to verify it.
""".strip()


class AnalysisOrchestrator:
    """
    Watches one user's transactions and itinerary.

    Every transaction still in 'pending' is analysed exactly once per claim:
    rule verdict, then either 'verified' or 'analyzing' followed by an
    enrichment call that ends in 'requires_verification' or 'error'.
    Enrichment calls for different transactions run concurrently.
    """

    def __init__(
        self,
        config: CopilotConfig,
        store: DocumentStore,
        llm: LLMClient,
        user_id: str,
        in_flight: Optional[InFlightRegistry] = None
    ):
        self.config = config
        self.store = store
        self.llm = llm
        self.user_id = user_id
        self.log = logger.bind(user_id=user_id)
        self.in_flight = in_flight or InFlightRegistry()
        self.transactions_collection = transactions_path(config.app.app_id, user_id)
        self.itinerary_collection = itinerary_path(config.app.app_id, user_id)
        self.itinerary: Optional[Itinerary] = None
        self._latest: List[Transaction] = []
        self._tasks: Dict[str, asyncio.Task] = {}

    # Snapshot handling

    def handle_snapshot(self, docs: Iterable[Dict[str, Any]]) -> List[asyncio.Task]:
        """
        Dispatch analysis for every pending transaction not already in flight.

        Args:
            docs: Transaction documents from the latest store snapshot

        Returns:
            Tasks started for this snapshot
        """
        transactions = []
        for doc in docs:
            try:
                transactions.append(Transaction.from_document(doc))
            except ValidationError as e:
                self.log.warning(f"Skipping malformed transaction document: {e}", txn_id=doc.get('id'))
        self._latest = transactions

        started = []
        for tx in transactions:
            if tx.status != TransactionStatus.PENDING:
                continue
            if tx.id in self._tasks or self.in_flight.is_in_flight(tx.id):
                self.log.debug("Analysis already dispatched", txn_id=tx.id)
                continue
            started.append(self._dispatch(tx))
        return started

    def set_itinerary(self, itinerary: Optional[Itinerary]) -> List[asyncio.Task]:
        """Replace the active itinerary and reconsider still-pending transactions"""
        self.itinerary = itinerary
        self.log.info("Active itinerary changed",
                      location=itinerary.location if itinerary else None)
        return self.handle_snapshot(tx.model_dump(mode="json") for tx in self._latest)

    def _dispatch(self, tx: Transaction) -> asyncio.Task:
        task = asyncio.create_task(self.process_transaction(tx, self.itinerary))
        self._tasks[tx.id] = task
        task.add_done_callback(lambda _t, txn_id=tx.id: self._tasks.pop(txn_id, None))
        return task

    async def drain(self) -> None:
        """Wait until no analysis task is running"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    # Per-transaction pipeline

    async def process_transaction(self, tx: Transaction,
                                  itinerary: Optional[Itinerary]) -> Optional[TransactionStatus]:
        """
        Analyse one transaction.

        Returns:
            Final status written, or None if the transaction was skipped
            or a store write failed
        """
        with self.in_flight.claim(tx.id) as acquired:
            if not acquired:
                return None

            try:
                current = await self._reload(tx)
                if current is None:
                    return None
                return await self._analyze(current, itinerary)
            except Exception as e:
                self.log.error(f"Transaction analysis aborted: {e}", txn_id=tx.id)
                return None

    async def _reload(self, tx: Transaction) -> Optional[Transaction]:
        """Fetch the stored copy; only transactions still pending are analysed"""
        doc = await self.store.get(self.transactions_collection, tx.id)
        if doc is None:
            self.log.warning("Transaction disappeared before analysis", txn_id=tx.id)
            return None

        current = Transaction.from_document(doc)
        if current.status != TransactionStatus.PENDING:
            self.log.debug("Transaction already past pending, not re-analysed",
                           txn_id=tx.id, status=current.status.value)
            return None
        return current

    async def _analyze(self, tx: Transaction, itinerary: Optional[Itinerary]) -> TransactionStatus:
        verdict = evaluate(tx, itinerary, self.config.rules)

        if not verdict.is_anomalous:
            transactions_analyzed.labels(outcome='verified').inc()
            return await self._transition(tx.id, TransactionStatus.PENDING, LifecycleEvent.NOT_ANOMALOUS)

        transactions_analyzed.labels(outcome='flagged').inc()
        self.log.info("Transaction flagged", txn_id=tx.id, reason=verdict.reason)

        # Observers see 'analyzing' before the enrichment call starts
        await self._transition(tx.id, TransactionStatus.PENDING, LifecycleEvent.ANOMALOUS, verdict.reason)

        try:
            insight = await self.llm.generate(build_enrichment_prompt(verdict.reason, tx, itinerary))
        except Exception as e:
            enrichment_failures.inc()
            self.log.error(f"Enrichment failed: {e}", txn_id=tx.id)
            return await self._transition(tx.id, TransactionStatus.ANALYZING, LifecycleEvent.ENRICHMENT_FAILED)

        return await self._transition(
            tx.id, TransactionStatus.ANALYZING, LifecycleEvent.ENRICHMENT_SUCCEEDED, insight
        )

    async def _transition(self, txn_id: str, current: TransactionStatus,
                          event: LifecycleEvent, detail: Optional[str] = None) -> TransactionStatus:
        update = apply_event(current, event, detail)
        await self.store.update(self.transactions_collection, txn_id, update,
                                expected={'status': current.value})

        target = TransactionStatus(update['status'])
        lifecycle_transitions.labels(to_status=target.value).inc()
        self.log.info("Transaction status updated", txn_id=txn_id,
                      from_status=current.value, to_status=target.value)
        return target

    # Subscriptions

    async def refresh_itinerary(self) -> Optional[Itinerary]:
        doc = await self.store.get(self.itinerary_collection, ITINERARY_DOC_ID)
        self.itinerary = self._parse_itinerary(doc)
        return self.itinerary

    def _parse_itinerary(self, doc: Optional[Dict[str, Any]]) -> Optional[Itinerary]:
        if not doc:
            return None
        try:
            return Itinerary.model_validate(doc)
        except ValidationError as e:
            self.log.warning(f"Ignoring invalid itinerary document: {e}")
            return None

    async def run(self) -> None:
        """Watch itinerary and transactions until cancelled"""
        await self.refresh_itinerary()
        self.log.info("Analysis orchestrator started",
                      itinerary=self.itinerary.location if self.itinerary else None)
        try:
            await asyncio.gather(self._watch_itinerary(), self._watch_transactions())
        finally:
            for task in list(self._tasks.values()):
                task.cancel()

    async def _watch_itinerary(self) -> None:
        async def on_snapshot(docs):
            doc = next((d for d in docs if d.get('id') == ITINERARY_DOC_ID), None)
            self.set_itinerary(self._parse_itinerary(doc))

        await self._watch(self.itinerary_collection, on_snapshot)

    async def _watch_transactions(self) -> None:
        async def on_snapshot(docs):
            self.handle_snapshot(docs)

        await self._watch(self.transactions_collection, on_snapshot,
                          order_by='occurred_at', descending=True)

    async def _watch(self, collection: str, on_snapshot, order_by: Optional[str] = None,
                     descending: bool = False) -> None:
        """Consume a subscription, resubscribing with backoff after store errors"""
        attempt = 0
        while True:
            try:
                async for docs in self.store.subscribe(collection, order_by, descending):
                    attempt = 0
                    await on_snapshot(docs)
                return
            except StoreError as e:
                delay = min(RESUBSCRIBE_BASE_DELAY * (2 ** attempt), RESUBSCRIBE_MAX_DELAY)
                attempt += 1
                self.log.warning(f"Subscription lost, resubscribing in {delay}s: {e}", collection=collection)
                await asyncio.sleep(delay)
