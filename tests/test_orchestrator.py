"""Tests for the analysis orchestrator"""

import asyncio
import pytest
from datetime import date, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock
from copilot.constants import TransactionStatus, ENRICHMENT_FAILURE_NOTE
from copilot.models import Itinerary, Transaction
from copilot.orchestrator.analysis_orchestrator import AnalysisOrchestrator, build_enrichment_prompt
from copilot.tools.document_store import InMemoryDocumentStore
from copilot.utils.config_loader import CopilotConfig
from copilot.utils.errors import LLMError

USER_ID = "user-1"
INSIGHT = "Heads up! We saw an Uber charge in Tokyo while your itinerary says Osaka. Was this you?"


def current_trip(location="Osaka, JP") -> Itinerary:
    today = date.today()
    return Itinerary(location=location, start_date=today - timedelta(days=1), end_date=today + timedelta(days=1))


def make_orchestrator(generate=None):
    store = InMemoryDocumentStore()
    llm = MagicMock()
    llm.generate = generate or AsyncMock(return_value=INSIGHT)
    orchestrator = AnalysisOrchestrator(CopilotConfig(), store, llm, USER_ID)
    return orchestrator, store, llm


async def add_transaction(orchestrator, store, **fields) -> str:
    record = {
        'merchant_name': 'Amazon Marketplace',
        'amount': 120.50,
        'category': 'Shopping',
        'location': None,
        'occurred_at': datetime.now().isoformat(),
        'status': 'pending',
    }
    record.update(fields)
    return await store.create(orchestrator.transactions_collection, record)


async def snapshot(orchestrator, store):
    return await store.list(orchestrator.transactions_collection)


async def stored(orchestrator, store, txn_id) -> Transaction:
    return Transaction.from_document(await store.get(orchestrator.transactions_collection, txn_id))


def test_not_anomalous_transaction_verified():
    orchestrator, store, llm = make_orchestrator()

    async def scenario():
        txn_id = await add_transaction(orchestrator, store)
        tasks = orchestrator.handle_snapshot(await snapshot(orchestrator, store))
        assert len(tasks) == 1
        await orchestrator.drain()
        return await stored(orchestrator, store, txn_id)

    tx = asyncio.run(scenario())
    assert tx.status == TransactionStatus.VERIFIED
    assert tx.ai_insight is None
    assert tx.anomaly_reason is None
    llm.generate.assert_not_called()


def test_itinerary_mismatch_requires_verification():
    orchestrator, store, llm = make_orchestrator()
    orchestrator.itinerary = current_trip("Osaka, JP")

    async def scenario():
        txn_id = await add_transaction(orchestrator, store, merchant_name="Uber Trip", amount=25.10,
                                       category="Travel", location="Tokyo, JP")
        orchestrator.handle_snapshot(await snapshot(orchestrator, store))
        await orchestrator.drain()
        return await stored(orchestrator, store, txn_id)

    tx = asyncio.run(scenario())
    assert tx.status == TransactionStatus.REQUIRES_VERIFICATION
    assert tx.ai_insight == INSIGHT
    assert '"Tokyo, JP"' in tx.anomaly_reason
    assert '"Osaka, JP"' in tx.anomaly_reason

    prompt = llm.generate.call_args.args[0]
    assert tx.anomaly_reason in prompt
    assert "Uber Trip" in prompt
    assert "Osaka, JP" in prompt


def test_analyzing_visible_while_enrichment_in_flight():
    orchestrator, store, _ = make_orchestrator()

    async def scenario():
        release = asyncio.Event()

        async def slow_generate(prompt, system_prompt=None):
            await release.wait()
            return INSIGHT

        orchestrator.llm.generate = AsyncMock(side_effect=slow_generate)
        txn_id = await add_transaction(orchestrator, store, amount=950.00)
        orchestrator.handle_snapshot(await snapshot(orchestrator, store))

        for _ in range(50):
            if (await stored(orchestrator, store, txn_id)).status == TransactionStatus.ANALYZING:
                break
            await asyncio.sleep(0)

        during = await stored(orchestrator, store, txn_id)
        in_flight = orchestrator.in_flight.is_in_flight(txn_id)
        release.set()
        await orchestrator.drain()
        return during, in_flight, await stored(orchestrator, store, txn_id)

    during, in_flight, after = asyncio.run(scenario())
    assert during.status == TransactionStatus.ANALYZING
    assert during.anomaly_reason == "Transaction amount is unusually high."
    assert in_flight
    assert after.status == TransactionStatus.REQUIRES_VERIFICATION


def test_duplicate_dispatch_runs_once():
    orchestrator, store, _ = make_orchestrator()

    async def scenario():
        release = asyncio.Event()

        async def slow_generate(prompt, system_prompt=None):
            await release.wait()
            return INSIGHT

        orchestrator.llm.generate = AsyncMock(side_effect=slow_generate)
        await add_transaction(orchestrator, store, amount=999.00)
        docs = await snapshot(orchestrator, store)

        first = orchestrator.handle_snapshot(docs)
        second = orchestrator.handle_snapshot(docs)
        await asyncio.sleep(0)
        direct = await orchestrator.process_transaction(Transaction.from_document(docs[0]), None)

        release.set()
        await orchestrator.drain()
        return first, second, direct

    first, second, direct = asyncio.run(scenario())
    assert len(first) == 1
    assert second == []
    assert direct is None
    assert orchestrator.llm.generate.await_count == 1


def test_enrichment_failure_sets_error_and_releases_claim():
    orchestrator, store, llm = make_orchestrator(AsyncMock(side_effect=LLMError("timeout")))

    async def scenario():
        txn_id = await add_transaction(orchestrator, store, merchant_name="Fraudulent Charge", amount=20)
        orchestrator.handle_snapshot(await snapshot(orchestrator, store))
        await orchestrator.drain()

        # Redelivery of the same snapshot must not restart analysis
        redelivered = orchestrator.handle_snapshot(await snapshot(orchestrator, store))
        return txn_id, redelivered, await stored(orchestrator, store, txn_id)

    txn_id, redelivered, tx = asyncio.run(scenario())
    assert tx.status == TransactionStatus.ERROR
    assert tx.ai_insight == ENRICHMENT_FAILURE_NOTE
    assert tx.anomaly_reason == "Transaction merchant is on a known fraud list."
    assert not orchestrator.in_flight.is_in_flight(txn_id)
    assert len(orchestrator.in_flight) == 0
    assert redelivered == []
    assert llm.generate.await_count == 1


def test_unexpected_enrichment_exception_treated_as_failure():
    orchestrator, store, _ = make_orchestrator(AsyncMock(side_effect=RuntimeError("boom")))

    async def scenario():
        txn_id = await add_transaction(orchestrator, store, amount=1500)
        orchestrator.handle_snapshot(await snapshot(orchestrator, store))
        await orchestrator.drain()
        return await stored(orchestrator, store, txn_id)

    assert asyncio.run(scenario()).status == TransactionStatus.ERROR
    assert len(orchestrator.in_flight) == 0


def test_store_failure_leaves_transaction_pending_and_releases_claim():
    orchestrator, store, llm = make_orchestrator()

    async def scenario():
        txn_id = await add_transaction(orchestrator, store, amount=1500)
        docs = await snapshot(orchestrator, store)
        store.fail_writes = True
        result = await orchestrator.process_transaction(Transaction.from_document(docs[0]), None)
        store.fail_writes = False
        return result, txn_id, await stored(orchestrator, store, txn_id)

    result, txn_id, tx = asyncio.run(scenario())
    assert result is None
    assert tx.status == TransactionStatus.PENDING
    assert not orchestrator.in_flight.is_in_flight(txn_id)
    llm.generate.assert_not_called()


def test_terminal_transaction_not_reprocessed_from_stale_copy():
    orchestrator, store, llm = make_orchestrator()

    async def scenario():
        txn_id = await add_transaction(orchestrator, store, amount=999.00)
        stale = Transaction.from_document((await snapshot(orchestrator, store))[0])
        orchestrator.handle_snapshot(await snapshot(orchestrator, store))
        await orchestrator.drain()
        again = await orchestrator.process_transaction(stale, None)
        return again, await stored(orchestrator, store, txn_id)

    again, tx = asyncio.run(scenario())
    assert again is None
    assert tx.status == TransactionStatus.REQUIRES_VERIFICATION
    assert llm.generate.await_count == 1


def test_itinerary_change_does_not_reevaluate_resolved_transactions():
    orchestrator, store, llm = make_orchestrator()

    async def scenario():
        txn_id = await add_transaction(orchestrator, store, category="Travel", location="Tokyo, JP")
        orchestrator.handle_snapshot(await snapshot(orchestrator, store))
        await orchestrator.drain()

        orchestrator.set_itinerary(current_trip("Osaka, JP"))
        await orchestrator.drain()
        return await stored(orchestrator, store, txn_id)

    tx = asyncio.run(scenario())
    assert tx.status == TransactionStatus.VERIFIED
    llm.generate.assert_not_called()


def test_itinerary_change_applies_to_pending_transactions():
    orchestrator, store, _ = make_orchestrator()

    async def scenario():
        txn_id = await add_transaction(orchestrator, store, category="Travel", location="Tokyo, JP")
        orchestrator._latest = [Transaction.from_document(d) for d in await snapshot(orchestrator, store)]
        tasks = orchestrator.set_itinerary(current_trip("Osaka, JP"))
        await orchestrator.drain()
        return tasks, await stored(orchestrator, store, txn_id)

    tasks, tx = asyncio.run(scenario())
    assert len(tasks) == 1
    assert tx.status == TransactionStatus.REQUIRES_VERIFICATION


def test_malformed_documents_skipped():
    orchestrator, _, _ = make_orchestrator()

    async def scenario():
        return orchestrator.handle_snapshot([{'id': 'bad', 'merchant_name': 'X', 'amount': -5,
                                              'category': 'Shopping', 'status': 'pending'}])

    assert asyncio.run(scenario()) == []


def test_run_watches_store_end_to_end():
    orchestrator, store, _ = make_orchestrator()

    async def scenario():
        await store.set(orchestrator.itinerary_collection, "main",
                        current_trip("Osaka, JP").model_dump(mode="json"))
        watcher = asyncio.create_task(orchestrator.run())
        await asyncio.sleep(0)

        verified_id = await add_transaction(orchestrator, store)
        flagged_id = await add_transaction(orchestrator, store, merchant_name="Local Coffee Shop",
                                           category="Food & Drink", location="Kyoto, JP", amount=5.75)

        for _ in range(200):
            statuses = {(await stored(orchestrator, store, i)).status for i in (verified_id, flagged_id)}
            if TransactionStatus.PENDING not in statuses and TransactionStatus.ANALYZING not in statuses:
                break
            await asyncio.sleep(0.01)

        watcher.cancel()
        with pytest.raises(asyncio.CancelledError):
            await watcher
        return (await stored(orchestrator, store, verified_id), await stored(orchestrator, store, flagged_id))

    verified, flagged = asyncio.run(scenario())
    assert orchestrator.itinerary.location == "Osaka, JP"
    assert verified.status == TransactionStatus.VERIFIED
    assert flagged.status == TransactionStatus.REQUIRES_VERIFICATION


def test_build_enrichment_prompt():
    tx = Transaction(id="tx_9", merchant_name="Uber Trip", amount=25.10, category="Travel",
                     location="Tokyo, JP", status="analyzing")
    prompt = build_enrichment_prompt("Location mismatch", tx, current_trip())

    assert 'Reason: "Location mismatch"' in prompt
    assert '"merchant_name": "Uber Trip"' in prompt
    assert '"location": "Osaka, JP"' in prompt
    assert "single-paragraph" in prompt

    assert "User Itinerary: null" in build_enrichment_prompt("x", tx, None)
