#!/usr/bin/env python
"""
Demo runner script for the AI Financial Co-pilot

Runs the analysis pipeline against the in-memory store: saves an itinerary,
adds mock transactions, waits for analysis and prints the resulting feed.

Usage:
    python scripts/run_demo.py                    # 6 mock transactions
    python scripts/run_demo.py --count 10         # more transactions
    python scripts/run_demo.py --test-anomaly     # also inject the test anomaly
    python scripts/run_demo.py --reject           # reject every flagged transaction
    python scripts/run_demo.py --ask "How much did I spend on Travel?"
"""

import os
import sys
import argparse
import asyncio
import random
from pathlib import Path
from datetime import date, timedelta

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from dotenv import load_dotenv
load_dotenv(project_root / '.env')

from copilot.constants import TransactionStatus
from copilot.orchestrator.analysis_orchestrator import AnalysisOrchestrator
from copilot.tools.chat_tools import ChatAssistant
from copilot.tools.document_store import InMemoryDocumentStore
from copilot.tools.llm_client import LLMClient
from copilot.tools.notification_tools import NotificationEnqueuer
from copilot.tools.transaction_tools import TransactionActions
from copilot.utils.config_loader import load_config

DEMO_USER_ID = "demo-user"

STATUS_ICONS = {
    TransactionStatus.VERIFIED: "✅",
    TransactionStatus.REQUIRES_VERIFICATION: "⚠️ ",
    TransactionStatus.ANALYZING: "🔄",
    TransactionStatus.PENDING: "⏳",
    TransactionStatus.ERROR: "❌",
}


def print_header(title: str):
    """Print formatted section header"""
    print("\n" + "=" * 70)
    print(f"  {title}")
    print("=" * 70)


def print_feed(transactions):
    for tx in transactions:
        icon = STATUS_ICONS.get(tx.status, "?")
        where = f" @ {tx.location}" if tx.location else ""
        print(f"{icon} {tx.merchant_name:<24} ${tx.amount:>8.2f}  {tx.category}{where}  [{tx.status.value}]")
        if tx.anomaly_reason:
            print(f"     reason:  {tx.anomaly_reason}")
        if tx.ai_insight:
            print(f"     insight: {tx.ai_insight}")


async def run_demo(args) -> None:
    config = load_config(args.config)
    store = InMemoryDocumentStore()
    enqueuer = NotificationEnqueuer(config, store)
    actions = TransactionActions(config, store, enqueuer, DEMO_USER_ID)
    orchestrator = AnalysisOrchestrator(config, store, LLMClient(config.llm), DEMO_USER_ID)

    if not config.llm.api_key:
        print("⚠️  OPENROUTER_API_KEY not set - flagged transactions will end in 'error'")

    watcher = asyncio.create_task(orchestrator.run())
    await asyncio.sleep(0)

    today = date.today()
    await actions.save_itinerary(args.itinerary, today - timedelta(days=1), today + timedelta(days=5))
    print(f"🧳 Itinerary: {args.itinerary} ({today - timedelta(days=1)} to {today + timedelta(days=5)})")

    rng = random.Random(args.seed)
    for _ in range(args.count):
        await actions.add_mock_transaction(rng)
    if args.test_anomaly:
        await actions.inject_test_anomaly()

    # Let the watcher observe the writes, then wait for analysis to settle
    await asyncio.sleep(0.1)
    await orchestrator.drain()

    if args.reject:
        docs = await store.list(actions.transactions_collection)
        for doc in docs:
            if doc['status'] == TransactionStatus.REQUIRES_VERIFICATION.value:
                await actions.verify_transaction(doc['id'], accepted=False)

    await enqueuer.drain()
    watcher.cancel()
    try:
        await watcher
    except asyncio.CancelledError:
        pass

    print_header("Transaction Feed")
    feed = [await actions.get_transaction(doc['id'])
            for doc in await store.list(actions.transactions_collection, order_by='occurred_at', descending=True)]
    print_feed(feed)

    print_header("Mail Queue")
    for record in await store.list(enqueuer.collection, order_by='created_at'):
        print(f"📧 {record['recipient']}: {record['subject']} (txn {record['related_transaction_id']})")

    if args.ask:
        print_header("Co-pilot Chat")
        assistant = ChatAssistant(config, store, orchestrator.llm, DEMO_USER_ID)
        await assistant.load_history()
        reply = await assistant.send(args.ask)
        print(f"🧑 {args.ask}")
        if reply:
            print(f"🤖 {reply.text}")


def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(
        description="Run the AI Financial Co-pilot pipeline on mock data",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument('--config', default=None, help="Path to YAML config")
    parser.add_argument('--count', type=int, default=6, help="Number of mock transactions to add")
    parser.add_argument('--itinerary', default="Osaka, JP", help="Itinerary location")
    parser.add_argument('--seed', type=int, default=None, help="Random seed for the mock feed")
    parser.add_argument('--test-anomaly', action='store_true', help="Inject the guaranteed-anomalous transaction")
    parser.add_argument('--reject', action='store_true', help="Reject every transaction awaiting verification")
    parser.add_argument('--ask', default=None, help="Ask the chat assistant about verified spending")
    args = parser.parse_args()

    print_header("AI Financial Co-pilot - Demo Mode")
    asyncio.run(run_demo(args))


if __name__ == "__main__":
    main()
