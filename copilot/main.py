"""Main entry point for the co-pilot analysis pipeline"""

import argparse
import asyncio
import os
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv

# Load environment variables FIRST, before any other imports
env_path = Path(__file__).parent.parent / '.env'
load_dotenv(dotenv_path=env_path)

from prometheus_client import start_http_server
from copilot.orchestrator.analysis_orchestrator import AnalysisOrchestrator
from copilot.tools.document_store import create_store
from copilot.tools.llm_client import LLMClient
from copilot.utils.config_loader import load_config
from copilot.utils.errors import CopilotError, StoreError
from copilot.utils.logging import get_logger

logger = get_logger(__name__)


async def run_pipeline(config_path: Optional[str], user_id: str) -> None:
    """Wire components from config and watch the user's transactions until cancelled"""
    config = load_config(config_path)
    store = create_store(config.store)

    try:
        if not await store.check_health():
            raise StoreError(f"Document store unreachable ({config.store.backend})")

        orchestrator = AnalysisOrchestrator(config, store, LLMClient(config.llm), user_id)
        await orchestrator.run()
    finally:
        await store.close()


def main(argv=None):
    """Main entry point"""
    parser = argparse.ArgumentParser(description="AI Financial Co-pilot - transaction anomaly pipeline")
    parser.add_argument("--config", default=None, help="Path to YAML config (default: $COPILOT_CONFIG or config/copilot.yaml)")
    parser.add_argument("--user-id", default=os.getenv("COPILOT_USER_ID"), help="User whose transactions are watched")
    parser.add_argument("--metrics-port", type=int, default=None, help="Expose Prometheus metrics on this port")
    args = parser.parse_args(argv)

    if not args.user_id:
        parser.error("--user-id (or COPILOT_USER_ID) is required")

    logger.info("=" * 60)
    logger.info("AI FINANCIAL CO-PILOT - Transaction Analysis Pipeline")
    logger.info("=" * 60)

    if args.metrics_port:
        start_http_server(args.metrics_port)
        logger.info("Metrics server started", port=args.metrics_port)

    try:
        asyncio.run(run_pipeline(args.config, args.user_id))
    except KeyboardInterrupt:
        logger.info("Pipeline stopped")
    except CopilotError as e:
        logger.error(f"Pipeline unavailable: {e}")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
