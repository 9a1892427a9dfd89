"""Integration tests for the demo runner on the in-memory store"""

import argparse
import asyncio
import importlib.util
import pytest
from pathlib import Path

PROJECT_ROOT = Path(__file__).parent.parent


@pytest.fixture
def demo_module(monkeypatch):
    """Load scripts/run_demo.py with no LLM credentials available"""
    monkeypatch.setenv("STORE_BACKEND", "memory")
    monkeypatch.setenv("LOG_LEVEL", "WARNING")

    spec = importlib.util.spec_from_file_location("run_demo", PROJECT_ROOT / "scripts" / "run_demo.py")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)

    # Import loads .env; the demo must not reach a real endpoint here
    monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
    return module


def demo_args(**overrides):
    args = {
        'config': str(PROJECT_ROOT / "config" / "copilot.yaml"),
        'count': 2,
        'itinerary': "Osaka, JP",
        'seed': 3,
        'test_anomaly': True,
        'reject': False,
        'ask': None,
    }
    args.update(overrides)
    return argparse.Namespace(**args)


class TestDemoRunner:
    """End-to-end runs of the demo script"""

    def test_feed_and_mail_queue_printed(self, demo_module, capsys):
        """Test anomaly is analysed and its security alert queued"""
        asyncio.run(demo_module.run_demo(demo_args()))
        out = capsys.readouterr().out

        assert "Transaction Feed" in out
        assert "Fraudulent Charge" in out
        # No credentials, so enrichment fails and the flag ends in 'error'
        assert "[error]" in out
        assert "SECURITY ALERT: Potential Fraud Detected" in out

    def test_ask_reaches_chat_assistant(self, demo_module, capsys):
        """Test --ask sends the question through the chat assistant"""
        from copilot.constants import CHAT_FALLBACK_REPLY

        asyncio.run(demo_module.run_demo(demo_args(ask="How much did I spend on Travel?")))
        out = capsys.readouterr().out

        assert "Co-pilot Chat" in out
        assert "How much did I spend on Travel?" in out
        assert CHAT_FALLBACK_REPLY in out
