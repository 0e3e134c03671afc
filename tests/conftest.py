"""
Shared pytest fixtures for Cardflow tests.

Registry, catalog and card store fixtures are built fresh per test; no
fixture touches the network or the Anthropic API.
"""

import itertools
import json
import os
from pathlib import Path

import pytest
from langchain_core.tools import tool

# The FastAPI app reads its config at import time.
os.environ.setdefault("CARDFLOW_CONFIG", str(Path(__file__).resolve().parent.parent / "config.yaml"))

from cardflow.cards.models import SessionContext  # noqa: E402
from cardflow.cards.store import CardStore  # noqa: E402
from cardflow.schemas import ServerMessage  # noqa: E402
from cardflow.signatures.registry import SignatureRegistry  # noqa: E402
from cardflow.tools import ToolCatalog  # noqa: E402

# ===== FAKE PLUGIN TOOLS =====


@tool
def official_mail_list_inbox(folder: str = "inbox") -> str:
    """List messages in a mail folder. Newest first."""
    return json.dumps({
        "tool": "official_mail_list_inbox",
        "messages": [{"id": "m1", "subject": "Quarterly report"}],
    })


@tool
def official_mail_send_message(to: str, subject: str, body: str = "") -> str:
    """Send an email message."""
    return json.dumps({"tool": "official_mail_send_message", "sent": True, "to": to})


@tool
def official_mail_fail() -> str:
    """Always fails."""
    return "[ERROR] Mailbox unavailable"


MAIL_TOOLS = [official_mail_list_inbox, official_mail_send_message, official_mail_fail]


@tool
def alpharank_latest_predictions(limit: int = 10) -> str:
    """Latest ranked stock predictions."""
    return json.dumps({
        "picks": [
            {"ticker": "AAA", "score": 0.91},
            {"ticker": "BBB", "score": 0.84},
        ],
    })


@tool
def alpharank_market_regime() -> str:
    """Current market regime."""
    return json.dumps({"regime": "risk_on", "signals": [{"name": "vix", "value": 14.2}]})


ALPHARANK_TOOLS = [alpharank_latest_predictions, alpharank_market_regime]


# ===== REGISTRY & CATALOG =====


@pytest.fixture
def registry() -> SignatureRegistry:
    """Built-in signatures, no tool catalog."""
    return SignatureRegistry.with_builtins()


@pytest.fixture
def catalog() -> ToolCatalog:
    """Catalog with a mail plugin no built-in family claims, plus alpharank tools."""
    catalog = ToolCatalog()
    catalog.register_tools("official_mail", MAIL_TOOLS)
    catalog.register_tools("alpharank", ALPHARANK_TOOLS)
    return catalog


@pytest.fixture
def catalog_registry(catalog) -> SignatureRegistry:
    return SignatureRegistry.with_builtins(catalog)


# ===== CARD STORE =====


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sent() -> list:
    """Client messages handed to the transport, in order."""
    return []


@pytest.fixture
def store(sent, clock) -> CardStore:
    return CardStore(sent.append, session=SessionContext(), clock=clock, enhance_timeout_seconds=45)


@pytest.fixture
def make_message():
    """Factory for server messages with sequential ids."""
    counter = itertools.count(1)

    def _make(run_id: str = "run-1", state: str = "final", **fields) -> ServerMessage:
        n = next(counter)
        fields.setdefault("id", f"msg-{n}")
        return ServerMessage(run_id=run_id, state=state, seq=n, timestamp=n, **fields)

    return _make


# ===== CONFIGURATION =====


def pytest_configure(config):
    """Pytest configuration."""
    config.addinivalue_line("markers", "integration: marks tests as integration tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on location."""
    for item in items:
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
