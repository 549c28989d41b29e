"""
Pytest configuration and shared fixtures.

Every test gets a fresh in-memory log. Agents built through the `deal`
fixture are stopped at teardown; `settle` waits until every subscriber has
processed the whole message cascade.
"""

from typing import List, Optional

import pytest

from dealbus.agents import BuyerAgent, PaymentAgent, SellerAgent
from dealbus.core.errors import InvalidEnvelopeError
from dealbus.core.types import MessageType
from dealbus.protocol.envelope import Envelope
from dealbus.settlement import InMemoryLedger
from dealbus.transport import InMemoryLog, TopicTransport

TOPIC_ID = "0.0.4242"

BUYER_ACCOUNT = "0.0.1001"
SELLER_ACCOUNT = "0.0.2002"
PAYMENT_ACCOUNT = "0.0.3003"

TOKEN_ID = "0.0.5555"

SECRETS = {
    "buyer": "buyer-secret",
    "seller": "seller-secret",
    "payment": "payment-secret",
}


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (isolated component tests)")
    config.addinivalue_line("markers", "integration: Integration tests (agents talking over a log)")


@pytest.fixture
def log() -> InMemoryLog:
    return InMemoryLog()


@pytest.fixture
def make_transport(log):
    """Factory for transports on the shared test topic."""

    def _make(**kwargs) -> TopicTransport:
        return TopicTransport(log, TOPIC_ID, **kwargs)

    return _make


@pytest.fixture
def settle(log):
    """Wait until every live subscriber is idle."""

    async def _settle(timeout: float = 5.0) -> None:
        await log.drain(timeout=timeout)

    return _settle


@pytest.fixture
def published(log):
    """Decode every envelope on the test topic, optionally of one type."""

    def _published(message_type: Optional[MessageType] = None) -> List[Envelope]:
        envelopes = []
        for record in log.records(TOPIC_ID):
            try:
                envelope = Envelope.from_bytes(record.data)
            except (ValueError, InvalidEnvelopeError):
                continue
            if message_type is None or envelope.type == message_type:
                envelopes.append(envelope)
        return envelopes

    return _published


@pytest.fixture
def ledger() -> InMemoryLedger:
    return InMemoryLedger(
        PAYMENT_ACCOUNT,
        {PAYMENT_ACCOUNT: {"HBAR": 10_000, TOKEN_ID: 500}},
    )


@pytest.fixture
async def deal(make_transport, ledger):
    """
    Build and start a seller, buyer and payment agent on the test topic.

    Usage:
        seller, buyer, payment = await deal(seller={"min_price": 60})
    """
    started = []

    async def _build(seller=None, buyer=None, payment=None, start=True):
        seller_agent = SellerAgent(
            SELLER_ACCOUNT,
            make_transport(),
            SECRETS["seller"],
            **{"inventory": {"widgets": 100}, **(seller or {})},
        )
        buyer_agent = BuyerAgent(
            BUYER_ACCOUNT,
            make_transport(),
            SECRETS["buyer"],
            seller_account_id=SELLER_ACCOUNT,
            **(buyer or {}),
        )
        payment_agent = PaymentAgent(
            PAYMENT_ACCOUNT,
            make_transport(),
            SECRETS["payment"],
            ledger=ledger,
            **(payment or {}),
        )

        agents = (seller_agent, buyer_agent, payment_agent)
        if start:
            for agent in agents:
                await agent.start()
                started.append(agent)
        return agents

    yield _build

    for agent in started:
        await agent.stop()
