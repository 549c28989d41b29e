"""
dealbus: buyer, seller and payment agents negotiating over a shared ordered
log, with idempotent settlement of agreed deals.

Quick start:
    from dealbus import InMemoryLog, TopicTransport, SellerAgent, BuyerAgent

    log = InMemoryLog()
    seller = SellerAgent("0.0.2002", TopicTransport(log, "0.0.4242"), secret="s")
    buyer = BuyerAgent(
        "0.0.1001", TopicTransport(log, "0.0.4242"), secret="b",
        seller_account_id="0.0.2002",
    )
    await seller.start()
    await buyer.start()
    await buyer.make_offer("widgets", 10, 75)
"""

__version__ = "0.1.0"

from .core import (
    MessageType,
    AgentId,
    PaymentStatus,
    NATIVE_TOKEN,
    PublishResult,
    TransferResult,
    OfferResult,
    DealbusError,
    LogSubmissionError,
    InvalidEnvelopeError,
    ConfigurationError,
)
from .protocol import Envelope, validate
from .transport import InMemoryLog, TopicTransport, MirrorNodeClient
from .state import EventType, Event
from .settlement import InMemoryLedger, TransferExecutor
from .agents import BaseAgent, AgentStatus, SellerAgent, BuyerAgent, PaymentAgent
from .config import (
    AgentSettings,
    SellerSettings,
    BuyerSettings,
    PaymentSettings,
    load_settings,
    create_transport,
)

__all__ = [
    "__version__",
    # Core
    "MessageType",
    "AgentId",
    "PaymentStatus",
    "NATIVE_TOKEN",
    "PublishResult",
    "TransferResult",
    "OfferResult",
    "DealbusError",
    "LogSubmissionError",
    "InvalidEnvelopeError",
    "ConfigurationError",
    # Protocol
    "Envelope",
    "validate",
    # Transport
    "InMemoryLog",
    "TopicTransport",
    "MirrorNodeClient",
    # Events
    "EventType",
    "Event",
    # Settlement
    "InMemoryLedger",
    "TransferExecutor",
    # Agents
    "BaseAgent",
    "AgentStatus",
    "SellerAgent",
    "BuyerAgent",
    "PaymentAgent",
    # Config
    "AgentSettings",
    "SellerSettings",
    "BuyerSettings",
    "PaymentSettings",
    "load_settings",
    "create_transport",
]
