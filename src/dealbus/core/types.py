"""
Core data types for dealbus.

These types are shared by the protocol, transport, agents and settlement
layers.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, List


class MessageType(Enum):
    """Types of messages exchanged on the negotiation topic."""

    OFFER = "OFFER"
    COUNTER = "COUNTER"
    ACCEPT = "ACCEPT"
    DECLINE = "DECLINE"
    PAYMENT_REQUEST = "PAYMENT_REQUEST"
    PAYMENT_ACK = "PAYMENT_ACK"
    ERROR = "ERROR"


class AgentId(str, Enum):
    """Well-known agent endpoints on a topic."""

    BUYER = "buyer"
    SELLER = "seller"
    PAYMENT = "payment"


class PaymentStatus(str, Enum):
    """Status carried by a PAYMENT_ACK."""

    SUCCESS = "success"
    FAILED = "failed"


# Reserved `to` value: delivered to every subscriber regardless of filter
BROADCAST = "broadcast"

# Token identifiers meaning "native currency" rather than a typed token
NATIVE_TOKEN = "HBAR"
NATIVE_TOKEN_ALIASES = frozenset({NATIVE_TOKEN, "0.0.0"})

# Transaction id reported when no transfer was submitted
TRANSACTION_NOT_AVAILABLE = "N/A"

# Types that are never acted upon without a signature
SIGNED_MESSAGE_TYPES = frozenset(
    {MessageType.ACCEPT, MessageType.PAYMENT_REQUEST, MessageType.PAYMENT_ACK}
)


def is_native_token(token_id: Optional[str]) -> bool:
    """Check whether a token identifier refers to the native currency."""
    return token_id in NATIVE_TOKEN_ALIASES


@dataclass
class ValidationResult:
    """Outcome of validating an envelope. Lists every violation found."""

    valid: bool
    errors: List[str] = field(default_factory=list)


@dataclass
class PublishResult:
    """Outcome of publishing an envelope to the topic."""

    success: bool
    transaction_id: Optional[str] = None
    sequence_number: Optional[int] = None
    error: Optional[str] = None


@dataclass
class TransferResult:
    """Outcome of a value transfer."""

    success: bool
    transaction_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class OfferResult:
    """Outcome of a buyer opening a negotiation."""

    success: bool
    correlation_id: str
    error: Optional[str] = None
