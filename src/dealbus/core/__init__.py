"""
Core types for dealbus.

This module provides the fundamental data structures and constants used
across the protocol, transport, agents and settlement layers.
"""

from .types import (
    MessageType,
    AgentId,
    PaymentStatus,
    BROADCAST,
    NATIVE_TOKEN,
    NATIVE_TOKEN_ALIASES,
    TRANSACTION_NOT_AVAILABLE,
    SIGNED_MESSAGE_TYPES,
    is_native_token,
    ValidationResult,
    PublishResult,
    TransferResult,
    OfferResult,
)
from .errors import (
    DealbusError,
    LogSubmissionError,
    InvalidEnvelopeError,
    ConfigurationError,
)

__all__ = [
    "MessageType",
    "AgentId",
    "PaymentStatus",
    "BROADCAST",
    "NATIVE_TOKEN",
    "NATIVE_TOKEN_ALIASES",
    "TRANSACTION_NOT_AVAILABLE",
    "SIGNED_MESSAGE_TYPES",
    "is_native_token",
    "ValidationResult",
    "PublishResult",
    "TransferResult",
    "OfferResult",
    "DealbusError",
    "LogSubmissionError",
    "InvalidEnvelopeError",
    "ConfigurationError",
]
