"""
State management subsystem.

Provides:
- Domain events and the per-agent event emitter
- Conversation state (per correlation id, per agent)
- Processed-payment record for idempotent settlement
"""

from .events import Event, EventType, EventEmitter, EventListener
from .conversation import Conversation, ConversationEntry, ConversationStore
from .payments import PaymentRecord, ProcessedPaymentStore

__all__ = [
    # Events
    "Event",
    "EventType",
    "EventEmitter",
    "EventListener",
    # Conversations
    "Conversation",
    "ConversationEntry",
    "ConversationStore",
    # Payments
    "PaymentRecord",
    "ProcessedPaymentStore",
]
