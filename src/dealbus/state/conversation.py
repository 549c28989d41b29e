"""
Per-negotiation conversation state.

Each agent keeps its own conversations; nothing here is shared across
agents. A conversation is created the first time a correlation id is
referenced and is mutated by every later handler for that id.
"""

import logging
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional

from ..protocol.envelope import Envelope

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ConversationEntry:
    """A received envelope and when this agent recorded it."""

    envelope: Envelope
    received_at: datetime = field(default_factory=_now)


@dataclass
class Conversation:
    """
    Working memory for one negotiation thread.

    Conversations are MUTABLE. Role policies set the fields they need and
    use `metadata` for anything without a dedicated field.
    """

    # ========================================================================
    # IDENTITY AND HISTORY
    # ========================================================================

    correlation_id: str
    """Negotiation this conversation belongs to"""

    messages: List[ConversationEntry] = field(default_factory=list)
    """Received messages, oldest first (append-only)"""

    state: str = "initiated"
    """
    Free-form status driving role policy, e.g. offer_sent, counter_sent,
    accepted, declined_by_seller, payment_requested, paid, payment_failed
    """

    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    # ========================================================================
    # DEAL TERMS (set by role policies)
    # ========================================================================

    counterparty: Optional[str] = None
    item: Optional[str] = None
    quantity: Optional[int] = None
    currency: Optional[str] = None
    initial_offer: Optional[float] = None
    last_counter_price: Optional[float] = None
    final_price: Optional[float] = None
    total_amount: Optional[float] = None

    # ========================================================================
    # SETTLEMENT
    # ========================================================================

    transaction_id: Optional[str] = None
    error: Optional[str] = None

    metadata: Dict[str, Any] = field(default_factory=dict)
    """Extensible scratch space for role-specific data"""

    @property
    def message_count(self) -> int:
        return len(self.messages)

    @property
    def last_message(self) -> Optional[Envelope]:
        return self.messages[-1].envelope if self.messages else None

    def update(self, **changes: Any) -> None:
        """Merge `changes` into this conversation."""
        known = {f.name for f in fields(self)} - {"correlation_id", "messages", "created_at"}
        for key, value in changes.items():
            if key in known:
                setattr(self, key, value)
            else:
                self.metadata[key] = value
        self.updated_at = _now()

    def add_message(self, envelope: Envelope) -> None:
        self.messages.append(ConversationEntry(envelope=envelope))
        self.updated_at = _now()


class ConversationStore:
    """
    Correlation id -> Conversation map owned by one agent.

    Reads create missing conversations, so handlers never need to check for
    existence first.
    """

    def __init__(self):
        self._conversations: Dict[str, Conversation] = {}

    def get(self, correlation_id: str) -> Conversation:
        """Get or create the conversation for `correlation_id`."""
        conversation = self._conversations.get(correlation_id)
        if conversation is None:
            conversation = Conversation(correlation_id=correlation_id)
            self._conversations[correlation_id] = conversation
            logger.debug(f"[ConversationStore] Created conversation {correlation_id}")
        return conversation

    def update(self, correlation_id: str, **changes: Any) -> Conversation:
        conversation = self.get(correlation_id)
        conversation.update(**changes)
        return conversation

    def add_message(self, correlation_id: str, envelope: Envelope) -> Conversation:
        conversation = self.get(correlation_id)
        conversation.add_message(envelope)
        return conversation

    def __contains__(self, correlation_id: str) -> bool:
        return correlation_id in self._conversations

    def __len__(self) -> int:
        return len(self._conversations)

    def __iter__(self) -> Iterator[Conversation]:
        return iter(list(self._conversations.values()))

    def clear(self) -> None:
        self._conversations.clear()
