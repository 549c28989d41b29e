"""
Domain events emitted by agents for external observers.

Events are immutable business facts (a deal was accepted, a payment was
executed). They form an audit trail per agent and can be observed by UIs,
loggers or test harnesses. No agent depends on them for correctness.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Types of significant business events."""

    # Lifecycle events
    STARTED = "started"
    STOPPED = "stopped"

    # Transport events
    MESSAGE_RECEIVED = "message_received"
    MESSAGE_SENT = "message_sent"
    MESSAGE_ERROR = "message_error"

    # Offer events
    OFFER_SENT = "offer_sent"
    OFFER_FAILED = "offer_failed"
    COUNTER_SENT = "counter_sent"
    OFFER_ACCEPTED = "offer_accepted"
    OFFER_DECLINED = "offer_declined"

    # Deal events
    DEAL_ACCEPTED = "deal_accepted"
    DEAL_CONFIRMED = "deal_confirmed"
    DEAL_DECLINED = "deal_declined"

    # Settlement events
    PAYMENT_REQUESTED = "payment_requested"
    PAYMENT_SUCCESS = "payment_success"
    PAYMENT_FAILED = "payment_failed"
    PAYMENT_EXECUTED = "payment_executed"


@dataclass(frozen=True)
class Event:
    """
    Immutable event representing a business fact.

    Events are:
    - Agent-scoped (emitted by one agent)
    - Optionally correlation-scoped (which negotiation they belong to)
    - Timestamped (when it happened)
    """

    event_id: str
    agent_id: str
    event_type: EventType
    timestamp: datetime
    correlation_id: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        agent_id: str,
        event_type: EventType,
        data: Optional[Dict[str, Any]] = None,
    ) -> "Event":
        """Create a new event with auto-generated ID."""
        data = dict(data or {})
        return cls(
            event_id=f"evt-{uuid.uuid4().hex[:12]}",
            agent_id=agent_id,
            event_type=event_type,
            timestamp=datetime.now(timezone.utc),
            correlation_id=data.get("correlation_id"),
            data=data,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dict for storage/transmission."""
        return {
            "event_id": self.event_id,
            "agent_id": self.agent_id,
            "event_type": self.event_type.value,
            "timestamp": self.timestamp.isoformat(),
            "correlation_id": self.correlation_id,
            "data": self.data,
        }


EventListener = Callable[[Event], None]


class EventEmitter:
    """
    Fire-and-forget notifications with an append-only event log.

    Listeners are plain callables. A listener that raises is logged and
    skipped; it never interrupts the emitting agent.
    """

    def __init__(self, agent_id: str):
        self.agent_id = agent_id
        self._listeners: Dict[EventType, List[EventListener]] = {}
        self._events: List[Event] = []

    def on(self, event_type: EventType, listener: EventListener) -> None:
        """Register a listener for one event type."""
        self._listeners.setdefault(event_type, []).append(listener)

    def off(self, event_type: EventType, listener: EventListener) -> None:
        """Remove a previously registered listener."""
        listeners = self._listeners.get(event_type, [])
        if listener in listeners:
            listeners.remove(listener)

    def emit(self, event_type: EventType, **data: Any) -> Event:
        """Record an event and notify its listeners."""
        event = Event.create(self.agent_id, event_type, data)
        self._events.append(event)

        for listener in list(self._listeners.get(event_type, [])):
            try:
                listener(event)
            except Exception:
                logger.exception(
                    f"[{self.agent_id}] Listener for {event_type.value} failed"
                )

        return event

    @property
    def events(self) -> List[Event]:
        """Copy of the event log, oldest first."""
        return list(self._events)

    def events_of(self, event_type: EventType) -> List[Event]:
        return [event for event in self._events if event.event_type == event_type]

    def events_for(self, correlation_id: str) -> List[Event]:
        return [event for event in self._events if event.correlation_id == correlation_id]
