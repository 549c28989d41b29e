"""
Base agent runtime shared by every role.

Provides:
- Lifecycle (stopped -> starting -> running -> stopping -> stopped)
- Message routing: validate, check signatures, dispatch by message type
- Conversation bookkeeping per correlation id
- Signing and publishing of outgoing envelopes
- Domain events for external observers

Roles override only the handlers they need. A handler that raises never
takes the agent down: the failure is turned into an ERROR envelope for the
sender of the offending message.
"""

import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Union

from ..core.types import MessageType, PublishResult, SIGNED_MESSAGE_TYPES
from ..core.errors import InvalidEnvelopeError
from ..protocol.envelope import Envelope, sign_envelope, verify_signature
from ..protocol.messages import create_error_message
from ..protocol.validation import validate
from ..state.conversation import Conversation, ConversationStore
from ..state.events import EventEmitter, EventListener, EventType
from ..transport.topic import TopicTransport

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONVERSATION_MESSAGES = 6

ROUTING_ERROR = "ROUTING_ERROR"

Handler = Callable[[Envelope, Dict[str, Any]], Awaitable[None]]


class AgentStatus(Enum):
    """Lifecycle of an agent instance."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


class BaseAgent:
    """
    Base class for negotiation agents.

    An agent is a single logical actor: the transport invokes `route_message`
    for one envelope at a time, so handlers of the same agent never overlap.

    Example:
        class EchoAgent(BaseAgent):
            async def handle_offer(self, envelope, metadata):
                self.add_message_to_conversation(envelope.correlation_id, envelope)

        agent = EchoAgent("echo", "0.0.1001", transport, secret="s3cret")
        await agent.start()
    """

    def __init__(
        self,
        agent_id: str,
        account_id: str,
        transport: TopicTransport,
        secret: str,
        trusted_secrets: Optional[Mapping[str, str]] = None,
        max_conversation_messages: int = DEFAULT_MAX_CONVERSATION_MESSAGES,
    ):
        """
        Args:
            agent_id: Endpoint name on the topic (buyer, seller, payment, ...)
            account_id: Ledger account bound to this agent
            transport: Transport for this agent's subscription and publishing
            secret: Signing secret for outgoing envelopes
            trusted_secrets: Optional peer id -> secret map; envelopes from a
                             listed peer must carry a valid signature
            max_conversation_messages: Round cap used by negotiation roles
        """
        self.agent_id = agent_id
        self.account_id = account_id
        self.transport = transport
        self.secret = secret
        self.trusted_secrets: Dict[str, str] = dict(trusted_secrets or {})
        self.max_conversation_messages = max_conversation_messages

        self.status = AgentStatus.STOPPED
        self.conversations = ConversationStore()
        self.events = EventEmitter(agent_id)

        self._handlers: Dict[MessageType, Handler] = {
            MessageType.OFFER: self.handle_offer,
            MessageType.COUNTER: self.handle_counter,
            MessageType.ACCEPT: self.handle_accept,
            MessageType.DECLINE: self.handle_decline,
            MessageType.PAYMENT_REQUEST: self.handle_payment_request,
            MessageType.PAYMENT_ACK: self.handle_payment_ack,
            MessageType.ERROR: self.handle_error,
        }

        logger.debug(f"[{self.agent_id}] Agent initialized")

    @property
    def is_running(self) -> bool:
        return self.status == AgentStatus.RUNNING

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    async def start(self) -> None:
        """Subscribe to envelopes addressed to this agent and start handling them."""
        if self.status == AgentStatus.RUNNING:
            logger.warning(f"[{self.agent_id}] Agent already running")
            return

        self.status = AgentStatus.STARTING
        try:
            await self.transport.subscribe(
                self._on_message,
                filter_ids=[self.agent_id],
            )
        except Exception:
            self.status = AgentStatus.STOPPED
            logger.exception(f"[{self.agent_id}] Failed to start agent")
            raise

        self.status = AgentStatus.RUNNING
        logger.info(f"[{self.agent_id}] Agent started (account: {self.account_id})")
        self.events.emit(EventType.STARTED, agent_id=self.agent_id)

    async def stop(self) -> None:
        """Unsubscribe and drop in-flight conversation state."""
        if self.status == AgentStatus.STOPPED:
            return

        logger.info(f"[{self.agent_id}] Stopping agent...")
        self.status = AgentStatus.STOPPING

        await self.transport.unsubscribe()
        self.conversations.clear()

        self.status = AgentStatus.STOPPED
        self.events.emit(EventType.STOPPED, agent_id=self.agent_id)
        logger.info(f"[{self.agent_id}] Agent stopped")

    # ========================================================================
    # ROUTING
    # ========================================================================

    async def _on_message(self, envelope: Envelope, metadata: Dict[str, Any]) -> None:
        await self.route_message(envelope, metadata)

    async def route_message(
        self,
        message: Union[Envelope, Mapping[str, Any]],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Validate an incoming message and dispatch it to its type's handler.

        Invalid, unsigned or forged messages are logged and dropped. Handler
        exceptions are reported to the sender as an ERROR envelope.
        """
        metadata = metadata or {}
        data = message.to_dict() if isinstance(message, Envelope) else message

        validation = validate(data)
        if not validation.valid:
            logger.error(f"[{self.agent_id}] Invalid message dropped: {validation.errors}")
            return

        if isinstance(message, Envelope):
            envelope = message
        else:
            try:
                envelope = Envelope.from_dict(dict(data))
            except (InvalidEnvelopeError, ValueError, TypeError) as e:
                logger.error(f"[{self.agent_id}] Unparseable message dropped: {e}")
                return

        if not self._is_trusted(envelope):
            return

        handler = self._handlers.get(envelope.type)
        if handler is None:
            logger.warning(f"[{self.agent_id}] Unknown message type: {envelope.type}")
            return

        logger.debug(f"[{self.agent_id}] Routing message: {envelope.type.value} from {envelope.from_}")
        self.events.emit(
            EventType.MESSAGE_RECEIVED,
            correlation_id=envelope.correlation_id,
            message=envelope.to_dict(),
            metadata=metadata,
        )

        try:
            await handler(envelope, metadata)
        except Exception as e:
            logger.exception(f"[{self.agent_id}] Error routing {envelope.type.value} ({envelope.id})")
            await self._report_routing_error(envelope, e)

    def _is_trusted(self, envelope: Envelope) -> bool:
        if envelope.type in SIGNED_MESSAGE_TYPES and not envelope.signature:
            logger.warning(
                f"[{self.agent_id}] Dropping unsigned {envelope.type.value} ({envelope.id}) "
                f"from {envelope.from_}"
            )
            return False

        secret = self.trusted_secrets.get(envelope.from_)
        if secret is not None and not verify_signature(envelope, secret):
            logger.warning(
                f"[{self.agent_id}] Dropping {envelope.type.value} ({envelope.id}) "
                f"with bad signature from {envelope.from_}"
            )
            return False

        return True

    async def _report_routing_error(self, envelope: Envelope, error: Exception) -> None:
        # Never answer an ERROR with an ERROR
        if envelope.type == MessageType.ERROR:
            return

        try:
            await self.send_error_message(
                to=envelope.from_,
                code=ROUTING_ERROR,
                message=f"Failed to process message: {error}",
                original_message_id=envelope.id,
                correlation_id=envelope.correlation_id,
            )
        except Exception:
            logger.exception(f"[{self.agent_id}] Failed to report routing error for {envelope.id}")

    # ========================================================================
    # SENDING
    # ========================================================================

    async def send_message(self, envelope: Envelope) -> PublishResult:
        """
        Sign an envelope and publish it.

        Never raises for delivery problems; the returned result tells the
        caller whether the message made it onto the topic.
        """
        if not self.is_running:
            logger.error(f"[{self.agent_id}] Cannot send {envelope.type.value}: agent is not running")
            result = PublishResult(success=False, error="Agent is not running")
            self.events.emit(
                EventType.MESSAGE_ERROR,
                correlation_id=envelope.correlation_id,
                message=envelope.to_dict(),
                error=result.error,
            )
            return result

        signed = sign_envelope(envelope, self.secret)
        result = await self.transport.publish(signed)

        if result.success:
            logger.debug(f"[{self.agent_id}] {signed.type.value} sent (seq: {result.sequence_number})")
            self.events.emit(
                EventType.MESSAGE_SENT,
                correlation_id=signed.correlation_id,
                message=signed.to_dict(),
                sequence_number=result.sequence_number,
            )
        else:
            logger.error(f"[{self.agent_id}] Failed to send {signed.type.value}: {result.error}")
            self.events.emit(
                EventType.MESSAGE_ERROR,
                correlation_id=signed.correlation_id,
                message=signed.to_dict(),
                error=result.error,
            )

        return result

    async def send_error_message(
        self,
        to: str,
        code: str,
        message: str,
        original_message_id: Optional[str],
        correlation_id: str,
    ) -> PublishResult:
        envelope = create_error_message(
            self.agent_id, to, code, message, original_message_id, correlation_id
        )
        return await self.send_message(envelope)

    # ========================================================================
    # CONVERSATIONS
    # ========================================================================

    def get_conversation(self, correlation_id: str) -> Conversation:
        """Get or create conversation state."""
        return self.conversations.get(correlation_id)

    def update_conversation(self, correlation_id: str, **changes: Any) -> Conversation:
        """Merge changes into conversation state."""
        return self.conversations.update(correlation_id, **changes)

    def add_message_to_conversation(self, correlation_id: str, envelope: Envelope) -> Conversation:
        """Append a received message to conversation history."""
        return self.conversations.add_message(correlation_id, envelope)

    # ========================================================================
    # EVENTS
    # ========================================================================

    def on(self, event_type: EventType, listener: EventListener) -> None:
        """Observe one type of domain event."""
        self.events.on(event_type, listener)

    # ========================================================================
    # HANDLERS (overridden by roles)
    # ========================================================================

    async def handle_offer(self, envelope: Envelope, metadata: Dict[str, Any]) -> None:
        logger.debug(f"[{self.agent_id}] Received OFFER (not handled)")

    async def handle_counter(self, envelope: Envelope, metadata: Dict[str, Any]) -> None:
        logger.debug(f"[{self.agent_id}] Received COUNTER (not handled)")

    async def handle_accept(self, envelope: Envelope, metadata: Dict[str, Any]) -> None:
        logger.debug(f"[{self.agent_id}] Received ACCEPT (not handled)")

    async def handle_decline(self, envelope: Envelope, metadata: Dict[str, Any]) -> None:
        logger.debug(f"[{self.agent_id}] Received DECLINE (not handled)")

    async def handle_payment_request(self, envelope: Envelope, metadata: Dict[str, Any]) -> None:
        logger.debug(f"[{self.agent_id}] Received PAYMENT_REQUEST (not handled)")

    async def handle_payment_ack(self, envelope: Envelope, metadata: Dict[str, Any]) -> None:
        logger.debug(f"[{self.agent_id}] Received PAYMENT_ACK (not handled)")

    async def handle_error(self, envelope: Envelope, metadata: Dict[str, Any]) -> None:
        logger.warning(
            f"[{self.agent_id}] Received ERROR from {envelope.from_}: "
            f"{envelope.payload.get('code')} {envelope.payload.get('message')}"
        )

    # ========================================================================
    # STATUS
    # ========================================================================

    def get_status(self) -> Dict[str, Any]:
        """Snapshot of this agent for diagnostics."""
        return {
            "agent_id": self.agent_id,
            "account_id": self.account_id,
            "status": self.status.value,
            "is_running": self.is_running,
            "active_conversations": len(self.conversations),
            "last_sequence": self.transport.last_sequence_number,
        }
