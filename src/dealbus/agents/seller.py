"""
Seller agent: answers offers and counters with its pricing policy and keeps
an inventory of items on sale.
"""

import logging
from typing import Any, Dict, Mapping, Optional

from ..config import SellerSettings
from ..core.types import AgentId
from ..protocol.envelope import Envelope
from ..protocol.messages import (
    create_accept_message,
    create_counter_message,
    create_decline_message,
)
from ..state.conversation import Conversation
from ..state.events import EventType
from ..transport.topic import TopicTransport
from .base import BaseAgent
from .decisions import AcceptDecision, CounterDecision, Decision
from .policy import evaluate_seller_offer, has_sufficient_inventory

logger = logging.getLogger(__name__)

# Once a negotiation reaches one of these the seller sends nothing more for it
TERMINAL_STATES = frozenset(
    {"accepted_by_seller", "accepted_by_buyer", "declined_by_seller", "declined_by_buyer"}
)

ROUND_CAP_REASON = "No agreement after multiple rounds"


class SellerAgent(BaseAgent):
    """
    Sells items within a price band.

    Pricing:
        min_price: Floor below which every price is declined
        ideal_price: Target price; counters move toward it
        auto_accept_threshold: Prices >= ideal_price * threshold are accepted

    Example:
        seller = SellerAgent(
            "0.0.2002", transport, secret="s3cret",
            min_price=60, ideal_price=90, inventory={"widgets": 100},
        )
        await seller.start()
    """

    def __init__(
        self,
        account_id: str,
        transport: TopicTransport,
        secret: str,
        min_price: float = 50,
        ideal_price: float = 80,
        auto_accept_threshold: float = 0.95,
        inventory: Optional[Mapping[str, int]] = None,
        agent_id: str = AgentId.SELLER.value,
        **kwargs: Any,
    ):
        super().__init__(agent_id, account_id, transport, secret, **kwargs)
        self.min_price = min_price
        self.ideal_price = ideal_price
        self.auto_accept_threshold = auto_accept_threshold
        self.inventory: Dict[str, int] = dict(inventory or {})

    @classmethod
    def from_settings(
        cls, settings: SellerSettings, transport: TopicTransport, **kwargs: Any
    ) -> "SellerAgent":
        return cls(
            settings.account_id,
            transport,
            settings.secret,
            min_price=settings.min_price,
            ideal_price=settings.ideal_price,
            auto_accept_threshold=settings.auto_accept_threshold,
            inventory=settings.inventory,
            max_conversation_messages=settings.max_conversation_messages,
            **kwargs,
        )

    # ========================================================================
    # HANDLERS
    # ========================================================================

    async def handle_offer(self, envelope: Envelope, metadata: Dict[str, Any]) -> None:
        cid = envelope.correlation_id
        payload = envelope.payload
        item = payload["item"]
        quantity = payload["quantity"]
        unit_price = payload["unit_price"]

        logger.info(
            f"[{self.agent_id}] Received offer: {quantity} {item} @ {unit_price} {payload.get('currency')}"
        )

        conversation = self.add_message_to_conversation(cid, envelope)
        if conversation.state in TERMINAL_STATES:
            logger.warning(f"[{self.agent_id}] Ignoring offer for closed negotiation {cid}")
            return

        conversation.update(
            state="offer_received",
            counterparty=envelope.from_,
            item=item,
            quantity=quantity,
            currency=payload.get("currency"),
            initial_offer=unit_price,
        )

        # Stock is checked against the opening offer only
        if not has_sufficient_inventory(self.inventory, item, quantity):
            await self._decline_offer(
                envelope, f"Insufficient inventory for {quantity} {item}"
            )
            return

        decision = evaluate_seller_offer(
            unit_price,
            self.min_price,
            self.ideal_price,
            self.auto_accept_threshold,
            is_counter=False,
        )
        await self._respond(conversation, envelope, decision)

    async def handle_counter(self, envelope: Envelope, metadata: Dict[str, Any]) -> None:
        cid = envelope.correlation_id
        unit_price = envelope.payload["unit_price"]

        logger.info(f"[{self.agent_id}] Received counter-offer: {unit_price}")

        conversation = self.add_message_to_conversation(cid, envelope)
        if conversation.state in TERMINAL_STATES:
            logger.warning(f"[{self.agent_id}] Ignoring counter for closed negotiation {cid}")
            return

        decision = evaluate_seller_offer(
            unit_price,
            self.min_price,
            self.ideal_price,
            self.auto_accept_threshold,
            is_counter=True,
        )
        await self._respond(conversation, envelope, decision)

    async def handle_accept(self, envelope: Envelope, metadata: Dict[str, Any]) -> None:
        cid = envelope.correlation_id
        payload = envelope.payload

        conversation = self.add_message_to_conversation(cid, envelope)
        if conversation.state == "accepted_by_buyer":
            logger.warning(f"[{self.agent_id}] Deal {cid} already confirmed")
            return

        logger.info(f"[{self.agent_id}] Deal accepted by {envelope.from_}: {cid}")

        conversation.update(
            state="accepted_by_buyer",
            final_price=payload["unit_price"],
            total_amount=payload.get("total_amount", payload["quantity"] * payload["unit_price"]),
        )
        self._reserve_inventory(payload["item"], payload["quantity"])

        self.events.emit(
            EventType.DEAL_CONFIRMED,
            correlation_id=cid,
            item=payload["item"],
            quantity=payload["quantity"],
            unit_price=payload["unit_price"],
            total_amount=conversation.total_amount,
        )

    async def handle_decline(self, envelope: Envelope, metadata: Dict[str, Any]) -> None:
        cid = envelope.correlation_id
        reason = envelope.payload.get("reason")

        logger.info(f"[{self.agent_id}] Deal declined by {envelope.from_}: {reason}")

        self.add_message_to_conversation(cid, envelope)
        self.update_conversation(cid, state="declined_by_buyer", decline_reason=reason)
        self.events.emit(EventType.DEAL_DECLINED, correlation_id=cid, reason=reason)

    # ========================================================================
    # RESPONSES
    # ========================================================================

    async def _respond(
        self, conversation: Conversation, envelope: Envelope, decision: Decision
    ) -> None:
        at_cap = conversation.message_count >= self.max_conversation_messages

        if isinstance(decision, AcceptDecision):
            await self._accept_offer(envelope, decision.price)
        elif isinstance(decision, CounterDecision) and not at_cap:
            await self._send_counteroffer(envelope, decision)
        else:
            await self._decline_offer(envelope, ROUND_CAP_REASON if at_cap else decision.reason)

    async def _accept_offer(self, envelope: Envelope, unit_price: float) -> None:
        cid = envelope.correlation_id
        payload = envelope.payload

        accept = create_accept_message(
            self.agent_id,
            envelope.from_,
            payload["item"],
            payload["quantity"],
            unit_price,
            payload.get("currency"),
            cid,
        )
        self.update_conversation(
            cid,
            state="accepted_by_seller",
            final_price=unit_price,
            total_amount=accept.payload["total_amount"],
        )

        result = await self.send_message(accept)
        if result.success:
            logger.info(f"[{self.agent_id}] Accepted offer at {unit_price}")
            self.events.emit(
                EventType.OFFER_ACCEPTED,
                correlation_id=cid,
                unit_price=unit_price,
                total_amount=accept.payload["total_amount"],
            )

    async def _send_counteroffer(self, envelope: Envelope, decision: CounterDecision) -> None:
        cid = envelope.correlation_id
        payload = envelope.payload

        counter = create_counter_message(
            self.agent_id,
            envelope.from_,
            payload["item"],
            payload["quantity"],
            decision.price,
            payload.get("currency"),
            decision.reason,
            cid,
        )
        self.update_conversation(cid, state="counter_sent", last_counter_price=decision.price)

        result = await self.send_message(counter)
        if result.success:
            logger.info(f"[{self.agent_id}] Sent counter-offer: {decision.price}")
            self.events.emit(
                EventType.COUNTER_SENT,
                correlation_id=cid,
                unit_price=decision.price,
                reason=decision.reason,
            )

    async def _decline_offer(self, envelope: Envelope, reason: str) -> None:
        cid = envelope.correlation_id

        decline = create_decline_message(self.agent_id, envelope.from_, reason, cid)
        self.update_conversation(cid, state="declined_by_seller", decline_reason=reason)

        result = await self.send_message(decline)
        if result.success:
            logger.info(f"[{self.agent_id}] Declined offer: {reason}")
            self.events.emit(EventType.OFFER_DECLINED, correlation_id=cid, reason=reason)

    # ========================================================================
    # INVENTORY
    # ========================================================================

    def _reserve_inventory(self, item: str, quantity: int) -> None:
        available = self.inventory.get(item)
        if available:
            self.inventory[item] = available - quantity
            logger.info(f"[{self.agent_id}] Reserved {quantity} {item}, remaining: {self.inventory[item]}")

    def update_inventory(self, item: str, quantity: int) -> None:
        self.inventory[item] = quantity
        logger.info(f"[{self.agent_id}] Inventory updated: {item} = {quantity}")

    def get_inventory(self) -> Dict[str, int]:
        return dict(self.inventory)

    def get_status(self) -> Dict[str, Any]:
        status = super().get_status()
        status.update(
            {
                "min_price": self.min_price,
                "ideal_price": self.ideal_price,
                "auto_accept_threshold": self.auto_accept_threshold,
                "inventory": self.get_inventory(),
            }
        )
        return status
