"""
Buyer agent: opens negotiations, answers seller counters within its budget
and requests payment once a price is agreed.
"""

import logging
from typing import Any, Dict

from ..config import BuyerSettings
from ..core.types import AgentId, NATIVE_TOKEN, OfferResult, PaymentStatus
from ..protocol.envelope import Envelope
from ..protocol.messages import (
    create_accept_message,
    create_counter_message,
    create_decline_message,
    create_offer_message,
    create_payment_request_message,
)
from ..state.events import EventType
from ..transport.topic import TopicTransport
from .base import BaseAgent
from .decisions import AcceptDecision, CounterDecision
from .policy import evaluate_buyer_counter

logger = logging.getLogger(__name__)

# Once a negotiation reaches one of these, counters are no longer answered
CLOSED_STATES = frozenset(
    {
        "accepted",
        "payment_requested",
        "paid",
        "payment_failed",
        "declined_by_seller",
        "declined_by_buyer",
    }
)


class BuyerAgent(BaseAgent):
    """
    Buys items up to a maximum unit price.

    Example:
        buyer = BuyerAgent(
            "0.0.1001", transport, secret="s3cret",
            seller_account_id="0.0.2002", max_price=100,
        )
        await buyer.start()
        result = await buyer.make_offer("widgets", 10, 75)
    """

    def __init__(
        self,
        account_id: str,
        transport: TopicTransport,
        secret: str,
        seller_account_id: str,
        max_price: float = 100,
        auto_accept_threshold: float = 0.9,
        payment_token_id: str = NATIVE_TOKEN,
        seller_id: str = AgentId.SELLER.value,
        payment_agent_id: str = AgentId.PAYMENT.value,
        agent_id: str = AgentId.BUYER.value,
        **kwargs: Any,
    ):
        """
        Args:
            seller_account_id: Account receiving payments for agreed deals
            max_price: Highest unit price the buyer will pay
            auto_accept_threshold: Fraction of max_price accepted outright
            payment_token_id: Token used to pay, or the native-currency sentinel
            seller_id: Endpoint offers are sent to
            payment_agent_id: Endpoint payment requests are sent to
        """
        super().__init__(agent_id, account_id, transport, secret, **kwargs)
        self.seller_account_id = seller_account_id
        self.max_price = max_price
        self.auto_accept_threshold = auto_accept_threshold
        self.payment_token_id = payment_token_id
        self.seller_id = seller_id
        self.payment_agent_id = payment_agent_id

    @classmethod
    def from_settings(
        cls, settings: BuyerSettings, transport: TopicTransport, **kwargs: Any
    ) -> "BuyerAgent":
        return cls(
            settings.account_id,
            transport,
            settings.secret,
            seller_account_id=settings.seller_account_id,
            max_price=settings.max_price,
            auto_accept_threshold=settings.auto_accept_threshold,
            payment_token_id=settings.payment_token_id,
            max_conversation_messages=settings.max_conversation_messages,
            **kwargs,
        )

    # ========================================================================
    # NEGOTIATION
    # ========================================================================

    async def make_offer(
        self,
        item: str,
        quantity: int,
        unit_price: float,
        currency: str = NATIVE_TOKEN,
    ) -> OfferResult:
        """
        Open a new negotiation with the seller.

        Returns:
            OfferResult with the new correlation id, successful or not
        """
        offer = create_offer_message(
            self.agent_id, self.seller_id, item, quantity, unit_price, currency
        )
        cid = offer.correlation_id

        self.update_conversation(
            cid,
            state="offer_sent",
            counterparty=self.seller_id,
            item=item,
            quantity=quantity,
            currency=currency,
            initial_offer=unit_price,
        )

        result = await self.send_message(offer)
        if not result.success:
            self.update_conversation(cid, state="offer_failed", error=result.error)
            self.events.emit(EventType.OFFER_FAILED, correlation_id=cid, error=result.error)
            return OfferResult(success=False, correlation_id=cid, error=result.error)

        logger.info(f"[{self.agent_id}] Made offer: {quantity} {item} @ {unit_price} {currency}")
        self.events.emit(
            EventType.OFFER_SENT,
            correlation_id=cid,
            item=item,
            quantity=quantity,
            unit_price=unit_price,
            currency=currency,
        )
        return OfferResult(success=True, correlation_id=cid)

    async def handle_counter(self, envelope: Envelope, metadata: Dict[str, Any]) -> None:
        cid = envelope.correlation_id
        unit_price = envelope.payload["unit_price"]

        logger.info(f"[{self.agent_id}] Received counter-offer: {unit_price}")

        conversation = self.add_message_to_conversation(cid, envelope)
        if conversation.state in CLOSED_STATES:
            logger.warning(f"[{self.agent_id}] Ignoring counter for closed negotiation {cid}")
            return
        if conversation.initial_offer is None:
            raise ValueError(f"No offer on record for {cid}")

        decision = evaluate_buyer_counter(
            unit_price,
            self.max_price,
            self.auto_accept_threshold,
            conversation.initial_offer,
            conversation.message_count,
        )

        if isinstance(decision, AcceptDecision):
            await self._accept_offer(envelope, decision.price)
        elif isinstance(decision, CounterDecision):
            await self._send_counteroffer(envelope, decision)
        else:
            await self._decline_offer(envelope, decision.reason)

    async def handle_accept(self, envelope: Envelope, metadata: Dict[str, Any]) -> None:
        cid = envelope.correlation_id
        payload = envelope.payload

        logger.info(f"[{self.agent_id}] Offer accepted by {envelope.from_}")

        conversation = self.add_message_to_conversation(cid, envelope)
        if conversation.metadata.get("payment_requested"):
            logger.warning(f"[{self.agent_id}] Deal {cid} already settling, ignoring ACCEPT")
            return

        total_amount = payload.get("total_amount", payload["quantity"] * payload["unit_price"])
        conversation.update(
            state="accepted",
            final_price=payload["unit_price"],
            total_amount=total_amount,
        )
        self.events.emit(
            EventType.DEAL_ACCEPTED,
            correlation_id=cid,
            unit_price=payload["unit_price"],
            total_amount=total_amount,
        )

        await self._initiate_payment(cid, total_amount, payload["item"], payload["quantity"])

    async def handle_decline(self, envelope: Envelope, metadata: Dict[str, Any]) -> None:
        cid = envelope.correlation_id
        reason = envelope.payload.get("reason")

        logger.info(f"[{self.agent_id}] Offer declined by {envelope.from_}: {reason}")

        self.add_message_to_conversation(cid, envelope)
        self.update_conversation(cid, state="declined_by_seller", decline_reason=reason)
        self.events.emit(EventType.DEAL_DECLINED, correlation_id=cid, reason=reason)

    async def handle_payment_ack(self, envelope: Envelope, metadata: Dict[str, Any]) -> None:
        cid = envelope.correlation_id
        payload = envelope.payload
        transaction_id = payload["transaction_id"]

        conversation = self.add_message_to_conversation(cid, envelope)

        if payload["status"] == PaymentStatus.SUCCESS.value:
            if conversation.state == "paid" and conversation.transaction_id == transaction_id:
                logger.info(f"[{self.agent_id}] Duplicate payment confirmation for {cid}")
                return

            logger.info(f"[{self.agent_id}] Payment successful: {transaction_id}")
            conversation.update(state="paid", transaction_id=transaction_id)
            self.events.emit(
                EventType.PAYMENT_SUCCESS,
                correlation_id=cid,
                transaction_id=transaction_id,
                amount=payload.get("amount"),
            )
        else:
            error = payload.get("error")
            logger.error(f"[{self.agent_id}] Payment failed: {error}")
            conversation.update(state="payment_failed", error=error)
            self.events.emit(EventType.PAYMENT_FAILED, correlation_id=cid, error=error)

    # ========================================================================
    # RESPONSES
    # ========================================================================

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
        total_amount = accept.payload["total_amount"]
        self.update_conversation(
            cid, state="accepted", final_price=unit_price, total_amount=total_amount
        )

        result = await self.send_message(accept)
        if not result.success:
            return

        logger.info(f"[{self.agent_id}] Accepted offer at {unit_price}")
        self.events.emit(
            EventType.OFFER_ACCEPTED,
            correlation_id=cid,
            unit_price=unit_price,
            total_amount=total_amount,
        )

        await self._initiate_payment(cid, total_amount, payload["item"], payload["quantity"])

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
        self.update_conversation(cid, state="declined_by_buyer", decline_reason=reason)

        result = await self.send_message(decline)
        if result.success:
            logger.info(f"[{self.agent_id}] Declined offer: {reason}")
            self.events.emit(EventType.OFFER_DECLINED, correlation_id=cid, reason=reason)

    # ========================================================================
    # SETTLEMENT
    # ========================================================================

    async def _initiate_payment(
        self, correlation_id: str, amount: float, item: str, quantity: int
    ) -> None:
        conversation = self.get_conversation(correlation_id)
        if conversation.metadata.get("payment_requested"):
            logger.warning(f"[{self.agent_id}] Payment already requested for {correlation_id}")
            return

        request = create_payment_request_message(
            self.agent_id,
            self.payment_agent_id,
            amount,
            self.payment_token_id,
            self.seller_account_id,
            f"Payment for {quantity} {item}",
            item,
            quantity,
            correlation_id,
        )
        conversation.update(state="payment_requested", payment_requested=True)

        result = await self.send_message(request)
        if not result.success:
            conversation.update(state="payment_failed", error=result.error)
            self.events.emit(
                EventType.PAYMENT_FAILED, correlation_id=correlation_id, error=result.error
            )
            return

        logger.info(f"[{self.agent_id}] Payment requested: {amount} {self.payment_token_id}")
        self.events.emit(
            EventType.PAYMENT_REQUESTED,
            correlation_id=correlation_id,
            amount=amount,
            token_id=self.payment_token_id,
            to_account=self.seller_account_id,
        )

    def get_status(self) -> Dict[str, Any]:
        status = super().get_status()
        status.update(
            {
                "max_price": self.max_price,
                "auto_accept_threshold": self.auto_accept_threshold,
                "payment_token_id": self.payment_token_id,
            }
        )
        return status
