"""
Payment agent: executes value transfers for accepted deals.

Settlement is idempotent per correlation id. However many times a
PAYMENT_REQUEST for the same negotiation is delivered, at most one transfer
is submitted; every repeat is answered with a success ack carrying the
transaction id of the original transfer.
"""

import logging
from typing import Any, Dict, List, Optional

from ..config import PaymentSettings
from ..core.types import (
    AgentId,
    PaymentStatus,
    TRANSACTION_NOT_AVAILABLE,
    TransferResult,
    is_native_token,
)
from ..protocol.envelope import Envelope
from ..protocol.messages import create_payment_ack_message
from ..settlement.ledger import TransferExecutor
from ..state.events import EventType
from ..state.payments import PaymentRecord, ProcessedPaymentStore
from ..transport.topic import TopicTransport
from .base import BaseAgent

logger = logging.getLogger(__name__)


class PaymentAgent(BaseAgent):
    """
    Settles agreed deals through a TransferExecutor.

    Example:
        ledger = InMemoryLedger("0.0.3003", {"0.0.3003": {"HBAR": 10_000}})
        payment = PaymentAgent("0.0.3003", transport, secret="s3cret", ledger=ledger)
        await payment.start()
    """

    def __init__(
        self,
        account_id: str,
        transport: TopicTransport,
        secret: str,
        ledger: TransferExecutor,
        payments: Optional[ProcessedPaymentStore] = None,
        agent_id: str = AgentId.PAYMENT.value,
        **kwargs: Any,
    ):
        super().__init__(agent_id, account_id, transport, secret, **kwargs)
        self.ledger = ledger
        self.payments = payments if payments is not None else ProcessedPaymentStore()

    @classmethod
    def from_settings(
        cls,
        settings: PaymentSettings,
        transport: TopicTransport,
        ledger: TransferExecutor,
        **kwargs: Any,
    ) -> "PaymentAgent":
        return cls(
            settings.account_id,
            transport,
            settings.secret,
            ledger=ledger,
            max_conversation_messages=settings.max_conversation_messages,
            **kwargs,
        )

    async def handle_payment_request(self, envelope: Envelope, metadata: Dict[str, Any]) -> None:
        cid = envelope.correlation_id
        payload = envelope.payload
        requester = envelope.from_
        amount = payload["amount"]
        token_id = payload["token_id"]
        to_account = payload["to_account"]
        memo = payload.get("memo") or f"Payment {cid}"

        logger.info(f"[{self.agent_id}] Payment request: {amount} {token_id} -> {to_account}")

        self.add_message_to_conversation(cid, envelope)

        async with self.payments.lock(cid):
            if self.payments.is_processed(cid):
                await self._replay_payment_ack(requester, cid)
                return

            try:
                result = await self.ledger.transfer(amount, token_id, to_account, memo)
            except Exception as e:
                logger.exception(f"[{self.agent_id}] Transfer for {cid} raised")
                result = TransferResult(success=False, error=str(e) or type(e).__name__)

            if not result.success:
                await self._fail_payment(requester, cid, amount, token_id, result.error)
                return

            record = PaymentRecord(
                correlation_id=cid,
                transaction_id=result.transaction_id,
                amount=amount,
                token_id=token_id,
                to_account=to_account,
                memo=memo,
                item=payload.get("item"),
                quantity=payload.get("quantity"),
            )
            self.payments.record(record)

        kind = "Native" if is_native_token(token_id) else "Token"
        logger.info(f"[{self.agent_id}] {kind} payment executed: {result.transaction_id}")

        self.update_conversation(
            cid,
            state="paid",
            counterparty=requester,
            total_amount=amount,
            transaction_id=result.transaction_id,
        )
        await self.send_payment_ack(
            requester, cid, result.transaction_id, PaymentStatus.SUCCESS, amount, token_id
        )
        self.events.emit(EventType.PAYMENT_EXECUTED, **record.to_dict())

    async def _replay_payment_ack(self, requester: str, correlation_id: str) -> None:
        record = self.payments.find(correlation_id)
        logger.warning(f"[{self.agent_id}] Payment already processed for: {correlation_id}")
        await self.send_payment_ack(
            requester,
            correlation_id,
            record.transaction_id,
            PaymentStatus.SUCCESS,
            record.amount,
            record.token_id,
        )

    async def _fail_payment(
        self,
        requester: str,
        correlation_id: str,
        amount: float,
        token_id: str,
        error: Optional[str],
    ) -> None:
        logger.error(f"[{self.agent_id}] Payment failed for {correlation_id}: {error}")
        self.update_conversation(correlation_id, state="payment_failed", error=error)
        await self.send_payment_ack(
            requester,
            correlation_id,
            TRANSACTION_NOT_AVAILABLE,
            PaymentStatus.FAILED,
            amount,
            token_id,
            error=error,
        )
        self.events.emit(
            EventType.PAYMENT_FAILED,
            correlation_id=correlation_id,
            amount=amount,
            token_id=token_id,
            error=error,
        )

    async def send_payment_ack(
        self,
        to: str,
        correlation_id: str,
        transaction_id: str,
        status: PaymentStatus,
        amount: Optional[float] = None,
        token_id: Optional[str] = None,
        error: Optional[str] = None,
    ) -> None:
        ack = create_payment_ack_message(
            self.agent_id, to, transaction_id, status, amount, token_id, error, correlation_id
        )
        result = await self.send_message(ack)
        if not result.success:
            logger.error(
                f"[{self.agent_id}] Could not deliver payment ack for {correlation_id}: {result.error}"
            )

    # ========================================================================
    # QUERIES
    # ========================================================================

    def was_payment_processed(self, correlation_id: str) -> bool:
        return self.payments.is_processed(correlation_id)

    def get_payment_history(self) -> List[PaymentRecord]:
        return self.payments.history()

    def get_payment_by_correlation(self, correlation_id: str) -> Optional[PaymentRecord]:
        return self.payments.find(correlation_id)

    def clear_processed_payments(self) -> None:
        """Forget processed correlation ids so they can be paid again. Testing aid."""
        self.payments.clear()
        logger.info(f"[{self.agent_id}] Cleared processed payments")

    def get_status(self) -> Dict[str, Any]:
        status = super().get_status()
        status.update(
            {
                "processed_payments": len(self.payments),
                "payment_history": len(self.payments.history()),
            }
        )
        return status
