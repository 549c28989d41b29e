"""
Message builders for the negotiation protocol.

Message Types:
- OFFER / COUNTER: price proposals for a quantity of an item
- ACCEPT / DECLINE: terminal negotiation outcomes
- PAYMENT_REQUEST / PAYMENT_ACK: settlement of an accepted deal
- ERROR: processing failure reported back to the sender

All builders return unsigned envelopes. Agents sign them on send.
"""

import uuid
from typing import Optional

from ..core.types import MessageType, PaymentStatus
from .envelope import Envelope


def new_correlation_id() -> str:
    """Generate an identifier for a new negotiation thread."""
    return f"deal-{uuid.uuid4().hex}"


def create_offer_message(
    from_: str,
    to: str,
    item: str,
    quantity: int,
    unit_price: float,
    currency: str,
    correlation_id: Optional[str] = None,
) -> Envelope:
    """
    Create an OFFER. Without a correlation id this opens a new negotiation.

    Example:
        offer = create_offer_message("buyer", "seller", "widgets", 10, 75, "HBAR")
    """
    return Envelope(
        type=MessageType.OFFER,
        from_=from_,
        to=to,
        correlation_id=correlation_id or new_correlation_id(),
        payload={
            "item": item,
            "quantity": quantity,
            "unit_price": unit_price,
            "currency": currency,
        },
    )


def create_counter_message(
    from_: str,
    to: str,
    item: str,
    quantity: int,
    unit_price: float,
    currency: str,
    reason: Optional[str],
    correlation_id: str,
) -> Envelope:
    """Create a COUNTER proposing a different unit price."""
    return Envelope(
        type=MessageType.COUNTER,
        from_=from_,
        to=to,
        correlation_id=correlation_id,
        payload={
            "item": item,
            "quantity": quantity,
            "unit_price": unit_price,
            "currency": currency,
            "reason": reason,
        },
    )


def create_accept_message(
    from_: str,
    to: str,
    item: str,
    quantity: int,
    unit_price: float,
    currency: str,
    correlation_id: str,
) -> Envelope:
    """Create an ACCEPT. The total amount is derived from quantity and price."""
    return Envelope(
        type=MessageType.ACCEPT,
        from_=from_,
        to=to,
        correlation_id=correlation_id,
        payload={
            "item": item,
            "quantity": quantity,
            "unit_price": unit_price,
            "currency": currency,
            "total_amount": quantity * unit_price,
        },
    )


def create_decline_message(
    from_: str,
    to: str,
    reason: str,
    correlation_id: str,
) -> Envelope:
    """Create a DECLINE with a human-readable reason."""
    return Envelope(
        type=MessageType.DECLINE,
        from_=from_,
        to=to,
        correlation_id=correlation_id,
        payload={"reason": reason},
    )


def create_payment_request_message(
    from_: str,
    to: str,
    amount: float,
    token_id: str,
    to_account: str,
    memo: str,
    item: Optional[str],
    quantity: Optional[int],
    correlation_id: str,
) -> Envelope:
    """
    Create a PAYMENT_REQUEST settling the negotiation `correlation_id`.

    Args:
        amount: Total amount to transfer
        token_id: Token identifier, or the native-currency sentinel
        to_account: Destination account
        memo: Transfer memo
    """
    return Envelope(
        type=MessageType.PAYMENT_REQUEST,
        from_=from_,
        to=to,
        correlation_id=correlation_id,
        payload={
            "amount": amount,
            "token_id": token_id,
            "to_account": to_account,
            "memo": memo,
            "item": item,
            "quantity": quantity,
        },
    )


def create_payment_ack_message(
    from_: str,
    to: str,
    transaction_id: str,
    status: PaymentStatus,
    amount: Optional[float],
    token_id: Optional[str],
    error: Optional[str],
    correlation_id: str,
) -> Envelope:
    """Create a PAYMENT_ACK reporting the outcome of a transfer."""
    return Envelope(
        type=MessageType.PAYMENT_ACK,
        from_=from_,
        to=to,
        correlation_id=correlation_id,
        payload={
            "transaction_id": transaction_id,
            "status": PaymentStatus(status).value,
            "amount": amount,
            "token_id": token_id,
            "error": error,
        },
    )


def create_error_message(
    from_: str,
    to: str,
    code: str,
    message: str,
    original_message_id: Optional[str],
    correlation_id: str,
) -> Envelope:
    """Create an ERROR referencing the message that could not be processed."""
    return Envelope(
        type=MessageType.ERROR,
        from_=from_,
        to=to,
        correlation_id=correlation_id,
        payload={
            "code": code,
            "message": message,
            "original_message_id": original_message_id,
        },
    )


def is_terminal_message(envelope: Envelope) -> bool:
    """Check if this message ends the negotiation phase."""
    return envelope.type in (MessageType.ACCEPT, MessageType.DECLINE)
