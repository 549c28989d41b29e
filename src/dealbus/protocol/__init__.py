"""
Negotiation protocol: envelope format, message builders and validation.
"""

from .envelope import (
    Envelope,
    compute_signature,
    sign_envelope,
    verify_signature,
)
from .messages import (
    new_correlation_id,
    create_offer_message,
    create_counter_message,
    create_accept_message,
    create_decline_message,
    create_payment_request_message,
    create_payment_ack_message,
    create_error_message,
    is_terminal_message,
)
from .validation import validate, REQUIRED_FIELDS, REQUIRED_PAYLOAD_FIELDS

__all__ = [
    "Envelope",
    "compute_signature",
    "sign_envelope",
    "verify_signature",
    "new_correlation_id",
    "create_offer_message",
    "create_counter_message",
    "create_accept_message",
    "create_decline_message",
    "create_payment_request_message",
    "create_payment_ack_message",
    "create_error_message",
    "is_terminal_message",
    "validate",
    "REQUIRED_FIELDS",
    "REQUIRED_PAYLOAD_FIELDS",
]
