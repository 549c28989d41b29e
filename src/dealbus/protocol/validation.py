"""
Structural validation of negotiation envelopes.

Validation is a pure function: it never raises for bad input and reports
every violation it finds, not only the first one.
"""

from collections.abc import Mapping
from numbers import Real
from typing import Any, Dict, Tuple

from ..core.types import MessageType, ValidationResult


REQUIRED_FIELDS: Tuple[str, ...] = ("id", "type", "from", "to", "correlation_id")

REQUIRED_PAYLOAD_FIELDS: Dict[MessageType, Tuple[str, ...]] = {
    MessageType.OFFER: ("item", "quantity", "unit_price", "currency"),
    MessageType.COUNTER: ("item", "quantity", "unit_price", "currency"),
    MessageType.ACCEPT: ("item", "quantity", "unit_price", "currency"),
    MessageType.DECLINE: ("reason",),
    MessageType.PAYMENT_REQUEST: ("amount", "token_id", "to_account"),
    MessageType.PAYMENT_ACK: ("transaction_id", "status"),
    MessageType.ERROR: ("code", "message"),
}

POSITIVE_NUMBER_FIELDS: Tuple[str, ...] = ("quantity", "unit_price", "amount")


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _is_positive_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool) and value > 0


def validate(envelope: Any) -> ValidationResult:
    """
    Validate an envelope or its dictionary form.

    Args:
        envelope: An `Envelope` or a raw mapping as decoded from the wire

    Returns:
        ValidationResult with `valid` and the complete list of `errors`

    Example:
        result = validate({"type": "OFFER", "payload": {}})
        assert not result.valid
        assert "Missing required payload field: item" in result.errors
    """
    if hasattr(envelope, "to_dict") and not isinstance(envelope, Mapping):
        envelope = envelope.to_dict()

    if not isinstance(envelope, Mapping):
        return ValidationResult(valid=False, errors=["Message must be an object"])

    errors = []

    for name in REQUIRED_FIELDS:
        if _is_missing(envelope.get(name)):
            errors.append(f"Missing required field: {name}")

    message_type = None
    raw_type = envelope.get("type")
    if not _is_missing(raw_type):
        try:
            message_type = MessageType(raw_type)
        except ValueError:
            errors.append(f"Unknown message type: {raw_type}")

    payload = envelope.get("payload")
    if payload is None:
        payload = {}
    if not isinstance(payload, Mapping):
        errors.append("Payload must be an object")
        payload = {}

    if message_type is not None:
        for name in REQUIRED_PAYLOAD_FIELDS[message_type]:
            if _is_missing(payload.get(name)):
                errors.append(f"Missing required payload field: {name}")

    for name in POSITIVE_NUMBER_FIELDS:
        value = payload.get(name)
        if value is not None and not _is_positive_number(value):
            errors.append(f"Invalid payload field: {name} must be a positive number")

    return ValidationResult(valid=not errors, errors=errors)
