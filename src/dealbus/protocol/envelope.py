"""
Message envelope - the unit of communication on the negotiation topic.

The envelope carries routing information (who, to whom, which negotiation)
and a type-specific payload. Envelopes are immutable: signing returns a new
envelope, and any change made after signing breaks verification.
"""

import hashlib
import hmac
import json
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Dict, Any, Optional

from ..core.types import MessageType
from ..core.errors import InvalidEnvelopeError
from .validation import validate


@dataclass(frozen=True)
class Envelope:
    """
    A typed, optionally signed negotiation message.

    Example:
        envelope = Envelope(
            type=MessageType.OFFER,
            from_="buyer",
            to="seller",
            correlation_id="neg-1234",
            payload={"item": "widgets", "quantity": 10,
                     "unit_price": 75, "currency": "HBAR"},
        )
    """

    type: MessageType
    from_: str
    to: str
    correlation_id: str
    payload: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: f"msg-{uuid.uuid4().hex}")
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    signature: Optional[str] = None

    def __post_init__(self):
        # Detach from the caller's dict so the envelope owns its payload
        object.__setattr__(self, "payload", dict(self.payload))

    def to_dict(self, include_signature: bool = True) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        data = {
            "id": self.id,
            "type": self.type.value,
            "from": self.from_,
            "to": self.to,
            "correlation_id": self.correlation_id,
            "timestamp": self.timestamp.isoformat(),
            "payload": dict(self.payload),
        }
        if include_signature:
            data["signature"] = self.signature
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Envelope":
        """
        Create from dictionary.

        Raises:
            InvalidEnvelopeError: If the data does not validate
        """
        result = validate(data)
        if not result.valid:
            raise InvalidEnvelopeError(result.errors)

        timestamp = data.get("timestamp")
        return cls(
            id=data["id"],
            type=MessageType(data["type"]),
            from_=data["from"],
            to=data["to"],
            correlation_id=data["correlation_id"],
            payload=data.get("payload") or {},
            timestamp=(
                datetime.fromisoformat(timestamp)
                if timestamp
                else datetime.now(timezone.utc)
            ),
            signature=data.get("signature"),
        )

    def to_bytes(self) -> bytes:
        """Serialize to UTF-8 JSON, the transport payload format."""
        return json.dumps(self.to_dict()).encode("utf-8")

    @classmethod
    def from_bytes(cls, raw: bytes) -> "Envelope":
        """Parse UTF-8 JSON bytes produced by `to_bytes`."""
        return cls.from_dict(json.loads(raw.decode("utf-8")))

    def signing_bytes(self) -> bytes:
        """Canonical representation covered by the signature."""
        return json.dumps(
            self.to_dict(include_signature=False),
            sort_keys=True,
            separators=(",", ":"),
        ).encode("utf-8")


def compute_signature(envelope: Envelope, secret: str) -> str:
    """HMAC-SHA256 of the envelope (without its signature) under `secret`."""
    return hmac.new(
        secret.encode("utf-8"), envelope.signing_bytes(), hashlib.sha256
    ).hexdigest()


def sign_envelope(envelope: Envelope, secret: str) -> Envelope:
    """Return a copy of `envelope` carrying a signature made with `secret`."""
    return replace(envelope, signature=compute_signature(envelope, secret))


def verify_signature(envelope: Envelope, secret: str) -> bool:
    """Check the envelope's signature against `secret`."""
    if not envelope.signature:
        return False
    return hmac.compare_digest(envelope.signature, compute_signature(envelope, secret))
