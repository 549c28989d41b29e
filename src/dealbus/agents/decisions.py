"""
Structured decision models for negotiation policies.

A pricing policy answers an incoming price with exactly one decision:
accept it, counter with another price, or decline. Role agents turn the
decision into the matching protocol message.
"""

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class AcceptDecision(BaseModel):
    """Accept the counterparty's price and conclude the negotiation."""

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "title": "Accept",
            "description": "Accept the counterparty's price",
        },
    )

    action: Literal["accept"] = Field(
        default="accept", description="Decision type identifier"
    )
    price: float = Field(
        ..., description="Unit price being accepted", gt=0, examples=[75.0, 77.5]
    )
    reason: Optional[str] = Field(
        default=None,
        description="Why the price is acceptable",
        examples=["Price acceptable (near ideal)"],
    )


class CounterDecision(BaseModel):
    """Propose a different unit price and keep negotiating."""

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "title": "Counter",
            "description": "Counter with a different unit price",
        },
    )

    action: Literal["counter"] = Field(
        default="counter", description="Decision type identifier"
    )
    price: float = Field(
        ..., description="Proposed unit price", gt=0, examples=[77.5, 71.25]
    )
    reason: Optional[str] = Field(
        default=None,
        description="Explanation sent along with the counter",
        examples=["Looking for 90, can offer 77.5"],
    )


class DeclineDecision(BaseModel):
    """End the negotiation without a deal."""

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "title": "Decline",
            "description": "Decline and end the negotiation",
        },
    )

    action: Literal["decline"] = Field(
        default="decline", description="Decision type identifier"
    )
    reason: str = Field(
        ...,
        description="Human-readable reason sent to the counterparty",
        examples=["Price 30 is below minimum 50", "Price 110 exceeds budget (max 100)"],
    )


# Union type for all possible policy decisions
Decision = AcceptDecision | CounterDecision | DeclineDecision


def get_decision_schemas() -> Dict[str, Dict[str, Any]]:
    """
    Get JSON schemas for all decisions.

    Returns:
        Dictionary mapping decision names to their JSON schemas
    """
    return {
        "accept": AcceptDecision.model_json_schema(),
        "counter": CounterDecision.model_json_schema(),
        "decline": DeclineDecision.model_json_schema(),
    }
