"""
Negotiation agents.

Provides:
- BaseAgent: lifecycle, routing, signing and conversation bookkeeping
- SellerAgent, BuyerAgent, PaymentAgent: the three roles of a deal
- Pure pricing policies and the decisions they return
"""

from .base import BaseAgent, AgentStatus, DEFAULT_MAX_CONVERSATION_MESSAGES, ROUTING_ERROR
from .decisions import (
    AcceptDecision,
    CounterDecision,
    DeclineDecision,
    Decision,
    get_decision_schemas,
)
from .policy import evaluate_seller_offer, evaluate_buyer_counter, has_sufficient_inventory
from .seller import SellerAgent
from .buyer import BuyerAgent
from .payment import PaymentAgent

__all__ = [
    # Runtime
    "BaseAgent",
    "AgentStatus",
    "DEFAULT_MAX_CONVERSATION_MESSAGES",
    "ROUTING_ERROR",
    # Decisions
    "AcceptDecision",
    "CounterDecision",
    "DeclineDecision",
    "Decision",
    "get_decision_schemas",
    # Policies
    "evaluate_seller_offer",
    "evaluate_buyer_counter",
    "has_sufficient_inventory",
    # Roles
    "SellerAgent",
    "BuyerAgent",
    "PaymentAgent",
]
