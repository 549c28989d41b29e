"""
Agent configuration.

Settings are pydantic models so every value is validated once, at startup.
`load_settings` builds them from DEALBUS_* environment variables, reading a
.env file first when one is present.

Environment variables:
    DEALBUS_TOPIC_ID                      shared topic (required)
    DEALBUS_MIRROR_NODE_URL               mirror node for history queries
    DEALBUS_DEDUP_WINDOW                  duplicate suppression window
    DEALBUS_MAX_CONVERSATION_MESSAGES     negotiation round cap
    DEALBUS_<ROLE>_ACCOUNT_ID             agent account (required)
    DEALBUS_<ROLE>_SECRET                 signing secret (required)

    DEALBUS_SELLER_MIN_PRICE, DEALBUS_SELLER_IDEAL_PRICE,
    DEALBUS_SELLER_AUTO_ACCEPT_THRESHOLD, DEALBUS_SELLER_INVENTORY
    ("widgets=100,gadgets=50")

    DEALBUS_BUYER_MAX_PRICE, DEALBUS_BUYER_AUTO_ACCEPT_THRESHOLD,
    DEALBUS_PAYMENT_TOKEN_ID, DEALBUS_SELLER_ACCOUNT_ID (required for buyer)
"""

import logging
import os
from typing import Dict, List, Mapping, Optional, Type

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, model_validator

from .core.errors import ConfigurationError
from .core.types import NATIVE_TOKEN
from .transport.dedup import DEFAULT_DEDUP_WINDOW
from .transport.log import HistorySource, OrderedLog
from .transport.mirror import MirrorNodeClient
from .transport.topic import TopicTransport

logger = logging.getLogger(__name__)

ENV_PREFIX = "DEALBUS_"


class AgentSettings(BaseModel):
    """Settings shared by every role."""

    account_id: str = Field(..., min_length=1, description="Ledger account of the agent")
    secret: str = Field(..., min_length=1, description="Signing secret for outgoing envelopes")
    topic_id: str = Field(..., min_length=1, description="Shared negotiation topic")
    mirror_node_url: Optional[str] = Field(
        default=None, description="Mirror node used for history queries, if any"
    )
    dedup_window: int = Field(default=DEFAULT_DEDUP_WINDOW, ge=1)
    max_conversation_messages: int = Field(default=6, ge=1)


class SellerSettings(AgentSettings):
    min_price: float = Field(default=50, gt=0)
    ideal_price: float = Field(default=80, gt=0)
    auto_accept_threshold: float = Field(default=0.95, gt=0, le=1)
    inventory: Dict[str, int] = Field(default_factory=dict)

    @model_validator(mode="after")
    def check_price_band(self) -> "SellerSettings":
        if self.ideal_price < self.min_price:
            raise ValueError(
                f"ideal_price ({self.ideal_price}) must not be below min_price ({self.min_price})"
            )
        return self


class BuyerSettings(AgentSettings):
    seller_account_id: str = Field(..., min_length=1, description="Account paid for agreed deals")
    max_price: float = Field(default=100, gt=0)
    auto_accept_threshold: float = Field(default=0.9, gt=0, le=1)
    payment_token_id: str = Field(default=NATIVE_TOKEN, min_length=1)


class PaymentSettings(AgentSettings):
    pass


SETTINGS_BY_ROLE: Dict[str, Type[AgentSettings]] = {
    "seller": SellerSettings,
    "buyer": BuyerSettings,
    "payment": PaymentSettings,
}


def _parse_inventory(raw: str) -> Dict[str, int]:
    inventory: Dict[str, int] = {}
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        item, sep, quantity = entry.partition("=")
        if not sep or not item.strip():
            raise ConfigurationError(f"Invalid inventory entry: {entry!r} (expected item=quantity)")
        try:
            inventory[item.strip()] = int(quantity)
        except ValueError:
            raise ConfigurationError(f"Invalid inventory quantity for {item.strip()!r}: {quantity!r}")
    return inventory


def load_settings(
    role: str,
    env_file: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> AgentSettings:
    """
    Build settings for `role` (seller, buyer or payment).

    Args:
        role: Agent role to configure
        env_file: Optional .env path; the default lookup is used when None
        environ: Variables to read instead of the process environment
                 (no .env file is loaded in that case)

    Raises:
        ConfigurationError: Unknown role, missing variables or invalid values
    """
    settings_class = SETTINGS_BY_ROLE.get(role)
    if settings_class is None:
        raise ConfigurationError(
            f"Unknown role: {role} (expected one of {', '.join(SETTINGS_BY_ROLE)})"
        )

    if environ is None:
        load_dotenv(dotenv_path=env_file)
        environ = os.environ

    role_prefix = f"{ENV_PREFIX}{role.upper()}_"

    required = {
        "topic_id": f"{ENV_PREFIX}TOPIC_ID",
        "account_id": f"{role_prefix}ACCOUNT_ID",
        "secret": f"{role_prefix}SECRET",
    }
    optional = {
        "mirror_node_url": f"{ENV_PREFIX}MIRROR_NODE_URL",
        "dedup_window": f"{ENV_PREFIX}DEDUP_WINDOW",
        "max_conversation_messages": f"{ENV_PREFIX}MAX_CONVERSATION_MESSAGES",
    }

    if role == "seller":
        optional.update(
            {
                "min_price": f"{role_prefix}MIN_PRICE",
                "ideal_price": f"{role_prefix}IDEAL_PRICE",
                "auto_accept_threshold": f"{role_prefix}AUTO_ACCEPT_THRESHOLD",
            }
        )
    elif role == "buyer":
        required["seller_account_id"] = f"{ENV_PREFIX}SELLER_ACCOUNT_ID"
        optional.update(
            {
                "max_price": f"{role_prefix}MAX_PRICE",
                "auto_accept_threshold": f"{role_prefix}AUTO_ACCEPT_THRESHOLD",
                "payment_token_id": f"{ENV_PREFIX}PAYMENT_TOKEN_ID",
            }
        )

    missing: List[str] = [var for var in required.values() if not environ.get(var)]
    if missing:
        raise ConfigurationError(
            f"Missing required environment variables: {', '.join(missing)}"
        )

    values = {field: environ[var] for field, var in required.items()}
    values.update({field: environ[var] for field, var in optional.items() if environ.get(var)})

    if role == "seller" and environ.get(f"{role_prefix}INVENTORY"):
        values["inventory"] = _parse_inventory(environ[f"{role_prefix}INVENTORY"])

    try:
        settings = settings_class(**values)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid {role} configuration: {e}") from e

    logger.debug(f"[config] Loaded {role} settings for account {settings.account_id}")
    return settings


def create_transport(
    settings: AgentSettings,
    log: OrderedLog,
    history: Optional[HistorySource] = None,
) -> TopicTransport:
    """
    Transport on the configured topic with the configured dedup window.

    History queries go to `history` when given, otherwise to a mirror node
    client when DEALBUS_MIRROR_NODE_URL is set, otherwise to the log itself.
    """
    if history is None and settings.mirror_node_url:
        history = MirrorNodeClient(settings.mirror_node_url)

    return TopicTransport(
        log,
        settings.topic_id,
        history=history,
        dedup_window=settings.dedup_window,
    )
