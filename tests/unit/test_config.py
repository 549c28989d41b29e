"""Tests for settings loading."""

import base64
import os

import httpx
import pytest
import respx

from conftest import TOPIC_ID
from dealbus.agents import BuyerAgent, PaymentAgent, SellerAgent
from dealbus.config import (
    BuyerSettings,
    PaymentSettings,
    SellerSettings,
    create_transport,
    load_settings,
)
from dealbus.core.errors import ConfigurationError
from dealbus.protocol import create_offer_message
from dealbus.settlement import InMemoryLedger
from dealbus.transport import MirrorNodeClient

pytestmark = pytest.mark.unit


BASE_ENV = {
    "DEALBUS_TOPIC_ID": TOPIC_ID,
    "DEALBUS_SELLER_ACCOUNT_ID": "0.0.2002",
    "DEALBUS_SELLER_SECRET": "seller-secret",
    "DEALBUS_BUYER_ACCOUNT_ID": "0.0.1001",
    "DEALBUS_BUYER_SECRET": "buyer-secret",
    "DEALBUS_PAYMENT_ACCOUNT_ID": "0.0.3003",
    "DEALBUS_PAYMENT_SECRET": "payment-secret",
}


def env(**overrides):
    values = dict(BASE_ENV)
    values.update(overrides)
    return {key: value for key, value in values.items() if value is not None}


class TestLoadSettings:
    def test_seller_defaults(self):
        settings = load_settings("seller", environ=env())

        assert isinstance(settings, SellerSettings)
        assert settings.account_id == "0.0.2002"
        assert settings.min_price == 50
        assert settings.ideal_price == 80
        assert settings.auto_accept_threshold == 0.95
        assert settings.max_conversation_messages == 6
        assert settings.dedup_window == 100
        assert settings.inventory == {}

    def test_seller_overrides_and_inventory(self):
        settings = load_settings(
            "seller",
            environ=env(
                DEALBUS_SELLER_MIN_PRICE="60",
                DEALBUS_SELLER_IDEAL_PRICE="90",
                DEALBUS_SELLER_INVENTORY="widgets=100, gadgets=5",
            ),
        )

        assert settings.min_price == 60
        assert settings.ideal_price == 90
        assert settings.inventory == {"widgets": 100, "gadgets": 5}

    def test_buyer_settings(self):
        settings = load_settings(
            "buyer",
            environ=env(DEALBUS_SELLER_ACCOUNT_ID="0.0.2002", DEALBUS_BUYER_MAX_PRICE="85"),
        )

        assert isinstance(settings, BuyerSettings)
        assert settings.max_price == 85
        assert settings.auto_accept_threshold == 0.9
        assert settings.payment_token_id == "HBAR"
        assert settings.seller_account_id == "0.0.2002"

    def test_missing_variables_are_all_listed(self):
        with pytest.raises(ConfigurationError) as excinfo:
            load_settings("buyer", environ={})

        message = str(excinfo.value)
        for var in (
            "DEALBUS_TOPIC_ID",
            "DEALBUS_BUYER_ACCOUNT_ID",
            "DEALBUS_BUYER_SECRET",
            "DEALBUS_SELLER_ACCOUNT_ID",
        ):
            assert var in message

    def test_invalid_threshold(self):
        with pytest.raises(ConfigurationError) as excinfo:
            load_settings("seller", environ=env(DEALBUS_SELLER_AUTO_ACCEPT_THRESHOLD="1.5"))

        assert "auto_accept_threshold" in str(excinfo.value)

    def test_ideal_below_minimum(self):
        with pytest.raises(ConfigurationError):
            load_settings(
                "seller",
                environ=env(DEALBUS_SELLER_MIN_PRICE="90", DEALBUS_SELLER_IDEAL_PRICE="80"),
            )

    def test_bad_inventory(self):
        with pytest.raises(ConfigurationError):
            load_settings("seller", environ=env(DEALBUS_SELLER_INVENTORY="widgets:100"))

        with pytest.raises(ConfigurationError):
            load_settings("seller", environ=env(DEALBUS_SELLER_INVENTORY="widgets=lots"))

    def test_unknown_role(self):
        with pytest.raises(ConfigurationError):
            load_settings("auditor", environ=env())

    def test_reads_env_file(self, tmp_path, monkeypatch):
        names = ("DEALBUS_TOPIC_ID", "DEALBUS_PAYMENT_ACCOUNT_ID", "DEALBUS_PAYMENT_SECRET")
        for name in names:
            monkeypatch.delenv(name, raising=False)

        env_file = tmp_path / ".env"
        env_file.write_text(
            "DEALBUS_TOPIC_ID=0.0.7777\n"
            "DEALBUS_PAYMENT_ACCOUNT_ID=0.0.3003\n"
            "DEALBUS_PAYMENT_SECRET=from-file\n"
        )

        try:
            settings = load_settings("payment", env_file=str(env_file))
        finally:
            for name in names:
                os.environ.pop(name, None)

        assert isinstance(settings, PaymentSettings)
        assert settings.topic_id == "0.0.7777"
        assert settings.secret == "from-file"


class TestFromSettings:
    def test_agents_from_settings(self, log):
        seller_settings = load_settings(
            "seller", environ=env(DEALBUS_SELLER_INVENTORY="widgets=10", DEALBUS_DEDUP_WINDOW="50")
        )
        buyer_settings = load_settings("buyer", environ=env(DEALBUS_SELLER_ACCOUNT_ID="0.0.2002"))
        payment_settings = load_settings("payment", environ=env())

        seller_transport = create_transport(seller_settings, log)
        seller = SellerAgent.from_settings(seller_settings, seller_transport)
        buyer = BuyerAgent.from_settings(buyer_settings, create_transport(buyer_settings, log))
        payment = PaymentAgent.from_settings(
            payment_settings,
            create_transport(payment_settings, log),
            ledger=InMemoryLedger("0.0.3003"),
        )

        assert seller_transport.topic_id == TOPIC_ID
        assert seller_transport.dedup_window == 50
        assert seller.get_inventory() == {"widgets": 10}
        assert seller.min_price == 50
        assert buyer.seller_account_id == "0.0.2002"
        assert buyer.max_price == 100
        assert payment.account_id == "0.0.3003"
        assert payment.agent_id == "payment"

    def test_history_defaults_to_the_log(self, log):
        settings = load_settings("payment", environ=env())

        transport = create_transport(settings, log)

        assert settings.mirror_node_url is None
        assert transport.history is None

    @respx.mock
    async def test_mirror_node_url_serves_history(self, log):
        settings = load_settings(
            "payment", environ=env(DEALBUS_MIRROR_NODE_URL="https://mirror.test/")
        )
        offer = create_offer_message("buyer", "seller", "widgets", 10, 75, "HBAR")
        route = respx.get(f"https://mirror.test/api/v1/topics/{TOPIC_ID}/messages").mock(
            return_value=httpx.Response(
                200,
                json={
                    "messages": [
                        {
                            "message": base64.b64encode(offer.to_bytes()).decode("ascii"),
                            "sequence_number": 3,
                            "consensus_timestamp": "1700000003.000000001",
                            "running_hash": "hash-3",
                        }
                    ],
                    "links": {"next": None},
                },
            )
        )

        transport = create_transport(settings, log)
        messages = await transport.get_historical_messages(limit=5)
        await transport.history.close()

        assert isinstance(transport.history, MirrorNodeClient)
        assert route.called
        assert [envelope.id for envelope, _ in messages] == [offer.id]
        assert messages[0][1]["sequence_number"] == 3
