"""Tests for the payment role and its idempotent settlement."""

import asyncio

import pytest

from conftest import PAYMENT_ACCOUNT, SECRETS, SELLER_ACCOUNT, TOKEN_ID
from dealbus.agents import PaymentAgent
from dealbus.core.types import MessageType
from dealbus.protocol import create_payment_request_message
from dealbus.protocol.envelope import sign_envelope
from dealbus.settlement import InMemoryLedger
from dealbus.state import EventType

pytestmark = pytest.mark.unit


class SlowLedger(InMemoryLedger):
    """Yields to the event loop mid-transfer so overlapping requests interleave."""

    async def transfer(self, amount, token_id, to_account, memo=""):
        await asyncio.sleep(0.01)
        return await super().transfer(amount, token_id, to_account, memo)


class ExplodingLedger:
    def __init__(self):
        self.calls = 0

    async def transfer(self, amount, token_id, to_account, memo=""):
        self.calls += 1
        raise ConnectionError("network unreachable")


@pytest.fixture
async def build_payment(make_transport, ledger):
    started = []

    async def _build(executor=None):
        agent = PaymentAgent(
            PAYMENT_ACCOUNT,
            make_transport(),
            SECRETS["payment"],
            ledger=executor if executor is not None else ledger,
        )
        await agent.start()
        started.append(agent)
        return agent

    yield _build

    for agent in started:
        await agent.stop()


def payment_request(correlation_id="deal-1", amount=750, token_id="HBAR"):
    return sign_envelope(
        create_payment_request_message(
            "buyer",
            "payment",
            amount,
            token_id,
            SELLER_ACCOUNT,
            "Payment for 10 widgets",
            "widgets",
            10,
            correlation_id,
        ),
        SECRETS["buyer"],
    )


class TestExecution:
    async def test_executes_transfer_and_acks(self, build_payment, ledger, published):
        payment = await build_payment()

        await payment.route_message(payment_request())

        assert len(ledger.transfers) == 1
        transfer = ledger.transfers[0]
        assert transfer.amount == 750
        assert transfer.to_account == SELLER_ACCOUNT
        assert transfer.memo == "Payment for 10 widgets"
        assert ledger.balance(SELLER_ACCOUNT) == 750
        assert ledger.balance(PAYMENT_ACCOUNT) == 9_250

        acks = published(MessageType.PAYMENT_ACK)
        assert len(acks) == 1
        assert acks[0].to == "buyer"
        assert acks[0].payload["status"] == "success"
        assert acks[0].payload["transaction_id"] == transfer.transaction_id

        assert payment.was_payment_processed("deal-1")
        record = payment.get_payment_by_correlation("deal-1")
        assert record.transaction_id == transfer.transaction_id
        assert record.item == "widgets"
        assert [r.correlation_id for r in payment.get_payment_history()] == ["deal-1"]

        executed = payment.events.events_of(EventType.PAYMENT_EXECUTED)
        assert len(executed) == 1
        assert executed[0].correlation_id == "deal-1"

    async def test_token_transfer(self, build_payment, ledger):
        payment = await build_payment()

        await payment.route_message(payment_request(amount=200, token_id=TOKEN_ID))

        assert ledger.balance(SELLER_ACCOUNT, TOKEN_ID) == 200
        assert ledger.balance(PAYMENT_ACCOUNT, TOKEN_ID) == 300
        assert ledger.balance(PAYMENT_ACCOUNT) == 10_000

    async def test_native_alias(self, build_payment, ledger):
        payment = await build_payment()

        await payment.route_message(payment_request(token_id="0.0.0"))

        assert ledger.balance(SELLER_ACCOUNT) == 750


class TestIdempotency:
    async def test_repeated_requests_transfer_once(self, build_payment, ledger, published):
        payment = await build_payment()
        request = payment_request()

        for _ in range(3):
            await payment.route_message(request)

        assert len(ledger.transfers) == 1
        acks = published(MessageType.PAYMENT_ACK)
        assert len(acks) == 3
        assert {ack.payload["status"] for ack in acks} == {"success"}
        assert {ack.payload["transaction_id"] for ack in acks} == {ledger.transfers[0].transaction_id}
        assert len(payment.events.events_of(EventType.PAYMENT_EXECUTED)) == 1

    async def test_concurrent_requests_transfer_once(self, build_payment, published):
        slow = SlowLedger(PAYMENT_ACCOUNT, {PAYMENT_ACCOUNT: {"HBAR": 10_000}})
        payment = await build_payment(slow)
        request = payment_request()

        await asyncio.gather(*(payment.route_message(request) for _ in range(5)))

        assert len(slow.transfers) == 1
        assert len(published(MessageType.PAYMENT_ACK)) == 5
        assert payment.payments.active_locks == 0

    async def test_distinct_negotiations_each_pay(self, build_payment, ledger):
        payment = await build_payment()

        await payment.route_message(payment_request("deal-1"))
        await payment.route_message(payment_request("deal-2"))

        assert len(ledger.transfers) == 2

    async def test_clear_allows_paying_again(self, build_payment, ledger):
        payment = await build_payment()
        await payment.route_message(payment_request())

        payment.clear_processed_payments()
        await payment.route_message(payment_request())

        assert len(ledger.transfers) == 2
        assert len(payment.get_payment_history()) == 2
        assert (
            payment.get_payment_by_correlation("deal-1").transaction_id
            == ledger.transfers[1].transaction_id
        )

    async def test_processed_set_survives_restart(self, build_payment, ledger):
        payment = await build_payment()
        await payment.route_message(payment_request())

        await payment.stop()
        await payment.start()
        await payment.route_message(payment_request())

        assert len(ledger.transfers) == 1


class TestFailures:
    async def test_rejected_transfer(self, build_payment, published):
        poor = InMemoryLedger(PAYMENT_ACCOUNT, {PAYMENT_ACCOUNT: {"HBAR": 100}})
        payment = await build_payment(poor)

        await payment.route_message(payment_request())

        ack = published(MessageType.PAYMENT_ACK)[0]
        assert ack.payload["status"] == "failed"
        assert ack.payload["transaction_id"] == "N/A"
        assert ack.payload["error"] == "Transaction failed with status: INSUFFICIENT_ACCOUNT_BALANCE"
        assert not payment.was_payment_processed("deal-1")
        assert payment.get_conversation("deal-1").state == "payment_failed"
        assert payment.events.events_of(EventType.PAYMENT_FAILED)

    async def test_failed_payment_can_be_retried(self, build_payment, published):
        poor = InMemoryLedger(PAYMENT_ACCOUNT, {PAYMENT_ACCOUNT: {"HBAR": 100}})
        payment = await build_payment(poor)
        await payment.route_message(payment_request())

        poor.credit(PAYMENT_ACCOUNT, 1_000)
        await payment.route_message(payment_request())

        statuses = [ack.payload["status"] for ack in published(MessageType.PAYMENT_ACK)]
        assert statuses == ["failed", "success"]
        assert len(poor.transfers) == 1

    async def test_token_shortfall(self, build_payment, published):
        payment = await build_payment()

        await payment.route_message(payment_request(amount=5_000, token_id=TOKEN_ID))

        ack = published(MessageType.PAYMENT_ACK)[0]
        assert ack.payload["error"] == "Transaction failed with status: INSUFFICIENT_TOKEN_BALANCE"

    async def test_executor_exception(self, build_payment, published):
        exploding = ExplodingLedger()
        payment = await build_payment(exploding)

        await payment.route_message(payment_request())
        await payment.route_message(payment_request())

        acks = published(MessageType.PAYMENT_ACK)
        assert [ack.payload["status"] for ack in acks] == ["failed", "failed"]
        assert acks[0].payload["error"] == "network unreachable"
        assert exploding.calls == 2
        assert not payment.was_payment_processed("deal-1")

    async def test_unsigned_request_is_dropped(self, build_payment, ledger, published):
        payment = await build_payment()
        unsigned = create_payment_request_message(
            "buyer", "payment", 750, "HBAR", SELLER_ACCOUNT, "memo", "widgets", 10, "deal-1"
        )

        await payment.route_message(unsigned)

        assert ledger.transfers == []
        assert published() == []
