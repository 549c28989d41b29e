"""Tests for TopicTransport over the in-memory log."""

import json
import logging

import pytest

from conftest import TOPIC_ID
from dealbus.core.errors import LogSubmissionError
from dealbus.core.types import BROADCAST, MessageType
from dealbus.protocol import Envelope, create_decline_message, create_offer_message
from dealbus.transport import InMemoryLog, TopicTransport

pytestmark = pytest.mark.unit


def decline(to="seller", reason="too low"):
    return create_decline_message("buyer", to, reason, "deal-1")


class RejectingLog(InMemoryLog):
    async def submit(self, topic_id, data):
        raise LogSubmissionError("Transaction failed with status: TOPIC_EXPIRED", status="TOPIC_EXPIRED")


class BrokenHistory:
    async def read(self, topic_id, limit=100, since_sequence=None):
        raise ConnectionError("mirror node unreachable")


@pytest.fixture
def received():
    return []


@pytest.fixture
def collect(received):
    async def _collect(envelope, metadata):
        received.append((envelope, metadata))

    return _collect


class TestPublish:
    async def test_sequence_numbers_increase(self, make_transport):
        transport = make_transport()

        first = await transport.publish(decline())
        second = await transport.publish(decline())

        assert first.success and second.success
        assert (first.sequence_number, second.sequence_number) == (1, 2)
        assert first.transaction_id.startswith(f"{TOPIC_ID}@")

    async def test_invalid_envelope_is_not_submitted(self, make_transport, log):
        transport = make_transport()
        envelope = Envelope(
            type=MessageType.OFFER,
            from_="buyer",
            to="seller",
            correlation_id="deal-1",
            payload={"item": "widgets"},
        )

        result = await transport.publish(envelope)

        assert not result.success
        assert result.error.startswith("Invalid message: ")
        assert "Missing required payload field: quantity" in result.error
        assert log.records(TOPIC_ID) == []

    async def test_log_rejection_becomes_failed_result(self):
        transport = TopicTransport(RejectingLog(), TOPIC_ID)

        result = await transport.publish(decline())

        assert not result.success
        assert result.error == "Transaction failed with status: TOPIC_EXPIRED"


class TestSubscribe:
    async def test_filter_keeps_addressed_and_broadcast(self, make_transport, settle, received, collect):
        subscriber = make_transport()
        publisher = make_transport()
        await subscriber.subscribe(collect, filter_ids=["seller"])

        await publisher.publish(decline(to="seller", reason="one"))
        await publisher.publish(decline(to="payment", reason="two"))
        await publisher.publish(decline(to=BROADCAST, reason="three"))
        await settle()

        reasons = [envelope.payload["reason"] for envelope, _ in received]
        assert reasons == ["one", "three"]
        await subscriber.unsubscribe()

    async def test_metadata(self, make_transport, settle, received, collect):
        subscriber = make_transport()
        await subscriber.subscribe(collect)

        await make_transport().publish(decline())
        await settle()

        _, metadata = received[0]
        assert metadata["sequence_number"] == 1
        assert metadata["running_hash"]
        assert metadata["consensus_timestamp"]
        await subscriber.unsubscribe()

    async def test_redelivered_record_is_suppressed(self, make_transport, log, settle, received, collect):
        subscriber = make_transport()
        await subscriber.subscribe(collect)

        await make_transport().publish(decline())
        await settle()
        log.redeliver(TOPIC_ID, 1)
        log.redeliver(TOPIC_ID, 1)
        await settle()

        assert len(received) == 1
        await subscriber.unsubscribe()

    async def test_duplicates_outside_window_are_delivered_again(
        self, make_transport, log, settle, received, collect
    ):
        subscriber = make_transport(dedup_window=2)
        await subscriber.subscribe(collect)

        publisher = make_transport()
        for reason in ("one", "two", "three"):
            await publisher.publish(decline(reason=reason))
        await settle()
        log.redeliver(TOPIC_ID, 1)
        await settle()

        reasons = [envelope.payload["reason"] for envelope, _ in received]
        assert reasons == ["one", "two", "three", "one"]
        await subscriber.unsubscribe()

    async def test_start_sequence_replays_history(self, make_transport, settle, received, collect):
        publisher = make_transport()
        for reason in ("one", "two", "three"):
            await publisher.publish(decline(reason=reason))

        subscriber = make_transport()
        await subscriber.subscribe(collect, start_sequence=2)
        await settle()

        assert [envelope.payload["reason"] for envelope, _ in received] == ["two", "three"]
        assert subscriber.last_sequence_number == 3
        await subscriber.unsubscribe()

    async def test_malformed_records_are_skipped(self, make_transport, log, settle, received, collect):
        subscriber = make_transport()
        await subscriber.subscribe(collect)

        await log.submit(TOPIC_ID, b"\xff\xfe not json")
        await log.submit(TOPIC_ID, json.dumps({"type": "OFFER"}).encode())
        await make_transport().publish(decline())
        await settle()

        assert len(received) == 1
        assert subscriber.last_sequence_number == 3
        await subscriber.unsubscribe()

    async def test_callback_errors_do_not_stop_delivery(self, make_transport, settle):
        seen = []

        def flaky(envelope, metadata):
            seen.append(envelope.payload["reason"])
            if envelope.payload["reason"] == "one":
                raise RuntimeError("boom")

        subscriber = make_transport()
        await subscriber.subscribe(flaky)

        publisher = make_transport()
        await publisher.publish(decline(reason="one"))
        await publisher.publish(decline(reason="two"))
        await settle()

        assert seen == ["one", "two"]
        await subscriber.unsubscribe()

    async def test_unsubscribe_stops_delivery(self, make_transport, settle, received, collect):
        subscriber = make_transport()
        await subscriber.subscribe(collect)
        await subscriber.unsubscribe()

        await make_transport().publish(decline())
        await settle()

        assert not subscriber.is_subscribed
        assert received == []

    async def test_second_subscribe_is_ignored(self, make_transport, collect, caplog):
        subscriber = make_transport()
        await subscriber.subscribe(collect)

        with caplog.at_level(logging.WARNING, logger="dealbus.transport.topic"):
            await subscriber.subscribe(collect)

        assert "Already subscribed" in caplog.text
        await subscriber.unsubscribe()


class TestHistory:
    async def test_reads_from_log(self, make_transport, log):
        publisher = make_transport()
        await publisher.publish(create_offer_message("buyer", "seller", "widgets", 10, 75, "HBAR"))
        await log.submit(TOPIC_ID, b"garbage")
        await publisher.publish(decline())

        messages = await make_transport().get_historical_messages()

        assert [envelope.type for envelope, _ in messages] == [MessageType.OFFER, MessageType.DECLINE]
        assert [metadata["sequence_number"] for _, metadata in messages] == [1, 3]

    async def test_since_sequence_and_limit(self, make_transport):
        publisher = make_transport()
        for reason in ("one", "two", "three", "four"):
            await publisher.publish(decline(reason=reason))

        messages = await make_transport().get_historical_messages(limit=2, since_sequence=2)

        assert [envelope.payload["reason"] for envelope, _ in messages] == ["two", "three"]

    async def test_history_failure_returns_empty_list(self, log):
        transport = TopicTransport(log, TOPIC_ID, history=BrokenHistory())

        assert await transport.get_historical_messages() == []
