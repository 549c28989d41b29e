"""
Widget Negotiation Example
Runs a buyer, a seller and a payment agent against an in-memory log and
prints how each negotiation ends.
"""

import asyncio
import logging
import argparse

from dotenv import load_dotenv

from dealbus import (
    BuyerAgent,
    InMemoryLedger,
    InMemoryLog,
    PaymentAgent,
    SellerAgent,
    TopicTransport,
    create_transport,
    load_settings,
)
from dealbus.core.types import MessageType
from dealbus.protocol.envelope import Envelope

load_dotenv(override=True)

logging.basicConfig(level=logging.WARNING, format="%(message)s")
logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

TOPIC_ID = "0.0.4242"
BUYER_ACCOUNT = "0.0.1001"
SELLER_ACCOUNT = "0.0.2002"
PAYMENT_ACCOUNT = "0.0.3003"

SCENARIOS = {
    "quick-deal": {
        "description": "Offer close to the seller's ideal price is accepted outright",
        "seller": {"min_price": 50, "ideal_price": 80, "auto_accept_threshold": 0.9},
        "buyer": {"max_price": 100},
        "offer": ("widgets", 10, 75),
    },
    "haggle": {
        "description": "Both sides counter until they meet in the middle",
        "seller": {"min_price": 60, "ideal_price": 90, "auto_accept_threshold": 0.95},
        "buyer": {"max_price": 85, "auto_accept_threshold": 0.9},
        "offer": ("widgets", 10, 65),
    },
    "lowball": {
        "description": "Offer under the seller's minimum is declined",
        "seller": {"min_price": 70, "ideal_price": 80},
        "buyer": {"max_price": 100},
        "offer": ("widgets", 10, 30),
    },
    "sold-out": {
        "description": "Seller cannot cover the requested quantity",
        "seller": {"inventory": {"widgets": 5}},
        "buyer": {"max_price": 100},
        "offer": ("widgets", 10, 80),
    },
    "replay": {
        "description": "A payment request delivered again is acknowledged but paid only once",
        "seller": {"min_price": 50, "ideal_price": 80, "auto_accept_threshold": 0.9},
        "buyer": {"max_price": 100},
        "offer": ("widgets", 10, 75),
        "replay_payment": 2,
    },
}


def print_transcript(log: InMemoryLog):
    """Print every envelope on the demo topic in sequence order."""
    print("\nTRANSCRIPT:")
    for record in log.records(TOPIC_ID):
        envelope = Envelope.from_bytes(record.data)
        payload = envelope.payload
        detail = ""
        if envelope.type in (MessageType.OFFER, MessageType.COUNTER, MessageType.ACCEPT):
            detail = f"{payload['quantity']} {payload['item']} @ {payload['unit_price']}"
        elif envelope.type == MessageType.DECLINE:
            detail = payload["reason"]
        elif envelope.type == MessageType.PAYMENT_REQUEST:
            detail = f"{payload['amount']} {payload['token_id']} -> {payload['to_account']}"
        elif envelope.type == MessageType.PAYMENT_ACK:
            detail = f"{payload['status']} ({payload['transaction_id']})"
        elif envelope.type == MessageType.ERROR:
            detail = f"{payload['code']}: {payload['message']}"
        print(
            f"  {record.sequence_number:>3}. {envelope.type.value:<16} "
            f"{envelope.from_} -> {envelope.to}  {detail}"
        )


def print_event_log(agent, label: str):
    """Print formatted event log."""
    events = agent.events.events
    print(f"\n{label} EVENTS ({len(events)}):")
    for i, event in enumerate(events, 1):
        timestamp = event.timestamp.strftime("%H:%M:%S.%f")[:-3]
        print(f"  {i}. [{timestamp}] {event.event_type.value}")


async def replay_payment_requests(log: InMemoryLog, times: int):
    """Publish every PAYMENT_REQUEST on the topic again, as a redelivering peer would."""
    replayer = TopicTransport(log, TOPIC_ID)
    envelopes = [Envelope.from_bytes(record.data) for record in log.records(TOPIC_ID)]
    requests = [e for e in envelopes if e.type == MessageType.PAYMENT_REQUEST]
    for _ in range(times):
        for request in requests:
            await replayer.publish(request)
    await log.drain()


def build_agents(log: InMemoryLog, ledger: InMemoryLedger, scenario: dict, from_env: bool):
    if from_env:
        seller_settings = load_settings("seller")
        buyer_settings = load_settings("buyer")
        payment_settings = load_settings("payment")
        seller = SellerAgent.from_settings(seller_settings, create_transport(seller_settings, log))
        buyer = BuyerAgent.from_settings(buyer_settings, create_transport(buyer_settings, log))
        payment = PaymentAgent.from_settings(
            payment_settings, create_transport(payment_settings, log), ledger=ledger
        )
        return seller, buyer, payment

    seller_options = {"inventory": {"widgets": 100}}
    seller_options.update(scenario["seller"])
    seller = SellerAgent(
        SELLER_ACCOUNT, TopicTransport(log, TOPIC_ID), "seller-secret", **seller_options
    )
    buyer = BuyerAgent(
        BUYER_ACCOUNT,
        TopicTransport(log, TOPIC_ID),
        "buyer-secret",
        seller_account_id=SELLER_ACCOUNT,
        **scenario["buyer"],
    )
    payment = PaymentAgent(
        PAYMENT_ACCOUNT, TopicTransport(log, TOPIC_ID), "payment-secret", ledger=ledger
    )
    return seller, buyer, payment


async def run_scenario(name: str, from_env: bool = False, show_events: bool = False):
    """Run one scenario to completion.

    Args:
        name: Key into SCENARIOS
        from_env: Build agents from DEALBUS_* environment settings instead
        show_events: If True, print each agent's event log afterwards
    """
    scenario = SCENARIOS[name]

    print("\n" + "=" * 60)
    print(f"SCENARIO: {name}")
    print(scenario["description"])
    print("=" * 60)

    log = InMemoryLog()
    ledger = InMemoryLedger(PAYMENT_ACCOUNT, {PAYMENT_ACCOUNT: {"HBAR": 100_000}})
    seller, buyer, payment = build_agents(log, ledger, scenario, from_env)

    for agent in (seller, buyer, payment):
        await agent.start()

    try:
        item, quantity, unit_price = scenario["offer"]
        result = await buyer.make_offer(item, quantity, unit_price)
        if not result.success:
            logger.error(f"Failed to open negotiation: {result.error}")
            return
        await log.drain()

        if scenario.get("replay_payment"):
            await replay_payment_requests(log, scenario["replay_payment"])

        conversation = buyer.get_conversation(result.correlation_id)
        print_transcript(log)
        print(f"\nOUTCOME: {conversation.state}")
        if conversation.final_price is not None:
            print(f"Final price: {conversation.final_price} (total {conversation.total_amount})")
        if conversation.transaction_id:
            print(f"Transaction: {conversation.transaction_id}")
        if conversation.metadata.get("decline_reason"):
            print(f"Reason: {conversation.metadata['decline_reason']}")
        print(f"Seller inventory: {seller.get_inventory()}")
        print(f"Ledger transfers: {len(ledger.transfers)}")

        if show_events:
            print_event_log(buyer, "BUYER")
            print_event_log(seller, "SELLER")
            print_event_log(payment, "PAYMENT")
    finally:
        for agent in (seller, buyer, payment):
            await agent.stop()


async def main(scenarios, from_env: bool = False, show_events: bool = False):
    for name in scenarios:
        await run_scenario(name, from_env=from_env, show_events=show_events)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Widget Negotiation Example")
    parser.add_argument(
        "scenarios",
        nargs="*",
        help=f"Scenarios to run, any of: {', '.join(SCENARIOS)} (default: all)",
    )
    parser.add_argument(
        "--from-env",
        action="store_true",
        help="Build agents from DEALBUS_* environment variables (.env is loaded)",
    )
    parser.add_argument(
        "--show-events",
        action="store_true",
        help="Show each agent's event log after the negotiation",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log agent activity",
    )
    args = parser.parse_args()

    unknown = [name for name in args.scenarios if name not in SCENARIOS]
    if unknown:
        parser.error(f"Unknown scenario(s): {', '.join(unknown)}")

    if args.verbose:
        logging.getLogger("dealbus").setLevel(logging.INFO)

    asyncio.run(
        main(
            args.scenarios or list(SCENARIOS),
            from_env=args.from_env,
            show_events=args.show_events,
        )
    )
