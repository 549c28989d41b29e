"""
Pricing policies for the seller and buyer roles.

Both functions are pure: they look only at their arguments, so the same
inputs always give the same decision. Rules are evaluated in order and the
first match wins.
"""

from .decisions import AcceptDecision, CounterDecision, Decision, DeclineDecision


def evaluate_seller_offer(
    offered_price: float,
    min_price: float,
    ideal_price: float,
    auto_accept_threshold: float,
    is_counter: bool = False,
) -> Decision:
    """
    Seller's answer to a buyer price.

    Rules:
        1. price >= ideal * threshold: accept
        2. answering a counter and price >= minimum: accept
        3. price < minimum: decline
        4. otherwise counter at the midpoint of price and ideal, never below
           the minimum, rounded to 2 decimals
    """
    if offered_price >= ideal_price * auto_accept_threshold:
        return AcceptDecision(price=offered_price, reason="Price acceptable (near ideal)")

    if is_counter and offered_price >= min_price:
        return AcceptDecision(price=offered_price, reason="Counter-offer acceptable")

    if offered_price < min_price:
        return DeclineDecision(reason=f"Price {offered_price} is below minimum {min_price}")

    counter_price = round(max(min_price, (offered_price + ideal_price) / 2), 2)
    return CounterDecision(
        price=counter_price,
        reason=f"Looking for {ideal_price}, can offer {counter_price}",
    )


def evaluate_buyer_counter(
    counter_price: float,
    max_price: float,
    auto_accept_threshold: float,
    initial_offer: float,
    message_count: int,
) -> Decision:
    """
    Buyer's answer to a seller counter.

    Args:
        counter_price: Unit price proposed by the seller
        max_price: Highest unit price the buyer will pay
        auto_accept_threshold: Fraction of max_price accepted outright
        initial_offer: The buyer's opening unit price
        message_count: Messages received so far in this negotiation

    Rules:
        1. price <= max * threshold: accept
        2. price <= max after more than 2 received messages: accept
        3. price > max: decline
        4. otherwise counter at the midpoint of price and the opening offer,
           never above max
    """
    if counter_price <= max_price * auto_accept_threshold:
        return AcceptDecision(price=counter_price, reason="Price within auto-accept range")

    if counter_price <= max_price and message_count > 2:
        return AcceptDecision(price=counter_price, reason="Acceptable after negotiation")

    if counter_price > max_price:
        return DeclineDecision(reason=f"Price {counter_price} exceeds budget (max {max_price})")

    return CounterDecision(
        price=min((counter_price + initial_offer) / 2, max_price),
        reason="Meeting in the middle",
    )


def has_sufficient_inventory(
    inventory: dict, item: str, quantity: int
) -> bool:
    """Items never stocked have no stock."""
    return inventory.get(item, 0) >= quantity
