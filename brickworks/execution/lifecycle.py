"""brickworks.execution.lifecycle

Order lifecycle against the factory.

    QUOTED → ACCEPTED → DELIVERING → DELIVERED
       └──────────┴───────────┴──→ ABORTED

Acceptance rules:
- 402 (payment required): fund once with a fixed amount, accept once more.
  A second failure surfaces; there is no third attempt.
  If funding itself fails the order stays QUOTED and the error surfaces.
- 404 (quote gone): `QuoteExpired`. The quote is consumed; request a new one.
- anything else: propagates unchanged.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Final

from brickworks.core.client import Transport
from brickworks.core.exceptions import (
    HttpStatusError,
    InsufficientFunds,
    InvalidOrderTransition,
    InvalidReference,
    QuoteExpired,
)
from brickworks.core.models import DeliveredUnit, Delivery, Quote
from brickworks.core.time import utc_now
from brickworks.core.types import FactoryOrder, OrderState, OrderTransition
from brickworks.execution.funding import FundingStrategy, ProofOfWorkFunding, read_balance

logger = logging.getLogger(__name__)

QUOTE_ENDPOINT = "/ordering/quote-request"

DEFAULT_REFILL_AMOUNT = 1000

# Statuses the factory uses to refuse a cart it cannot build.
_REJECTED_CART = frozenset({400, 404, 409, 422})


def _order_endpoint(quote_id: str) -> str:
    return f"/ordering/order/{quote_id}"


def _deliver_endpoint(quote_id: str) -> str:
    return f"/ordering/deliver/{quote_id}"


ALLOWED_TRANSITIONS: Final[dict[OrderState, set[OrderState]]] = {
    OrderState.QUOTED: {OrderState.ACCEPTED, OrderState.ABORTED},
    OrderState.ACCEPTED: {OrderState.DELIVERING, OrderState.DELIVERED, OrderState.ABORTED},
    OrderState.DELIVERING: {OrderState.DELIVERED, OrderState.ABORTED},
    OrderState.DELIVERED: set(),
    OrderState.ABORTED: set(),
}


class OrderStateMachine:
    def transition(self, order: FactoryOrder, new_state: OrderState, *, reason: str) -> OrderTransition | None:
        if new_state == order.state:
            # Re-polling a delivering order is not a transition.
            return None
        if new_state not in ALLOWED_TRANSITIONS.get(order.state, set()):
            raise InvalidOrderTransition(f"order {order.quote_id}: {order.state} -> {new_state}")
        t = OrderTransition(previous=order.state, new=new_state, reason=reason, ts=utc_now())
        order.state = new_state
        order.history.append(t)
        return t


class OrderLifecycle:
    """Quote, pay, collect. One instance per factory account."""

    def __init__(
        self,
        transport: Transport,
        *,
        funding: FundingStrategy | None = None,
        refill_amount: float = DEFAULT_REFILL_AMOUNT,
    ) -> None:
        self.transport = transport
        self.funding: FundingStrategy = funding or ProofOfWorkFunding()
        self.refill_amount = refill_amount
        self.orders: dict[str, FactoryOrder] = {}
        self._sm = OrderStateMachine()

    def set_funding_strategy(self, funding: FundingStrategy) -> None:
        self.funding = funding

    # ---------------------------------------------------------------------------
    # Account
    # ---------------------------------------------------------------------------

    def get_balance(self) -> int:
        return read_balance(self.transport)

    def recharge_account(self, target: float) -> float:
        """Fund the account up to ``target`` starting from a fresh balance read."""

        current = self.get_balance()
        logger.info("recharge_account", extra={"balance": current, "target": target})
        return self.funding.fund(target, current, self.transport)

    # ---------------------------------------------------------------------------
    # Ordering
    # ---------------------------------------------------------------------------

    def request_quote(self, cart: Mapping[str, int]) -> Quote:
        if not cart:
            raise ValueError("cannot quote an empty cart")
        items = {str(ref): int(qty) for ref, qty in cart.items()}
        for ref, qty in items.items():
            if qty <= 0:
                raise ValueError(f"quantity for {ref} must be > 0, got {qty}")

        try:
            body = self.transport.send(QUOTE_ENDPOINT, "POST", json.dumps(items))
        except HttpStatusError as e:
            if e.status_code in _REJECTED_CART:
                raise InvalidReference(e.status_code, e.body, cart=items, endpoint=QUOTE_ENDPOINT) from e
            raise

        quote = Quote.model_validate_json(body)
        self.orders[quote.id] = FactoryOrder(quote_id=quote.id, price=quote.price, cart=items)
        logger.info(
            "quote_received",
            extra={"quote_id": quote.id, "price": quote.price, "references": len(items)},
        )
        return quote

    def accept_quote(self, quote_id: str) -> None:
        try:
            self._accept(quote_id)
        except HttpStatusError as e:
            if e.status_code == 402:
                logger.warning(
                    "quote_payment_required",
                    extra={"quote_id": quote_id, "refill_amount": self.refill_amount},
                )
                try:
                    self.recharge_account(self.refill_amount)
                except Exception as funding_error:
                    # Order stays QUOTED: the factory still holds the quote.
                    logger.warning(
                        "quote_funding_failed",
                        extra={"quote_id": quote_id, "error": f"{type(funding_error).__name__}: {funding_error}"},
                    )
                    raise
                self._accept_after_funding(quote_id)
            elif e.status_code == 404:
                logger.warning("quote_expired", extra={"quote_id": quote_id})
                self._abort(quote_id, "expired")
                raise QuoteExpired(quote_id) from e
            else:
                raise
        self._move(quote_id, OrderState.ACCEPTED, "paid")

    def _accept(self, quote_id: str) -> None:
        self.transport.send(_order_endpoint(quote_id), "POST", None)

    def _accept_after_funding(self, quote_id: str) -> None:
        try:
            self._accept(quote_id)
        except HttpStatusError as e:
            self._abort(quote_id, f"accept_failed_after_funding:{e.status_code}")
            if e.status_code == 402:
                raise InsufficientFunds(e.body, endpoint=e.endpoint) from e
            if e.status_code == 404:
                raise QuoteExpired(quote_id) from e
            raise

    def retrieve_order(self, quote_id: str) -> list[DeliveredUnit]:
        """One snapshot of what has been built so far. Partial is normal."""

        return Delivery.model_validate_json(self.transport.send(_deliver_endpoint(quote_id), "GET", None)).units

    # ---------------------------------------------------------------------------
    # Local state
    # ---------------------------------------------------------------------------

    def order(self, quote_id: str) -> FactoryOrder | None:
        return self.orders.get(quote_id)

    def mark_delivering(self, quote_id: str) -> None:
        self._move(quote_id, OrderState.DELIVERING, "polling")

    def mark_delivered(self, quote_id: str) -> None:
        self._move(quote_id, OrderState.DELIVERED, "complete")

    def mark_aborted(self, quote_id: str, reason: str) -> None:
        self._abort(quote_id, reason)

    def _move(self, quote_id: str, state: OrderState, reason: str) -> None:
        order = self.orders.get(quote_id)
        if order is None:
            # Quote created by another process; nothing to track.
            return
        self._sm.transition(order, state, reason=reason)

    def _abort(self, quote_id: str, reason: str) -> None:
        order = self.orders.get(quote_id)
        if order is None or order.state in (OrderState.DELIVERED, OrderState.ABORTED):
            return
        self._sm.transition(order, OrderState.ABORTED, reason=reason)
