"""brickworks.execution.restock

Procurement flows built on the order engine.

- `buy`: one reference, one order.
- `restock_all`: every known reference at a fixed quantity, through the fail-safe
  batch coordinator.
- `restock_low_stock`: top each low reference up to a target, pre-funding the
  account through the lifecycle when the quote exceeds the balance.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from brickworks.core.types import BatchReport, DeliveryResult
from brickworks.execution.batch import DEFAULT_BATCH_SIZE, BatchOrderCoordinator
from brickworks.execution.delivery import DeliveryProcessor
from brickworks.execution.lifecycle import OrderLifecycle
from brickworks.stock.sink import StockReport, StockSink

logger = logging.getLogger(__name__)

DEFAULT_RESTOCK_QUANTITY = 75
DEFAULT_TARGET_BUFFER = 75
DEFAULT_FUNDING_MARGIN = 500


@dataclass(frozen=True, slots=True)
class PurchaseResult:
    quote_id: str
    price: float
    cart: dict[str, int]
    delivery: DeliveryResult


class Procurement:
    def __init__(
        self,
        lifecycle: OrderLifecycle,
        sink: StockSink,
        delivery: DeliveryProcessor,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        funding_margin: float = DEFAULT_FUNDING_MARGIN,
    ) -> None:
        self.lifecycle = lifecycle
        self.sink = sink
        self.delivery = delivery
        self.batch_size = batch_size
        self.funding_margin = funding_margin
        self.coordinator = BatchOrderCoordinator(lifecycle, sink, delivery)

    def buy(self, reference: str, quantity: int) -> PurchaseResult:
        if quantity <= 0:
            raise ValueError("quantity must be > 0")
        return self._order({reference: int(quantity)}, prefund=False)

    def restock_all(self, references: Iterable[str], quantity: int = DEFAULT_RESTOCK_QUANTITY) -> BatchReport:
        cart = {ref: int(quantity) for ref in references}
        if not cart:
            logger.info("restock_nothing_known")
            return BatchReport()
        return self.coordinator.order_all(cart, self.batch_size)

    def restock_low_stock(
        self,
        report: StockReport,
        target: int = DEFAULT_TARGET_BUFFER,
    ) -> PurchaseResult | None:
        to_order: dict[str, int] = {}
        for ref, current in report.low_stock_items().items():
            needed = int(target) - int(current)
            if needed > 0:
                to_order[ref] = needed
                logger.info("low_stock_alert", extra={"reference": ref, "current": current, "ordering": needed})

        if not to_order:
            logger.info("low_stock_none")
            return None
        return self._order(to_order, prefund=True)

    def _order(self, cart: dict[str, int], *, prefund: bool) -> PurchaseResult:
        quote = self.lifecycle.request_quote(cart)

        if prefund:
            balance = self.lifecycle.get_balance()
            if balance < quote.price:
                target = quote.price + self.funding_margin
                logger.info("prefunding_order", extra={"quote_id": quote.id, "balance": balance, "target": target})
                self.lifecycle.recharge_account(target)

        self.lifecycle.accept_quote(quote.id)
        self.sink.record_order(quote.id, quote.price, cart)
        result = self.delivery.receive(quote.id, sum(cart.values()))
        return PurchaseResult(quote_id=quote.id, price=quote.price, cart=cart, delivery=result)
