"""brickworks.execution.batch

Fail-safe batch ordering.

A large cart is cut into fixed-size groups. Each group is ordered as one unit:

    quote → accept → record → deliver (→ verify → stock)

If the quote or the acceptance of a group fails, the run does not stop. Every
item of the group is probed with its own quote; items the factory will quote
form a "safe" group that is ordered once more, the rest are dropped and
reported. One bad reference never blocks the other forty-nine.

Probing only happens after a failure: the common case costs one round-trip per
group, not one per item.

Once a group is paid it is never quoted again. A failure while recording or
collecting it is reported on its `BatchOutcome`.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from itertools import islice

from brickworks.core.types import BatchOutcome, BatchReport, cart_total
from brickworks.execution.delivery import DeliveryProcessor
from brickworks.execution.lifecycle import OrderLifecycle
from brickworks.stock.sink import StockSink

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 50


def partition_cart(cart: Mapping[str, int], batch_size: int) -> Iterator[dict[str, int]]:
    if batch_size <= 0:
        raise ValueError("batch_size must be >= 1")
    it = iter(cart.items())
    while chunk := dict(islice(it, batch_size)):
        yield chunk


class BatchOrderCoordinator:
    def __init__(
        self,
        lifecycle: OrderLifecycle,
        sink: StockSink,
        delivery: DeliveryProcessor,
    ) -> None:
        self.lifecycle = lifecycle
        self.sink = sink
        self.delivery = delivery

    def order_all(self, cart: Mapping[str, int], batch_size: int = DEFAULT_BATCH_SIZE) -> BatchReport:
        report = BatchReport()
        groups = list(partition_cart(cart, batch_size))
        logger.info("batch_run_start", extra={"references": len(cart), "groups": len(groups)})

        for index, group in enumerate(groups):
            self._order_group(index, group, report)

        logger.info(
            "batch_run_done",
            extra={
                "ordered_groups": len(report.ordered),
                "dropped": len(report.dropped),
                "failed_groups": len(report.failed),
            },
        )
        return report

    def _order_group(self, index: int, group: dict[str, int], report: BatchReport) -> None:
        try:
            quote_id, price = self._place(group)
        except Exception as e:  # noqa: BLE001 - batch isolation boundary
            logger.warning(
                "batch_failed_probing_items",
                extra={"group": index, "references": len(group), "error": f"{type(e).__name__}: {e}"},
            )
        else:
            report.ordered.append(self._complete(quote_id, price, group, degraded=False))
            return

        safe = self._probe(group, report)
        if not safe:
            logger.error("batch_nothing_orderable", extra={"group": index})
            return

        try:
            quote_id, price = self._place(safe)
        except Exception as e:  # noqa: BLE001 - batch isolation boundary
            logger.error(
                "safe_batch_failed",
                extra={"group": index, "references": len(safe), "error": f"{type(e).__name__}: {e}"},
            )
            report.failed.append(safe)
            return

        logger.info("safe_batch_ordered", extra={"group": index, "references": len(safe), "quote_id": quote_id})
        report.ordered.append(self._complete(quote_id, price, safe, degraded=True))

    def _place(self, group: dict[str, int]) -> tuple[str, float]:
        """Quote and pay. Only a failure here degrades the group."""

        quote = self.lifecycle.request_quote(group)
        self.lifecycle.accept_quote(quote.id)
        return quote.id, quote.price

    def _probe(self, group: dict[str, int], report: BatchReport) -> dict[str, int]:
        safe: dict[str, int] = {}
        for ref, qty in group.items():
            try:
                # The probe quote is abandoned; it only proves the item is orderable.
                self.lifecycle.request_quote({ref: qty})
            except Exception as e:  # noqa: BLE001 - per-item isolation
                reason = f"{type(e).__name__}: {e}"
                logger.warning("item_dropped", extra={"reference": ref, "error": reason})
                report.dropped[ref] = reason
            else:
                safe[ref] = qty
        return safe

    def _complete(self, quote_id: str, price: float, group: dict[str, int], *, degraded: bool) -> BatchOutcome:
        """Record and collect a paid group. Failures from here on are reported, never re-ordered."""

        try:
            self.sink.record_order(quote_id, price, group)
        except Exception as e:  # noqa: BLE001 - paid order isolation boundary
            error = f"{type(e).__name__}: {e}"
            logger.error("batch_record_failed", extra={"quote_id": quote_id, "price": price, "error": error})
            return BatchOutcome(quote_id=quote_id, price=price, cart=group, degraded=degraded, error=error)

        try:
            result = self.delivery.receive(quote_id, cart_total(group))
        except Exception as e:  # noqa: BLE001 - paid order isolation boundary
            error = f"{type(e).__name__}: {e}"
            logger.error("batch_delivery_failed", extra={"quote_id": quote_id, "error": error})
            return BatchOutcome(quote_id=quote_id, price=price, cart=group, degraded=degraded, error=error)
        return BatchOutcome(quote_id=quote_id, price=price, cart=group, degraded=degraded, delivery=result)
