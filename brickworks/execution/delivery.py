"""brickworks.execution.delivery

Waiting for bricks, then deciding which ones to trust.

`DeliveryPoller` is a plain polling loop: every call to the factory returns the
full state of the order, so nothing is accumulated between polls. It sleeps a
fixed interval while the count is short. By default it waits forever; pass a
timeout or a cancellation token to bound it.

`DeliveryProcessor` chains poll → verify → stock. Only verified units reach the
sink. A rejected unit is logged and dropped; it never stops the others.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from brickworks.core.exceptions import Cancelled, DeliveryTimeout
from brickworks.core.models import DeliveredUnit
from brickworks.core.types import DeliveryResult
from brickworks.execution.lifecycle import OrderLifecycle
from brickworks.security.pow import CancellationToken
from brickworks.security.verifier import BrickVerifier
from brickworks.stock.sink import StockSink

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_S = 1.0


class DeliveryPoller:
    def __init__(
        self,
        lifecycle: OrderLifecycle,
        *,
        interval_s: float = DEFAULT_POLL_INTERVAL_S,
        timeout_s: float | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.lifecycle = lifecycle
        self.interval_s = float(interval_s)
        self.timeout_s = timeout_s
        self._sleep = sleep
        self._clock = clock

    def await_delivery(
        self,
        quote_id: str,
        expected_count: int,
        *,
        cancel: CancellationToken | None = None,
    ) -> list[DeliveredUnit]:
        self.lifecycle.mark_delivering(quote_id)
        deadline = None if self.timeout_s is None else self._clock() + float(self.timeout_s)
        polls = 0

        while True:
            units = self.lifecycle.retrieve_order(quote_id)
            polls += 1
            if len(units) >= expected_count:
                logger.info(
                    "delivery_complete",
                    extra={"quote_id": quote_id, "received": len(units), "polls": polls},
                )
                self.lifecycle.mark_delivered(quote_id)
                return units

            logger.debug(
                "delivery_waiting",
                extra={"quote_id": quote_id, "received": len(units), "expected": expected_count},
            )
            if deadline is not None and self._clock() >= deadline:
                raise DeliveryTimeout(quote_id, len(units), expected_count)
            if cancel is not None and cancel.cancelled:
                raise Cancelled(polls, "delivery polling")
            self._sleep(self.interval_s)


class DeliveryProcessor:
    """Poll until complete, verify each unit, stock the verified ones."""

    def __init__(self, poller: DeliveryPoller, verifier: BrickVerifier, sink: StockSink) -> None:
        self.poller = poller
        self.verifier = verifier
        self.sink = sink

    def receive(self, quote_id: str, expected_count: int) -> DeliveryResult:
        units = self.poller.await_delivery(quote_id, expected_count)

        accepted: list[DeliveredUnit] = []
        rejected: list[DeliveredUnit] = []
        for unit in units:
            if self.verifier.verify(unit):
                accepted.append(unit)
            else:
                logger.error(
                    "unit_rejected",
                    extra={"quote_id": quote_id, "serial": unit.serial, "unit_name": unit.name},
                )
                rejected.append(unit)

        if accepted:
            self.sink.add_verified_units(accepted)

        return DeliveryResult(quote_id=quote_id, accepted=accepted, rejected=rejected)
