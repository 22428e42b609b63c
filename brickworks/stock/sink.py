"""brickworks.stock.sink

Where orders and verified bricks end up.

The protocol engine only needs two writes (`record_order`, `add_verified_units`)
and, for restocking, two reads (`low_stock_items`, `all_references`). Each call is
all-or-nothing from the engine's point of view and is never retried by it.

`InMemoryStockLedger` is the reference implementation: tests, simulations and the
CLI use it. Persistent bookkeeping plugs in behind the same protocol.
"""

from __future__ import annotations

import logging
import threading
from collections import Counter
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol, runtime_checkable

from brickworks.core.models import DeliveredUnit
from brickworks.core.time import utc_now

logger = logging.getLogger(__name__)

DEFAULT_LOW_STOCK_THRESHOLD = 50


def normalize_reference(reference: str) -> str:
    """``"2-2/#C9CAE2"`` → ``"2-2/c9cae2"``."""

    if "/" not in reference:
        return reference
    shape, color = reference.rsplit("/", 1)
    return f"{shape}/{color.lstrip('#').lower()}"


@runtime_checkable
class StockSink(Protocol):
    def record_order(self, quote_id: str, total_price: float, cart: Mapping[str, int]) -> None: ...

    def add_verified_units(self, units: list[DeliveredUnit]) -> None: ...


@runtime_checkable
class StockReport(Protocol):
    def low_stock_items(self) -> dict[str, int]: ...

    def all_references(self) -> list[str]: ...


@dataclass(frozen=True, slots=True)
class RecordedOrder:
    quote_id: str
    total_price: float
    cart: dict[str, int]
    recorded_at: datetime = field(default_factory=utc_now)


class InMemoryStockLedger:
    """Thread-safe in-memory stock book."""

    def __init__(
        self,
        initial: Mapping[str, int] | None = None,
        *,
        low_stock_threshold: int = DEFAULT_LOW_STOCK_THRESHOLD,
    ) -> None:
        self.low_stock_threshold = int(low_stock_threshold)
        self._initial: dict[str, int] = {normalize_reference(k): int(v) for k, v in (initial or {}).items()}
        self._orders: list[RecordedOrder] = []
        self._units: dict[str, DeliveredUnit] = {}  # serial -> unit
        self._lock = threading.Lock()

    # -- StockSink -------------------------------------------------------------

    def record_order(self, quote_id: str, total_price: float, cart: Mapping[str, int]) -> None:
        if not cart:
            return
        items = {normalize_reference(k): int(v) for k, v in cart.items()}
        with self._lock:
            if any(o.quote_id == quote_id for o in self._orders):
                raise ValueError(f"order {quote_id} already recorded")
            self._orders.append(RecordedOrder(quote_id=quote_id, total_price=float(total_price), cart=items))
        logger.info("order_recorded", extra={"quote_id": quote_id, "total_price": total_price, "references": len(items)})

    def add_verified_units(self, units: list[DeliveredUnit]) -> None:
        if not units:
            return
        with self._lock:
            added = 0
            for unit in units:
                # Serials are unique; a re-delivered unit is not new stock.
                if unit.serial in self._units:
                    continue
                self._units[unit.serial] = unit
                added += 1
        logger.info("units_added", extra={"added": added, "received": len(units)})

    # -- StockReport -----------------------------------------------------------

    def stock_counts(self) -> dict[str, int]:
        with self._lock:
            counts: Counter[str] = Counter(self._initial)
            for unit in self._units.values():
                counts[normalize_reference(unit.name)] += 1
        return dict(counts)

    def low_stock_items(self) -> dict[str, int]:
        return {ref: n for ref, n in self.stock_counts().items() if n < self.low_stock_threshold}

    def all_references(self) -> list[str]:
        return sorted(self.stock_counts())

    # -- Inspection ------------------------------------------------------------

    @property
    def orders(self) -> list[RecordedOrder]:
        with self._lock:
            return list(self._orders)

    @property
    def units(self) -> list[DeliveredUnit]:
        with self._lock:
            return list(self._units.values())

    def add_references(self, references: Iterable[str]) -> None:
        with self._lock:
            for ref in references:
                self._initial.setdefault(normalize_reference(ref), 0)
