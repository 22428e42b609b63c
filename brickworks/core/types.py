"""brickworks.core.types

Lightweight dataclasses for runtime objects.

Pydantic models own IO boundaries; dataclasses keep runtime lean.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum

from brickworks.core.models import DeliveredUnit

Cart = Mapping[str, int]


def cart_total(cart: Cart) -> int:
    return sum(int(q) for q in cart.values())


class OrderState(StrEnum):
    QUOTED = "quoted"
    ACCEPTED = "accepted"
    DELIVERING = "delivering"
    DELIVERED = "delivered"
    ABORTED = "aborted"


@dataclass(frozen=True, slots=True)
class OrderTransition:
    previous: OrderState
    new: OrderState
    reason: str
    ts: datetime


@dataclass(slots=True)
class FactoryOrder:
    """Local view of one quote as it moves through its lifecycle."""

    quote_id: str
    price: float
    cart: dict[str, int]
    state: OrderState = OrderState.QUOTED
    history: list[OrderTransition] = field(default_factory=list)

    @property
    def expected_units(self) -> int:
        return cart_total(self.cart)


@dataclass(frozen=True, slots=True)
class DeliveryResult:
    quote_id: str
    accepted: list[DeliveredUnit]
    rejected: list[DeliveredUnit]

    @property
    def received(self) -> int:
        return len(self.accepted) + len(self.rejected)


@dataclass(frozen=True, slots=True)
class BatchOutcome:
    """One successfully ordered group (bulk or degraded)."""

    quote_id: str
    price: float
    cart: dict[str, int]
    degraded: bool = False
    delivery: DeliveryResult | None = None
    error: str | None = None  # record or delivery failure after the order was paid


@dataclass(slots=True)
class BatchReport:
    ordered: list[BatchOutcome] = field(default_factory=list)
    dropped: dict[str, str] = field(default_factory=dict)  # reference -> reason
    failed: list[dict[str, int]] = field(default_factory=list)  # groups that could not be ordered at all

    @property
    def ordered_references(self) -> set[str]:
        return {ref for outcome in self.ordered for ref in outcome.cart}

    @property
    def units_accepted(self) -> int:
        return sum(len(o.delivery.accepted) for o in self.ordered if o.delivery is not None)
