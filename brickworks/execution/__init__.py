"""brickworks.execution

Ordering engine: fund, quote, accept, poll, verify, stock.

Everything here talks to the factory through a `Transport` and to the books
through a `StockSink`; neither is owned by this package.
"""

from __future__ import annotations

from brickworks.execution.batch import BatchOrderCoordinator, partition_cart
from brickworks.execution.delivery import DeliveryPoller, DeliveryProcessor
from brickworks.execution.funding import FundingStrategy, PrepaidFunding, ProofOfWorkFunding
from brickworks.execution.lifecycle import OrderLifecycle, OrderStateMachine
from brickworks.execution.restock import Procurement, PurchaseResult

__all__ = [
    "BatchOrderCoordinator",
    "DeliveryPoller",
    "DeliveryProcessor",
    "FundingStrategy",
    "OrderLifecycle",
    "OrderStateMachine",
    "PrepaidFunding",
    "Procurement",
    "ProofOfWorkFunding",
    "PurchaseResult",
    "partition_cart",
]
