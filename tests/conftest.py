from __future__ import annotations

import sys
from pathlib import Path

import pytest

# uv/pytest may run without installing the project; ensure repo root is importable.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from brickworks.execution.delivery import DeliveryPoller, DeliveryProcessor  # noqa: E402
from brickworks.execution.funding import ProofOfWorkFunding  # noqa: E402
from brickworks.execution.lifecycle import OrderLifecycle  # noqa: E402
from brickworks.security.pow import ProofOfWorkSolver  # noqa: E402
from brickworks.security.verifier import BrickVerifier  # noqa: E402
from brickworks.simulator import FactorySimulator  # noqa: E402
from brickworks.stock.sink import InMemoryStockLedger  # noqa: E402


@pytest.fixture()
def factory() -> FactorySimulator:
    """In-memory factory: 10 credits per unit, 10 credits per solved challenge."""

    return FactorySimulator(unit_price=10.0, reward=10.0, difficulty=1)


@pytest.fixture()
def solver() -> ProofOfWorkSolver:
    return ProofOfWorkSolver(check_interval=64)


@pytest.fixture()
def lifecycle(factory: FactorySimulator, solver: ProofOfWorkSolver) -> OrderLifecycle:
    return OrderLifecycle(factory, funding=ProofOfWorkFunding(solver), refill_amount=30)


@pytest.fixture()
def ledger() -> InMemoryStockLedger:
    return InMemoryStockLedger()


@pytest.fixture()
def sleeps() -> list[float]:
    return []


@pytest.fixture()
def poller(lifecycle: OrderLifecycle, sleeps: list[float]) -> DeliveryPoller:
    return DeliveryPoller(lifecycle, interval_s=1.0, sleep=sleeps.append)


@pytest.fixture()
def delivery(
    poller: DeliveryPoller,
    factory: FactorySimulator,
    ledger: InMemoryStockLedger,
) -> DeliveryProcessor:
    return DeliveryProcessor(poller, BrickVerifier(factory), ledger)
