"""brickworks.execution.funding

Funding strategies: how the account balance gets from "not enough" to "enough".

The contract is one call, ``fund(amount_needed, current_balance, transport)``.
The order lifecycle does not care how the money arrives.

Proof-of-work mining loop:
- GET  /billing/challenge
- solve locally
- POST /billing/challenge-answer
- add the advertised reward to a *local estimate*

The estimate only decides when to stop mining. It is not the balance; re-read
``/billing/balance`` before any decision that spends money.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from brickworks.core.client import Transport
from brickworks.core.exceptions import InsufficientFunds
from brickworks.core.models import AccountBalance, Challenge, ChallengeSolution
from brickworks.security.pow import CancellationToken, ProofOfWorkSolver

logger = logging.getLogger(__name__)

CHALLENGE_ENDPOINT = "/billing/challenge"
ANSWER_ENDPOINT = "/billing/challenge-answer"
BALANCE_ENDPOINT = "/billing/balance"


def read_balance(transport: Transport) -> int:
    """Authoritative balance, straight from the factory."""

    return AccountBalance.model_validate_json(transport.send(BALANCE_ENDPOINT, "GET", None)).value


@runtime_checkable
class FundingStrategy(Protocol):
    def fund(self, amount_needed: float, current_balance: float, transport: Transport) -> float:
        """Block until the (estimated) balance reaches ``amount_needed``; return the estimate."""
        ...


class ProofOfWorkFunding:
    """Mine credits by solving factory challenges."""

    def __init__(
        self,
        solver: ProofOfWorkSolver | None = None,
        *,
        cancel: CancellationToken | None = None,
    ) -> None:
        self.solver = solver or ProofOfWorkSolver()
        self.cancel = cancel

    def fund(self, amount_needed: float, current_balance: float, transport: Transport) -> float:
        estimate = float(current_balance)
        while estimate < amount_needed:
            logger.info(
                "pow_funding_round",
                extra={"balance_estimate": estimate, "amount_needed": amount_needed},
            )
            reward = self.refill_once(transport)
            if reward > 0:
                estimate += reward
            else:
                # No advertised reward: only the server knows what the answer was worth.
                estimate = float(read_balance(transport))
        logger.info("pow_funding_done", extra={"balance_estimate": estimate})
        return estimate

    def refill_once(self, transport: Transport) -> float:
        """Run one challenge round; return the advertised reward (0 if none)."""

        challenge = Challenge.model_validate_json(transport.send(CHALLENGE_ENDPOINT, "GET", None))
        logger.info(
            "pow_challenge_received",
            extra={"hash_prefix": challenge.hash_prefix, "reward": challenge.reward},
        )

        answer = self.solver.solve(challenge.data_prefix_bytes, challenge.hash_prefix_bytes, cancel=self.cancel)
        solution = ChallengeSolution.for_challenge(challenge, answer)
        transport.send(ANSWER_ENDPOINT, "POST", solution.model_dump_json())

        reward = float(challenge.reward or 0.0)
        if reward <= 0:
            logger.warning("pow_challenge_without_reward", extra={"hash_prefix": challenge.hash_prefix})
        return reward


class PrepaidFunding:
    """Direct-balance payment: never mines, fails fast when the account is short."""

    def fund(self, amount_needed: float, current_balance: float, transport: Transport) -> float:
        if current_balance < amount_needed:
            raise InsufficientFunds(
                f"balance {current_balance} below {amount_needed}; top up the account",
                endpoint=None,
            )
        return float(current_balance)
