"""brickworks.core.models

Wire models for the factory API.

Field names match the remote service exactly; pydantic owns the IO boundary.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from brickworks.core.time import decode_manufacturing_time

DEFAULT_COLOR = "000000"


def _hex_field(v: Any) -> str:
    s = str(v).strip().lower()
    if len(s) % 2:
        raise ValueError("hex string must have an even length")
    bytes.fromhex(s)
    return s


class Challenge(BaseModel):
    """Proof-of-work challenge issued by ``/billing/challenge``."""

    data_prefix: str
    hash_prefix: str
    reward: float | None = None

    model_config = {"frozen": True}

    @field_validator("data_prefix", "hash_prefix", mode="before")
    @classmethod
    def must_be_hex(cls, v: Any) -> str:
        return _hex_field(v)

    @field_validator("reward", mode="before")
    @classmethod
    def blank_reward_is_none(cls, v: Any) -> Any:
        # The service sends the reward as a JSON string.
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def data_prefix_bytes(self) -> bytes:
        return bytes.fromhex(self.data_prefix)

    @property
    def hash_prefix_bytes(self) -> bytes:
        return bytes.fromhex(self.hash_prefix)


class ChallengeSolution(BaseModel):
    """Submitted to ``/billing/challenge-answer``."""

    data_prefix: str
    hash_prefix: str
    answer: str

    model_config = {"frozen": True}

    @classmethod
    def for_challenge(cls, challenge: Challenge, answer: bytes) -> ChallengeSolution:
        return cls(data_prefix=challenge.data_prefix, hash_prefix=challenge.hash_prefix, answer=answer.hex())


class Quote(BaseModel):
    id: str
    price: float = Field(ge=0)

    model_config = {"frozen": True}


class DeliveredUnit(BaseModel):
    """A manufactured brick as delivered by ``/ordering/deliver/{id}``."""

    name: str
    serial: str
    certificate: str

    model_config = {"frozen": True}

    @property
    def shape(self) -> str:
        if "/" in self.name:
            return self.name.rsplit("/", 1)[0]
        return self.name

    @property
    def color(self) -> str:
        if "/" in self.name:
            return self.name.rsplit("/", 1)[1]
        return DEFAULT_COLOR

    @property
    def manufactured_at(self) -> datetime | None:
        return decode_manufacturing_time(self.serial)


class Delivery(BaseModel):
    completion_date: Any = None
    built_blocks: list[DeliveredUnit] | None = None

    @property
    def units(self) -> list[DeliveredUnit]:
        return list(self.built_blocks or [])


class AccountBalance(BaseModel):
    balance: float | None = None
    amount: float | None = None

    @property
    def value(self) -> int:
        # Older deployments answer with "amount" instead of "balance".
        raw = self.balance if self.balance is not None else self.amount
        if raw is None:
            raise ValueError("balance response has neither 'balance' nor 'amount'")
        return int(raw)
