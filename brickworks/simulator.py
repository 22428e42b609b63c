"""brickworks.simulator

In-memory factory.

Implements the factory's HTTP surface behind the `Transport` capability so the
whole ordering engine runs without a network: billing challenges, quotes,
payment, progressive delivery, online verification and the signing key.

Units are signed with a real Ed25519 key; offline verification against the
served public key works exactly as against the real factory.
"""

from __future__ import annotations

import hashlib
import json
import os
import re
import threading
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from brickworks.core.exceptions import HttpStatusError, NetworkError
from brickworks.core.models import ChallengeSolution, DeliveredUnit
from brickworks.core.time import encode_manufacturing_time, utc_now
from brickworks.security.verifier import SERIAL_SIZE, signed_payload

_REFERENCE = re.compile(r"^[^/\s]+/[0-9a-f]{6}$")


@dataclass(slots=True)
class SimulatedQuote:
    id: str
    cart: dict[str, int]
    price: float
    accepted: bool = False
    expired: bool = False
    units: list[DeliveredUnit] = field(default_factory=list)
    visible: int = 0


class FactorySimulator:
    """Test double for the factory API. Thread-safe."""

    def __init__(
        self,
        *,
        catalog: Iterable[str] | None = None,
        unit_price: float = 10.0,
        balance: float = 0.0,
        reward: float | None = 10.0,
        difficulty: int = 1,
        units_per_poll: int | None = None,
        online_verify: bool = True,
        hash_algorithm: str = "sha256",
        signing_key: Ed25519PrivateKey | None = None,
    ) -> None:
        self.catalog = None if catalog is None else set(catalog)
        self.unit_price = float(unit_price)
        self.balance = float(balance)
        self.reward = reward
        self.difficulty = int(difficulty)
        self.units_per_poll = units_per_poll
        self.online_verify = online_verify
        self.hash_algorithm = hash_algorithm
        self.signing_key = signing_key or Ed25519PrivateKey.generate()

        self.quotes: dict[str, SimulatedQuote] = {}
        self.calls: list[tuple[str, str]] = []
        self._challenges: dict[str, dict[str, Any]] = {}
        self._faults: dict[tuple[str, str], list[Exception]] = {}
        self._lock = threading.RLock()

    # ---------------------------------------------------------------------------
    # Transport
    # ---------------------------------------------------------------------------

    def send(self, endpoint: str, method: str, body: str | None = None) -> str:
        method = method.upper()
        with self._lock:
            self.calls.append((method, endpoint))
            fault = self._pop_fault(method, endpoint)
            if fault is not None:
                raise fault

            if method == "GET" and endpoint == "/billing/balance":
                return self._json({"balance": str(self.balance)})
            if method == "GET" and endpoint == "/billing/challenge":
                return self._issue_challenge()
            if method == "POST" and endpoint == "/billing/challenge-answer":
                return self._answer(endpoint, body)
            if method == "POST" and endpoint == "/ordering/quote-request":
                return self._quote(endpoint, body)
            if method == "POST" and endpoint.startswith("/ordering/order/"):
                return self._accept(endpoint, endpoint.rsplit("/", 1)[1])
            if method == "GET" and endpoint.startswith("/ordering/deliver/"):
                return self._deliver(endpoint, endpoint.rsplit("/", 1)[1])
            if method == "POST" and endpoint == "/verify":
                return self._verify(endpoint, body)
            if method == "GET" and endpoint == "/signature-public-key":
                return self._json(self.public_key_hex)
            raise HttpStatusError(404, "no such route", endpoint=endpoint)

    # ---------------------------------------------------------------------------
    # Test controls
    # ---------------------------------------------------------------------------

    @property
    def public_key_hex(self) -> str:
        der = self.signing_key.public_key().public_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        return der.hex()

    def fail_next(self, method: str, endpoint: str, error: Exception, *, times: int = 1) -> None:
        """Raise ``error`` on the next ``times`` calls to (method, endpoint)."""

        with self._lock:
            self._faults.setdefault((method.upper(), endpoint), []).extend([error] * times)

    def expire_quote(self, quote_id: str) -> None:
        with self._lock:
            self.quotes[quote_id].expired = True

    def call_count(self, method: str, endpoint: str) -> int:
        with self._lock:
            return sum(1 for c in self.calls if c == (method.upper(), endpoint))

    def manufacture(self, name: str) -> DeliveredUnit:
        header = encode_manufacturing_time(utc_now())
        serial = (header + os.urandom(SERIAL_SIZE - len(header))).hex()
        unsigned = DeliveredUnit(name=name, serial=serial, certificate="")
        certificate = self.signing_key.sign(signed_payload(unsigned)).hex()
        return DeliveredUnit(name=name, serial=serial, certificate=certificate)

    # ---------------------------------------------------------------------------
    # Routes
    # ---------------------------------------------------------------------------

    @staticmethod
    def _json(obj: Any) -> str:
        return json.dumps(obj)

    def _pop_fault(self, method: str, endpoint: str) -> Exception | None:
        queue = self._faults.get((method, endpoint))
        if not queue:
            return None
        return queue.pop(0)

    def _issue_challenge(self) -> str:
        data_prefix = os.urandom(16).hex()
        hash_prefix = os.urandom(self.difficulty).hex()
        self._challenges[data_prefix] = {"hash_prefix": hash_prefix, "reward": self.reward}
        payload: dict[str, Any] = {"data_prefix": data_prefix, "hash_prefix": hash_prefix}
        if self.reward is not None:
            payload["reward"] = str(self.reward)
        return self._json(payload)

    def _answer(self, endpoint: str, body: str | None) -> str:
        solution = ChallengeSolution.model_validate_json(body or "{}")
        issued = self._challenges.pop(solution.data_prefix, None)
        if issued is None or issued["hash_prefix"] != solution.hash_prefix:
            raise HttpStatusError(400, "unknown or already used challenge", endpoint=endpoint)

        answer = bytes.fromhex(solution.answer)
        digest = hashlib.new(self.hash_algorithm, answer).digest()
        if not answer.startswith(bytes.fromhex(solution.data_prefix)) or not digest.startswith(
            bytes.fromhex(solution.hash_prefix)
        ):
            raise HttpStatusError(400, "wrong answer", endpoint=endpoint)

        self.balance += float(issued["reward"] or 0.0)
        return self._json({"status": "ok"})

    def _quote(self, endpoint: str, body: str | None) -> str:
        cart = json.loads(body or "{}")
        if not isinstance(cart, dict) or not cart:
            raise HttpStatusError(400, "empty cart", endpoint=endpoint)
        for ref, qty in cart.items():
            known = _REFERENCE.match(ref) if self.catalog is None else ref in self.catalog
            if not known:
                raise HttpStatusError(400, f"unknown reference {ref}", endpoint=endpoint)
            if not isinstance(qty, int) or qty <= 0:
                raise HttpStatusError(400, f"bad quantity for {ref}", endpoint=endpoint)

        quote_id = uuid.uuid4().hex
        price = self.unit_price * sum(cart.values())
        self.quotes[quote_id] = SimulatedQuote(id=quote_id, cart=dict(cart), price=price)
        return self._json({"id": quote_id, "price": price})

    def _accept(self, endpoint: str, quote_id: str) -> str:
        quote = self.quotes.get(quote_id)
        if quote is None or quote.expired:
            raise HttpStatusError(404, "quote not found", endpoint=endpoint)
        if quote.accepted:
            raise HttpStatusError(409, "quote already accepted", endpoint=endpoint)
        if self.balance < quote.price:
            raise HttpStatusError(402, f"balance {self.balance} < price {quote.price}", endpoint=endpoint)

        self.balance -= quote.price
        quote.accepted = True
        quote.units = [self.manufacture(ref) for ref, qty in quote.cart.items() for _ in range(qty)]
        return self._json({"status": "accepted"})

    def _deliver(self, endpoint: str, quote_id: str) -> str:
        quote = self.quotes.get(quote_id)
        if quote is None:
            raise HttpStatusError(404, "order not found", endpoint=endpoint)
        if not quote.accepted:
            return self._json({"completion_date": None, "built_blocks": None})

        step = self.units_per_poll or len(quote.units)
        quote.visible = min(len(quote.units), quote.visible + step)
        built = [u.model_dump() for u in quote.units[: quote.visible]]
        complete = quote.visible >= len(quote.units)
        return self._json(
            {
                "completion_date": utc_now().isoformat() if complete else None,
                "built_blocks": built,
            }
        )

    def _verify(self, endpoint: str, body: str | None) -> str:
        if not self.online_verify:
            raise NetworkError(f"POST {endpoint}: verification service unreachable")
        unit = DeliveredUnit.model_validate_json(body or "{}")
        try:
            self.signing_key.public_key().verify(bytes.fromhex(unit.certificate), signed_payload(unit))
        except Exception as e:  # noqa: BLE001 - any failure is a rejection
            raise HttpStatusError(400, "invalid certificate", endpoint=endpoint) from e
        return self._json({"valid": True})
