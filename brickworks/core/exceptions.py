"""brickworks.core.exceptions

Errors are part of the interface.

Callers branch on type, never on message text.
"""

from __future__ import annotations

from collections.abc import Mapping


class BrickworksError(Exception):
    """Base exception for brickworks."""


class ConfigError(BrickworksError):
    """Configuration is missing, invalid, or inconsistent."""


class FactoryError(BrickworksError):
    """The factory protocol failed."""


class NetworkError(FactoryError):
    """The factory could not be reached (connection refused, timeout, reset)."""


class HttpStatusError(FactoryError):
    """The factory answered, and the answer was an error status."""

    def __init__(self, status_code: int, body: str = "", *, endpoint: str | None = None) -> None:
        self.status_code = int(status_code)
        self.body = body
        self.endpoint = endpoint
        where = f" on {endpoint}" if endpoint else ""
        detail = f": {body}" if body else ""
        super().__init__(f"HTTP {self.status_code}{where}{detail}")


class InsufficientFunds(HttpStatusError):
    """Payment required, and one funding round did not fix it."""

    def __init__(self, body: str = "", *, endpoint: str | None = None) -> None:
        super().__init__(402, body, endpoint=endpoint)


class InvalidReference(HttpStatusError):
    """The factory refused to quote a cart (unknown shape/color reference)."""

    def __init__(
        self,
        status_code: int,
        body: str = "",
        *,
        cart: Mapping[str, int] | None = None,
        endpoint: str | None = None,
    ) -> None:
        super().__init__(status_code, body, endpoint=endpoint)
        self.cart = dict(cart or {})


class QuoteExpired(FactoryError):
    """The quote is gone. Request a new one."""

    def __init__(self, quote_id: str) -> None:
        super().__init__(f"quote {quote_id} expired or unknown")
        self.quote_id = quote_id


class InvalidOrderTransition(FactoryError):
    """An order tried to move to a state its current state does not allow."""


class DeliveryTimeout(FactoryError):
    """The delivery deadline passed before every unit arrived."""

    def __init__(self, quote_id: str, received: int, expected: int) -> None:
        super().__init__(f"delivery of {quote_id} timed out ({received}/{expected})")
        self.quote_id = quote_id
        self.received = received
        self.expected = expected


class SecurityError(BrickworksError):
    """Security invariant violated."""


class VerificationFailed(SecurityError):
    """A delivered unit does not carry a valid factory signature."""

    def __init__(self, serial: str, reason: str = "") -> None:
        super().__init__(f"unit {serial} failed verification" + (f": {reason}" if reason else ""))
        self.serial = serial
        self.reason = reason


class Cancelled(BrickworksError):
    """A blocking loop was cancelled through its token."""

    def __init__(self, attempts: int, what: str = "operation") -> None:
        super().__init__(f"{what} cancelled after {attempts} attempts")
        self.attempts = attempts


class SolverCancelled(Cancelled):
    """Proof-of-work search stopped before finding an answer."""

    def __init__(self, attempts: int) -> None:
        super().__init__(attempts, "proof-of-work")
