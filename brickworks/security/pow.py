"""brickworks.security.pow

Proof-of-work solver.

Hashcash rules: find ``nonce`` such that ``H(data_prefix || nonce)`` starts with
``hash_prefix``. The nonce is a 16-byte big-endian counter appended to the
prefix, starting at zero.

The search is unbounded. The only way out without an answer is a
`CancellationToken`, polled every ``check_interval`` attempts.
"""

from __future__ import annotations

import hashlib
import logging
import threading
import time
from dataclasses import dataclass

from brickworks.core.exceptions import SolverCancelled

logger = logging.getLogger(__name__)

NONCE_SIZE = 16
DEFAULT_ALGORITHM = "sha256"


def increment_nonce(buf: bytearray | memoryview) -> None:
    """Increment ``buf`` in place as a big-endian unsigned integer.

    Carries across byte boundaries; a buffer of all ``0xff`` wraps to zeros.
    The buffer never grows.
    """

    for i in range(len(buf) - 1, -1, -1):
        if buf[i] == 0xFF:
            buf[i] = 0
        else:
            buf[i] += 1
            return


class CancellationToken:
    """Cooperative cancellation: a flag plus an optional monotonic deadline."""

    def __init__(self, *, timeout_s: float | None = None) -> None:
        self._event = threading.Event()
        self._deadline = None if timeout_s is None else time.monotonic() + float(timeout_s)

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self._event.set()
            return True
        return False


@dataclass(frozen=True, slots=True)
class Solution:
    answer: bytes
    attempts: int
    elapsed_s: float


class ProofOfWorkSolver:
    def __init__(self, hash_algorithm: str = DEFAULT_ALGORITHM, *, check_interval: int = 4096) -> None:
        # Fail at construction, not on the first challenge.
        hashlib.new(hash_algorithm)
        if check_interval <= 0:
            raise ValueError("check_interval must be >= 1")
        self.hash_algorithm = hash_algorithm
        self.check_interval = int(check_interval)

    @property
    def digest_size(self) -> int:
        return hashlib.new(self.hash_algorithm).digest_size

    def solve(
        self,
        data_prefix: bytes,
        hash_prefix: bytes,
        *,
        cancel: CancellationToken | None = None,
    ) -> bytes:
        """Return ``data_prefix + nonce`` whose digest starts with ``hash_prefix``."""

        return self.search(data_prefix, hash_prefix, cancel=cancel).answer

    def search(
        self,
        data_prefix: bytes,
        hash_prefix: bytes,
        *,
        cancel: CancellationToken | None = None,
    ) -> Solution:
        if len(hash_prefix) > self.digest_size:
            raise ValueError(
                f"hash prefix of {len(hash_prefix)} bytes cannot match a {self.digest_size}-byte digest"
            )

        start = time.perf_counter()
        content = bytearray(data_prefix) + bytearray(NONCE_SIZE)
        nonce = memoryview(content)[len(data_prefix) :]

        # The prefix is hashed once; each attempt only feeds the nonce.
        base = hashlib.new(self.hash_algorithm)
        base.update(data_prefix)

        target = bytes(hash_prefix)
        interval = self.check_interval
        attempts = 0
        try:
            while True:
                h = base.copy()
                h.update(nonce)
                attempts += 1
                if h.digest().startswith(target):
                    elapsed = time.perf_counter() - start
                    logger.info(
                        "pow_solved",
                        extra={"attempts": attempts, "elapsed_s": round(elapsed, 3)},
                    )
                    return Solution(answer=bytes(content), attempts=attempts, elapsed_s=elapsed)
                increment_nonce(nonce)
                if cancel is not None and attempts % interval == 0 and cancel.cancelled:
                    raise SolverCancelled(attempts)
        finally:
            nonce.release()


def digest_matches(answer: bytes, hash_prefix: bytes, hash_algorithm: str = DEFAULT_ALGORITHM) -> bool:
    """Check a submitted answer the way the factory does."""

    return hashlib.new(hash_algorithm, answer).digest().startswith(hash_prefix)
