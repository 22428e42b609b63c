from __future__ import annotations

import hashlib

import pytest

from brickworks.core.exceptions import Cancelled, SolverCancelled
from brickworks.security.pow import (
    NONCE_SIZE,
    CancellationToken,
    ProofOfWorkSolver,
    digest_matches,
    increment_nonce,
)


def test_increment_nonce_carries_across_bytes() -> None:
    buf = bytearray([0x00, 0x00, 0xFF])
    increment_nonce(buf)
    assert buf == bytearray([0x00, 0x01, 0x00])

    buf = bytearray([0x00, 0xFF, 0xFF])
    increment_nonce(buf)
    assert buf == bytearray([0x01, 0x00, 0x00])


def test_increment_nonce_wraps_without_growing() -> None:
    buf = bytearray([0xFF] * NONCE_SIZE)
    increment_nonce(buf)
    assert buf == bytearray(NONCE_SIZE)
    assert len(buf) == NONCE_SIZE


def test_empty_prefix_matches_first_candidate() -> None:
    solver = ProofOfWorkSolver()
    sol = solver.search(b"\x01\x02", b"")
    assert sol.attempts == 1
    assert sol.answer == b"\x01\x02" + bytes(NONCE_SIZE)


def test_solution_starts_with_data_prefix_and_matches_hash_prefix() -> None:
    solver = ProofOfWorkSolver()
    data_prefix = bytes.fromhex("deadbeef")
    hash_prefix = bytes.fromhex("00")

    answer = solver.solve(data_prefix, hash_prefix)

    assert answer.startswith(data_prefix)
    assert len(answer) == len(data_prefix) + NONCE_SIZE
    assert hashlib.sha256(answer).digest().startswith(hash_prefix)
    assert digest_matches(answer, hash_prefix)


def test_solver_returns_first_matching_nonce() -> None:
    solver = ProofOfWorkSolver()
    data_prefix = b"brick"
    hash_prefix = bytes.fromhex("0f")

    sol = solver.search(data_prefix, hash_prefix)

    nonce = int.from_bytes(sol.answer[len(data_prefix) :], "big")
    assert nonce == sol.attempts - 1
    for earlier in range(nonce):
        candidate = data_prefix + earlier.to_bytes(NONCE_SIZE, "big")
        assert not hashlib.sha256(candidate).digest().startswith(hash_prefix)


def test_other_algorithms_are_supported() -> None:
    solver = ProofOfWorkSolver("sha3_256")
    answer = solver.solve(b"x", b"\x00")
    assert hashlib.sha3_256(answer).digest().startswith(b"\x00")


def test_unknown_algorithm_fails_at_construction() -> None:
    with pytest.raises(ValueError):
        ProofOfWorkSolver("not-a-hash")


def test_prefix_longer_than_digest_is_rejected() -> None:
    solver = ProofOfWorkSolver()
    with pytest.raises(ValueError):
        solver.solve(b"", bytes(solver.digest_size + 1))


def test_cancellation_stops_the_search() -> None:
    solver = ProofOfWorkSolver(check_interval=8)
    token = CancellationToken()
    token.cancel()

    # A 32-byte all-zero digest will not be found.
    with pytest.raises(SolverCancelled) as e:
        solver.solve(b"x", bytes(32), cancel=token)
    assert e.value.attempts == 8
    assert isinstance(e.value, Cancelled)


def test_cancellation_token_deadline() -> None:
    token = CancellationToken(timeout_s=0.0)
    assert token.cancelled is True
    assert CancellationToken().cancelled is False
