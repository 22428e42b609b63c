"""brickworks.security

Proof-of-work, certificate checks, secret redaction.

`verifier` depends on the transport layer and is imported from its own module.
"""

from brickworks.security.pow import CancellationToken, ProofOfWorkSolver
from brickworks.security.redaction import redact_secrets, register_secret, sanitize_for_log

__all__ = [
    "CancellationToken",
    "ProofOfWorkSolver",
    "redact_secrets",
    "register_secret",
    "sanitize_for_log",
]
