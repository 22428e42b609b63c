"""brickworks.security.verifier

Brick authenticity.

Every delivered unit is signed by the factory:

    certificate = Ed25519.sign(ascii(name) || serial_as_16_bytes_big_endian)

Verification asks the factory first (``POST /verify``). If the factory cannot be
reached, the signature is checked locally against the factory's public key,
fetched once from ``/signature-public-key`` and cached.

`verify` never raises. A unit that cannot be proven authentic is not authentic.
"""

from __future__ import annotations

import json
import logging
import re
import threading

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from brickworks.core.client import Transport
from brickworks.core.exceptions import HttpStatusError, NetworkError, VerificationFailed
from brickworks.core.models import DeliveredUnit

logger = logging.getLogger(__name__)

SERIAL_SIZE = 16
_SERIAL_MASK = (1 << (8 * SERIAL_SIZE)) - 1
_NON_HEX = re.compile(r"[^0-9a-fA-F]")

VERIFY_ENDPOINT = "/verify"
PUBLIC_KEY_ENDPOINT = "/signature-public-key"

# The factory answered but cannot judge (no such route, or it is down): check offline.
_ONLINE_UNAVAILABLE = frozenset({404, 405, 500, 501, 502, 503, 504})


def encode_serial(value: int) -> bytes:
    """Render a serial as exactly 16 big-endian bytes.

    Shorter values are left-padded with zeros; larger values keep their low-order
    16 bytes.
    """

    if value < 0:
        raise ValueError("serial must be non-negative")
    return (value & _SERIAL_MASK).to_bytes(SERIAL_SIZE, "big")


def decode_serial(raw: bytes) -> int:
    return int.from_bytes(raw, "big")


def signed_payload(unit: DeliveredUnit) -> bytes:
    """Rebuild the exact byte sequence the factory signed for ``unit``."""

    return unit.name.encode("ascii") + encode_serial(int(unit.serial, 16))


def parse_public_key(body: str) -> Ed25519PublicKey:
    """Parse the hex-encoded key served by the factory.

    Accepts a bare or JSON-quoted hex string, or a JSON object with a
    ``public_key``/``key`` field. The key is either DER SubjectPublicKeyInfo or a
    raw 32-byte Ed25519 key.
    """

    text = body.strip()
    try:
        decoded = json.loads(text)
    except ValueError:
        decoded = text
    if isinstance(decoded, dict):
        decoded = decoded.get("public_key") or decoded.get("key") or ""
    key_hex = _NON_HEX.sub("", str(decoded))
    raw = bytes.fromhex(key_hex)

    if len(raw) == 32:
        return Ed25519PublicKey.from_public_bytes(raw)
    key = serialization.load_der_public_key(raw)
    if not isinstance(key, Ed25519PublicKey):
        raise ValueError(f"factory key is {type(key).__name__}, expected Ed25519")
    return key


class BrickVerifier:
    """Online-first, offline-fallback certificate check.

    The public key cache is the only shared mutable state in the ordering path;
    it is populated at most once, under a lock.
    """

    def __init__(self, transport: Transport, *, online: bool = True) -> None:
        self._transport = transport
        self._online = online
        self._public_key: Ed25519PublicKey | None = None
        self._key_lock = threading.Lock()

    @property
    def public_key(self) -> Ed25519PublicKey:
        key = self._public_key
        if key is not None:
            return key
        with self._key_lock:
            if self._public_key is None:
                body = self._transport.send(PUBLIC_KEY_ENDPOINT, "GET", None)
                self._public_key = parse_public_key(body)
                logger.info("factory_public_key_cached")
            return self._public_key

    def verify(self, unit: DeliveredUnit) -> bool:
        if not self._online:
            return self.verify_offline(unit)

        try:
            self._transport.send(VERIFY_ENDPOINT, "POST", unit.model_dump_json())
            return True
        except NetworkError as e:
            logger.warning("online_verification_unreachable", extra={"serial": unit.serial, "error": str(e)})
            return self.verify_offline(unit)
        except HttpStatusError as e:
            if e.status_code in _ONLINE_UNAVAILABLE:
                logger.warning(
                    "online_verification_unavailable",
                    extra={"serial": unit.serial, "status": e.status_code},
                )
                return self.verify_offline(unit)
            logger.warning("unit_rejected_by_factory", extra={"serial": unit.serial, "status": e.status_code})
            return False

    def verify_offline(self, unit: DeliveredUnit) -> bool:
        try:
            signature = bytes.fromhex(unit.certificate)
            self.public_key.verify(signature, signed_payload(unit))
            return True
        except InvalidSignature:
            logger.warning("unit_signature_invalid", extra={"serial": unit.serial, "unit_name": unit.name})
            return False
        except Exception as e:  # noqa: BLE001 - any parse/fetch failure means "not proven"
            logger.warning(
                "offline_verification_error",
                extra={"serial": unit.serial, "error": f"{type(e).__name__}: {e}"},
            )
            return False

    def require_valid(self, unit: DeliveredUnit) -> DeliveredUnit:
        if not self.verify(unit):
            raise VerificationFailed(unit.serial, "signature not accepted")
        return unit

    def partition(self, units: list[DeliveredUnit]) -> tuple[list[DeliveredUnit], list[DeliveredUnit]]:
        """Split ``units`` into (verified, rejected), preserving order."""

        verified: list[DeliveredUnit] = []
        rejected: list[DeliveredUnit] = []
        for unit in units:
            (verified if self.verify(unit) else rejected).append(unit)
        return verified, rejected
