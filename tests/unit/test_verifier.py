from __future__ import annotations

import json
from concurrent.futures import ThreadPoolExecutor

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from brickworks.core.exceptions import HttpStatusError, VerificationFailed
from brickworks.core.models import DeliveredUnit
from brickworks.security.verifier import (
    BrickVerifier,
    decode_serial,
    encode_serial,
    parse_public_key,
    signed_payload,
)
from brickworks.simulator import FactorySimulator
from tests.unit._scripted_transport import ScriptedTransport

KEY_ENDPOINT = "/signature-public-key"


def _forged(unit: DeliveredUnit) -> DeliveredUnit:
    other = Ed25519PrivateKey.generate()
    return unit.model_copy(update={"certificate": other.sign(signed_payload(unit)).hex()})


def test_encode_serial_pads_to_sixteen_bytes() -> None:
    assert encode_serial(1) == bytes(15) + b"\x01"
    assert encode_serial(0) == bytes(16)


def test_encode_serial_keeps_low_order_bytes() -> None:
    big = (0xAB << 128) | 0x01
    assert encode_serial(big) == bytes(15) + b"\x01"


@pytest.mark.parametrize("value", [0, 1, 255, 1 << 64, (1 << 128) - 1])
def test_serial_codec_is_lossless_in_range(value: int) -> None:
    assert decode_serial(encode_serial(value)) == value


def test_encode_serial_rejects_negative() -> None:
    with pytest.raises(ValueError):
        encode_serial(-1)


def test_signed_payload_is_name_then_serial() -> None:
    unit = DeliveredUnit(name="2-2/ffffff", serial="0a", certificate="")
    assert signed_payload(unit) == b"2-2/ffffff" + bytes(15) + b"\x0a"


def test_online_verification_accepts_genuine_unit(factory: FactorySimulator) -> None:
    verifier = BrickVerifier(factory)
    assert verifier.verify(factory.manufacture("2-2/c9cae2")) is True
    assert factory.call_count("GET", KEY_ENDPOINT) == 0


def test_online_verification_rejects_forgery(factory: FactorySimulator) -> None:
    verifier = BrickVerifier(factory)
    assert verifier.verify(_forged(factory.manufacture("2-2/c9cae2"))) is False


def test_offline_fallback_when_factory_unreachable(factory: FactorySimulator) -> None:
    factory.online_verify = False
    verifier = BrickVerifier(factory)

    good = [factory.manufacture("1-1/000000") for _ in range(5)]
    assert all(verifier.verify(u) for u in good)
    assert verifier.verify(_forged(good[0])) is False
    # Key fetched once, then cached.
    assert factory.call_count("GET", KEY_ENDPOINT) == 1


def test_offline_fallback_on_server_error(factory: FactorySimulator) -> None:
    unit = factory.manufacture("1-1/000000")
    transport = ScriptedTransport()
    transport.on("POST", "/verify", HttpStatusError(503, "down", endpoint="/verify"))
    transport.on("GET", KEY_ENDPOINT, json.dumps(factory.public_key_hex))

    assert BrickVerifier(transport).verify(unit) is True


def test_client_error_from_verify_is_a_rejection(factory: FactorySimulator) -> None:
    unit = factory.manufacture("1-1/000000")
    transport = ScriptedTransport()
    transport.on("POST", "/verify", HttpStatusError(400, "bad", endpoint="/verify"))

    assert BrickVerifier(transport).verify(unit) is False
    assert transport.count("GET", KEY_ENDPOINT) == 0


def test_offline_only_verifier_never_posts(factory: FactorySimulator) -> None:
    verifier = BrickVerifier(factory, online=False)
    assert verifier.verify(factory.manufacture("1-1/000000")) is True
    assert factory.call_count("POST", "/verify") == 0


def test_tampered_name_or_garbage_certificate_fails(factory: FactorySimulator) -> None:
    verifier = BrickVerifier(factory, online=False)
    unit = factory.manufacture("1-1/000000")

    assert verifier.verify(unit.model_copy(update={"name": "1-1/ffffff"})) is False
    assert verifier.verify(unit.model_copy(update={"certificate": "zz"})) is False
    assert verifier.verify(unit.model_copy(update={"certificate": ""})) is False


def test_unreachable_key_means_unverified(factory: FactorySimulator) -> None:
    unit = factory.manufacture("1-1/000000")
    transport = ScriptedTransport()
    transport.on("GET", KEY_ENDPOINT, HttpStatusError(500, "", endpoint=KEY_ENDPOINT))

    assert BrickVerifier(transport, online=False).verify(unit) is False


def test_public_key_fetched_once_under_concurrency(factory: FactorySimulator) -> None:
    verifier = BrickVerifier(factory, online=False)
    units = [factory.manufacture("1-1/000000") for _ in range(16)]

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(verifier.verify, units))

    assert all(results)
    assert factory.call_count("GET", KEY_ENDPOINT) == 1


def test_require_valid_and_partition(factory: FactorySimulator) -> None:
    verifier = BrickVerifier(factory)
    good = factory.manufacture("1-1/000000")
    bad = _forged(factory.manufacture("1-1/000000"))

    assert verifier.require_valid(good) is good
    with pytest.raises(VerificationFailed):
        verifier.require_valid(bad)

    verified, rejected = verifier.partition([good, bad])
    assert verified == [good]
    assert rejected == [bad]


def test_parse_public_key_formats() -> None:
    key = Ed25519PrivateKey.generate().public_key()
    raw = key.public_bytes(serialization.Encoding.Raw, serialization.PublicFormat.Raw)
    der = key.public_bytes(serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo)

    for body in (
        raw.hex(),
        json.dumps(der.hex()),
        json.dumps({"public_key": der.hex()}),
        ":".join(f"{b:02X}" for b in der),
    ):
        parsed = parse_public_key(body)
        assert parsed.public_bytes(serialization.Encoding.Raw, serialization.PublicFormat.Raw) == raw


def test_parse_public_key_rejects_other_key_types() -> None:
    ec_key = ec.generate_private_key(ec.SECP256R1()).public_key()
    der = ec_key.public_bytes(serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo)
    with pytest.raises(ValueError):
        parse_public_key(der.hex())
