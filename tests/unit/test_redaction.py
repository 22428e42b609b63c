from __future__ import annotations

from brickworks.security.redaction import REDACTED, redact_secrets, register_secret, sanitize_for_log


def test_redact_header_and_json_forms() -> None:
    text = 'X-Secret-Key: abcdef123 body={"secret_key": "zzz"} auth=Bearer tok.en-1'
    out = redact_secrets(text)
    assert "abcdef123" not in out
    assert "zzz" not in out
    assert "tok.en-1" not in out
    assert out.count(REDACTED) == 3


def test_registered_secret_is_redacted_anywhere() -> None:
    register_secret("hunter2-factory")
    assert redact_secrets("GET /x failed for hunter2-factory") == f"GET /x failed for {REDACTED}"


def test_short_values_are_not_registered() -> None:
    register_secret("ab")
    assert redact_secrets("about abacus") == "about abacus"


def test_sanitize_for_log_nested() -> None:
    payload = {
        "secret_key": "k",
        "nested": {"X-Secret-Key": "k2", "quote_id": "q1"},
        "list": ["password=letmein"],
    }

    clean = sanitize_for_log(payload)
    assert clean["secret_key"] == REDACTED
    assert clean["nested"]["X-Secret-Key"] == REDACTED
    assert clean["nested"]["quote_id"] == "q1"
    assert "letmein" not in clean["list"][0]
    # Input untouched.
    assert payload["secret_key"] == "k"
