from __future__ import annotations

from chargelog._redact import redact_for_log


def test_redact_for_log_redacts_sensitive_keys() -> None:
    payload = {
        "localId": "uid-1",
        "idToken": "ID",
        "refreshToken": "REF",
        "password": "pw",
        "nested": {"email": "driver@example.com", "notes": "cold day"},
    }

    redacted = redact_for_log(payload)
    assert redacted["localId"] == "uid-1"
    assert redacted["idToken"] == "<redacted>"
    assert redacted["refreshToken"] == "<redacted>"
    assert redacted["password"] == "<redacted>"
    assert redacted["nested"]["email"] == "<redacted>"
    assert redacted["nested"]["notes"] == "cold day"


def test_redact_for_log_truncates_long_strings() -> None:
    long_value = "x" * 600
    redacted = redact_for_log({"value": long_value}, max_string=10)
    assert redacted["value"].startswith("x" * 10)
    assert "<truncated>" in redacted["value"]


def test_redact_for_log_caps_long_lists() -> None:
    redacted = redact_for_log({"visits": list(range(25))})
    assert redacted["visits"][:20] == list(range(20))
    assert redacted["visits"][-1] == "<5 more>"


def test_redact_for_log_leaves_input_untouched() -> None:
    payload = {"token": "secret", "rows": [{"password": "pw"}]}
    redact_for_log(payload)
    assert payload == {"token": "secret", "rows": [{"password": "pw"}]}


def test_redact_for_log_masks_federated_post_body() -> None:
    redacted = redact_for_log({"postBody": "id_token=abc&providerId=google.com", "requestUri": "http://localhost"})
    assert redacted == {"postBody": "<redacted>", "requestUri": "http://localhost"}
