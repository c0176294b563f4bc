import pytest

from evntly_api.app.core import security
from evntly_api.app.core.config import settings
from evntly_api.app.core.security import (
    create_access_token,
    decode_access_token,
    hmac_sha256_hex,
    normalize_domain,
    signatures_match,
)


def test_token_round_trip():
    token = create_access_token({"organizer_id": 7})
    payload = decode_access_token(token)
    assert payload["organizer_id"] == 7
    assert payload["aud"] == settings.token_audience


def test_expired_token_is_rejected(monkeypatch):
    token = create_access_token({"organizer_id": 7}, expires_delta=60)
    real_time = security.time.time
    monkeypatch.setattr(security.time, "time", lambda: real_time() + 120)
    assert decode_access_token(token) is None


def test_tampered_token_is_rejected():
    header, payload, signature = create_access_token({"organizer_id": 7}).split(".")
    other_payload = create_access_token({"organizer_id": 8}).split(".")[1]
    assert decode_access_token(f"{header}.{other_payload}.{signature}") is None
    assert decode_access_token("garbage") is None


def test_token_for_other_audience_is_rejected(monkeypatch):
    token = create_access_token({"organizer_id": 7})
    monkeypatch.setattr(settings, "token_audience", "someone-else")
    assert decode_access_token(token) is None


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("https://www.Yoga.example.com/", "yoga.example.com"),
        ("http://yoga.example.com:8080/path", "yoga.example.com"),
        ("yoga.example.com", "yoga.example.com"),
        ("  WWW.yoga.example.com  ", "yoga.example.com"),
        ("", None),
        (None, None),
    ],
)
def test_normalize_domain(raw, expected):
    assert normalize_domain(raw) == expected


def test_gateway_signature_is_hex_hmac_sha256():
    # Published HMAC-SHA256 test vector (RFC 4231, case 2).
    digest = hmac_sha256_hex("Jefe", b"what do ya want for nothing?")
    assert digest == "5bdcc146bf60754e6a042426089575c75a003f089d2739839dec58b964ec3843"


def test_signatures_match():
    assert signatures_match("abc123", "abc123")
    assert signatures_match("abc123", " abc123 ")
    assert not signatures_match("abc123", "abc124")
    assert not signatures_match("abc123", None)
    assert not signatures_match("abc123", "")
