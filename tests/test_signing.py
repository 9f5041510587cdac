import hashlib
import hmac

import pytest
from hypothesis import assume, given, strategies as st

from uprelay.exceptions import ValidationFailure
from uprelay.signing import (
    MAX_TTL_SECONDS,
    SIGNATURE_PREFIX,
    check_ttl,
    expiry_timestamp,
    now_ms,
    parse_ttl,
    sign,
    sign_url,
    verify,
    verify_url,
)


SECRET = "sk_signing_secret"
URL = "http://relay.test/abc123"
# printable ASCII; HMAC zero-pads keys, so "k" and "k\x00" would sign alike
secrets = st.text(st.characters(min_codepoint=33, max_codepoint=126), min_size=1)


def _flip_hex(ch: str) -> str:
    return "0" if ch != "0" else "1"


class TestSignVerify:
    def test_signature_format(self):
        expected = hmac.new(b"s", b"payload", hashlib.sha256).hexdigest()
        assert sign("payload", "s") == SIGNATURE_PREFIX + expected

    @given(payload=st.text(), secret=secrets)
    def test_round_trip(self, payload, secret):
        assert verify(payload, sign(payload, secret), secret) is True

    @given(payload=st.text(min_size=1), secret=secrets, data=st.data())
    def test_payload_mutation_fails(self, payload, secret, data):
        i = data.draw(st.integers(min_value=0, max_value=len(payload) - 1))
        replacement = data.draw(st.characters(exclude_categories=("Cs",)))
        assume(replacement != payload[i])
        mutated = payload[:i] + replacement + payload[i + 1:]
        assert verify(mutated, sign(payload, secret), secret) is False

    @given(payload=st.text(), secret=secrets, data=st.data())
    def test_signature_mutation_fails(self, payload, secret, data):
        signature = sign(payload, secret)
        i = data.draw(st.integers(min_value=len(SIGNATURE_PREFIX), max_value=len(signature) - 1))
        mutated = signature[:i] + _flip_hex(signature[i]) + signature[i + 1:]
        assert verify(payload, mutated, secret) is False

    @given(payload=st.text(), secret=secrets, other=secrets)
    def test_different_secret_fails(self, payload, secret, other):
        assume(secret != other)
        assert verify(payload, sign(payload, secret), other) is False

    def test_accepts_bare_hex_digest(self):
        bare = sign("payload", SECRET)[len(SIGNATURE_PREFIX):]
        assert verify("payload", bare, SECRET) is True

    @pytest.mark.parametrize("bad", ["", "hmac-sha256=", "hmac-sha256=zz", "not hex at all", "abc"])
    def test_undecodable_signatures_are_rejected(self, bad):
        assert verify("payload", bad, SECRET) is False


class TestSignedUrls:
    def test_signature_is_last_parameter(self):
        url = sign_url(URL, {"x-ut-file-name": "a b.txt"}, SECRET, expiry_timestamp(60))
        assert url.rsplit("&", 1)[1].startswith("signature=")
        assert "expires=" in url.split("?", 1)[1].split("&")[0]

    def test_valid_url_verifies(self):
        url = sign_url(URL, {"x-ut-file-name": "photo (1).png", "x-ut-acl": "private"}, SECRET, expiry_timestamp(60))
        assert verify_url(url, SECRET) is True

    def test_expired_url_fails_even_with_correct_signature(self):
        expires = now_ms() - 1
        url = sign_url(URL, {}, SECRET, expires)
        assert verify_url(url, SECRET) is False

    def test_expiry_boundary_is_inclusive(self):
        expires = 1_700_000_000_000
        url = sign_url(URL, {}, SECRET, expires)
        assert verify_url(url, SECRET, now=expires) is True
        assert verify_url(url, SECRET, now=expires + 1) is False

    def test_tampered_parameter_fails(self):
        url = sign_url(URL, {"x-ut-file-size": "10"}, SECRET, expiry_timestamp(60))
        assert verify_url(url.replace("x-ut-file-size=10", "x-ut-file-size=99"), SECRET) is False

    def test_wrong_secret_fails(self):
        url = sign_url(URL, {}, SECRET, expiry_timestamp(60))
        assert verify_url(url, "sk_other") is False

    def test_missing_signature_fails(self):
        url = sign_url(URL, {}, SECRET, expiry_timestamp(60))
        assert verify_url(url.rsplit("&signature=", 1)[0], SECRET) is False

    @pytest.mark.parametrize("expires", ["", "soon", "12.5", "-5"])
    def test_non_numeric_expires_fails(self, expires):
        payload = f"{URL}?expires={expires}"
        url = f"{payload}&signature={sign(payload, SECRET)}"
        assert verify_url(url, SECRET) is False

    def test_missing_expires_fails(self):
        payload = f"{URL}?x-ut-acl=private"
        url = f"{payload}&signature={sign(payload, SECRET)}"
        assert verify_url(url, SECRET) is False

    def test_verifies_sender_encoding_verbatim(self):
        # a client that encodes spaces as '+' and leaves '=' unescaped in the signature
        payload = f"{URL}?expires={expiry_timestamp(60)}&x-ut-file-name=my+file.txt"
        url = f"{payload}&signature={sign(payload, SECRET)}"
        assert verify_url(url, SECRET) is True


class TestTtl:
    @pytest.mark.parametrize(
        "value, seconds",
        [(90, 90), ("30s", 30), ("5m", 300), ("2h", 7200), ("1d", 86400), ("1w", 604800), ("1M", 2592000)],
    )
    def test_parse_ttl(self, value, seconds):
        assert parse_ttl(value) == seconds

    @pytest.mark.parametrize("value", ["5", "m", "1x", "-1s", -1])
    def test_parse_ttl_rejects_malformed(self, value):
        with pytest.raises(ValidationFailure):
            parse_ttl(value)

    @pytest.mark.parametrize("seconds", [0, -10, MAX_TTL_SECONDS + 1])
    def test_check_ttl_rejects_out_of_range(self, seconds):
        with pytest.raises(ValidationFailure, match="Invalid expiry"):
            check_ttl(seconds)

    def test_check_ttl_accepts_seven_days(self):
        assert check_ttl(MAX_TTL_SECONDS) == MAX_TTL_SECONDS
