import base64
import json

import pytest

from uprelay.exceptions import ConfigurationError
from uprelay.tokens import ApiToken, encode_token, parse_token


def b64json(value) -> str:
    return base64.b64encode(json.dumps(value).encode()).decode()


class TestParseToken:
    def test_raw_secret(self):
        assert parse_token("sk_abc") == ApiToken(app_id="default", api_key="sk_abc")

    def test_encoded_bundle(self):
        assert parse_token(b64json({"apiKey": "x", "appId": "y"})) == ApiToken(app_id="y", api_key="x")

    def test_bundle_without_app_id_uses_default(self):
        assert parse_token(b64json({"apiKey": "x"})) == ApiToken(app_id="default", api_key="x")

    def test_non_string_app_id_uses_default(self):
        assert parse_token(b64json({"apiKey": "x", "appId": 42})) == ApiToken(app_id="default", api_key="x")

    def test_dotted_garbage_is_invalid(self):
        assert parse_token("not-base64-but-has.dot") is None

    @pytest.mark.parametrize(
        "token",
        [
            b64json({"appId": "y", "pad": "x" * 60}),
            b64json({"apiKey": 7, "pad": "x" * 60}),
            b64json(["apiKey", "x" * 80]),
            base64.b64encode(b"{not json" + b" " * 60).decode(),
            base64.b64encode(b"\xff\xfe\xfa" * 30).decode(),
        ],
    )
    def test_malformed_bundles_are_invalid(self, token):
        assert parse_token(token) is None

    def test_long_undecodable_token_is_invalid(self):
        assert parse_token("a" * 65) is None

    def test_short_non_bundle_is_a_raw_secret(self):
        token = b64json({"appId": "y"})
        assert parse_token(token) == ApiToken(app_id="default", api_key=token)

    def test_long_dot_free_bundle_still_decodes(self):
        token = b64json({"apiKey": "sk_" + "k" * 80, "appId": "y"})
        assert len(token) > 64
        assert parse_token(token) == ApiToken(app_id="y", api_key="sk_" + "k" * 80)


class TestEncodeToken:
    def test_round_trips_through_parse(self):
        token = encode_token("sk_live_123", "my-app", "https://relay.example")
        assert parse_token(token) == ApiToken(app_id="my-app", api_key="sk_live_123")
        bundle = json.loads(base64.b64decode(token))
        assert bundle == {
            "apiKey": "sk_live_123",
            "appId": "my-app",
            "regions": ["us-east-1"],
            "ingestHost": "https://relay.example",
        }

    def test_rejects_missing_secret(self):
        with pytest.raises(ConfigurationError, match="Missing API_SECRET"):
            encode_token("", "app", "https://relay.example")

    def test_rejects_secret_without_prefix(self):
        with pytest.raises(ConfigurationError, match='must start with "sk_"'):
            encode_token("live_123", "app", "https://relay.example")
