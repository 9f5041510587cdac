"""
API credentials in the two shapes the SDK sends them: a bare secret, or a
base64 JSON bundle ``{"apiKey": ..., "appId": ..., "regions": [...], "ingestHost": ...}``.
"""

import base64
import binascii
import json
from dataclasses import dataclass
from typing import Optional, Sequence

from .exceptions import ConfigurationError


DEFAULT_APP_ID = "default"
SECRET_PREFIX = "sk_"
MAX_RAW_TOKEN_LENGTH = 64


@dataclass(frozen=True)
class ApiToken:
    app_id: str
    api_key: str


def _decode_bundle(token: str) -> Optional[ApiToken]:
    try:
        decoded = base64.b64decode(token, validate=True).decode("utf-8")
        parsed = json.loads(decoded)
    except (binascii.Error, ValueError):
        # ValueError covers UnicodeDecodeError and JSONDecodeError
        return None
    if not isinstance(parsed, dict) or not isinstance(parsed.get("apiKey"), str):
        return None
    app_id = parsed.get("appId")
    return ApiToken(
        app_id=app_id if isinstance(app_id, str) else DEFAULT_APP_ID,
        api_key=parsed["apiKey"],
    )


def parse_token(token: str) -> Optional[ApiToken]:
    """Return the decoded credential, or None when the token is malformed.

    A short dot-free token is a bare secret unless it is itself a well-formed
    bundle; ``sk_`` secrets never are, since ``_`` is outside the base64 alphabet.
    """
    bundle = _decode_bundle(token)
    if bundle is not None:
        return bundle
    if "." not in token and len(token) <= MAX_RAW_TOKEN_LENGTH:
        return ApiToken(app_id=DEFAULT_APP_ID, api_key=token)
    return None


def encode_token(
    api_key: str,
    app_id: str,
    ingest_host: str,
    regions: Sequence[str] = ("us-east-1",),
) -> str:
    """Build the base64 token handed to SDK users.

    Raises ConfigurationError when the secret is missing or lacks the ``sk_`` prefix.
    """
    if not api_key:
        raise ConfigurationError("Missing API_SECRET in environment variables")
    if not api_key.startswith(SECRET_PREFIX):
        raise ConfigurationError(f'API_SECRET must start with "{SECRET_PREFIX}"')
    # ingestHost is informational for the SDK; the relay reads its own BASE_URL
    bundle = {
        "apiKey": api_key,
        "appId": app_id,
        "regions": list(regions),
        "ingestHost": ingest_host,
    }
    return base64.b64encode(json.dumps(bundle).encode("utf-8")).decode("ascii")
