"""
HMAC-SHA256 signatures over full URL strings.

The signed payload is the complete URL (scheme, host, path and every query
parameter in the order it was appended) without the ``signature`` parameter.
Signers append ``signature`` last so that a verifier can rebuild the payload
by stripping that one parameter from the query string as received.
"""

import hashlib
import hmac
import re
import time
from typing import Iterable, Mapping, Optional, Tuple, Union
from urllib.parse import parse_qsl, quote, urlsplit, urlunsplit

from .exceptions import ValidationFailure


SIGNATURE_PREFIX = "hmac-sha256="
SIGNATURE_PARAM = "signature"
EXPIRES_PARAM = "expires"
MAX_TTL_SECONDS = 7 * 86400

_TIME_UNITS = {
    "s": 1,
    "m": 60,
    "h": 3600,
    "d": 86400,
    "w": 604800,
    "M": 2592000,  # 30 days
    "y": 31536000,  # 365 days
}
_TIME_RE = re.compile(r"^(\d+)([smhdwMy])$")
_DIGITS_RE = re.compile(r"[0-9]+")


def now_ms() -> int:
    return int(time.time() * 1000)


def sign(payload: str, secret: str) -> str:
    digest = hmac.new(secret.encode(), payload.encode(), hashlib.sha256).hexdigest()
    return SIGNATURE_PREFIX + digest


def verify(payload: str, signature: str, secret: str) -> bool:
    """Constant-time check of ``signature`` against ``payload``.

    The signature may carry the ``hmac-sha256=`` prefix or be the bare hex
    digest. Anything that does not hex-decode is rejected.
    """
    if not signature:
        return False
    candidate = signature.rsplit("=", 1)[-1]
    try:
        received = bytes.fromhex(candidate)
    except ValueError:
        return False
    expected = hmac.new(secret.encode(), payload.encode(), hashlib.sha256).digest()
    return hmac.compare_digest(received, expected)


def expiry_timestamp(ttl_seconds: int, now: Optional[int] = None) -> int:
    """Millisecond unix timestamp ``ttl_seconds`` from now."""
    return (now_ms() if now is None else now) + int(ttl_seconds) * 1000


def parse_ttl(value: Union[int, str]) -> int:
    """Seconds from an int or a time string such as ``"5m"`` or ``"2h"``."""
    if isinstance(value, bool):
        raise ValidationFailure(f"Invalid time value: {value!r}")
    if isinstance(value, (int, float)):
        if value < 0:
            raise ValidationFailure(f"Invalid time number: {value}")
        return int(value)
    match = _TIME_RE.match(str(value))
    if not match:
        raise ValidationFailure(f'Invalid time format: "{value}"')
    return int(match.group(1)) * _TIME_UNITS[match.group(2)]


def check_ttl(seconds: int) -> int:
    if seconds <= 0 or seconds > MAX_TTL_SECONDS:
        raise ValidationFailure(
            f"Invalid expiry: must be between 1 and {MAX_TTL_SECONDS} seconds (7 days)"
        )
    return seconds


def sign_url(
    url: str,
    params: Union[Mapping[str, str], Iterable[Tuple[str, str]]],
    secret: str,
    expires_at: int,
) -> str:
    """Append ``expires`` and ``params`` to ``url`` and sign the result.

    Values that are ``None`` are skipped. The ``signature`` parameter is always
    the last one in the returned URL.
    """
    items = params.items() if isinstance(params, Mapping) else params
    pairs = [(EXPIRES_PARAM, str(expires_at))]
    pairs.extend((k, str(v)) for k, v in items if v is not None)
    query = "&".join(f"{quote(k, safe='')}={quote(v, safe='')}" for k, v in pairs)

    parts = urlsplit(url)
    if parts.query:
        query = f"{parts.query}&{query}"
    payload = urlunsplit((parts.scheme, parts.netloc, parts.path, query, ""))
    signature = quote(sign(payload, secret), safe="")
    return f"{payload}&{SIGNATURE_PARAM}={signature}"


def _split_signature(query: str) -> Tuple[str, Optional[str]]:
    kept, signature = [], None
    for part in query.split("&"):
        name = part.split("=", 1)[0]
        if name == SIGNATURE_PARAM:
            signature = dict(parse_qsl(part, keep_blank_values=True)).get(SIGNATURE_PARAM, "")
            continue
        kept.append(part)
    return "&".join(kept), signature


def verify_url(url: str, secret: str, now: Optional[int] = None) -> bool:
    """Verify a signed URL, including its ``expires`` parameter.

    Rejects missing, non-numeric or past ``expires`` values, a missing
    signature, and any signature mismatch. No clock skew allowance.
    """
    parts = urlsplit(url)
    if not parts.query:
        return False
    params = dict(parse_qsl(parts.query, keep_blank_values=True))

    expires = params.get(EXPIRES_PARAM)
    if not expires or not _DIGITS_RE.fullmatch(expires):
        return False
    if int(expires) < (now_ms() if now is None else now):
        return False

    query, signature = _split_signature(parts.query)
    if not signature:
        return False
    payload = urlunsplit((parts.scheme, parts.netloc, parts.path, query, ""))
    return verify(payload, signature, secret)
