from urllib.parse import parse_qsl, urlsplit

import pytest

from uprelay.exceptions import ValidationFailure
from uprelay.models import ContentDisposition, FileAcl
from uprelay.sessions import declared_from_query, generate_file_key
from uprelay.signing import MAX_TTL_SECONDS, now_ms, verify_url

from conftest import BASE_URL, SECRET


def test_generated_keys_are_unique_and_url_safe():
    keys = {generate_file_key() for _ in range(1000)}
    assert len(keys) == 1000
    assert all(len(k) == 24 and "/" not in k and "+" not in k for k in keys)


class TestIssue:
    def test_upload_url_is_signed_and_carries_metadata(self, issuer, declared):
        session = issuer.issue(declared, 3600)
        parts = urlsplit(session.upload_url)
        assert f"{parts.scheme}://{parts.netloc}" == BASE_URL
        assert parts.path == f"/{session.key}"
        params = dict(parse_qsl(parts.query))
        assert params["x-ut-file-name"] == "report.pdf"
        assert params["x-ut-file-size"] == "11"
        assert params["x-ut-file-type"] == "application/pdf"
        assert params["x-ut-acl"] == "private"
        assert params["x-ut-content-disposition"] == "inline"
        assert "x-ut-custom-id" not in params
        assert verify_url(session.upload_url, SECRET) is True

    def test_expiry_follows_ttl(self, issuer, declared):
        before = now_ms()
        session = issuer.issue(declared, 60)
        expires = int(dict(parse_qsl(urlsplit(session.upload_url).query))["expires"])
        assert before + 60_000 <= expires <= now_ms() + 60_000
        assert session.expires_at == expires

    def test_poll_url_is_unsigned(self, issuer, declared):
        session = issuer.issue(declared, 60)
        assert session.poll_url == f"{BASE_URL}/v6/pollUpload/{session.key}"

    @pytest.mark.parametrize("ttl", [0, -1, MAX_TTL_SECONDS + 1])
    def test_invalid_expiry(self, issuer, declared, ttl):
        with pytest.raises(ValidationFailure, match="Invalid expiry"):
            issuer.issue(declared, ttl)


class TestDeclaredFromQuery:
    def test_round_trips_issued_metadata(self, issuer, declared):
        session = issuer.issue(declared, 60)
        parsed = declared_from_query(dict(parse_qsl(urlsplit(session.upload_url).query)))
        assert parsed == declared

    def test_defaults(self):
        parsed = declared_from_query({})
        assert parsed.name == "unknown-file"
        assert parsed.size == 0
        assert parsed.type == "application/octet-stream"
        assert parsed.acl == FileAcl.PRIVATE
        assert parsed.content_disposition == ContentDisposition.INLINE
        assert parsed.custom_id is None

    def test_public_attachment(self):
        parsed = declared_from_query({"x-ut-acl": "public-read", "x-ut-content-disposition": "attachment"})
        assert parsed.acl == FileAcl.PUBLIC_READ
        assert parsed.content_disposition == ContentDisposition.ATTACHMENT

    @pytest.mark.parametrize("size", ["abc", "-3", "1.5"])
    def test_rejects_bad_size(self, size):
        with pytest.raises(ValidationFailure):
            declared_from_query({"x-ut-file-size": size})
