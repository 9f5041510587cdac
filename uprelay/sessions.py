import secrets
from dataclasses import dataclass
from typing import Mapping, Optional

from .exceptions import ValidationFailure
from .lifecycle import DeclaredFile
from .models import ContentDisposition, FileAcl
from .settings import Settings
from .signing import check_ttl, expiry_timestamp, sign_url


FILE_NAME_PARAM = "x-ut-file-name"
FILE_SIZE_PARAM = "x-ut-file-size"
FILE_TYPE_PARAM = "x-ut-file-type"
ACL_PARAM = "x-ut-acl"
DISPOSITION_PARAM = "x-ut-content-disposition"
CUSTOM_ID_PARAM = "x-ut-custom-id"

DEFAULT_TTL_SECONDS = 3600


def generate_file_key() -> str:
    """24 url-safe characters (144 random bits)."""
    return secrets.token_urlsafe(18)


def declared_from_query(params: Mapping[str, str]) -> DeclaredFile:
    """Declared metadata carried on an ingest URL, with the SDK's defaults."""
    raw_size = params.get(FILE_SIZE_PARAM) or "0"
    try:
        size = int(raw_size)
    except ValueError:
        raise ValidationFailure(f"Invalid {FILE_SIZE_PARAM}: {raw_size!r}")
    if size < 0:
        raise ValidationFailure(f"Invalid {FILE_SIZE_PARAM}: {raw_size!r}")
    return DeclaredFile(
        name=params.get(FILE_NAME_PARAM) or "unknown-file",
        size=size,
        type=params.get(FILE_TYPE_PARAM) or "application/octet-stream",
        acl=FileAcl.from_wire(params.get(ACL_PARAM)),
        content_disposition=ContentDisposition.from_wire(params.get(DISPOSITION_PARAM)),
        custom_id=params.get(CUSTOM_ID_PARAM) or None,
    )


@dataclass
class UploadSession:
    key: str
    upload_url: str
    poll_url: str
    expires_at: int


class UploadSessionIssuer:
    """Mints file keys together with a signed PUT target and an unsigned poll URL."""

    def __init__(self, settings: Settings):
        self.base_url = settings.BASE_URL
        self.secret = settings.API_SECRET

    def poll_url(self, key: str) -> str:
        # unsigned: polling only reveals the status of a key the caller already holds
        return f"{self.base_url}/v6/pollUpload/{key}"

    def issue(self, declared: DeclaredFile, ttl_seconds: int = DEFAULT_TTL_SECONDS, key: Optional[str] = None) -> UploadSession:
        check_ttl(ttl_seconds)
        key = key or generate_file_key()
        expires_at = expiry_timestamp(ttl_seconds)
        params = {
            FILE_NAME_PARAM: declared.name,
            FILE_SIZE_PARAM: str(declared.size),
            FILE_TYPE_PARAM: declared.type,
            ACL_PARAM: declared.acl.wire,
            DISPOSITION_PARAM: declared.content_disposition.wire,
            CUSTOM_ID_PARAM: declared.custom_id,
        }
        upload_url = sign_url(f"{self.base_url}/{key}", params, self.secret, expires_at)
        return UploadSession(key=key, upload_url=upload_url, poll_url=self.poll_url(key), expires_at=expires_at)
