from typing import Optional

from fastapi import Depends, Request, Security
from fastapi.security.api_key import APIKeyHeader
from loguru import logger
from starlette.status import HTTP_401_UNAUTHORIZED, HTTP_403_FORBIDDEN

from .crud import FileStore
from .exceptions import AuthFailure
from .lifecycle import FileLifecycleManager
from .models import FileAcl, FileRecord
from .sessions import UploadSessionIssuer
from .settings import Settings
from .signing import verify_url
from .storage.base import StorageAdapter
from .tokens import ApiToken, parse_token


API_KEY_HEADER = "x-uploadthing-api-key"
SIGNATURE_ERROR = "Invalid or expired signature"

api_key_header = APIKeyHeader(name=API_KEY_HEADER, auto_error=False)


# Components are built once by create_app and kept on app.state


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> FileStore:
    return request.app.state.store


def get_storage(request: Request) -> StorageAdapter:
    return request.app.state.storage


def get_lifecycle(request: Request) -> FileLifecycleManager:
    return request.app.state.lifecycle


def get_issuer(request: Request) -> UploadSessionIssuer:
    return request.app.state.issuer


def check_api_key(header_value: Optional[str], secret: str) -> ApiToken:
    if not header_value:
        raise AuthFailure("Missing API key", HTTP_401_UNAUTHORIZED)
    token = parse_token(header_value)
    if token is None:
        raise AuthFailure("Invalid API token format", HTTP_401_UNAUTHORIZED)
    # internal trust boundary: plain equality against the configured secret
    if token.api_key != secret:
        raise AuthFailure("Invalid API key", HTTP_403_FORBIDDEN)
    return token


def check_signed_url(url: str, secret: str) -> None:
    # one outcome for every failure so callers cannot probe which check failed
    if not verify_url(url, secret):
        raise AuthFailure(SIGNATURE_ERROR, HTTP_403_FORBIDDEN)


def request_url(request: Request, settings: Settings) -> str:
    """The request URL as signed: public origin, path and the raw query string."""
    url = settings.base_origin + request.url.path
    if request.url.query:
        url = f"{url}?{request.url.query}"
    return url


async def require_api_key(
    request: Request,
    api_key: Optional[str] = Security(api_key_header),
    settings: Settings = Depends(get_settings),
) -> ApiToken:
    token = check_api_key(api_key, settings.API_SECRET)
    request.state.auth = token
    return token


async def require_signature(request: Request, settings: Settings = Depends(get_settings)) -> bool:
    url = request_url(request, settings)
    try:
        check_signed_url(url, settings.API_SECRET)
    except AuthFailure:
        logger.error("Invalid signature for {}", request.url.path)
        raise
    return True


def ensure_readable(request: Request, record: FileRecord, settings: Settings) -> None:
    """Re-gate reads of PRIVATE files behind a valid signed URL; public files pass."""
    if record.acl == FileAcl.PRIVATE:
        try:
            check_signed_url(request_url(request, settings), settings.API_SECRET)
        except AuthFailure:
            logger.error("Invalid or expired signed URL for {}", record.key)
            raise
