from datetime import datetime, timezone
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import StreamingResponse
from loguru import logger

from .deps import (
    ensure_readable,
    get_issuer,
    get_lifecycle,
    get_settings,
    get_storage,
    require_api_key,
    require_signature,
)
from .exceptions import AuthFailure, NotFoundError
from .lifecycle import DeclaredFile, FileLifecycleManager
from .models import ContentDisposition, FileAcl, FileRecord, FileStatus
from .schemas import (
    CompleteMultipartRequest,
    DeleteFilesRequest,
    DirectUploadRequest,
    FailureCallbackRequest,
    FileRead,
    ListedFile,
    ListFilesRequest,
    ListFilesResponse,
    PrepareUploadRequest,
    RenameFilesRequest,
    RequestFileAccessRequest,
    RouteMetadataRequest,
    UpdateAclRequest,
)
from .sessions import UploadSessionIssuer, declared_from_query
from .settings import Settings
from .storage.base import StorageAdapter


PUBLIC_CACHE_CONTROL = "public, max-age=31536000, immutable"
PRIVATE_CACHE_CONTROL = "private, no-store"


def to_ms(value: Optional[datetime]) -> Optional[int]:
    if value is None:
        return None
    # SQLite hands timestamps back without tzinfo; they are stored as UTC
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


def file_read(record: FileRecord) -> FileRead:
    return FileRead(
        id=record.id,
        key=record.key,
        customId=record.custom_id,
        name=record.name,
        size=record.size,
        type=record.type,
        status=record.status.value,
        acl=record.acl.value,
        contentDisposition=record.content_disposition.value,
        fileHash=record.file_hash,
        createdAt=to_ms(record.created_at),
        updatedAt=to_ms(record.updated_at),
        uploadedAt=to_ms(record.uploaded_at),
    )


def _quoted(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def content_disposition(record: FileRecord) -> str:
    disposition = record.content_disposition.wire
    try:
        record.name.encode("latin-1")
    except UnicodeEncodeError:
        fallback = record.name.encode("ascii", "replace").decode("ascii")
        return f"{disposition}; filename=\"{_quoted(fallback)}\"; filename*=UTF-8''{quote(record.name)}"
    return f'{disposition}; filename="{_quoted(record.name)}"'


# --- byte ingest, gated by the signed URL ---

ingest = APIRouter(dependencies=[Depends(require_signature)])


@ingest.get("/{file_key}")
def preflight(file_key: str, request: Request, lifecycle: FileLifecycleManager = Depends(get_lifecycle)):
    logger.info("Pre-flight check for {}", file_key)
    lifecycle.register_pending(file_key, declared_from_query(request.query_params))
    return Response(content="", media_type="text/plain")


@ingest.put("/{file_key}")
async def upload_bytes(
    file_key: str,
    request: Request,
    lifecycle: FileLifecycleManager = Depends(get_lifecycle),
    storage: StorageAdapter = Depends(get_storage),
):
    logger.debug("Starting upload for {}", file_key)
    lifecycle.register_pending(file_key, declared_from_query(request.query_params))
    file_hash = await storage.upload(file_key, request.stream())
    record = lifecycle.mark_uploaded(file_key, file_hash)
    logger.info("Upload complete for {} hash: {}", file_key, file_hash)
    return {"ufsUrl": storage.public_url(file_key), "file": file_read(record)}


# --- management API, gated by the API key ---

v6 = APIRouter(prefix="/v6", dependencies=[Depends(require_api_key)])


@v6.post("/deleteFiles")
async def delete_files(body: DeleteFilesRequest, lifecycle: FileLifecycleManager = Depends(get_lifecycle)):
    logger.info("Deleting files: keys={} customIds={}", body.fileKeys, body.customIds)
    if body.fileKeys is not None:
        count = await lifecycle.delete(keys=body.fileKeys)
    else:
        count = await lifecycle.delete(custom_ids=body.customIds)
    logger.debug("Deleted files count: {}", count)
    return {"success": True, "deletedCount": count}


@v6.post("/listFiles", response_model=ListFilesResponse)
def list_files(body: ListFilesRequest, lifecycle: FileLifecycleManager = Depends(get_lifecycle)):
    logger.info("Listing files limit={} offset={}", body.limit, body.offset)
    page = lifecycle.list_all(limit=body.limit, offset=body.offset)
    files = [
        ListedFile(
            id=f.id,
            customId=f.custom_id,
            key=f.key,
            name=f.name,
            size=f.size,
            status=f.status.label,
            uploadedAt=to_ms(f.uploaded_at or f.created_at),
        )
        for f in page.files
    ]
    return ListFilesResponse(hasMore=page.has_more, files=files)


@v6.post("/renameFiles")
def rename_files(body: RenameFilesRequest, lifecycle: FileLifecycleManager = Depends(get_lifecycle)):
    logger.info("Renaming {} file(s)", len(body.updates))
    count = lifecycle.rename((u.fileKey, u.customId, u.newName) for u in body.updates)
    return {"success": True, "renamedCount": count}


@v6.post("/requestFileAccess")
def request_file_access(
    body: RequestFileAccessRequest,
    lifecycle: FileLifecycleManager = Depends(get_lifecycle),
    storage: StorageAdapter = Depends(get_storage),
):
    logger.debug("Requesting file access for key={} customId={}", body.fileKey, body.customId)
    record = lifecycle.resolve(key=body.fileKey, custom_id=body.customId)
    if record.acl == FileAcl.PRIVATE:
        url = storage.signed_url(record.key, body.expiresIn)
    else:
        url = storage.public_url(record.key)
    logger.info("File access URL generated for {}", record.key)
    return {"url": url, "ufsUrl": url}


@v6.post("/updateACL")
def update_acl(body: UpdateAclRequest, lifecycle: FileLifecycleManager = Depends(get_lifecycle)):
    logger.info("Updating ACL of {} file(s)", len(body.updates))
    count = lifecycle.update_acl((u.fileKey, u.customId, FileAcl.from_wire(u.acl)) for u in body.updates)
    return {"success": True, "updatedCount": count}


@v6.get("/pollUpload/{file_key}")
def poll_upload(
    file_key: str,
    lifecycle: FileLifecycleManager = Depends(get_lifecycle),
    storage: StorageAdapter = Depends(get_storage),
):
    logger.info("Polling for upload status of {}", file_key)
    record = lifecycle.resolve(key=file_key)
    done = record.status == FileStatus.UPLOADED
    file = None
    if done:
        file = {
            "fileKey": record.key,
            "fileName": record.name,
            "fileSize": record.size,
            "fileType": record.type,
            "fileUrl": storage.public_url(record.key),
            "fileHash": record.file_hash,
            "customId": record.custom_id,
        }
    return {
        "status": "done" if done else "still working",
        "file": file,
        "metadata": record.route_metadata,
        "callbackData": None,
    }


@v6.post("/uploadFiles")
def upload_files(
    body: DirectUploadRequest,
    issuer: UploadSessionIssuer = Depends(get_issuer),
    storage: StorageAdapter = Depends(get_storage),
):
    logger.info("Requesting presigned URLs for {} direct upload(s)", len(body.files))
    acl = FileAcl.from_wire(body.acl)
    disposition = ContentDisposition.from_wire(body.contentDisposition)
    data = []
    for info in body.files:
        declared = DeclaredFile(
            name=info.name,
            size=info.size,
            type=info.type,
            acl=acl,
            content_disposition=disposition,
            custom_id=info.customId,
        )
        session = issuer.issue(declared)
        data.append(
            {
                "key": session.key,
                "fileName": info.name,
                "fileType": info.type,
                "fileUrl": storage.public_url(session.key),
                "url": session.upload_url,
                "customId": info.customId,
                "contentDisposition": body.contentDisposition,
                "pollingJwt": "not-implemented",
                "pollingUrl": session.poll_url,
                "fields": {},
            }
        )
    return {"data": data}


@v6.post("/completeMultipart")
async def complete_multipart(body: CompleteMultipartRequest, lifecycle: FileLifecycleManager = Depends(get_lifecycle)):
    logger.info("Completing multipart upload for {}", body.fileKey)
    await lifecycle.complete_multipart(body.fileKey)
    return {"success": True}


@v6.post("/failureCallback")
def failure_callback(body: FailureCallbackRequest, lifecycle: FileLifecycleManager = Depends(get_lifecycle)):
    logger.error("Received failure callback for {} uploadId={}", body.fileKey, body.uploadId)
    lifecycle.mark_failed(body.fileKey)
    return {"success": True}


@v6.post("/getUsageInfo")
def get_usage_info(lifecycle: FileLifecycleManager = Depends(get_lifecycle)):
    logger.info("Requesting usage info")
    usage = lifecycle.usage()
    return {
        "totalBytes": usage.total_bytes,
        "appTotalBytes": usage.total_bytes,
        "filesUploaded": usage.files_uploaded,
        # usage is reported only, never enforced
        "limitBytes": -1,
    }


v7 = APIRouter(prefix="/v7", dependencies=[Depends(require_api_key)])


@v7.post("/getAppInfo")
def get_app_info(settings: Settings = Depends(get_settings)):
    return {"appId": settings.APP_ID, "defaultACL": "private", "allowACLOverride": True}


@v7.post("/prepareUpload")
def prepare_upload(body: PrepareUploadRequest, issuer: UploadSessionIssuer = Depends(get_issuer)):
    logger.info("Preparing v7 upload for {}", body.fileName)
    declared = DeclaredFile(
        name=body.fileName,
        size=body.fileSize,
        type=body.fileType or "application/octet-stream",
        acl=FileAcl.from_wire(body.acl),
        content_disposition=ContentDisposition.from_wire(body.contentDisposition),
        custom_id=body.customId,
    )
    session = issuer.issue(declared, body.expiresIn)
    return {"key": session.key, "url": session.upload_url}


callbacks = APIRouter(dependencies=[Depends(require_api_key)])


@callbacks.post("/route-metadata")
def route_metadata(body: RouteMetadataRequest, lifecycle: FileLifecycleManager = Depends(get_lifecycle)):
    logger.info("Received route metadata for {} file(s)", len(body.fileKeys))
    count = lifecycle.attach_route_metadata(body.fileKeys, body.metadata, body.callbackUrl, body.callbackSlug)
    logger.debug("Updated {} file(s) with callback metadata", count)
    return {"ok": True}


# --- CDN reads: open for public files, signed URL for private ones ---

cdn = APIRouter()


async def serve_file(request: Request, file_key: str, lifecycle: FileLifecycleManager, storage: StorageAdapter, settings: Settings):
    logger.info("CDN request for {}", file_key)
    record = lifecycle.resolve(key=file_key)
    ensure_readable(request, record, settings)
    if not lifecycle.is_downloadable(record):
        raise NotFoundError()
    obj = await storage.get_object(file_key)
    if not await obj.exists():
        logger.error("File not in storage: {}", file_key)
        raise NotFoundError("File not in storage")
    headers = {
        "Content-Disposition": content_disposition(record),
        "Cache-Control": PRIVATE_CACHE_CONTROL if record.acl == FileAcl.PRIVATE else PUBLIC_CACHE_CONTROL,
    }
    return StreamingResponse(obj.stream(), media_type=record.type or "application/octet-stream", headers=headers)


@cdn.get("/f/{file_key}")
async def cdn_file(
    file_key: str,
    request: Request,
    lifecycle: FileLifecycleManager = Depends(get_lifecycle),
    storage: StorageAdapter = Depends(get_storage),
    settings: Settings = Depends(get_settings),
):
    return await serve_file(request, file_key, lifecycle, storage, settings)


@cdn.get("/a/{app_id}/{file_key}")
async def cdn_app_file(
    app_id: str,
    file_key: str,
    request: Request,
    lifecycle: FileLifecycleManager = Depends(get_lifecycle),
    storage: StorageAdapter = Depends(get_storage),
    settings: Settings = Depends(get_settings),
):
    if app_id != settings.APP_ID:
        logger.error("Invalid app ID in request: {}", app_id)
        raise AuthFailure("Invalid app ID", 403)
    return await serve_file(request, file_key, lifecycle, storage, settings)
