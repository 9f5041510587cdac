"""
File status state machine.

    UPLOADING ──► UPLOADED ──┐
        │                    ├──► DELETION_PENDING ──► (record removed)
        └───────► FAILED ────┘

Transitions are applied by conditional updates on the store. A transition
that is not allowed from the current status is ignored and logged; the record
is returned unchanged so that retries and late callbacks stay harmless.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from loguru import logger

from .crud import FileStore
from .models import ContentDisposition, FileAcl, FileRecord, FileStatus, utcnow
from .storage.base import StorageAdapter


ALLOWED_TRANSITIONS = {
    FileStatus.UPLOADING: {FileStatus.UPLOADED, FileStatus.FAILED, FileStatus.DELETION_PENDING},
    FileStatus.UPLOADED: {FileStatus.UPLOADED, FileStatus.DELETION_PENDING},
    FileStatus.FAILED: {FileStatus.DELETION_PENDING},
    FileStatus.DELETION_PENDING: set(),
}


def sources_for(target: FileStatus) -> List[FileStatus]:
    return [status for status, targets in ALLOWED_TRANSITIONS.items() if target in targets]


@dataclass
class DeclaredFile:
    """Client-declared metadata; never checked against the actual bytes."""

    name: str
    size: int = 0
    type: str = "application/octet-stream"
    acl: FileAcl = FileAcl.PRIVATE
    content_disposition: ContentDisposition = ContentDisposition.INLINE
    custom_id: Optional[str] = None


@dataclass
class Page:
    files: List[FileRecord]
    total: int
    offset: int

    @property
    def has_more(self) -> bool:
        return self.offset + len(self.files) < self.total


@dataclass
class Usage:
    total_bytes: int
    files_uploaded: int


class FileLifecycleManager:
    def __init__(self, store: FileStore, storage: StorageAdapter):
        self.store = store
        self.storage = storage

    def register_pending(self, key: str, declared: DeclaredFile) -> FileRecord:
        """Create the record in UPLOADING unless ``key`` already exists.

        The pre-flight probe and the byte-bearing request may race here; whichever
        arrives first fixes the declared metadata.
        """
        record = FileRecord(
            key=key,
            custom_id=declared.custom_id,
            name=declared.name,
            size=declared.size,
            type=declared.type,
            acl=declared.acl,
            content_disposition=declared.content_disposition,
            status=FileStatus.UPLOADING,
        )
        return self.store.insert_if_absent(record)

    def _transition(self, key: str, target: FileStatus, **values: Any) -> FileRecord:
        record, applied = self.store.transition(key, sources_for(target), status=target, **values)
        if not applied:
            logger.warning("Ignoring transition of {} from {} to {}", key, record.status.value, target.value)
        return record

    def mark_uploaded(self, key: str, file_hash: str) -> FileRecord:
        # repeating on an UPLOADED record refreshes hash and timestamp
        return self._transition(key, FileStatus.UPLOADED, file_hash=file_hash, uploaded_at=utcnow())

    def mark_failed(self, key: str) -> FileRecord:
        # partially written bytes stay where they are; reconciliation is external
        return self._transition(key, FileStatus.FAILED)

    def mark_deletion_pending(self, key: str) -> FileRecord:
        # the hash only describes bytes that are still being served
        return self._transition(key, FileStatus.DELETION_PENDING, file_hash=None)

    async def complete_multipart(self, key: str) -> FileRecord:
        self.store.find_one(key=key)
        file_hash = await self.storage.hash_object(key)
        return self.mark_uploaded(key, file_hash)

    def resolve(self, key: Optional[str] = None, custom_id: Optional[str] = None) -> FileRecord:
        return self.store.find_one(key=key, custom_id=custom_id)

    @staticmethod
    def is_downloadable(record: FileRecord) -> bool:
        return record.status == FileStatus.UPLOADED

    def _page(self, limit: int, offset: int, status: Optional[FileStatus]) -> Page:
        files = self.store.find_many(limit=limit, offset=offset, status=status)
        return Page(files=files, total=self.store.count(status=status), offset=offset)

    def list_all(self, limit: int = 20, offset: int = 0) -> Page:
        return self._page(limit, offset, None)

    def list_uploaded(self, limit: int = 20, offset: int = 0) -> Page:
        return self._page(limit, offset, FileStatus.UPLOADED)

    async def _delete_bytes(self, key: str):
        try:
            await self.storage.delete(key)
        except Exception:
            logger.exception("Failed to delete bytes for {}; removing metadata anyway", key)

    async def delete(self, keys: Optional[List[str]] = None, custom_ids: Optional[List[str]] = None) -> int:
        """Remove matching records and, best-effort, their bytes. Returns records removed."""
        records = self.store.find_many(keys=keys, custom_ids=custom_ids)
        if not records:
            return 0
        for record in records:
            self.mark_deletion_pending(record.key)
        await asyncio.gather(*(self._delete_bytes(record.key) for record in records))
        return self.store.delete_many(keys=[record.key for record in records])

    def rename(self, updates: Iterable[Tuple[Optional[str], Optional[str], str]]) -> int:
        return self.store.update_batch((key, custom_id, {"name": name}) for key, custom_id, name in updates)

    def update_acl(self, updates: Iterable[Tuple[Optional[str], Optional[str], FileAcl]]) -> int:
        return self.store.update_batch((key, custom_id, {"acl": acl}) for key, custom_id, acl in updates)

    def attach_route_metadata(
        self,
        keys: List[str],
        metadata: Optional[Dict[str, Any]],
        callback_url: str,
        callback_slug: str,
    ) -> int:
        values = {"route_metadata": metadata, "callback_url": callback_url, "callback_slug": callback_slug}
        return self.store.update_batch((key, None, values) for key in keys)

    def usage(self) -> Usage:
        return Usage(total_bytes=self.store.sum_size(), files_uploaded=self.store.count())
