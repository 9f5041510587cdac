import hashlib
from pathlib import Path
from typing import AsyncIterator, Mapping, Optional, Union

import aiofiles
import aiofiles.os
from loguru import logger

from ..exceptions import NotFoundError, StorageFailure, ValidationFailure
from ..signing import check_ttl, expiry_timestamp, parse_ttl, sign_url
from .base import ByteSource, StorageAdapter, StoredObject


CHUNK_SIZE = 64 * 1024


class LocalObject(StoredObject):
    def __init__(self, path: Path):
        self.path = path

    async def exists(self) -> bool:
        return await aiofiles.os.path.isfile(self.path)

    async def stream(self) -> AsyncIterator[bytes]:
        async with aiofiles.open(self.path, "rb") as f:
            while True:
                chunk = await f.read(CHUNK_SIZE)
                if not chunk:
                    break
                yield chunk


class LocalStorageAdapter(StorageAdapter):
    """Keeps uploaded bytes as flat files under ``root``, one file per key."""

    def __init__(self, root: Path, base_url: str, secret: str):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")
        self.secret = secret
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        storage_dir = self.root.resolve()
        abs_path = (storage_dir / key).resolve()
        # ensure the file is inside the storage dir to avoid path traversal
        if not key or abs_path.parent != storage_dir:
            raise ValidationFailure("Invalid file key")
        return abs_path

    async def upload(self, key: str, data: ByteSource) -> str:
        dest = self._path(key)
        # bytes only reach ``dest`` once the whole stream is in; a broken
        # stream leaves whatever is being served untouched
        partial = dest.with_name(f".{key}.part")
        hasher = hashlib.sha256()
        try:
            async with aiofiles.open(partial, "wb") as out_file:
                if isinstance(data, (bytes, bytearray)):
                    hasher.update(data)
                    await out_file.write(data)
                else:
                    async for chunk in data:
                        hasher.update(chunk)
                        await out_file.write(chunk)
            await aiofiles.os.replace(partial, dest)
        except OSError as e:
            raise StorageFailure(f"Failed to write {key}") from e
        finally:
            if await aiofiles.os.path.exists(partial):
                await aiofiles.os.remove(partial)
        return hasher.hexdigest()

    async def get_object(self, key: str) -> LocalObject:
        return LocalObject(self._path(key))

    async def hash_object(self, key: str) -> str:
        obj = await self.get_object(key)
        if not await obj.exists():
            raise NotFoundError("File not in storage")
        hasher = hashlib.sha256()
        async for chunk in obj.stream():
            hasher.update(chunk)
        return hasher.hexdigest()

    async def delete(self, key: str) -> None:
        try:
            await aiofiles.os.remove(self._path(key))
        except FileNotFoundError:
            logger.debug("Delete of {}: already absent", key)
        except OSError as e:
            raise StorageFailure(f"Failed to delete {key}") from e

    def public_url(self, key: str) -> str:
        return f"{self.base_url}/f/{key}"

    def signed_url(self, key: str, expires_in: Union[int, str], data: Optional[Mapping[str, object]] = None) -> str:
        ttl = check_ttl(parse_ttl(expires_in))
        return sign_url(self.public_url(key), data or {}, self.secret, expiry_timestamp(ttl))
