"""Storage backend interface: byte upload, streamed reads, deletion and URL issuance."""
from abc import ABC, abstractmethod
from typing import AsyncIterable, AsyncIterator, Mapping, Optional, Union


ByteSource = Union[bytes, AsyncIterable[bytes]]


class StoredObject(ABC):
    """Handle on an object that may or may not exist in the backend."""

    @abstractmethod
    async def exists(self) -> bool:
        ...

    @abstractmethod
    def stream(self) -> AsyncIterator[bytes]:
        ...


class StorageAdapter(ABC):
    """One implementation per backend, selected once at startup by STORAGE_PROVIDER."""

    @abstractmethod
    async def upload(self, key: str, data: ByteSource) -> str:
        """Store the bytes under ``key`` and return their sha256 hex digest."""
        ...

    @abstractmethod
    async def get_object(self, key: str) -> StoredObject:
        ...

    @abstractmethod
    async def hash_object(self, key: str) -> str:
        """sha256 hex digest of stored bytes. Raise NotFoundError if missing."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove the bytes. A missing object is not an error; other failures raise StorageFailure."""
        ...

    @abstractmethod
    def public_url(self, key: str) -> str:
        ...

    @abstractmethod
    def signed_url(self, key: str, expires_in: Union[int, str], data: Optional[Mapping[str, object]] = None) -> str:
        """Time-limited read URL; ``expires_in`` is seconds or a time string, at most 7 days."""
        ...
