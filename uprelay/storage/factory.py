from ..exceptions import ConfigurationError
from ..settings import Settings
from .base import StorageAdapter
from .local import LocalStorageAdapter


def create_storage(settings: Settings) -> StorageAdapter:
    """Build the single process-wide storage adapter named by STORAGE_PROVIDER."""
    provider = settings.STORAGE_PROVIDER.lower()
    if provider == "local":
        return LocalStorageAdapter(settings.STORAGE_DIR, settings.BASE_URL, settings.API_SECRET)
    raise ConfigurationError(f"Unsupported storage provider: {settings.STORAGE_PROVIDER}")
