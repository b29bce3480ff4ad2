"""
Storage backends and the request-scoped storage dependency.
"""
from collections.abc import AsyncGenerator
from fastapi import Request

from app.core import config
from app.core.storage.interface import Storage, StorageProvider, TeamLocks
from app.utils import get_logger


log = get_logger(__name__)


def build_storage_provider(backend: str | None = None) -> StorageProvider:
    """Create the storage provider named by `backend` (defaults to STORAGE_BACKEND)."""
    backend = (backend or config.STORAGE_BACKEND).lower()
    if backend == "memory":
        from app.core.storage.memory import MemoryStorageProvider
        log.info("Using in-memory storage")
        return MemoryStorageProvider()
    if backend == "database":
        from app.core.storage.database import DatabaseStorageProvider
        log.info("Using database storage")
        return DatabaseStorageProvider()
    raise ValueError(f"Unknown storage backend: {backend!r}")


async def get_storage(request: Request) -> AsyncGenerator[Storage, None]:
    """
    Dependency yielding the storage for the current request.

    Usage in FastAPI routes:
        @router.get("/items")
        async def get_items(storage: Storage = Depends(get_storage)):
            ...
    """
    provider: StorageProvider = request.app.state.storage_provider
    async with provider.session() as storage:
        yield storage


__all__ = ["Storage", "StorageProvider", "TeamLocks", "build_storage_provider", "get_storage"]
