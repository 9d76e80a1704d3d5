"""Durable store selection from settings."""

from compliance_sync.core.interfaces.store import DurableStore
from compliance_sync.core.logging.logger import get_logger
from compliance_sync.infrastructure.storage.memory_store import InMemoryStore
from compliance_sync.infrastructure.storage.redis_store import RedisStore

logger = get_logger(__name__)


def create_store(settings) -> DurableStore:
    """
    Build the store named by STORAGE_BACKEND.

    The store is returned unconnected; the caller owns connect()/disconnect().
    """
    backend = settings.storage.STORAGE_BACKEND
    logger.info("Creating durable store", stage="STORE.0", backend=backend)
    if backend == "redis":
        return RedisStore(settings)
    return InMemoryStore()
