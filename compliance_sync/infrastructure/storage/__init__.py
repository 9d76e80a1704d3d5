from compliance_sync.infrastructure.storage.factory import create_store
from compliance_sync.infrastructure.storage.memory_store import InMemoryStore
from compliance_sync.infrastructure.storage.redis_store import RedisStore

__all__ = ["InMemoryStore", "RedisStore", "create_store"]
