from compliance_sync.infrastructure.broadcast.local_channel import (
    LocalBroadcastChannel,
    LocalBroadcastHub,
)
from compliance_sync.infrastructure.broadcast.redis_channel import RedisBroadcastChannel

__all__ = ["LocalBroadcastChannel", "LocalBroadcastHub", "RedisBroadcastChannel"]
