from compliance_sync.core.interfaces.broadcast import BroadcastChannel, BroadcastHandler
from compliance_sync.core.interfaces.store import DurableStore, MetaValue

__all__ = [
    "BroadcastChannel",
    "BroadcastHandler",
    "DurableStore",
    "MetaValue",
]
