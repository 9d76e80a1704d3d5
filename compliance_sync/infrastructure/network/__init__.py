from compliance_sync.infrastructure.network.connectivity import ConnectivityMonitor

__all__ = ["ConnectivityMonitor"]
