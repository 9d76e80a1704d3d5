from compliance_sync.application.api.routes.connectivity import router as connectivity_router
from compliance_sync.application.api.routes.health import router as health_router
from compliance_sync.application.api.routes.metrics import router as metrics_router
from compliance_sync.application.api.routes.queue import router as queue_router
from compliance_sync.application.api.routes.session import router as session_router

__all__ = [
    "connectivity_router",
    "health_router",
    "metrics_router",
    "queue_router",
    "session_router",
]
