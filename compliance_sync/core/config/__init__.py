"""
Configuration Module

Centralized, type-safe configuration for the compliance sync subsystem.

Components:
-----------
- **settings.py**: Pydantic-based configuration with environment variable loading
- **constants.py**: System-wide constants, enums, and magic numbers

Usage:
------
```python
from compliance_sync.core.config import get_settings
from compliance_sync.core.config.constants import EntryStatus

settings = get_settings()
threshold = settings.circuit_breaker.CB_FAILURE_THRESHOLD
```

Testing:
-------
```python
import os
from compliance_sync.core.config import reload_settings

os.environ["COMPLIANCE_API_URL"] = "https://compliance.example.com"
settings = reload_settings()
```
"""

from compliance_sync.core.config.constants import (
    DRAIN_LOCK_KEY,
    HTTP_STATUS_ERROR_CODES,
    LOCK_STALE_SECONDS,
    MUTATION_TIMEOUT,
    QUOTA_STATUS_CODES,
    READ_TIMEOUT,
    SYNCED_RETENTION_DAYS,
    BroadcastMessageType,
    EntryStatus,
    ErrorCode,
    SessionStatus,
)
from compliance_sync.core.config.settings import Settings, get_settings, reload_settings

__all__ = [
    # Settings
    "Settings",
    "get_settings",
    "reload_settings",
    # Enums
    "BroadcastMessageType",
    "EntryStatus",
    "ErrorCode",
    "SessionStatus",
    # Constants
    "DRAIN_LOCK_KEY",
    "HTTP_STATUS_ERROR_CODES",
    "LOCK_STALE_SECONDS",
    "MUTATION_TIMEOUT",
    "QUOTA_STATUS_CODES",
    "READ_TIMEOUT",
    "SYNCED_RETENTION_DAYS",
]
